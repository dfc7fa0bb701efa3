"""
Sparse relation matrix.

A dimension-fixed real matrix over integer index pairs that stores only its
non-zero entries. Rows are kept in a single adjacency structure
(row -> {col: weight}); the column view is a transposed mirror built lazily and
dropped on every mutation, so both views can never diverge.

The matrix product walks the shared middle index: entries of the left operand
are grouped by column j, entries of the right operand by row j, and every j
present in both contributes the cross product of the two groups.
"""

import logging
from typing import Dict, Iterable, Iterator, Optional, Set, Tuple

import numpy as np

from ..exceptions import DimensionMismatchError, EmptyMatrixError, OutOfRangeError

logger = logging.getLogger(__name__)

IndexPair = Tuple[int, int]


class SparseRelationMatrix:
    """Sparse rows x cols matrix with 0-based integer indices.

    Absent entries are implicitly 0.0 and storing 0.0 deletes an entry. Every
    collection handed out is a fresh copy that callers may mutate freely.

    Attributes:
        rows: Number of rows, fixed at construction
        cols: Number of columns, fixed at construction
    """

    def __init__(self, rows: int, cols: Optional[int] = None):
        """Create an empty matrix.

        Args:
            rows: Number of rows
            cols: Number of columns (defaults to rows, a square matrix)

        Raises:
            ValueError: If a dimension is negative
        """
        if cols is None:
            cols = rows
        if rows < 0 or cols < 0:
            raise ValueError(f"Matrix dimensions must be non-negative, got {rows}x{cols}")
        self.rows = rows
        self.cols = cols
        self._rows: Dict[int, Dict[int, float]] = {}
        self._transposed: Optional[Dict[int, Dict[int, float]]] = None

    @classmethod
    def from_entries(
        cls,
        rows: int,
        cols: Optional[int] = None,
        entries: Optional[Iterable[Tuple[int, int, float]]] = None
    ) -> 'SparseRelationMatrix':
        """Build a matrix from (row, col, weight) triples."""
        matrix = cls(rows, cols)
        for i, j, weight in entries or ():
            matrix.set(i, j, weight)
        return matrix

    @classmethod
    def from_dense(cls, array: np.ndarray) -> 'SparseRelationMatrix':
        """Build a matrix from a dense 2-D numpy array, keeping non-zeros only."""
        array = np.asarray(array, dtype=float)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2-D array, got {array.ndim} dimensions")
        matrix = cls(array.shape[0], array.shape[1])
        for i, j in zip(*np.nonzero(array)):
            matrix.set(int(i), int(j), float(array[i, j]))
        return matrix

    def _check_index(self, i: int, j: int) -> None:
        if not (0 <= i < self.rows and 0 <= j < self.cols):
            raise OutOfRangeError(
                f"Index ({i}, {j}) outside {self.rows}x{self.cols} matrix"
            )

    def _column_view(self) -> Dict[int, Dict[int, float]]:
        if self._transposed is None:
            transposed: Dict[int, Dict[int, float]] = {}
            for i, row in self._rows.items():
                for j, weight in row.items():
                    transposed.setdefault(j, {})[i] = weight
            self._transposed = transposed
        return self._transposed

    def get(self, i: int, j: int) -> float:
        """Return the weight stored at (i, j), or 0.0 if absent.

        Raises:
            OutOfRangeError: If (i, j) lies outside the matrix
        """
        self._check_index(i, j)
        return self._rows.get(i, {}).get(j, 0.0)

    def set(self, i: int, j: int, weight: float) -> None:
        """Store weight at (i, j); a weight of 0.0 removes the entry.

        Raises:
            OutOfRangeError: If (i, j) lies outside the matrix
        """
        self._check_index(i, j)
        self._transposed = None
        if weight == 0.0:
            row = self._rows.get(i)
            if row is not None:
                row.pop(j, None)
                if not row:
                    del self._rows[i]
            return
        self._rows.setdefault(i, {})[j] = float(weight)

    insert = set

    def add(self, other: 'SparseRelationMatrix') -> 'SparseRelationMatrix':
        """Return the elementwise sum of two equally shaped matrices.

        Raises:
            DimensionMismatchError: If the shapes differ
        """
        if (self.rows, self.cols) != (other.rows, other.cols):
            raise DimensionMismatchError(
                f"Cannot add {self.rows}x{self.cols} and {other.rows}x{other.cols} matrices"
            )
        result = self.copy()
        for i, j, weight in other.items():
            result.set(i, j, result._rows.get(i, {}).get(j, 0.0) + weight)
        return result

    def subtract(self, other: 'SparseRelationMatrix') -> 'SparseRelationMatrix':
        """Return self minus other (same shape rules as add)."""
        return self.add(other.scalar_multiply(-1.0))

    def scalar_multiply(self, scalar: float) -> 'SparseRelationMatrix':
        """Return a copy with every stored weight multiplied by scalar."""
        result = SparseRelationMatrix(self.rows, self.cols)
        if scalar == 0.0:
            return result
        for i, j, weight in self.items():
            result.set(i, j, weight * scalar)
        return result

    def multiply(self, other: 'SparseRelationMatrix') -> 'SparseRelationMatrix':
        """Return the matrix product self . other with shape (self.rows, other.cols).

        Raises:
            DimensionMismatchError: If self.cols != other.rows
        """
        if self.cols != other.rows:
            raise DimensionMismatchError(
                f"Cannot multiply {self.rows}x{self.cols} by {other.rows}x{other.cols}"
            )
        accumulated: Dict[int, Dict[int, float]] = {}
        left_by_column = self._column_view()
        for j, left_column in left_by_column.items():
            right_row = other._rows.get(j)
            if not right_row:
                continue
            for i, left_weight in left_column.items():
                target = accumulated.setdefault(i, {})
                for k, right_weight in right_row.items():
                    target[k] = target.get(k, 0.0) + left_weight * right_weight

        result = SparseRelationMatrix(self.rows, other.cols)
        for i, row in accumulated.items():
            for k, weight in row.items():
                if weight != 0.0:
                    result._rows.setdefault(i, {})[k] = weight
        return result

    def power(self, exponent: int) -> 'SparseRelationMatrix':
        """Return self multiplied by itself exponent times (exponent >= 1)."""
        if exponent < 1:
            raise ValueError(f"Exponent must be at least 1, got {exponent}")
        result = self.copy()
        for _ in range(exponent - 1):
            result = result.multiply(self)
        return result

    def transpose(self) -> 'SparseRelationMatrix':
        result = SparseRelationMatrix(self.cols, self.rows)
        for j, column in self._column_view().items():
            result._rows[j] = dict(column)
        return result

    def largest_entry(self) -> float:
        """Return the maximum stored weight.

        Raises:
            EmptyMatrixError: If the matrix has no entries
        """
        if not self._rows:
            raise EmptyMatrixError(f"Largest entry of an empty {self.rows}x{self.cols} matrix")
        return max(max(row.values()) for row in self._rows.values())

    def normalized(self) -> 'SparseRelationMatrix':
        """Return a copy divided by its largest entry."""
        return self.scalar_multiply(1.0 / self.largest_entry())

    def index_pairs(self) -> Set[IndexPair]:
        """Return a snapshot of the (row, col) keys present."""
        return {(i, j) for i, row in self._rows.items() for j in row}

    def row_index_exists(self, i: int) -> bool:
        return i in self._rows

    def col_index_exists(self, j: int) -> bool:
        return j in self._column_view()

    def row(self, i: int) -> Dict[int, float]:
        """Return a copy of row i as {col: weight}."""
        return dict(self._rows.get(i, {}))

    def column(self, j: int) -> Dict[int, float]:
        """Return a copy of column j as {row: weight}."""
        return dict(self._column_view().get(j, {}))

    def items(self) -> Iterator[Tuple[int, int, float]]:
        """Iterate over stored (row, col, weight) triples in row order."""
        for i in sorted(self._rows):
            row = self._rows[i]
            for j in sorted(row):
                yield i, j, row[j]

    def is_symmetric(self) -> bool:
        if self.rows != self.cols:
            return False
        return all(self._rows.get(j, {}).get(i) == weight for i, j, weight in self.items())

    def copy(self) -> 'SparseRelationMatrix':
        result = SparseRelationMatrix(self.rows, self.cols)
        result._rows = {i: dict(row) for i, row in self._rows.items()}
        return result

    def to_dense(self) -> np.ndarray:
        """Return the matrix as a dense numpy array."""
        dense = np.zeros((self.rows, self.cols), dtype=float)
        for i, j, weight in self.items():
            dense[i, j] = weight
        return dense

    def allclose(self, other: 'SparseRelationMatrix', atol: float = 1e-9) -> bool:
        """Entrywise comparison within an absolute tolerance."""
        if (self.rows, self.cols) != (other.rows, other.cols):
            return False
        keys = self.index_pairs() | other.index_pairs()
        return all(abs(self.get(i, j) - other.get(i, j)) <= atol for i, j in keys)

    def __len__(self) -> int:
        return sum(len(row) for row in self._rows.values())

    def __contains__(self, pair: IndexPair) -> bool:
        i, j = pair
        return j in self._rows.get(i, {})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseRelationMatrix):
            return NotImplemented
        return (self.rows, self.cols) == (other.rows, other.cols) and self._rows == other._rows

    def __repr__(self) -> str:
        return f"SparseRelationMatrix({self.rows}x{self.cols}, entries={len(self)})"
