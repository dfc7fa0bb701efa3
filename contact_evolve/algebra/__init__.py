"""Sparse matrix algebra used by the contact map representation."""

from .sparse_matrix import SparseRelationMatrix, IndexPair

__all__ = ['SparseRelationMatrix', 'IndexPair']
