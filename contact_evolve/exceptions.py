"""
Exception hierarchy for contact_evolve.

Every failure raised by the optimization engine is a precondition violation:
none of them is retried, they propagate straight to the caller.
"""


class ContactEvolveError(Exception):
    """Base class for all errors raised by contact_evolve."""


class DimensionMismatchError(ContactEvolveError, ValueError):
    """Matrix operands have incompatible shapes."""


class OutOfRangeError(ContactEvolveError, IndexError):
    """An index lies outside the matrix bounds."""


class ProteinMismatchError(ContactEvolveError):
    """Candidates of different proteins were combined."""


class NoSuchEntryError(ContactEvolveError, KeyError):
    """A requested power, protein or grid cell does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its message, keep it readable
        return str(self.args[0]) if self.args else ''


class EmptyMatrixError(ContactEvolveError):
    """The largest entry of a matrix without entries was requested."""


class NotInitializedError(ContactEvolveError):
    """A population was evolved before it was ranked."""


class CrossoverExhaustedError(ContactEvolveError):
    """Both crossover pools ran dry before the offspring reached its size."""
