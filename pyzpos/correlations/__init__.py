"""
Pairwise section correlations.

Storage of windowed correlation volumes per section, assembly of dense
similarity matrices, and normalized cross-correlation of stack sections.
"""

from pyzpos.correlations.meta import Meta
from pyzpos.correlations.store import CorrelationsStore, store_from_matrix
from pyzpos.correlations.similarity import (
    block_ncc,
    compute_correlations,
    compute_similarity_matrix,
    ncc,
)

__all__ = [
    "Meta",
    "CorrelationsStore",
    "store_from_matrix",
    "ncc",
    "block_ncc",
    "compute_correlations",
    "compute_similarity_matrix",
]
