"""
contact_evolve: island-model evolution of sparse protein contact maps

Evolves small subsets of a protein's contacts toward subsets that reconstruct
the full contact structure well, judged by how many native contacts their
second and third matrix powers recover.

Main Components:
- algebra: sparse relation matrix
- reference: residue pairs, reference providers, bound inference
- evolutionary: candidates, fitness, ranking, populations, island model
- utils: logging

Usage:
    from contact_evolve.evolutionary import ContactEvolve
"""

__version__ = "1.0.0"

__all__ = [
    "algebra",
    "evolutionary",
    "reference",
    "utils",
]
