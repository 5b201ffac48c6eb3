"""
Similarity search over user and item vectors
Exact linear scan and approximate HNSW graph
"""

from .base import VectorIndex
from .candidates import CandidateGenerator
from .hnsw import HNSWIndex
from .linear import LinearIndex
from .service import LockedIndex, VectorIndexService, build_index

__all__ = [
    "VectorIndex",
    "LinearIndex",
    "HNSWIndex",
    "LockedIndex",
    "VectorIndexService",
    "build_index",
    "CandidateGenerator",
]
