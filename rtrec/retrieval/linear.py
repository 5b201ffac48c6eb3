"""
Exact linear-scan vector index ranked by cosine similarity
"""

from typing import Dict, Hashable, Optional, Sequence

import numpy as np

from rtrec.retrieval.base import SearchResult, as_vector


class LinearIndex:
    """
    Brute-force cosine index. Each query costs O(n * D); the indexed
    population is a bounded cache in front of the persistent store.
    Ties keep insertion order.
    """

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ValueError("Index dimension must be positive")
        self.dimension = dimension
        self.vectors: Dict[Hashable, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self.vectors)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self.vectors

    def add_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        self.vectors[identifier] = as_vector(vector, self.dimension)

    def update_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        self.add_vector(identifier, vector)

    def remove_vector(self, identifier: Hashable) -> None:
        self.vectors.pop(identifier, None)

    def get_vector(self, identifier: Hashable) -> Optional[np.ndarray]:
        vector = self.vectors.get(identifier)
        return None if vector is None else vector.copy()

    def search_similar(self, query_vector: Sequence[float], top_k: int) -> SearchResult:
        query = as_vector(query_vector, self.dimension, "Query vector")
        if top_k <= 0 or not self.vectors:
            return []

        identifiers = list(self.vectors.keys())
        matrix = np.stack([self.vectors[identifier] for identifier in identifiers])

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

        order = np.argsort(-similarities, kind="stable")[:top_k]
        return [(identifiers[i], float(similarities[i])) for i in order]
