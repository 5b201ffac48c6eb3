"""
Vector index interface and shared similarity helpers
"""

from typing import Hashable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from rtrec.utils.validation import validate_embedding_dimension

SearchResult = List[Tuple[Hashable, float]]


class VectorIndex(Protocol):
    dimension: int

    def add_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        ...

    def update_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        ...

    def remove_vector(self, identifier: Hashable) -> None:
        ...

    def get_vector(self, identifier: Hashable) -> Optional[np.ndarray]:
        ...

    def search_similar(self, query_vector: Sequence[float], top_k: int) -> SearchResult:
        ...

    def __len__(self) -> int:
        ...


def as_vector(vector: Sequence[float], dimension: int, what: str = "Vector") -> np.ndarray:
    """Validate length against the index dimension and copy into float32"""
    validate_embedding_dimension(vector, dimension, what)
    return np.array(vector, dtype=np.float32)


def squared_euclidean(a: np.ndarray, b: np.ndarray) -> float:
    diff = a - b
    return float(np.dot(diff, diff))
