"""
Vector Index Service
User and item indexes, each behind its own reader/writer lock
"""

from typing import Hashable, Optional, Sequence

import aiorwlock
import numpy as np
import structlog

from rtrec.config import IndexConfig
from rtrec.retrieval.base import SearchResult, VectorIndex
from rtrec.retrieval.hnsw import HNSWIndex
from rtrec.retrieval.linear import LinearIndex

logger = structlog.get_logger()


def build_index(config: IndexConfig) -> VectorIndex:
    """Create an index from configuration"""
    if config.index_type == "linear":
        return LinearIndex(config.dimension)
    if config.index_type == "hnsw":
        return HNSWIndex(
            config.dimension,
            max_connections=config.max_connections,
            ef_construction=config.ef_construction,
            ef_search=config.ef_search,
            link_neighbors=config.link_neighbors,
            seed=config.seed,
        )
    raise ValueError(f"Unsupported index type: {config.index_type}")


class LockedIndex:
    """Serializes writers against concurrent searches on one index"""

    def __init__(self, index: VectorIndex, name: str):
        self.index = index
        self.name = name
        self.lock = aiorwlock.RWLock()

    @property
    def dimension(self) -> int:
        return self.index.dimension

    async def add_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        async with self.lock.writer_lock:
            self.index.add_vector(identifier, vector)

    async def update_vector(self, identifier: Hashable, vector: Sequence[float]) -> None:
        async with self.lock.writer_lock:
            self.index.update_vector(identifier, vector)

    async def remove_vector(self, identifier: Hashable) -> None:
        async with self.lock.writer_lock:
            self.index.remove_vector(identifier)

    async def get_vector(self, identifier: Hashable) -> Optional[np.ndarray]:
        async with self.lock.reader_lock:
            return self.index.get_vector(identifier)

    async def search_similar(self, query_vector: Sequence[float], top_k: int) -> SearchResult:
        async with self.lock.reader_lock:
            return self.index.search_similar(query_vector, top_k)

    async def size(self) -> int:
        async with self.lock.reader_lock:
            return len(self.index)


class VectorIndexService:
    """In-memory user and item vector indexes fed by the training loop"""

    def __init__(self, user_index: VectorIndex, item_index: VectorIndex):
        self.users = LockedIndex(user_index, "users")
        self.items = LockedIndex(item_index, "items")

    @classmethod
    def from_config(cls, config: IndexConfig) -> "VectorIndexService":
        service = cls(build_index(config), build_index(config))
        logger.info(
            f"Initialized in-memory vector indexes with dimension {config.dimension}",
            index_type=config.index_type,
        )
        return service

    async def update_user_embedding(self, user_id: Hashable, embedding: Sequence[float]) -> None:
        await self.users.update_vector(user_id, embedding)

    async def update_item_embedding(self, item_id: Hashable, embedding: Sequence[float]) -> None:
        await self.items.update_vector(item_id, embedding)

    async def search_similar_users(self, user_embedding: Sequence[float], top_k: int) -> SearchResult:
        return await self.users.search_similar(user_embedding, top_k)

    async def search_similar_items(self, item_embedding: Sequence[float], top_k: int) -> SearchResult:
        return await self.items.search_similar(item_embedding, top_k)

    async def stats(self):
        return {
            "indexed_users": await self.users.size(),
            "indexed_items": await self.items.size(),
        }
