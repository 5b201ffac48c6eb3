"""
Persistent storage adapters for embeddings and model checkpoints
"""

from .redis_store import RedisEmbeddingStore

__all__ = ["RedisEmbeddingStore"]
