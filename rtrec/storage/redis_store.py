"""
Redis Embedding Store
Persistent embeddings and versioned model checkpoints over redis.asyncio
"""

import json
from typing import Hashable, Optional, Sequence

import numpy as np
import redis.asyncio as redis
import structlog

from rtrec.config import RedisConfig
from rtrec.models.entities import ModelParameters

logger = structlog.get_logger()

LATEST_VERSION_KEY = "model:params:latest"


class RedisEmbeddingStore:
    """Embedding and checkpoint persistence with async Redis"""

    def __init__(self, config: RedisConfig, client: Optional[redis.Redis] = None):
        self.config = config
        self.redis_client = client
        self.connection_pool = None
        if self.redis_client is None:
            self._initialize_connection()

    def _initialize_connection(self):
        """Initialize Redis connection pool"""
        try:
            self.connection_pool = redis.ConnectionPool(
                host=self.config.host,
                port=self.config.port,
                db=self.config.db,
                password=self.config.password,
                max_connections=20,
                retry_on_timeout=True,
                socket_keepalive=True,
                health_check_interval=30,
            )

            self.redis_client = redis.Redis(connection_pool=self.connection_pool)
            logger.info("Redis connection pool initialized")

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection: {e}")
            raise

    def _embedding_key(self, identifier: Hashable) -> str:
        return f"embedding:{identifier}"

    def _model_key(self, version: str) -> str:
        return f"model:params:{version}"

    async def get_embedding(self, identifier: Hashable) -> Optional[np.ndarray]:
        """Fetch an embedding; missing keys and read errors both yield None"""
        key = self._embedding_key(identifier)
        try:
            cached_value = await self.redis_client.get(key)
            if cached_value is None:
                return None
            return np.asarray(json.loads(cached_value), dtype=np.float32)

        except Exception as e:
            logger.warning(f"Embedding get error for key {key}: {e}")
            return None

    async def put_embedding(self, identifier: Hashable, embedding: Sequence[float]) -> bool:
        key = self._embedding_key(identifier)
        try:
            serialized_value = json.dumps(np.asarray(embedding, dtype=np.float32).tolist())

            if self.config.ttl_seconds:
                success = await self.redis_client.setex(key, self.config.ttl_seconds, serialized_value)
            else:
                success = await self.redis_client.set(key, serialized_value)

            return bool(success)

        except Exception as e:
            logger.error(f"Embedding set error for key {key}: {e}")
            return False

    async def put_model_parameters(self, parameters: ModelParameters) -> bool:
        """Store a checkpoint and move the latest-version pointer to it"""
        key = self._model_key(parameters.version)
        try:
            async with self.redis_client.pipeline() as pipe:
                pipe.set(key, json.dumps(parameters.to_dict()))
                pipe.set(LATEST_VERSION_KEY, parameters.version)
                await pipe.execute()

            logger.info(f"Saved model parameters version: {parameters.version}")
            return True

        except Exception as e:
            logger.error(f"Model parameter save error for version {parameters.version}: {e}")
            return False

    async def get_model_parameters(self, version: Optional[str] = None) -> Optional[ModelParameters]:
        """Load a checkpoint by version, or the latest one"""
        try:
            if version is None:
                latest = await self.redis_client.get(LATEST_VERSION_KEY)
                if latest is None:
                    return None
                version = latest.decode() if isinstance(latest, bytes) else latest

            cached_value = await self.redis_client.get(self._model_key(version))
            if cached_value is None:
                return None

            return ModelParameters.from_dict(json.loads(cached_value))

        except Exception as e:
            logger.error(f"Model parameter load error for version {version}: {e}")
            return None

    async def close(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.aclose()
        if self.connection_pool:
            await self.connection_pool.disconnect()
        logger.info("Redis connection closed")
