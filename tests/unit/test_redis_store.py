"""
Unit tests for the Redis embedding store
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from rtrec.config import RedisConfig
from rtrec.models.entities import ModelParameters
from rtrec.storage.redis_store import LATEST_VERSION_KEY, RedisEmbeddingStore


@pytest.fixture
def redis_client():
    client = AsyncMock()
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.execute = AsyncMock(return_value=[True, True])
    client.pipeline = MagicMock(return_value=pipe)
    return client


@pytest.fixture
def store(redis_client):
    return RedisEmbeddingStore(RedisConfig(), client=redis_client)


@pytest.fixture
def parameters():
    return ModelParameters(
        version="v100",
        user_ids=["u1"],
        user_embedding_weights=np.array([[0.1, 0.2]], dtype=np.float32),
        item_ids=["i1", "i2"],
        item_embedding_weights=np.array([[0.3, 0.4], [0.5, 0.6]], dtype=np.float32),
        bias_weights=np.zeros(2, dtype=np.float32),
        updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestRedisEmbeddingStore:
    """Test cases for RedisEmbeddingStore"""

    def test_connection_pool_initialization(self):
        with patch("rtrec.storage.redis_store.redis") as mock_redis:
            store = RedisEmbeddingStore(RedisConfig(host="cache", port=6380, db=2))

            mock_redis.ConnectionPool.assert_called_once()
            kwargs = mock_redis.ConnectionPool.call_args.kwargs
            assert (kwargs["host"], kwargs["port"], kwargs["db"]) == ("cache", 6380, 2)
            assert store.redis_client is mock_redis.Redis.return_value

    @pytest.mark.asyncio
    async def test_put_embedding_without_ttl(self, store, redis_client):
        redis_client.set.return_value = True

        assert await store.put_embedding("u1", np.array([0.5, 1.5])) is True

        key, value = redis_client.set.call_args.args
        assert key == "embedding:u1"
        assert json.loads(value) == [0.5, 1.5]

    @pytest.mark.asyncio
    async def test_put_embedding_with_ttl(self, redis_client):
        store = RedisEmbeddingStore(RedisConfig(ttl_seconds=60), client=redis_client)
        redis_client.setex.return_value = True

        assert await store.put_embedding("u1", [1.0]) is True
        assert redis_client.setex.call_args.args[:2] == ("embedding:u1", 60)

    @pytest.mark.asyncio
    async def test_put_embedding_error_returns_false(self, store, redis_client):
        redis_client.set.side_effect = ConnectionError("down")

        assert await store.put_embedding("u1", [1.0]) is False

    @pytest.mark.asyncio
    async def test_get_embedding(self, store, redis_client):
        redis_client.get.return_value = b"[0.25, 0.75]"

        embedding = await store.get_embedding("i1")

        np.testing.assert_allclose(embedding, [0.25, 0.75])
        redis_client.get.assert_awaited_with("embedding:i1")

    @pytest.mark.asyncio
    async def test_get_embedding_missing_or_failing(self, store, redis_client):
        redis_client.get.return_value = None
        assert await store.get_embedding("missing") is None

        redis_client.get.side_effect = ConnectionError("down")
        assert await store.get_embedding("missing") is None

    @pytest.mark.asyncio
    async def test_put_model_parameters_moves_latest_pointer(self, store, redis_client, parameters):
        assert await store.put_model_parameters(parameters) is True

        pipe = redis_client.pipeline.return_value
        keys = [call.args[0] for call in pipe.set.call_args_list]
        assert keys == ["model:params:v100", LATEST_VERSION_KEY]
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_put_model_parameters_failure(self, store, redis_client, parameters):
        redis_client.pipeline.return_value.execute.side_effect = ConnectionError("down")

        assert await store.put_model_parameters(parameters) is False

    @pytest.mark.asyncio
    async def test_get_latest_model_parameters(self, store, redis_client, parameters):
        stored = {
            LATEST_VERSION_KEY: b"v100",
            "model:params:v100": json.dumps(parameters.to_dict()).encode(),
        }
        redis_client.get.side_effect = lambda key: stored.get(key)

        loaded = await store.get_model_parameters()

        assert loaded.version == "v100"
        assert loaded.item_ids == ["i1", "i2"]
        np.testing.assert_allclose(loaded.item_embedding_weights, parameters.item_embedding_weights)

    @pytest.mark.asyncio
    async def test_get_model_parameters_without_checkpoint(self, store, redis_client):
        redis_client.get.return_value = None

        assert await store.get_model_parameters() is None

    @pytest.mark.asyncio
    async def test_close(self, store, redis_client):
        await store.close()

        redis_client.aclose.assert_awaited_once()
