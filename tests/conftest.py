"""
PyTest configuration and fixtures for testing
"""

import uuid
from typing import Dict, Hashable, Optional

import numpy as np
import pytest

from rtrec.config import IndexConfig, TrainingConfig
from rtrec.models.collaborative import CollaborativeFiltering
from rtrec.models.entities import ModelParameters, TrainingExample
from rtrec.retrieval.service import VectorIndexService
from rtrec.training.orchestrator import TrainingOrchestrator

TEST_DIM = 8


# Register test markers
def pytest_configure(config):
    """Register custom test markers"""
    config.addinivalue_line("markers", "smoke: Mark test as smoke test")
    config.addinivalue_line("markers", "unit: Mark test as unit test")
    config.addinivalue_line("markers", "integration: Mark test as integration test")
    config.addinivalue_line("markers", "slow: Mark test as slow running")


class InMemoryEmbeddingStore:
    """Dictionary-backed stand-in for the Redis embedding store"""

    def __init__(self):
        self.embeddings: Dict[Hashable, np.ndarray] = {}
        self.parameters: Dict[str, ModelParameters] = {}
        self.latest_version: Optional[str] = None
        self.put_calls = []
        self.fail_embeddings = False
        self.fail_parameters = False

    async def put_embedding(self, identifier, embedding):
        self.put_calls.append(identifier)
        if self.fail_embeddings:
            raise ConnectionError("store unavailable")
        self.embeddings[identifier] = np.asarray(embedding, dtype=np.float32).copy()
        return True

    async def put_model_parameters(self, parameters):
        if self.fail_parameters:
            raise ConnectionError("store unavailable")
        self.parameters[parameters.version] = parameters
        self.latest_version = parameters.version
        return True

    async def get_model_parameters(self, version=None):
        version = version or self.latest_version
        if version is None:
            return None
        return self.parameters.get(version)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def make_example(rng):
    """Factory for valid training examples with random features"""

    def _make(user_id=None, item_id=None, label=1.0, dim=TEST_DIM, user_features=None, item_features=None, **kwargs):
        if user_features is None:
            user_features = rng.uniform(-1, 1, dim)
        if item_features is None:
            item_features = rng.uniform(-1, 1, dim)
        return TrainingExample(
            user_id=user_id if user_id is not None else uuid.uuid4(),
            item_id=item_id if item_id is not None else uuid.uuid4(),
            label=label,
            user_features=user_features,
            item_features=item_features,
            **kwargs,
        )

    return _make


@pytest.fixture
def model():
    return CollaborativeFiltering(embedding_dim=TEST_DIM, learning_rate=0.01, regularization=0.01)


@pytest.fixture
def index_service():
    return VectorIndexService.from_config(IndexConfig(dimension=TEST_DIM, index_type="linear"))


@pytest.fixture
def embedding_store():
    return InMemoryEmbeddingStore()


@pytest.fixture
def training_config():
    return TrainingConfig(
        batch_size=4,
        learning_rate=0.01,
        regularization=0.01,
        model_save_interval=3600,
        negative_sampling_ratio=4.0,
        batch_timeout_seconds=30.0,
        channel_capacity=16,
    )


@pytest.fixture
def orchestrator(model, index_service, embedding_store, training_config):
    return TrainingOrchestrator(
        model=model,
        index_service=index_service,
        embedding_store=embedding_store,
        config=training_config,
        rng=np.random.default_rng(7),
    )
