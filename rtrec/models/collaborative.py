"""
Collaborative Filtering
Bilinear user/item factorization trained online with plain gradient steps
"""

import time
from datetime import datetime, timezone
from typing import Callable, Dict, Hashable, Iterator, List, Optional, Protocol, Sequence, Tuple

import aiorwlock
import numpy as np
import structlog

from rtrec.models.entities import ModelParameters, TrainingExample
from rtrec.models.initializers import EmbeddingInitializer, InitializationMethod
from rtrec.utils.validation import DimensionMismatchError, validate_embedding_dimension

logger = structlog.get_logger()


class RecommendationAlgorithm(Protocol):
    """Capability set shared by pluggable learning algorithms"""

    async def train(self, examples: Sequence[TrainingExample]) -> None:
        ...

    def predict(self, user_features: Sequence[float], item_features: Sequence[float]) -> float:
        ...

    async def get_user_embedding(self, user_id: Hashable) -> np.ndarray:
        ...

    async def get_item_embedding(self, item_id: Hashable) -> np.ndarray:
        ...

    async def update_parameters(self, parameters: ModelParameters) -> None:
        ...


class EmbeddingTable:
    """Dense row arena of embeddings plus an identifier -> row mapping"""

    def __init__(
        self,
        dimension: int,
        initializer: Callable[[Hashable], np.ndarray],
        initial_capacity: int = 1024,
    ):
        self.dimension = dimension
        self._initializer = initializer
        self._rows = np.zeros((max(1, initial_capacity), dimension), dtype=np.float32)
        self._index: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self._index

    def _grow(self):
        capacity = self._rows.shape[0]
        rows = np.zeros((capacity * 2, self.dimension), dtype=np.float32)
        rows[:capacity] = self._rows
        self._rows = rows

    def _allocate(self, identifier: Hashable) -> int:
        row = len(self._index)
        if row >= self._rows.shape[0]:
            self._grow()
        self._index[identifier] = row
        return row

    def get(self, identifier: Hashable) -> Optional[np.ndarray]:
        """Row view of an existing embedding, or None"""
        row = self._index.get(identifier)
        if row is None:
            return None
        return self._rows[row]

    def ensure(self, identifier: Hashable) -> np.ndarray:
        """Row view, creating the embedding from the initializer when missing"""
        row = self._index.get(identifier)
        if row is None:
            row = self._allocate(identifier)
            self._rows[row] = self._initializer(identifier)
        return self._rows[row]

    def set(self, identifier: Hashable, vector: Sequence[float]):
        validate_embedding_dimension(vector, self.dimension, "Embedding")
        row = self._index.get(identifier)
        if row is None:
            row = self._allocate(identifier)
        self._rows[row] = vector

    def clear(self):
        self._index.clear()
        self._rows[:] = 0.0

    def items(self) -> Iterator[Tuple[Hashable, np.ndarray]]:
        for identifier, row in self._index.items():
            yield identifier, self._rows[row]

    def export(self) -> Tuple[List[Hashable], np.ndarray]:
        """Identifiers and a copy of their rows, in row order"""
        identifiers = list(self._index.keys())
        return identifiers, self._rows[: len(identifiers)].copy()


class CollaborativeFiltering:
    """Dot-product collaborative filtering over lazily created embeddings"""

    def __init__(
        self,
        embedding_dim: int,
        learning_rate: float = 0.001,
        regularization: float = 0.01,
        initialization: InitializationMethod = InitializationMethod.XAVIER_UNIFORM,
    ):
        self.embedding_dim = embedding_dim
        self.learning_rate = learning_rate
        self.regularization = regularization
        self.initializer = EmbeddingInitializer(embedding_dim, initialization)

        self.user_embeddings = EmbeddingTable(embedding_dim, self.initializer.initialize_user_embedding)
        self.item_embeddings = EmbeddingTable(embedding_dim, self.initializer.initialize_item_embedding)

        # Guards both tables; one writer for a whole training batch
        self.lock = aiorwlock.RWLock()

    def initialize_user_embedding(self, user_id: Hashable) -> np.ndarray:
        return self.user_embeddings.ensure(user_id)

    def initialize_item_embedding(self, item_id: Hashable) -> np.ndarray:
        return self.item_embeddings.ensure(item_id)

    def sgd_update(self, example: TrainingExample):
        """One plain gradient step on a single example, in place"""
        user_emb = self.initialize_user_embedding(example.user_id)
        item_emb = self.initialize_item_embedding(example.item_id)

        prediction = float(np.dot(user_emb, item_emb))
        error = example.label - prediction

        user_gradient = error * item_emb - self.regularization * user_emb
        item_gradient = error * user_emb - self.regularization * item_emb

        user_emb += self.learning_rate * user_gradient
        item_emb += self.learning_rate * item_gradient

    def compute_loss(self, examples: Sequence[TrainingExample]) -> float:
        """
        Mean squared error over examples whose user and item already have
        embeddings. Unknown endpoints are skipped here, unlike training,
        which creates them; this is a diagnostic and must not mutate state.
        """
        total_loss = 0.0
        count = 0

        for example in examples:
            user_emb = self.user_embeddings.get(example.user_id)
            item_emb = self.item_embeddings.get(example.item_id)
            if user_emb is None or item_emb is None:
                continue

            error = example.label - float(np.dot(user_emb, item_emb))
            total_loss += error * error
            count += 1

        return total_loss / count if count > 0 else 0.0

    async def train(self, examples: Sequence[TrainingExample]) -> None:
        """Apply `sgd_update` over a batch under the exclusive lock"""
        start_time = time.time()
        skipped = 0

        async with self.lock.writer_lock:
            for example in examples:
                try:
                    self.sgd_update(example)
                except (TypeError, ValueError) as e:
                    skipped += 1
                    logger.warning(
                        f"Skipping malformed training example: {e}",
                        user_id=str(example.user_id),
                        item_id=str(example.item_id),
                    )

        logger.debug(
            "Trained batch",
            examples=len(examples),
            skipped=skipped,
            duration_ms=(time.time() - start_time) * 1000,
        )

    async def evaluate_loss(self, examples: Sequence[TrainingExample]) -> float:
        async with self.lock.reader_lock:
            return self.compute_loss(examples)

    def predict(self, user_features: Sequence[float], item_features: Sequence[float]) -> float:
        """Score caller-supplied vectors without touching stored embeddings"""
        user_vec = np.asarray(user_features, dtype=np.float32)
        item_vec = np.asarray(item_features, dtype=np.float32)
        if user_vec.shape != item_vec.shape:
            raise DimensionMismatchError(len(user_vec), len(item_vec), "Item vector")
        return float(np.dot(user_vec, item_vec))

    async def get_user_embedding(self, user_id: Hashable) -> np.ndarray:
        async with self.lock.reader_lock:
            embedding = self.user_embeddings.get(user_id)
            if embedding is None:
                return self.initializer.initialize_user_embedding(user_id)
            return embedding.copy()

    async def get_item_embedding(self, item_id: Hashable) -> np.ndarray:
        async with self.lock.reader_lock:
            embedding = self.item_embeddings.get(item_id)
            if embedding is None:
                return self.initializer.initialize_item_embedding(item_id)
            return embedding.copy()

    async def snapshot_parameters(self) -> ModelParameters:
        """Consistent copy of every embedding, versioned by snapshot time"""
        async with self.lock.reader_lock:
            user_ids, user_weights = self.user_embeddings.export()
            item_ids, item_weights = self.item_embeddings.export()

        updated_at = datetime.now(timezone.utc)
        return ModelParameters(
            version=f"v{int(updated_at.timestamp())}",
            user_ids=user_ids,
            user_embedding_weights=user_weights,
            item_ids=item_ids,
            item_embedding_weights=item_weights,
            bias_weights=np.zeros(self.embedding_dim, dtype=np.float32),
            updated_at=updated_at,
        )

    async def update_parameters(self, parameters: ModelParameters) -> None:
        """Replace the embedding population with a snapshot"""
        for weights in (parameters.user_embedding_weights, parameters.item_embedding_weights):
            if len(weights) and weights.shape[1] != self.embedding_dim:
                raise DimensionMismatchError(self.embedding_dim, weights.shape[1], "Snapshot embedding")

        async with self.lock.writer_lock:
            self.user_embeddings.clear()
            self.item_embeddings.clear()
            for user_id, vector in zip(parameters.user_ids, parameters.user_embedding_weights):
                self.user_embeddings.set(user_id, vector)
            for item_id, vector in zip(parameters.item_ids, parameters.item_embedding_weights):
                self.item_embeddings.set(item_id, vector)

        logger.info(
            f"Loaded model parameters version {parameters.version}",
            users=len(parameters.user_ids),
            items=len(parameters.item_ids),
        )

    async def embedding_counts(self) -> Dict[str, int]:
        async with self.lock.reader_lock:
            return {
                "user_embeddings_count": len(self.user_embeddings),
                "item_embeddings_count": len(self.item_embeddings),
            }
