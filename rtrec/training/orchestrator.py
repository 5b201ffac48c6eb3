"""
Training Orchestrator
Buffers incoming examples, augments them with negatives, trains the model,
propagates updated vectors and checkpoints the embedding population
"""

import asyncio
import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import structlog

from rtrec.config import TrainingConfig
from rtrec.models.collaborative import CollaborativeFiltering
from rtrec.models.entities import ModelParameters, TrainingBatch, TrainingExample
from rtrec.models.initializers import EmbeddingInitializer
from rtrec.retrieval.service import LockedIndex, VectorIndexService
from rtrec.utils.metrics import TrainingMetricsCollector
from rtrec.utils.validation import ValidationError, validate_training_example

logger = structlog.get_logger()

MAX_NEGATIVES_PER_POSITIVE = 5
POSITIVE_LABEL_THRESHOLD = 0.5
INTAKE_RETRY_SECONDS = 1.0


class ExampleSource(Protocol):
    def consume(self) -> AsyncIterator[TrainingExample]:
        ...


class EmbeddingPersistence(Protocol):
    async def put_embedding(self, identifier: Hashable, embedding: Sequence[float]) -> Any:
        ...

    async def put_model_parameters(self, parameters: ModelParameters) -> Any:
        ...

    async def get_model_parameters(self, version: Optional[str] = None) -> Optional[ModelParameters]:
        ...


class OrchestratorState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"


class TrainingOrchestrator:
    """Drives incremental training from a bounded intake queue"""

    def __init__(
        self,
        model: CollaborativeFiltering,
        index_service: VectorIndexService,
        embedding_store: EmbeddingPersistence,
        config: TrainingConfig,
        transport: Optional[ExampleSource] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.model = model
        self.index_service = index_service
        self.embedding_store = embedding_store
        self.config = config
        self.transport = transport
        self.rng = rng if rng is not None else np.random.default_rng()

        # Negative items get fresh random features of the model dimension
        self.negative_initializer = EmbeddingInitializer(model.embedding_dim, rng=self.rng)

        # Bounded: a full queue suspends the producer instead of dropping events
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=config.channel_capacity)
        self.buffer: List[TrainingExample] = []
        self.audit_buffer: List[TrainingBatch] = []
        self.state = OrchestratorState.IDLE

        self.metrics = TrainingMetricsCollector()
        self.flush_count = 0
        self.failed_flushes = 0
        self.last_model_save: Optional[datetime] = None
        self.intake_retry_seconds = INTAKE_RETRY_SECONDS
        self._tasks: List[asyncio.Task] = []

    # Intake

    async def submit(self, example: TrainingExample):
        """Validate and enqueue one example, waiting while the queue is full"""
        validate_training_example(example)
        await self.queue.put(example)

    async def _intake_worker(self):
        """Pump the transport into the queue, reopening the stream after errors"""
        while True:
            try:
                async for example in self.transport.consume():
                    try:
                        await self.submit(example)
                    except ValidationError as e:
                        logger.warning(
                            f"Rejected training example: {e}",
                            user_id=str(example.user_id),
                            item_id=str(example.item_id),
                        )
                logger.info("Training example stream ended")
                return
            except Exception as e:
                logger.error(f"Training example consumer error: {e}")

            await asyncio.sleep(self.intake_retry_seconds)

    # Flush path

    async def _batch_training_worker(self):
        loop = asyncio.get_running_loop()
        batch_timeout = self.config.batch_timeout_seconds
        last_flush = loop.time()

        while True:
            remaining = batch_timeout - (loop.time() - last_flush)
            if remaining <= 0:
                await self.flush()
                last_flush = loop.time()
                continue

            try:
                example = await asyncio.wait_for(self.queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

            self.buffer.append(example)
            self.state = OrchestratorState.ACCUMULATING

            if len(self.buffer) >= self.config.batch_size:
                await self.flush()
                last_flush = loop.time()

    async def flush(self):
        """Process whatever is buffered; failures are logged, never raised"""
        if not self.buffer:
            self.state = OrchestratorState.IDLE
            return

        batch, self.buffer = self.buffer, []
        self.state = OrchestratorState.FLUSHING
        try:
            await self.process_training_batch(batch)
        except Exception as e:
            self.failed_flushes += 1
            logger.error(f"Failed to process training batch: {e}", batch_size=len(batch))
        finally:
            self.state = OrchestratorState.IDLE

    async def process_training_batch(self, examples: Sequence[TrainingExample]) -> Optional[TrainingBatch]:
        if not examples:
            return None

        start_time = time.time()
        logger.info(f"Processing training batch of {len(examples)} examples")

        augmented, negative_count = self.add_negative_samples(examples)

        await self.model.train(augmented)
        await self.update_embeddings_from_training(augmented)

        batch = TrainingBatch(examples=augmented, negative_count=negative_count)
        self.audit_buffer.append(batch)

        loss = await self.model.evaluate_loss(augmented)
        self.flush_count += 1
        duration = time.time() - start_time

        self.metrics.record_metrics(
            {
                "batch_size": len(examples),
                "augmented_size": len(augmented),
                "negative_samples": negative_count,
                "loss": loss,
                "flush_seconds": duration,
            }
        )

        logger.info(
            "Completed training batch processing",
            batch_id=str(batch.batch_id),
            augmented_size=len(augmented),
            loss=loss,
            duration_ms=duration * 1000,
        )
        return batch

    def _random_item_id(self) -> uuid.UUID:
        return uuid.UUID(bytes=self.rng.bytes(16), version=4)

    def add_negative_samples(
        self, examples: Sequence[TrainingExample]
    ) -> Tuple[List[TrainingExample], int]:
        """Originals followed by synthesized label-0 examples for each positive"""
        augmented = list(examples)
        num_negatives = min(int(self.config.negative_sampling_ratio), MAX_NEGATIVES_PER_POSITIVE)
        negative_count = 0

        for example in examples:
            if example.label <= POSITIVE_LABEL_THRESHOLD:
                continue

            for _ in range(num_negatives):
                augmented.append(
                    TrainingExample(
                        user_id=example.user_id,
                        item_id=self._random_item_id(),
                        label=0.0,
                        user_features=example.user_features,
                        item_features=self.negative_initializer.random_embedding(),
                        context_features=example.context_features,
                        timestamp=example.timestamp,
                    )
                )
                negative_count += 1

        return augmented, negative_count

    async def update_embeddings_from_training(self, examples: Sequence[TrainingExample]):
        """Push each identifier's last feature vector in the batch to the store, then the index"""
        user_updates = {}
        item_updates = {}

        for example in examples:
            user_updates[example.user_id] = example.user_features
            item_updates[example.item_id] = example.item_features

        for user_id, features in user_updates.items():
            await self._propagate(user_id, features, self.index_service.users)

        for item_id, features in item_updates.items():
            await self._propagate(item_id, features, self.index_service.items)

    async def _propagate(self, identifier: Hashable, features: np.ndarray, index: LockedIndex):
        try:
            stored = await self.embedding_store.put_embedding(identifier, features)
            if stored is False:
                logger.warning(f"Persistent store rejected embedding for {identifier}")

            await index.update_vector(identifier, features)
        except Exception as e:
            logger.warning(f"Failed to update {index.name} embedding for {identifier}: {e}")

    def reset_audit_buffer(self) -> int:
        cleared = sum(len(batch.examples) for batch in self.audit_buffer)
        self.audit_buffer.clear()
        return cleared

    # Snapshot path

    async def _model_saving_worker(self):
        while True:
            await asyncio.sleep(self.config.model_save_interval)
            await self.save_model_parameters()

    async def save_model_parameters(self) -> bool:
        try:
            parameters = await self.model.snapshot_parameters()
            saved = await self.embedding_store.put_model_parameters(parameters)
        except Exception as e:
            logger.error(f"Failed to save model parameters: {e}")
            return False

        if saved is False:
            logger.error(f"Persistent store rejected model parameters {parameters.version}")
            return False

        self.last_model_save = parameters.updated_at
        logger.info(
            "Model parameters saved successfully",
            version=parameters.version,
            users=len(parameters.user_ids),
            items=len(parameters.item_ids),
        )
        return True

    async def load_model_parameters(self, version: Optional[str] = None) -> bool:
        """Restore embeddings from a stored checkpoint (latest when no version)"""
        logger.info(f"Loading model parameters version: {version or 'latest'}")
        parameters = await self.embedding_store.get_model_parameters(version)
        if parameters is None:
            logger.warning(f"No stored model parameters for version: {version or 'latest'}")
            return False

        await self.model.update_parameters(parameters)
        return True

    # Lifecycle

    def start(self):
        """Launch the flush, snapshot and (when a transport is set) intake workers"""
        if self._tasks:
            raise RuntimeError("Training orchestrator already started")

        self._tasks.append(asyncio.create_task(self._batch_training_worker(), name="batch-training"))
        self._tasks.append(asyncio.create_task(self._model_saving_worker(), name="model-saving"))
        if self.transport is not None:
            self._tasks.append(asyncio.create_task(self._intake_worker(), name="example-intake"))

        logger.info("Training workers started", workers=len(self._tasks))

    async def stop(self, flush_remaining: bool = True):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if flush_remaining:
            while not self.queue.empty():
                self.buffer.append(self.queue.get_nowait())
            await self.flush()

        logger.info("Training workers stopped")

    async def get_training_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(await self.model.embedding_counts())
        stats.update(await self.index_service.stats())
        stats.update(
            {
                "state": self.state.value,
                "buffered_examples": len(self.buffer),
                "queued_examples": self.queue.qsize(),
                "training_buffer_size": sum(len(batch.examples) for batch in self.audit_buffer),
                "flush_count": self.flush_count,
                "failed_flushes": self.failed_flushes,
                "last_model_save": self.last_model_save.isoformat() if self.last_model_save else None,
                "metrics": self.metrics.get_metrics_summary(),
            }
        )
        return stats
