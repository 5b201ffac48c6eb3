"""
Training Worker
Wires Kafka intake, the model, vector indexes and Redis persistence together
"""

import argparse
import asyncio

import structlog

from rtrec.config import DEFAULT_CONFIG_PATH, EngineConfig, load_config
from rtrec.models.collaborative import CollaborativeFiltering
from rtrec.models.initializers import InitializationMethod
from rtrec.retrieval.service import VectorIndexService
from rtrec.storage.redis_store import RedisEmbeddingStore
from rtrec.streaming.kafka_transport import TrainingExampleConsumer
from rtrec.training.orchestrator import TrainingOrchestrator
from rtrec.utils.logging import configure_logging

logger = structlog.get_logger()

STATS_INTERVAL_SECONDS = 60


def build_orchestrator(config: EngineConfig) -> TrainingOrchestrator:
    model = CollaborativeFiltering(
        embedding_dim=config.recommendation.embedding_dim,
        learning_rate=config.training.learning_rate,
        regularization=config.training.regularization,
        initialization=InitializationMethod(config.recommendation.initialization),
    )

    return TrainingOrchestrator(
        model=model,
        index_service=VectorIndexService.from_config(config.index),
        embedding_store=RedisEmbeddingStore(config.redis),
        config=config.training,
        transport=TrainingExampleConsumer(config.kafka),
    )


async def run_worker(config: EngineConfig, restore: bool = True):
    orchestrator = build_orchestrator(config)

    if restore:
        await orchestrator.load_model_parameters()

    orchestrator.start()
    logger.info("Training worker started successfully", training=config.training)

    try:
        while True:
            await asyncio.sleep(STATS_INTERVAL_SECONDS)
            try:
                stats = await orchestrator.get_training_stats()
                logger.info("Training stats", **stats)
            except Exception as e:
                logger.error(f"Failed to get training stats: {e}")
    finally:
        await orchestrator.stop()
        await orchestrator.embedding_store.close()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Real-time recommendation training worker")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("-l", "--log-level", default="info")
    parser.add_argument("--json-logs", action="store_true")
    parser.add_argument("--no-restore", action="store_true", help="Start from fresh embeddings")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)

    config = load_config(args.config)
    try:
        asyncio.run(run_worker(config, restore=not args.no_restore))
    except KeyboardInterrupt:
        logger.info("Stopping training worker...")


if __name__ == "__main__":
    main()
