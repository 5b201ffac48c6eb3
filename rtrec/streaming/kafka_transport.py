"""
Kafka Transport for Training Examples
Publishes interaction examples and streams them back into the trainer
"""

import asyncio
import json
from typing import AsyncIterator, List, Optional

import structlog
from kafka import KafkaConsumer as SyncKafkaConsumer
from kafka import KafkaProducer as SyncKafkaProducer
from kafka.errors import KafkaError

from rtrec.config import KafkaConfig
from rtrec.models.entities import TrainingExample

logger = structlog.get_logger()


class TrainingExampleProducer:
    """Async wrapper around the Kafka producer for training examples"""

    def __init__(self, config: KafkaConfig):
        self.config = config
        self.producer = None
        self._initialize_producer()

    def _initialize_producer(self):
        """Initialize Kafka producer with batching-friendly settings"""
        try:
            self.producer = SyncKafkaProducer(
                bootstrap_servers=self.config.bootstrap_servers,
                value_serializer=lambda x: json.dumps(x).encode("utf-8"),
                key_serializer=lambda x: str(x).encode("utf-8") if x else None,
                batch_size=16384,
                linger_ms=10,
                acks="1",
                retries=3,
                max_in_flight_requests_per_connection=5,
                request_timeout_ms=30000,
            )
            logger.info("Kafka producer initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Kafka producer: {e}")
            raise

    async def publish(self, example: TrainingExample) -> bool:
        """Send one training example, keyed by user so a user's events stay ordered"""
        topic = self.config.training_topic
        try:
            future = self.producer.send(topic, value=example.to_dict(), key=str(example.user_id))

            await asyncio.get_running_loop().run_in_executor(None, future.get, 10)

            logger.debug(f"Training example sent to topic {topic}", user_id=str(example.user_id))
            return True

        except KafkaError as e:
            logger.error(f"Kafka error sending training example to {topic}: {e}")
            return False

    def close(self):
        """Close the producer and flush pending messages"""
        if self.producer:
            self.producer.flush()
            self.producer.close()
            logger.info("Kafka producer closed")


class TrainingExampleConsumer:
    """Streams decoded training examples from Kafka"""

    def __init__(self, config: KafkaConfig, topics: Optional[List[str]] = None):
        self.config = config
        self.topics = topics or [config.training_topic]
        self.consumer = None
        self.running = False

    def _initialize_consumer(self):
        try:
            self.consumer = SyncKafkaConsumer(
                *self.topics,
                bootstrap_servers=self.config.bootstrap_servers,
                value_deserializer=lambda x: json.loads(x.decode("utf-8")),
                key_deserializer=lambda x: x.decode("utf-8") if x else None,
                group_id=self.config.group_id,
                auto_offset_reset=self.config.auto_offset_reset,
                enable_auto_commit=True,
                auto_commit_interval_ms=1000,
                max_poll_records=500,
            )
            logger.info(f"Kafka consumer initialized for topics: {self.topics}")
        except Exception as e:
            logger.error(f"Failed to initialize Kafka consumer: {e}")
            raise

    async def consume(self) -> AsyncIterator[TrainingExample]:
        """Yield training examples until stopped; undecodable messages are skipped"""
        if self.consumer is None:
            self._initialize_consumer()
        self.running = True
        loop = asyncio.get_running_loop()

        try:
            while self.running:
                try:
                    message_batch = await loop.run_in_executor(None, self.consumer.poll, 1000)
                except KafkaError as e:
                    logger.error(f"Kafka consumer error: {e}")
                    await asyncio.sleep(1)
                    continue

                for messages in message_batch.values():
                    for message in messages:
                        try:
                            example = TrainingExample.from_dict(message.value)
                        except (KeyError, TypeError, ValueError) as e:
                            logger.warning(
                                f"Failed to deserialize training example: {e}",
                                key=message.key,
                                offset=message.offset,
                            )
                            continue
                        yield example
        finally:
            self.stop()

    def stop(self):
        """Stop the consumer"""
        self.running = False
        if self.consumer:
            self.consumer.close()
            self.consumer = None
            logger.info("Kafka consumer stopped")
