"""
Real-time streaming components
Kafka-based transport for training examples
"""

from .kafka_transport import TrainingExampleConsumer, TrainingExampleProducer

__all__ = ["TrainingExampleProducer", "TrainingExampleConsumer"]
