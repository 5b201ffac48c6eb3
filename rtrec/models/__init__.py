"""
Learning components: embeddings, the collaborative filtering model and optimizers
"""

from .collaborative import CollaborativeFiltering, EmbeddingTable, RecommendationAlgorithm
from .entities import ModelParameters, TrainingBatch, TrainingExample
from .initializers import EmbeddingInitializer, InitializationMethod
from .optimizers import SGD, AdaGrad, Adam, Optimizer, RMSProp, build_optimizer

__all__ = [
    "CollaborativeFiltering",
    "EmbeddingTable",
    "RecommendationAlgorithm",
    "ModelParameters",
    "TrainingBatch",
    "TrainingExample",
    "EmbeddingInitializer",
    "InitializationMethod",
    "Optimizer",
    "SGD",
    "Adam",
    "AdaGrad",
    "RMSProp",
    "build_optimizer",
]
