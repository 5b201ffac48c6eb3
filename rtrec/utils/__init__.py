"""
Utility modules for validation, logging and training metrics
"""

from .metrics import TrainingMetricsCollector
from .validation import (
    DimensionMismatchError,
    ValidationError,
    validate_batch_size,
    validate_embedding_dimension,
    validate_training_example,
    validate_vector,
)

__all__ = [
    "TrainingMetricsCollector",
    "ValidationError",
    "DimensionMismatchError",
    "validate_batch_size",
    "validate_embedding_dimension",
    "validate_training_example",
    "validate_vector",
]
