"""
Input Validation
Boundary checks for training examples, feature vectors and batch settings
"""

from typing import TYPE_CHECKING, Sequence

import numpy as np

if TYPE_CHECKING:
    from rtrec.models.entities import TrainingExample

MAX_FEATURE_DIM = 2048
MAX_CONTEXT_DIM = 512


class ValidationError(ValueError):
    """Raised when input data fails validation"""


class DimensionMismatchError(ValidationError):
    """Raised when a vector length does not match the expected dimension"""

    def __init__(self, expected: int, actual: int, what: str = "Vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{what} dimension mismatch: expected {expected}, got {actual}")


def validate_embedding_dimension(vector: Sequence[float], expected_dim: int, what: str = "Vector"):
    """Reject vectors whose length differs from the declared dimension"""
    if len(vector) != expected_dim:
        raise DimensionMismatchError(expected_dim, len(vector), what)


def validate_vector(
    vector: Sequence[float],
    what: str = "Vector",
    max_dim: int = MAX_FEATURE_DIM,
    allow_empty: bool = False,
):
    """Reject empty, oversized or non-finite vectors"""
    values = np.asarray(vector, dtype=np.float64)

    if values.ndim != 1:
        raise ValidationError(f"{what} must be one-dimensional")

    if values.size == 0 and not allow_empty:
        raise ValidationError(f"{what} cannot be empty")

    if not np.all(np.isfinite(values)):
        raise ValidationError(f"{what} contains invalid values (NaN or Infinity)")

    if values.size > max_dim:
        raise ValidationError(f"{what} dimension too large (max {max_dim})")


def validate_training_example(example: "TrainingExample"):
    """Validate a training example at the ingestion boundary"""
    if example.user_id is None:
        raise ValidationError("User ID cannot be empty")

    if example.item_id is None:
        raise ValidationError("Item ID cannot be empty")

    if not np.isfinite(example.label):
        raise ValidationError("Training label contains invalid values (NaN or Infinity)")

    if example.label < 0.0 or example.label > 1.0:
        raise ValidationError("Training label must be between 0.0 and 1.0")

    validate_vector(example.user_features, "User features")
    validate_vector(example.item_features, "Item features")
    validate_vector(
        example.context_features,
        "Context features",
        max_dim=MAX_CONTEXT_DIM,
        allow_empty=True,
    )


def validate_batch_size(batch_size: int, max_batch_size: int):
    if batch_size <= 0:
        raise ValidationError("Batch size must be greater than zero")

    if batch_size > max_batch_size:
        raise ValidationError(f"Batch size too large: {batch_size} (max {max_batch_size})")
