"""
Core data records shared by the model, the index and the training loop
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, List, Sequence

import numpy as np


def _frozen_array(values: Sequence[float]) -> np.ndarray:
    array = np.array(values, dtype=np.float32)
    array.setflags(write=False)
    return array


def _parse_identifier(value: Any) -> Hashable:
    """Identifiers travel as strings; UUID-shaped strings become UUIDs again"""
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError:
            return value
    return value


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return datetime.fromisoformat(value)


@dataclass(frozen=True, eq=False)
class TrainingExample:
    """A single labelled user/item interaction"""

    user_id: Hashable
    item_id: Hashable
    label: float
    user_features: np.ndarray
    item_features: np.ndarray
    context_features: np.ndarray = field(default_factory=lambda: _frozen_array([]))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "label", float(self.label))
        object.__setattr__(self, "user_features", _frozen_array(self.user_features))
        object.__setattr__(self, "item_features", _frozen_array(self.item_features))
        object.__setattr__(self, "context_features", _frozen_array(self.context_features))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used on the wire"""
        return {
            "user_id": str(self.user_id),
            "item_id": str(self.item_id),
            "label": self.label,
            "user_features": self.user_features.tolist(),
            "item_features": self.item_features.tolist(),
            "context_features": self.context_features.tolist(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingExample":
        return cls(
            user_id=_parse_identifier(data["user_id"]),
            item_id=_parse_identifier(data["item_id"]),
            label=data["label"],
            user_features=data["user_features"],
            item_features=data["item_features"],
            context_features=data.get("context_features", []),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class ModelParameters:
    """Versioned point-in-time capture of the embedding population"""

    version: str
    user_ids: List[Hashable]
    user_embedding_weights: np.ndarray
    item_ids: List[Hashable]
    item_embedding_weights: np.ndarray
    bias_weights: np.ndarray
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "user_ids": [str(user_id) for user_id in self.user_ids],
            "user_embedding_weights": self.user_embedding_weights.tolist(),
            "item_ids": [str(item_id) for item_id in self.item_ids],
            "item_embedding_weights": self.item_embedding_weights.tolist(),
            "bias_weights": self.bias_weights.tolist(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelParameters":
        bias_weights = np.asarray(data["bias_weights"], dtype=np.float32)
        dimension = len(bias_weights)
        return cls(
            version=data["version"],
            user_ids=[_parse_identifier(user_id) for user_id in data["user_ids"]],
            user_embedding_weights=np.asarray(
                data["user_embedding_weights"], dtype=np.float32
            ).reshape(-1, dimension),
            item_ids=[_parse_identifier(item_id) for item_id in data["item_ids"]],
            item_embedding_weights=np.asarray(
                data["item_embedding_weights"], dtype=np.float32
            ).reshape(-1, dimension),
            bias_weights=bias_weights,
            updated_at=_parse_timestamp(data["updated_at"]),
        )


@dataclass
class TrainingBatch:
    """Audit record of one augmented, trained batch"""

    examples: List[TrainingExample]
    negative_count: int = 0
    batch_id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
