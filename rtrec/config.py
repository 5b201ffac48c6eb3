"""
Engine configuration loaded from YAML
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
import yaml

from rtrec.utils.validation import validate_batch_size

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "config/config.yaml"
MAX_BATCH_SIZE = 100_000


@dataclass
class IndexConfig:
    dimension: int = 128
    index_type: str = "hnsw"
    max_connections: int = 16
    ef_construction: int = 200
    ef_search: int = 50
    link_neighbors: bool = True
    seed: Optional[int] = None


@dataclass
class RecommendationConfig:
    embedding_dim: int = 128
    top_k: int = 50
    similarity_threshold: float = 0.7
    initialization: str = "xavier_uniform"


@dataclass
class TrainingConfig:
    batch_size: int = 1024
    learning_rate: float = 0.001
    regularization: float = 0.01
    model_save_interval: float = 3600
    negative_sampling_ratio: float = 4.0
    batch_timeout_seconds: float = 30.0
    channel_capacity: int = 1000


@dataclass
class KafkaConfig:
    bootstrap_servers: List[str] = field(default_factory=lambda: ["localhost:9092"])
    training_topic: str = "training_examples"
    group_id: str = "rtrec_trainer"
    auto_offset_reset: str = "earliest"


@dataclass
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    ttl_seconds: Optional[int] = None


@dataclass
class EngineConfig:
    index: IndexConfig = field(default_factory=IndexConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)

    def validate(self):
        validate_batch_size(self.training.batch_size, MAX_BATCH_SIZE)

        if self.index.dimension != self.recommendation.embedding_dim:
            raise ValueError(
                f"Index dimension {self.index.dimension} does not match "
                f"embedding_dim {self.recommendation.embedding_dim}"
            )
        if self.training.batch_timeout_seconds <= 0:
            raise ValueError("batch_timeout_seconds must be positive")
        if self.training.model_save_interval <= 0:
            raise ValueError("model_save_interval must be positive")
        if self.training.channel_capacity <= 0:
            raise ValueError("channel_capacity must be positive")


def _section(section_cls, values: Optional[Dict[str, Any]]):
    values = values or {}
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**{key: value for key, value in values.items() if key in known})


def config_from_dict(raw: Dict[str, Any]) -> EngineConfig:
    config = EngineConfig(
        index=_section(IndexConfig, raw.get("index")),
        recommendation=_section(RecommendationConfig, raw.get("recommendation")),
        training=_section(TrainingConfig, raw.get("training")),
        kafka=_section(KafkaConfig, raw.get("kafka")),
        redis=_section(RedisConfig, raw.get("redis")),
    )
    config.validate()
    return config


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> EngineConfig:
    """Load configuration, falling back to defaults when the file is absent"""
    path = Path(config_path)
    if not path.exists():
        logger.info(f"Config file {path} not found, using default configuration")
        config = EngineConfig()
        config.validate()
        return config

    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}

    config = config_from_dict(raw)
    logger.info(f"Loaded configuration from {path}", training=config.training)
    return config
