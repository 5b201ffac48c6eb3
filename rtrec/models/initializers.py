"""
Embedding Initialization
Reproducible, identifier-seeded initial vectors for users and items
"""

import hashlib
import uuid
from enum import Enum
from typing import Hashable, Optional

import numpy as np

_SEED_MASK = (1 << 128) - 1


class InitializationMethod(str, Enum):
    XAVIER_UNIFORM = "xavier_uniform"
    XAVIER_NORMAL = "xavier_normal"
    HE_UNIFORM = "he_uniform"
    HE_NORMAL = "he_normal"
    LECUN_UNIFORM = "lecun_uniform"
    LECUN_NORMAL = "lecun_normal"
    UNIFORM = "uniform"
    NORMAL = "normal"
    ZEROS = "zeros"
    ONES = "ones"
    CONSTANT = "constant"
    SPARSE_RANDOM = "sparse_random"


def seed_from_identifier(identifier: Hashable) -> int:
    """Derive a stable seed from an identifier's bit pattern"""
    if isinstance(identifier, uuid.UUID):
        return identifier.int
    if isinstance(identifier, int):
        return identifier & _SEED_MASK
    if isinstance(identifier, str):
        identifier = identifier.encode("utf-8")
    if isinstance(identifier, bytes):
        return int.from_bytes(hashlib.blake2b(identifier, digest_size=16).digest(), "big")
    raise TypeError(f"Cannot derive a seed from identifier of type {type(identifier).__name__}")


class EmbeddingInitializer:
    """Draws initial embeddings; per-identifier draws are reproducible"""

    def __init__(
        self,
        dimension: int,
        method: InitializationMethod = InitializationMethod.XAVIER_UNIFORM,
        low: float = -1.0,
        high: float = 1.0,
        mean: float = 0.0,
        std_dev: float = 1.0,
        value: float = 0.0,
        sparsity: float = 0.5,
        rng: Optional[np.random.Generator] = None,
    ):
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive")

        self.dimension = dimension
        self.method = InitializationMethod(method)
        self.low = low
        self.high = high
        self.mean = mean
        self.std_dev = std_dev
        self.value = value
        self.sparsity = sparsity
        self.rng = rng if rng is not None else np.random.default_rng()

    def initialize(self, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Draw one vector using `rng`, or the initializer's own unseeded generator"""
        rng = rng if rng is not None else self.rng
        size = self.dimension
        method = self.method

        if method in (InitializationMethod.XAVIER_UNIFORM, InitializationMethod.HE_UNIFORM):
            limit = np.sqrt(6.0 / size)
            values = rng.uniform(-limit, limit, size)
        elif method in (InitializationMethod.XAVIER_NORMAL, InitializationMethod.HE_NORMAL):
            values = rng.normal(0.0, np.sqrt(2.0 / size), size)
        elif method == InitializationMethod.LECUN_UNIFORM:
            limit = np.sqrt(3.0 / size)
            values = rng.uniform(-limit, limit, size)
        elif method == InitializationMethod.LECUN_NORMAL:
            values = rng.normal(0.0, np.sqrt(1.0 / size), size)
        elif method == InitializationMethod.UNIFORM:
            values = rng.uniform(self.low, self.high, size)
        elif method == InitializationMethod.NORMAL:
            values = rng.normal(self.mean, self.std_dev, size)
        elif method == InitializationMethod.ZEROS:
            values = np.zeros(size)
        elif method == InitializationMethod.ONES:
            values = np.ones(size)
        elif method == InitializationMethod.CONSTANT:
            values = np.full(size, self.value)
        else:
            dense = rng.uniform(-1.0, 1.0, size)
            values = np.where(rng.random(size) < self.sparsity, 0.0, dense)

        return values.astype(np.float32)

    def initialize_for(self, identifier: Hashable) -> np.ndarray:
        return self.initialize(np.random.default_rng(seed_from_identifier(identifier)))

    def initialize_user_embedding(self, user_id: Hashable) -> np.ndarray:
        return self.initialize_for(user_id)

    def initialize_item_embedding(self, item_id: Hashable) -> np.ndarray:
        return self.initialize_for(item_id)

    def random_embedding(self) -> np.ndarray:
        """Fresh, unseeded draw"""
        return self.initialize()
