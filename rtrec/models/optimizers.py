"""
Parameter Optimizers
Stateful update rules applied in place to arbitrary numeric vectors
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict

import numpy as np

from rtrec.utils.validation import DimensionMismatchError

DEFAULT_GROUP = "default"


@dataclass
class AdamMoments:
    m: np.ndarray
    v: np.ndarray


@dataclass
class AdaGradAccumulator:
    sum_squared_gradients: np.ndarray


@dataclass
class RMSPropCache:
    cache: np.ndarray


def _check_shapes(parameters: np.ndarray, gradients: np.ndarray):
    if parameters.shape != gradients.shape:
        raise DimensionMismatchError(parameters.shape, gradients.shape, "Gradient")


class Optimizer(ABC):
    """Update rule interface; `apply` mutates `parameters` in place"""

    @abstractmethod
    def apply(self, parameters: np.ndarray, gradients: np.ndarray, key: str = DEFAULT_GROUP):
        pass

    @abstractmethod
    def reset(self):
        pass


class SGD(Optimizer):
    def __init__(self, learning_rate: float = 0.01):
        self.learning_rate = learning_rate

    def apply(self, parameters: np.ndarray, gradients: np.ndarray, key: str = DEFAULT_GROUP):
        _check_shapes(parameters, gradients)
        parameters -= self.learning_rate * gradients

    def reset(self):
        # stateless
        pass


class Adam(Optimizer):
    """Adam with bias-corrected moments; the step counter is shared by all groups"""

    def __init__(
        self,
        learning_rate: float = 0.001,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
    ):
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.t = 0
        self.moments: Dict[str, AdamMoments] = {}

    def apply(self, parameters: np.ndarray, gradients: np.ndarray, key: str = DEFAULT_GROUP):
        _check_shapes(parameters, gradients)
        self.t += 1

        state = self.moments.get(key)
        if state is None:
            state = AdamMoments(m=np.zeros_like(parameters), v=np.zeros_like(parameters))
            self.moments[key] = state

        state.m = self.beta1 * state.m + (1.0 - self.beta1) * gradients
        state.v = self.beta2 * state.v + (1.0 - self.beta2) * np.square(gradients)

        m_hat = state.m / (1.0 - self.beta1**self.t)
        v_hat = state.v / (1.0 - self.beta2**self.t)

        parameters -= self.learning_rate * m_hat / (np.sqrt(v_hat) + self.epsilon)

    def reset(self):
        self.t = 0
        self.moments.clear()


class AdaGrad(Optimizer):
    def __init__(self, learning_rate: float = 0.01, epsilon: float = 1e-8):
        self.learning_rate = learning_rate
        self.epsilon = epsilon
        self.accumulators: Dict[str, AdaGradAccumulator] = {}

    def apply(self, parameters: np.ndarray, gradients: np.ndarray, key: str = DEFAULT_GROUP):
        _check_shapes(parameters, gradients)

        state = self.accumulators.get(key)
        if state is None:
            state = AdaGradAccumulator(sum_squared_gradients=np.zeros_like(parameters))
            self.accumulators[key] = state

        state.sum_squared_gradients += np.square(gradients)
        adaptive_lr = self.learning_rate / np.sqrt(state.sum_squared_gradients + self.epsilon)

        parameters -= gradients * adaptive_lr

    def reset(self):
        self.accumulators.clear()


class RMSProp(Optimizer):
    def __init__(self, learning_rate: float = 0.001, decay_rate: float = 0.9, epsilon: float = 1e-8):
        self.learning_rate = learning_rate
        self.decay_rate = decay_rate
        self.epsilon = epsilon
        self.caches: Dict[str, RMSPropCache] = {}

    def apply(self, parameters: np.ndarray, gradients: np.ndarray, key: str = DEFAULT_GROUP):
        _check_shapes(parameters, gradients)

        state = self.caches.get(key)
        if state is None:
            state = RMSPropCache(cache=np.zeros_like(parameters))
            self.caches[key] = state

        state.cache = self.decay_rate * state.cache + (1.0 - self.decay_rate) * np.square(gradients)

        parameters -= self.learning_rate * gradients / np.sqrt(state.cache + self.epsilon)

    def reset(self):
        self.caches.clear()


OPTIMIZERS = {
    "sgd": SGD,
    "adam": Adam,
    "adagrad": AdaGrad,
    "rmsprop": RMSProp,
}


def build_optimizer(name: str, **kwargs) -> Optimizer:
    """Create an optimizer by name"""
    try:
        optimizer_cls = OPTIMIZERS[name.lower()]
    except KeyError:
        raise ValueError(f"Unsupported optimizer: {name}") from None
    return optimizer_cls(**kwargs)
