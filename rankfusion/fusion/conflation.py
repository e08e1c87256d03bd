"""Conflation functions: combine several normalized weights of one key.

Each function is an accumulator with an associative ``combine`` so the fusion
engine can group shards independently and merge them afterwards.

- ``max``: best evidence wins (default)
- ``sum``: CombSUM over the lists that contain the key
- ``mean``: ``(sum, count)`` pair; count only includes lists containing the key
- ``weighted-sum``: per-source multipliers, by list position or source id
- any callable over the collected weights via ``CallableConflation``
"""

import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .base import ConfigurationError, ConflationFunction, ConflationMethod, parse_option

SourceWeights = Union[Sequence[float], Mapping[str, float]]


class MaxConflation(ConflationFunction):
    name = ConflationMethod.MAX.value

    def start(self, weight: float, list_index: int, source: str) -> float:
        return weight

    def combine(self, left: float, right: float) -> float:
        return left if left >= right else right

    def finalize(self, accumulator: float) -> float:
        return accumulator


class SumConflation(ConflationFunction):
    name = ConflationMethod.SUM.value

    def start(self, weight: float, list_index: int, source: str) -> float:
        return weight

    def combine(self, left: float, right: float) -> float:
        return left + right

    def finalize(self, accumulator: float) -> float:
        return accumulator


class MeanConflation(ConflationFunction):
    """Arithmetic mean over the lists that actually contain the key."""

    name = ConflationMethod.MEAN.value

    def start(self, weight: float, list_index: int, source: str) -> Tuple[float, int]:
        return weight, 1

    def combine(self, left: Tuple[float, int], right: Tuple[float, int]) -> Tuple[float, int]:
        return left[0] + right[0], left[1] + right[1]

    def finalize(self, accumulator: Tuple[float, int]) -> float:
        total, count = accumulator
        return total / count


class WeightedSumConflation(ConflationFunction):
    """Sum of ``weight * multiplier`` for the lists containing the key.

    ``weights`` is either a sequence aligned with the input lists or a mapping
    from source identifier to multiplier.
    """

    name = ConflationMethod.WEIGHTED_SUM.value

    def __init__(self, weights: SourceWeights):
        if weights is None or len(weights) == 0:
            raise ConfigurationError(
                "weighted-sum conflation requires per-source weights",
                option="source_weights"
            )
        if isinstance(weights, Mapping):
            self.weights: Union[Tuple[float, ...], Dict[str, float]] = {
                str(source): float(value) for source, value in weights.items()
            }
        else:
            self.weights = tuple(float(value) for value in weights)

        values = self.weights.values() if isinstance(self.weights, dict) else self.weights
        if not all(math.isfinite(value) for value in values):
            raise ConfigurationError(
                "weighted-sum weights must be finite numbers",
                option="source_weights",
                value=weights
            )

    def bind(self, list_count: int) -> "WeightedSumConflation":
        if isinstance(self.weights, tuple) and len(self.weights) != list_count:
            raise ConfigurationError(
                f"weighted-sum has {len(self.weights)} weight(s) for {list_count} list(s)",
                option="source_weights",
                value=list(self.weights)
            )
        return self

    def multiplier(self, list_index: int, source: str) -> float:
        if isinstance(self.weights, tuple):
            if list_index >= len(self.weights):
                raise ConfigurationError(
                    f"No weight for list #{list_index} ({source!r})",
                    option="source_weights",
                    value=list(self.weights)
                )
            return self.weights[list_index]
        if source not in self.weights:
            raise ConfigurationError(
                f"No weight configured for source {source!r}",
                option="source_weights",
                value=dict(self.weights)
            )
        return self.weights[source]

    def start(self, weight: float, list_index: int, source: str) -> float:
        return weight * self.multiplier(list_index, source)

    def combine(self, left: float, right: float) -> float:
        return left + right

    def finalize(self, accumulator: float) -> float:
        return accumulator


class CallableConflation(ConflationFunction):
    """Adapt a plain ``f(weights) -> float`` into an accumulator.

    Weights are collected in input-list order and handed to ``func`` once.
    """

    def __init__(self, func: Callable[[List[float]], float], name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "custom")

    def start(self, weight: float, list_index: int, source: str) -> Tuple[float, ...]:
        return (weight,)

    def combine(self, left: Tuple[float, ...], right: Tuple[float, ...]) -> Tuple[float, ...]:
        return left + right

    def finalize(self, accumulator: Tuple[float, ...]) -> float:
        return float(self.func(list(accumulator)))


def create_conflation(
    method: Union[str, ConflationMethod] = ConflationMethod.MAX,
    weights: Optional[SourceWeights] = None
) -> ConflationFunction:
    """Create a conflation function from its configured name."""
    method = parse_option(ConflationMethod, method, "conflation")

    if method == ConflationMethod.MAX:
        return MaxConflation()
    elif method == ConflationMethod.SUM:
        return SumConflation()
    elif method == ConflationMethod.MEAN:
        return MeanConflation()
    else:
        return WeightedSumConflation(weights)


def as_conflation(conflate: Any) -> ConflationFunction:
    """Accept a ``ConflationFunction``, a method name or a plain callable."""
    if isinstance(conflate, ConflationFunction):
        return conflate
    if isinstance(conflate, (str, ConflationMethod)):
        return create_conflation(conflate)
    if callable(conflate):
        return CallableConflation(conflate)
    raise ConfigurationError(f"Unsupported conflation: {conflate!r}", option="conflation", value=conflate)
