"""Per-list score normalization.

Each source list is rescaled independently using only its own statistics, so
lists produced on incomparable scales (BM25 scores, cosine similarities, model
logits) become comparable before fusion.

Strategies
- ``MinMaxNormalizer``: ``(w - min) / (max - min)`` onto [0, 1] (default)
- ``ZScoreNormalizer``: ``(w - mean) / std``
- ``ReciprocalRankNormalizer``: ``1 / (k + rank)``, the RRF signal
- ``IdentityNormalizer``: weights pass through unchanged

Min-max and z-score share the degenerate-range policy: a list whose weights
are all identical either raises ``DegenerateRangeError`` or maps every item to
a constant.
"""

import math
from typing import List, Tuple, Union

import numpy as np
import structlog

from .base import (
    DegenerateRangeError,
    DegenerateRangePolicy,
    InvalidInputError,
    NormalizationMethod,
    Normalizer,
    ConfigurationError,
    parse_option,
)
from .models import NormalizedItem, NormalizedList, RankedList, SourceStats

logger = structlog.get_logger("fusion.normalization")

DEFAULT_RRF_K = 60.0


def _weight_range(ranked_list: RankedList) -> Tuple[float, float]:
    """Single pass over the weights returning ``(min, max)``."""
    items = ranked_list.items
    low = high = items[0].weight
    for item in items[1:]:
        if item.weight < low:
            low = item.weight
        elif item.weight > high:
            high = item.weight
    return low, high


def _empty(ranked_list: RankedList) -> NormalizedList:
    stats = SourceStats(source=ranked_list.source, item_count=0, min_weight=None, max_weight=None)
    return NormalizedList(source=ranked_list.source, items=(), stats=stats)


def _build(
    ranked_list: RankedList,
    weights: List[float],
    offset: int,
    low: float,
    high: float,
    degenerate: bool = False
) -> NormalizedList:
    items = tuple(
        NormalizedItem(
            key=item.key,
            weight=weight,
            source=ranked_list.source,
            raw_weight=item.weight,
            position=offset + index,
        )
        for index, (item, weight) in enumerate(zip(ranked_list.items, weights))
    )
    stats = SourceStats(
        source=ranked_list.source,
        item_count=len(items),
        min_weight=low,
        max_weight=high,
        degenerate=degenerate,
    )
    return NormalizedList(source=ranked_list.source, items=items, stats=stats)


def degenerate_value(
    policy: DegenerateRangePolicy,
    source: str,
    weight: float,
    item_count: int
) -> float:
    """Resolve the constant used for a degenerate list, or raise."""
    if policy == DegenerateRangePolicy.ERROR:
        logger.error("Degenerate weight range", source=source, weight=weight, item_count=item_count)
        raise DegenerateRangeError(source, weight, item_count)

    value = 1.0 if policy == DegenerateRangePolicy.CONSTANT_ONE else 0.0
    logger.warning(
        "Degenerate weight range, using constant",
        source=source,
        weight=weight,
        item_count=item_count,
        policy=policy.value,
        value=value
    )
    return value


class MinMaxNormalizer(Normalizer):
    """Min-max rescaling onto the unit range.

    Guarantees for a list with at least two distinct weights
    - items at the list maximum map to exactly 1.0
    - items at the list minimum map to exactly 0.0
    - every other item maps strictly inside (0, 1)
    """

    method = NormalizationMethod.MIN_MAX

    def __init__(self, degenerate_policy: DegenerateRangePolicy = DegenerateRangePolicy.CONSTANT_ONE):
        self.degenerate_policy = degenerate_policy

    def normalize(self, ranked_list: RankedList, offset: int = 0) -> NormalizedList:
        if not ranked_list.items:
            return _empty(ranked_list)

        low, high = _weight_range(ranked_list)

        if low == high:
            value = degenerate_value(self.degenerate_policy, ranked_list.source, low, len(ranked_list))
            return _build(ranked_list, [value] * len(ranked_list), offset, low, high, degenerate=True)

        span = high - low
        scale = 1.0
        if math.isinf(span):
            # Both bounds are finite; halving keeps the span representable.
            scale = 0.5
            span = high * scale - low * scale

        weights = []
        for item in ranked_list.items:
            weight = item.weight
            if weight == high:
                weights.append(1.0)
            elif weight == low:
                weights.append(0.0)
            else:
                value = (weight * scale - low * scale) / span
                # Keep interior items off the bounds after rounding.
                if value >= 1.0:
                    value = math.nextafter(1.0, 0.0)
                elif value <= 0.0:
                    value = math.nextafter(0.0, 1.0)
                weights.append(value)

        return _build(ranked_list, weights, offset, low, high)


class ZScoreNormalizer(Normalizer):
    """Standard score using the population standard deviation."""

    method = NormalizationMethod.Z_SCORE

    def __init__(self, degenerate_policy: DegenerateRangePolicy = DegenerateRangePolicy.CONSTANT_ONE):
        self.degenerate_policy = degenerate_policy

    def normalize(self, ranked_list: RankedList, offset: int = 0) -> NormalizedList:
        if not ranked_list.items:
            return _empty(ranked_list)

        low, high = _weight_range(ranked_list)
        if low == high:
            value = degenerate_value(self.degenerate_policy, ranked_list.source, low, len(ranked_list))
            return _build(ranked_list, [value] * len(ranked_list), offset, low, high, degenerate=True)

        arr = np.asarray([item.weight for item in ranked_list.items], dtype="float64")
        with np.errstate(over="ignore", invalid="ignore"):
            mean = arr.mean()
            std = arr.std()
            scores = (arr - mean) / std

        if not np.isfinite(scores).all():
            raise InvalidInputError(
                f"Source {ranked_list.source!r} weights overflow z-score normalization",
                source=ranked_list.source
            )
        return _build(ranked_list, [float(s) for s in scores], offset, low, high)


class ReciprocalRankNormalizer(Normalizer):
    """Replace weights with ``1 / (k + rank)``.

    Rank is 1-based over descending raw weight; equal weights keep list order.
    """

    method = NormalizationMethod.RECIPROCAL_RANK

    def __init__(self, k: float = DEFAULT_RRF_K):
        self.k = k

    def normalize(self, ranked_list: RankedList, offset: int = 0) -> NormalizedList:
        if not ranked_list.items:
            return _empty(ranked_list)

        items = ranked_list.items
        order = sorted(range(len(items)), key=lambda i: (-items[i].weight, i))
        weights = [0.0] * len(items)
        for rank, index in enumerate(order, start=1):
            weights[index] = 1.0 / (self.k + rank)

        low, high = _weight_range(ranked_list)
        return _build(ranked_list, weights, offset, low, high)


class IdentityNormalizer(Normalizer):
    """Pass weights through; useful when sources already share a scale."""

    method = NormalizationMethod.NONE

    def normalize(self, ranked_list: RankedList, offset: int = 0) -> NormalizedList:
        if not ranked_list.items:
            return _empty(ranked_list)
        low, high = _weight_range(ranked_list)
        return _build(ranked_list, [item.weight for item in ranked_list.items], offset, low, high)


def create_normalizer(
    method: Union[str, NormalizationMethod] = NormalizationMethod.MIN_MAX,
    degenerate_policy: Union[str, DegenerateRangePolicy] = DegenerateRangePolicy.CONSTANT_ONE,
    rrf_k: float = DEFAULT_RRF_K
) -> Normalizer:
    """Create a normalizer instance.

    Parameters
    - method: ``min-max``, ``none``, ``z-score`` or ``reciprocal-rank``
    - degenerate_policy: applied by ``min-max`` and ``z-score``
    - rrf_k: smoothing constant for ``reciprocal-rank``
    """
    method = parse_option(NormalizationMethod, method, "normalization")
    degenerate_policy = parse_option(DegenerateRangePolicy, degenerate_policy, "degenerate_range_policy")

    if method == NormalizationMethod.MIN_MAX:
        return MinMaxNormalizer(degenerate_policy)
    elif method == NormalizationMethod.Z_SCORE:
        return ZScoreNormalizer(degenerate_policy)
    elif method == NormalizationMethod.RECIPROCAL_RANK:
        if rrf_k is None or rrf_k < 0 or not math.isfinite(rrf_k):
            raise ConfigurationError(f"rrf_k must be a finite value >= 0, got {rrf_k!r}", option="rrf_k", value=rrf_k)
        return ReciprocalRankNormalizer(k=rrf_k)
    else:
        return IdentityNormalizer()


def normalize(
    ranked_list: RankedList,
    method: Union[str, NormalizationMethod] = NormalizationMethod.MIN_MAX,
    degenerate_policy: Union[str, DegenerateRangePolicy] = DegenerateRangePolicy.CONSTANT_ONE
) -> NormalizedList:
    """Normalize a single list with a freshly created normalizer."""
    return create_normalizer(method, degenerate_policy).normalize(ranked_list)
