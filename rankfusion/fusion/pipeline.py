"""End-to-end rank fusion: validate -> normalize -> fuse -> rank.

``FusionPipeline`` wires the configured normalizer, conflation function and
ranker together. Every list is validated before any cross-list work so a bad
list aborts the whole request with an error naming the source, key and weight.

The pipeline keeps no state between calls beyond its immutable configuration.
"""

import math
import numbers
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from ..common.config import FusionConfig, load_config
from ..common.metrics import MetricsCollector, measure_time
from .base import ConflationMethod, DuplicateKeyPolicy, EmptyListPolicy, FusionError, InvalidInputError
from .conflation import as_conflation, create_conflation
from .engine import FusionEngine
from .models import FusionResult, NormalizedList, RankedItem, RankedList
from .normalization import create_normalizer
from .ranking import Ranker

logger = structlog.get_logger("fusion.pipeline")

ListsInput = Union[Sequence[RankedList], Mapping[str, Any]]


def coerce_lists(lists: ListsInput) -> List[RankedList]:
    """Accept ``RankedList`` values or a ``{source: pairs}`` mapping."""
    if lists is None:
        raise InvalidInputError("At least one ranked list is required")
    if isinstance(lists, Mapping):
        return [RankedList.from_pairs(str(source), pairs) for source, pairs in lists.items()]
    return list(lists)


def _check_item(source: str, item: Any) -> None:
    if not isinstance(item, RankedItem):
        raise InvalidInputError(f"Source {source!r} contains a non-RankedItem value: {item!r}", source=source)

    key, weight = item.key, item.weight
    if not isinstance(key, str) or not key.strip():
        raise InvalidInputError(f"Source {source!r} contains an empty key", source=source, key=key, weight=weight)

    if isinstance(weight, bool) or not isinstance(weight, numbers.Real):
        raise InvalidInputError(
            f"Source {source!r} key {key!r} has a non-numeric weight: {weight!r}",
            source=source, key=key, weight=weight
        )
    try:
        finite = math.isfinite(float(weight))
    except OverflowError:
        raise InvalidInputError(
            f"Source {source!r} key {key!r} has a weight outside the float range",
            source=source, key=key, weight=weight
        ) from None
    if not finite:
        raise InvalidInputError(
            f"Source {source!r} key {key!r} has a non-finite weight: {weight!r}",
            source=source, key=key, weight=weight
        )


def _resolve_duplicates(ranked_list: RankedList, policy: DuplicateKeyPolicy) -> RankedList:
    """Apply the duplicate-key policy; returns the input when keys are unique."""
    chosen: Dict[str, int] = {}
    duplicated = False
    items = ranked_list.items

    for index, item in enumerate(items):
        previous = chosen.get(item.key)
        if previous is None:
            chosen[item.key] = index
            continue

        duplicated = True
        if policy == DuplicateKeyPolicy.ERROR:
            raise InvalidInputError(
                f"Source {ranked_list.source!r} repeats key {item.key!r} "
                f"(weights {items[previous].weight!r} and {item.weight!r})",
                source=ranked_list.source, key=item.key, weight=item.weight
            )
        if policy == DuplicateKeyPolicy.KEEP_LAST:
            chosen[item.key] = index
        elif policy == DuplicateKeyPolicy.KEEP_MAX and item.weight > items[previous].weight:
            chosen[item.key] = index

    if not duplicated:
        return ranked_list

    kept = sorted(chosen.values())
    logger.warning(
        "Duplicate keys resolved",
        source=ranked_list.source,
        policy=policy.value,
        dropped=len(items) - len(kept)
    )
    return RankedList(source=ranked_list.source, items=tuple(items[i] for i in kept))


class FusionPipeline:
    """Configured normalize -> fuse -> rank pipeline.

    Parameters
    - config: ``FusionConfig``; loaded from the environment when omitted
    - metrics: optional ``MetricsCollector`` to record requests and failures
    - conflation: optional override, e.g. a plain callable over the weights
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        conflation: Any = None
    ):
        self.config = config or load_config()
        self.metrics = metrics
        self.normalizer = create_normalizer(
            self.config.normalization,
            self.config.degenerate_range_policy,
            self.config.rrf_k,
        )
        if conflation is not None:
            self.conflation = as_conflation(conflation)
        else:
            self.conflation = create_conflation(self.config.conflation, self.config.source_weights)
        self.engine = FusionEngine(self.conflation, max_workers=self.config.max_workers)
        self.ranker = Ranker(self.config.tie_break, self.config.top_k)

    def validate(self, lists: ListsInput) -> List[RankedList]:
        """Check every list and return the lists that take part in fusion."""
        lists = coerce_lists(lists)
        if not lists:
            raise InvalidInputError("At least one ranked list is required")

        prepared: List[RankedList] = []
        for index, ranked_list in enumerate(lists):
            if not isinstance(ranked_list, RankedList):
                raise InvalidInputError(f"Input #{index} is not a RankedList: {ranked_list!r}")
            source = ranked_list.source
            if not isinstance(source, str) or not source.strip():
                raise InvalidInputError(f"Input #{index} has an empty source identifier", source=source)

            if not ranked_list.items:
                if self.config.empty_list_policy == EmptyListPolicy.SKIP:
                    # Kept as an empty list so positional weights stay aligned.
                    logger.info("Skipping empty source list", source=source)
                    prepared.append(ranked_list)
                    continue
                raise InvalidInputError(f"Source {source!r} has no items", source=source)

            for item in ranked_list.items:
                _check_item(source, item)
            prepared.append(_resolve_duplicates(ranked_list, self.config.duplicate_key_policy))

        return prepared

    def normalize(self, lists: Sequence[RankedList]) -> List[NormalizedList]:
        """Normalize each list independently, preserving input order."""
        offsets = []
        offset = 0
        for ranked_list in lists:
            offsets.append(offset)
            offset += len(ranked_list)

        if self.config.max_workers == 1 or len(lists) < 2:
            return [self.normalizer.normalize(rl, off) for rl, off in zip(lists, offsets)]

        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, len(lists))) as executor:
            return list(executor.map(self.normalizer.normalize, lists, offsets))

    @measure_time("rank_fusion")
    def run(self, lists: ListsInput) -> FusionResult:
        """Fuse the given lists into one ranked ``FusionResult``."""
        start_time = time.perf_counter()
        conflation_name = self.conflation.name
        try:
            prepared = self.validate(lists)
            normalized = self.normalize(prepared)
            fused = self.engine.fuse(normalized)
            result = self.ranker.rank(fused, sources=[n.stats for n in normalized])
        except FusionError as e:
            if self.metrics:
                self.metrics.record_error(type(e).__name__)
                self.metrics.record_fusion(conflation_name, "error", time.perf_counter() - start_time)
            raise

        duration = time.perf_counter() - start_time
        if self.metrics:
            for stats in result.sources:
                self.metrics.record_input(stats.source, stats.item_count)
                if stats.degenerate:
                    self.metrics.record_degenerate(self.config.degenerate_range_policy.value)
            self.metrics.record_fusion(conflation_name, "success", duration)

        logger.info(
            "Rank fusion completed",
            list_count=len(prepared),
            input_items=sum(len(rl) for rl in prepared),
            fused_count=len(fused),
            returned=len(result),
            normalization=self.config.normalization.value,
            conflation=conflation_name,
            tie_break=self.ranker.tie_break.value,
            duration_ms=duration * 1000
        )
        return result


def fuse_ranked_lists(
    lists: ListsInput,
    config: Optional[FusionConfig] = None,
    metrics: Optional[MetricsCollector] = None,
    **overrides: Any
) -> FusionResult:
    """Run the fusion pipeline once.

    ``overrides`` are ``FusionConfig`` field names applied on top of
    ``config`` (or the environment), e.g. ``conflation="mean"``. A callable
    passed as ``conflation`` is used directly as the conflation rule.
    """
    conflation = overrides.get("conflation")
    custom = None
    if conflation is not None and not isinstance(conflation, (str, ConflationMethod)):
        custom = overrides.pop("conflation")

    if overrides:
        base = config.model_dump() if config else {}
        config = load_config(**{**base, **overrides})

    return FusionPipeline(config, metrics=metrics, conflation=custom).run(lists)
