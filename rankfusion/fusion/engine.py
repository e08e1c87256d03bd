"""Key-wise fusion of normalized lists.

The engine builds the union of keys across all lists with one hash map from
key to a small conflation accumulator. A key missing from a list contributes
nothing for that list; it is never read as a zero weight.

Grouping can run map-then-merge: one partial map per list on a thread pool,
then a left fold of the partials in list order. Folding in list order keeps
floating point sums evaluated exactly as in the sequential path, so both
paths return identical results.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from .base import ConflationFunction, InvalidInputError, NonFiniteWeightError
from .conflation import MaxConflation, as_conflation
from .models import FusedItem, NormalizedList

logger = structlog.get_logger("fusion.engine")


class _KeyGroup:
    __slots__ = ("accumulator", "sources", "position")

    def __init__(self, accumulator: Any, source: str, position: int):
        self.accumulator = accumulator
        self.sources = [source]
        self.position = position

    def merge(self, other: "_KeyGroup", conflation: ConflationFunction) -> None:
        self.accumulator = conflation.combine(self.accumulator, other.accumulator)
        for source in other.sources:
            if source not in self.sources:
                self.sources.append(source)
        if other.position < self.position:
            self.position = other.position


def _group_list(
    normalized: NormalizedList,
    list_index: int,
    conflation: ConflationFunction,
    groups: Optional[Dict[str, _KeyGroup]] = None
) -> Dict[str, _KeyGroup]:
    """Fold one list into ``groups`` (a fresh map when omitted).

    Keys must be unique within a list; the pipeline resolves duplicates
    before fusion, so a repeat here is rejected rather than conflated.
    """
    if groups is None:
        groups = {}
    seen = set()
    for item in normalized.items:
        if item.key in seen:
            raise InvalidInputError(
                f"Source {normalized.source!r} repeats key {item.key!r}",
                source=normalized.source, key=item.key, weight=item.raw_weight
            )
        seen.add(item.key)
        incoming = _KeyGroup(
            conflation.start(item.weight, list_index, normalized.source),
            normalized.source,
            item.position,
        )
        existing = groups.get(item.key)
        if existing is None:
            groups[item.key] = incoming
        else:
            existing.merge(incoming, conflation)
    return groups


class FusionEngine:
    """Merge normalized lists by key using a conflation function.

    Parameters
    - conflation: ``ConflationFunction``, method name, or plain callable
    - max_workers: thread count for per-list grouping; ``1`` stays sequential
    """

    def __init__(self, conflation: Any = None, max_workers: int = 1):
        self.conflation = as_conflation(conflation) if conflation is not None else MaxConflation()
        self.max_workers = max(1, int(max_workers))

    def group(self, lists: Sequence[NormalizedList]) -> Dict[str, _KeyGroup]:
        """Build the key -> accumulator multimap for all lists."""
        if self.max_workers == 1 or len(lists) < 2:
            groups: Dict[str, _KeyGroup] = {}
            for list_index, normalized in enumerate(lists):
                _group_list(normalized, list_index, self.conflation, groups)
            return groups

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(lists))) as executor:
            partials = list(executor.map(
                lambda indexed: _group_list(indexed[1], indexed[0], self.conflation),
                enumerate(lists),
            ))

        groups = {}
        for partial in partials:
            for key, incoming in partial.items():
                existing = groups.get(key)
                if existing is None:
                    groups[key] = incoming
                else:
                    existing.merge(incoming, self.conflation)
        return groups

    def fuse(self, lists: Sequence[NormalizedList]) -> Tuple[FusedItem, ...]:
        """Fuse normalized lists into one item per key, in first-seen order."""
        conflation = self.conflation.bind(len(lists))
        groups = self.group(lists)

        fused: List[FusedItem] = []
        for key, group in groups.items():
            weight = conflation.finalize(group.accumulator)
            sources = tuple(group.sources)
            if not math.isfinite(weight):
                logger.error("Non-finite fused weight", key=key, weight=weight, sources=list(sources))
                raise NonFiniteWeightError(key, weight, sources)
            fused.append(FusedItem(
                key=key,
                fused_weight=weight,
                contributing_sources=sources,
                position=group.position,
            ))

        logger.debug(
            "Fusion grouping completed",
            list_count=len(lists),
            input_items=sum(len(normalized) for normalized in lists),
            fused_count=len(fused),
            conflation=conflation.name,
            max_workers=self.max_workers
        )
        return tuple(fused)


def fuse(
    lists: Sequence[NormalizedList],
    conflate: Any = None,
    max_workers: int = 1
) -> Tuple[FusedItem, ...]:
    """Fuse normalized lists with ``conflate`` (``max`` when omitted)."""
    return FusionEngine(conflate, max_workers=max_workers).fuse(lists)
