"""Final ordering of fused items.

Primary key is the fused weight, descending. The secondary key is always part
of the sort key itself:

- ``stable-input-order``: first position of the key in the concatenated input
- ``lexical-key``: the key string, for results independent of input order

Positions and keys are unique per fused item, so the order is total.
"""

from typing import Callable, Optional, Sequence, Tuple, Union

import structlog

from .base import ConfigurationError, TieBreak, parse_option
from .models import FusedItem, FusionResult, SourceStats

logger = structlog.get_logger("fusion.ranking")


def _sort_key(tie_break: TieBreak) -> Callable[[FusedItem], tuple]:
    if tie_break == TieBreak.LEXICAL_KEY:
        return lambda item: (-item.fused_weight, item.key)
    return lambda item: (-item.fused_weight, item.position, item.key)


class Ranker:
    """Produce a ``FusionResult`` from fused items."""

    def __init__(
        self,
        tie_break: Union[str, TieBreak] = TieBreak.STABLE_INPUT_ORDER,
        top_k: Optional[int] = None
    ):
        self.tie_break = parse_option(TieBreak, tie_break, "tie_break")
        if top_k is not None and top_k < 0:
            raise ConfigurationError(f"top_k must be >= 0, got {top_k}", option="top_k", value=top_k)
        self.top_k = top_k

    def rank(
        self,
        fused: Sequence[FusedItem],
        sources: Sequence[SourceStats] = ()
    ) -> FusionResult:
        ordered: Tuple[FusedItem, ...] = tuple(sorted(fused, key=_sort_key(self.tie_break)))
        if self.top_k is not None:
            ordered = ordered[:self.top_k]

        logger.debug(
            "Ranking completed",
            fused_count=len(fused),
            returned=len(ordered),
            tie_break=self.tie_break.value,
            top_k=self.top_k
        )
        return FusionResult(items=ordered, tie_break=self.tie_break.value, sources=tuple(sources))


def rank(
    fused: Sequence[FusedItem],
    tie_break: Union[str, TieBreak] = TieBreak.STABLE_INPUT_ORDER,
    top_k: Optional[int] = None
) -> FusionResult:
    """Order fused items by descending weight with an explicit tie-break."""
    return Ranker(tie_break, top_k).rank(fused)
