"""Value types flowing through the fusion pipeline.

Every type is a frozen dataclass: a stage consumes one collection and returns
a new one, so nothing here is ever mutated after construction.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class RankedItem:
    """One scored entity from one source list."""
    key: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RankedList:
    """Items from a single source, tagged with the source identifier."""
    source: str
    items: Tuple[RankedItem, ...] = ()

    def __post_init__(self):
        # Accept any iterable but store a tuple.
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[RankedItem]:
        return iter(self.items)

    @classmethod
    def from_pairs(
        cls,
        source: str,
        pairs: Union[Mapping[str, float], Iterable[Tuple[str, float]]]
    ) -> "RankedList":
        """Build a list from ``(key, weight)`` pairs or a key->weight mapping."""
        if isinstance(pairs, Mapping):
            pairs = pairs.items()
        return cls(source=source, items=tuple(RankedItem(key, weight) for key, weight in pairs))

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class SourceStats:
    """Per-source diagnostics recorded during normalization."""
    source: str
    item_count: int
    min_weight: Optional[float]
    max_weight: Optional[float]
    degenerate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NormalizedItem:
    """A ranked item rescaled onto the common scale.

    ``position`` is the item's index in the concatenated input lists and
    drives the stable-input-order tie-break.
    """
    key: str
    weight: float
    source: str
    raw_weight: float
    position: int


@dataclass(frozen=True)
class NormalizedList:
    source: str
    items: Tuple[NormalizedItem, ...]
    stats: SourceStats

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[NormalizedItem]:
        return iter(self.items)

    def weights(self) -> Dict[str, float]:
        """Key -> normalized weight mapping."""
        return {item.key: item.weight for item in self.items}


@dataclass(frozen=True)
class FusedItem:
    """One key after cross-list conflation.

    ``contributing_sources`` lists the sources that supplied a weight, in
    input order and without repeats.
    """
    key: str
    fused_weight: float
    contributing_sources: Tuple[str, ...]
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "fused_weight": self.fused_weight,
            "contributing_sources": list(self.contributing_sources),
        }


@dataclass(frozen=True)
class FusionResult:
    """Final ordering produced by the ranker."""
    items: Tuple[FusedItem, ...]
    tie_break: str
    sources: Tuple[SourceStats, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[FusedItem]:
        return iter(self.items)

    def __getitem__(self, index: int) -> FusedItem:
        return self.items[index]

    def keys(self) -> List[str]:
        return [item.key for item in self.items]

    def to_pairs(self) -> List[Tuple[str, float]]:
        """The ``(key, fused_weight)`` output sequence."""
        return [(item.key, item.fused_weight) for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tie_break": self.tie_break,
            "items": [item.to_dict() for item in self.items],
            "sources": [stats.to_dict() for stats in self.sources],
        }
