"""Base fusion interfaces, option enums and exceptions.

Defines the abstract contracts the pipeline depends on, independent of the
concrete normalization or conflation strategy in use, plus the enumerated
configuration options and the error taxonomy surfaced to callers.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Tuple


class NormalizationMethod(str, Enum):
    """Supported per-list normalization strategies."""
    MIN_MAX = "min-max"
    NONE = "none"
    Z_SCORE = "z-score"
    RECIPROCAL_RANK = "reciprocal-rank"


class ConflationMethod(str, Enum):
    """Supported rules for combining the weights of one key."""
    MAX = "max"
    SUM = "sum"
    MEAN = "mean"
    WEIGHTED_SUM = "weighted-sum"


class DegenerateRangePolicy(str, Enum):
    """What to do with a list whose weights are all identical."""
    ERROR = "error"
    CONSTANT_ONE = "constant-one"
    CONSTANT_ZERO = "constant-zero"


class TieBreak(str, Enum):
    """Secondary ordering for items with equal fused weight."""
    STABLE_INPUT_ORDER = "stable-input-order"
    LEXICAL_KEY = "lexical-key"


class DuplicateKeyPolicy(str, Enum):
    """How repeated keys inside a single source list are resolved."""
    ERROR = "error"
    KEEP_FIRST = "keep-first"
    KEEP_LAST = "keep-last"
    KEEP_MAX = "keep-max"


class EmptyListPolicy(str, Enum):
    """How a source list without items is treated."""
    ERROR = "error"
    SKIP = "skip"


class Normalizer(ABC):
    """Abstract base class for per-list normalizers.

    Implementations must preserve item count, key set and list order, and must
    never return NaN or infinite weights.
    """

    method: NormalizationMethod

    @abstractmethod
    def normalize(self, ranked_list: Any, offset: int = 0) -> Any:
        """Normalize one ``RankedList`` into a ``NormalizedList``.

        ``offset`` is the position of the list's first item in the
        concatenated input and is carried on every ``NormalizedItem``.
        """
        pass


class ConflationFunction(ABC):
    """Accumulator-style rule that combines the weights of one key.

    ``start`` turns one contributed weight into an accumulator, ``combine``
    merges two accumulators and must be associative, ``finalize`` produces the
    fused weight. This shape lets grouping run as map-then-merge.
    """

    name: str

    @abstractmethod
    def start(self, weight: float, list_index: int, source: str) -> Any:
        """Build the accumulator for one weight from list ``list_index``."""
        pass

    @abstractmethod
    def combine(self, left: Any, right: Any) -> Any:
        """Merge two accumulators (left comes from earlier lists)."""
        pass

    @abstractmethod
    def finalize(self, accumulator: Any) -> float:
        """Reduce an accumulator to the fused weight."""
        pass

    def bind(self, list_count: int) -> "ConflationFunction":
        """Check the function against the number of input lists."""
        return self


class FusionError(Exception):
    """Base exception for rank fusion operations."""
    pass


class InvalidInputError(FusionError, ValueError):
    """Malformed input list, key or weight."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        key: Optional[str] = None,
        weight: Optional[float] = None
    ):
        super().__init__(message)
        self.source = source
        self.key = key
        self.weight = weight


class DegenerateRangeError(FusionError):
    """A list's minimum equals its maximum under the ``error`` policy."""

    def __init__(self, source: str, weight: float, item_count: int):
        super().__init__(
            f"Source {source!r} has a degenerate range: all {item_count} "
            f"weight(s) equal {weight!r}"
        )
        self.source = source
        self.weight = weight
        self.item_count = item_count


class ConfigurationError(FusionError, ValueError):
    """Unknown or missing fusion option."""

    def __init__(self, message: str, option: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.option = option
        self.value = value


class NonFiniteWeightError(FusionError):
    """Conflation produced NaN or infinity for a key."""

    def __init__(self, key: str, weight: float, sources: Tuple[str, ...]):
        super().__init__(
            f"Fused weight for key {key!r} is not finite ({weight!r}); "
            f"contributing sources: {', '.join(sources)}"
        )
        self.key = key
        self.weight = weight
        self.sources = sources


def parse_option(enum_cls: type, value: Any, option: str) -> Any:
    """Coerce ``value`` into ``enum_cls`` or raise ``ConfigurationError``."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ConfigurationError(f"Missing value for {option}", option=option)
    try:
        return enum_cls(str(value).strip().lower().replace("_", "-"))
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"Unknown {option}: {value!r} (expected one of: {choices})",
            option=option,
            value=value
        )
