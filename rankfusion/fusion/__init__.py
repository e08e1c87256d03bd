"""Normalize, fuse and rank scored lists from independent sources.

Contents
- ``base``: option enums, abstract interfaces and the error taxonomy
- ``models``: immutable value types passed between stages
- ``normalization``: per-list rescaling (min-max, z-score, RRF, identity)
- ``conflation``: rules combining the weights of one key
- ``engine``: key-wise union of normalized lists
- ``ranking``: final ordering with an explicit tie-break
- ``pipeline``: validation and the end-to-end ``FusionPipeline``
"""

from .base import (
    ConfigurationError,
    ConflationFunction,
    ConflationMethod,
    DegenerateRangeError,
    DegenerateRangePolicy,
    DuplicateKeyPolicy,
    EmptyListPolicy,
    FusionError,
    InvalidInputError,
    NonFiniteWeightError,
    NormalizationMethod,
    Normalizer,
    TieBreak,
)
from .conflation import create_conflation
from .engine import FusionEngine, fuse
from .models import (
    FusedItem,
    FusionResult,
    NormalizedItem,
    NormalizedList,
    RankedItem,
    RankedList,
    SourceStats,
)
from .normalization import create_normalizer, normalize
from .ranking import Ranker, rank
