"""Rank fusion for hybrid retrieval.

Subpackages:
- ``rankfusion.fusion``: normalizers, conflation functions, the fusion
  engine, the ranker and the end-to-end pipeline.
- ``rankfusion.common``: configuration, structured logging and metrics.

Usage:
- ``fuse_ranked_lists([RankedList.from_pairs("bm25", ...), ...])``
- Or build a ``FusionPipeline(load_config(...))`` once and call ``run``.
"""

from .common.config import FusionConfig, load_config
from .fusion.base import (
    ConfigurationError,
    DegenerateRangeError,
    FusionError,
    InvalidInputError,
    NonFiniteWeightError,
)
from .fusion.models import FusedItem, FusionResult, RankedItem, RankedList
from .fusion.pipeline import FusionPipeline, fuse_ranked_lists

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DegenerateRangeError",
    "FusedItem",
    "FusionConfig",
    "FusionError",
    "FusionPipeline",
    "FusionResult",
    "InvalidInputError",
    "NonFiniteWeightError",
    "RankedItem",
    "RankedList",
    "fuse_ranked_lists",
    "load_config",
]
