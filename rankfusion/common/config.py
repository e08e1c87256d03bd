"""Configuration management for rank fusion.

Builds on ``pydantic_settings.BaseSettings`` so every fusion option can be
provided via ``RANKFUSION_*`` environment variables, a ``.env`` file, or
keyword overrides.

Highlights
- Every option is an explicit, enumerated value; unknown names are rejected
- ``source_weights`` accepts a JSON list (by list position) or object (by source)
- ``load_config`` turns validation failures into ``ConfigurationError``

Usage
- ``config = load_config()`` at the caller's entrypoint
- ``config = load_config(conflation="mean", tie_break="lexical-key")``
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..fusion.base import (
    ConfigurationError,
    ConflationMethod,
    DegenerateRangePolicy,
    DuplicateKeyPolicy,
    EmptyListPolicy,
    NormalizationMethod,
    TieBreak,
    parse_option,
)

_ENUM_FIELDS = {
    "normalization": NormalizationMethod,
    "conflation": ConflationMethod,
    "degenerate_range_policy": DegenerateRangePolicy,
    "tie_break": TieBreak,
    "duplicate_key_policy": DuplicateKeyPolicy,
    "empty_list_policy": EmptyListPolicy,
}


class FusionConfig(BaseSettings):
    """Configuration for one fusion pipeline.

    Values are read from the environment with the ``RANKFUSION_`` prefix, e.g.
    ``RANKFUSION_CONFLATION=mean``. Defaults match the library defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="RANKFUSION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "rankfusion"

    # Pipeline options
    normalization: NormalizationMethod = NormalizationMethod.MIN_MAX
    conflation: ConflationMethod = ConflationMethod.MAX
    source_weights: Optional[Union[List[float], Dict[str, float]]] = None
    degenerate_range_policy: DegenerateRangePolicy = DegenerateRangePolicy.CONSTANT_ONE
    tie_break: TieBreak = TieBreak.STABLE_INPUT_ORDER
    duplicate_key_policy: DuplicateKeyPolicy = DuplicateKeyPolicy.ERROR
    empty_list_policy: EmptyListPolicy = EmptyListPolicy.ERROR
    rrf_k: float = Field(default=60.0, ge=0)
    top_k: Optional[int] = Field(default=None, ge=0)
    max_workers: int = Field(default=1, ge=1)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator(*_ENUM_FIELDS, mode="before")
    @classmethod
    def _parse_enum(cls, value: Any, info: ValidationInfo) -> Any:
        return parse_option(_ENUM_FIELDS[info.field_name], value, info.field_name)

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value

    @model_validator(mode="after")
    def _check_weights(self) -> "FusionConfig":
        if self.conflation == ConflationMethod.WEIGHTED_SUM and not self.source_weights:
            raise ValueError("weighted-sum conflation requires source_weights")
        return self


def load_config(**overrides: Any) -> FusionConfig:
    """Build a ``FusionConfig`` from the environment plus ``overrides``.

    ``None`` overrides are ignored so CLI flags can be passed through as-is.

    Raises
    - ``ConfigurationError`` naming the first offending option
    """
    overrides = {name: value for name, value in overrides.items() if value is not None}
    try:
        return FusionConfig(**overrides)
    except ValidationError as e:
        error = e.errors()[0]
        option = ".".join(str(part) for part in error.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid fusion configuration: {error.get('msg')}",
            option=option,
            value=error.get("input")
        ) from e
