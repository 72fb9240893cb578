# src/dynamic_query/base/config.py

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CoreConfig(BaseModel):
    """
    Limits and feature switches the query builder enforces while building.

    Instances are immutable; build a new one (or start from a preset) to
    change a value. Values are checked on construction and invalid ones raise
    ``pydantic.ValidationError``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_query_timeout_ms: int = Field(default=30_000, ge=0)
    max_predicate_depth: int = Field(default=10, ge=1)
    max_predicate_count: int = Field(default=50, ge=1)
    like_predicates_enabled: bool = True
    in_predicates_enabled: bool = True
    between_predicates_enabled: bool = True
    null_predicates_enabled: bool = True
    max_in_predicate_size: int = Field(default=1000, ge=1)
    parameter_collision_detection: bool = True
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=1000, ge=1)
    query_statistics_enabled: bool = True

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "CoreConfig":
        if self.max_page_size < self.default_page_size:
            raise ValueError(
                f"max_page_size ({self.max_page_size}) must be >= "
                f"default_page_size ({self.default_page_size})"
            )
        return self

    @property
    def default_query_timeout_seconds(self) -> int:
        """Default timeout rounded up to whole seconds."""
        return -(-self.default_query_timeout_ms // 1000)


# --- Presets ---
def default_config() -> CoreConfig:
    return CoreConfig()


def high_performance_config() -> CoreConfig:
    """Tighter limits for latency-sensitive callers."""
    return CoreConfig(
        default_query_timeout_ms=10_000,
        max_predicate_depth=8,
        max_predicate_count=30,
        max_in_predicate_size=500,
        query_statistics_enabled=False,
    )


def development_config() -> CoreConfig:
    """Looser limits and longer timeouts for debugging."""
    return CoreConfig(
        default_query_timeout_ms=60_000,
        max_predicate_depth=15,
        max_predicate_count=100,
    )
