"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults live here, ``fm2schema.toml`` only carries
overrides.  A project needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from fm2schema.services.strategies import ConflictResolution, StrategyConfig, StrategyKind


class ProcessingConfig(BaseModel):
    """[processing] section."""

    model_config = {"frozen": True}

    parallel: bool = False
    max_workers: int = Field(default=4, ge=1)
    # 0 disables the memory check
    memory_limit_mb: int = Field(default=1024, ge=0)


class AggregationConfig(BaseModel):
    """[aggregation] section."""

    model_config = {"frozen": True}

    strategy: StrategyKind | None = None
    conflict_resolution: ConflictResolution = ConflictResolution.LAST_WINS
    preserve_arrays: bool = True
    deep_merge: bool = True
    array_key: str = "documents"
    include_metadata: bool = True

    def strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            array_key=self.array_key,
            include_metadata=self.include_metadata,
            preserve_arrays=self.preserve_arrays,
            deep_merge=self.deep_merge,
            conflict_resolution=self.conflict_resolution,
        )


class InputConfig(BaseModel):
    """[input] section."""

    model_config = {"frozen": True}

    extensions: list[str] = Field(default_factory=lambda: [".md", ".markdown"])
    skip_dirs: list[str] = Field(default_factory=lambda: [".git", "node_modules", ".venv"])

    @field_validator("extensions")
    @classmethod
    def _dotted(cls, value: list[str]) -> list[str]:
        return [e if e.startswith(".") else f".{e}" for e in value]


class OutputConfig(BaseModel):
    """[output] section."""

    model_config = {"frozen": True}

    indent: int = Field(default=2, ge=0)
