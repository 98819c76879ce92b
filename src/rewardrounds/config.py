"""
Engine Configuration

Settings for a settlement engine, loadable from YAML or the environment.
"""

from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from rewardrounds.exceptions import InputValidationError

ENV_FUNDING_MODE = "REWARDROUNDS_FUNDING_MODE"
ENV_MAX_ROUNDS_PER_CLAIM = "REWARDROUNDS_MAX_ROUNDS_PER_CLAIM"


class FundingMode(str, enum.Enum):
    """How a round's reward pool is determined."""

    DIRECT = "direct"
    CARRY_OVER = "carry_over"


class EngineConfig(BaseModel):
    """Configuration for a settlement engine."""

    funding_mode: FundingMode = Field(
        default=FundingMode.DIRECT,
        description="Pool accounting variant",
    )
    max_rounds_per_claim: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum rounds scanned by one claim or history query (None = unbounded)",
    )
    metrics_prefix: str = Field(default="rewardrounds", min_length=1)

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """Load configuration from a YAML file.

        Raises:
            InputValidationError: If the file does not hold a mapping.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise InputValidationError(f"Config file {path} must contain a mapping")
        return cls(**data)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build configuration from ``REWARDROUNDS_*`` environment variables."""
        data: dict[str, object] = {}
        mode = os.environ.get(ENV_FUNDING_MODE)
        if mode:
            data["funding_mode"] = mode
        max_rounds = os.environ.get(ENV_MAX_ROUNDS_PER_CLAIM)
        if max_rounds:
            data["max_rounds_per_claim"] = int(max_rounds)
        return cls(**data)
