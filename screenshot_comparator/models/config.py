"""Configuration models for the comparator."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

PROD_URL_ENV = "PROD_WEBSITE_URL"
MIGRATED_URL_ENV = "MIGRATED_WEBSITE_URL"

# Part of the task timeout reserved for navigating both sides, retries included
NAVIGATION_SHARE = 0.8
MIN_NAVIGATION_ATTEMPT_MS = 1000


def resolve_env_value(v: str) -> str:
    """Resolve ``env:NAME`` references against the process environment."""
    if isinstance(v, str) and v.startswith("env:"):
        env_var = v[4:]
        resolved = os.environ.get(env_var)
        if not resolved:
            raise ValueError(f"Environment variable '{env_var}' not set")
        return resolved
    return v


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720
    name: str = "desktop"


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)

    def total_backoff_seconds(self) -> float:
        """Sum of the delays slept between all attempts."""
        return sum(self.base_delay_seconds * self.multiplier ** i for i in range(self.max_attempts - 1))


class ComparatorConfig(BaseModel):
    # Environments
    prod_base_url: str = Field(default=f"env:{PROD_URL_ENV}", validate_default=True)
    migrated_base_url: str = Field(default=f"env:{MIGRATED_URL_ENV}", validate_default=True)

    # Inputs / outputs
    urls_file: str = "./.temp/urls.json"
    output_dir: str = "./.comparison_results"
    ignore_list_file: Optional[str] = None

    # Rendering
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: Optional[str] = None
    bypass_headers: dict[str, str] = Field(default_factory=dict)
    navigation_timeout_ms: int = 90000
    settle_delay_ms: int = 500
    max_image_height: int = Field(default=9000, gt=0)

    # Scheduling
    num_workers: int = Field(default=4, ge=1)
    task_timeout_seconds: float = Field(default=150, gt=0)
    max_respawns: int = Field(default=2, ge=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    resume: bool = True

    # Diffing
    diff_threshold: float = Field(default=0.1, ge=0, le=1)
    compare_media: bool = False

    # Reporting
    report_formats: list[str] = Field(default_factory=lambda: ["junit", "html", "json"])

    @field_validator("prod_base_url", "migrated_base_url", mode="before")
    @classmethod
    def resolve_base_url(cls, v: str) -> str:
        return resolve_env_value(v).rstrip("/")

    @field_validator("bypass_headers", mode="before")
    @classmethod
    def resolve_bypass_headers(cls, v: dict) -> dict:
        if not isinstance(v, dict):
            return v
        return {k: resolve_env_value(val) for k, val in v.items()}

    @model_validator(mode="after")
    def check_navigation_budget(self) -> "ComparatorConfig":
        budget = self._navigation_budget_ms()
        if budget < MIN_NAVIGATION_ATTEMPT_MS:
            raise ValueError(
                f"task_timeout_seconds={self.task_timeout_seconds} leaves {budget:.0f}ms per navigation "
                f"attempt for {self.retry.max_attempts} attempts on both sides; raise the task timeout "
                f"or lower retry.max_attempts"
            )
        return self

    def _navigation_budget_ms(self) -> float:
        per_side = self.task_timeout_seconds * NAVIGATION_SHARE / 2
        return (per_side - self.retry.total_backoff_seconds()) / self.retry.max_attempts * 1000

    def navigation_attempt_timeout_ms(self) -> int:
        """Timeout of one navigation attempt.

        Capped so that every retry of both sides, backoff included, fits in
        the task timeout with room left for capturing and diffing.
        """
        return int(min(self.navigation_timeout_ms, self._navigation_budget_ms()))

    @classmethod
    def load(cls, path: str | Path) -> "ComparatorConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
