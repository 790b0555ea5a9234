"""Seed finder configuration (validated once before a session starts)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from sf_common.errors import ConfigurationError
from sf_runner.models.types import MAX_SEED

DEFAULT_SIMULATOR_PATH = Path("/usr/sbin/fdbserver")
DEFAULT_CHUNK_SIZE = 10
DEFAULT_TIMEOUT_SECS = 120
DEFAULT_GITLAB_HOST = "gitlab.com"


class GitlabSettings(BaseModel):
    """Credentials for the issue-tracking service."""

    token: Optional[str] = Field(default=None, repr=False, description="GitLab private token")
    host: str = Field(default=DEFAULT_GITLAB_HOST, description="GitLab host or base URL")
    project_id: Optional[int] = Field(default=None, gt=0, description="Project receiving the issues")

    @field_validator("token", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("host")
    @classmethod
    def _host_is_hostname_or_http_url(cls, value: str) -> str:
        host = value.strip()
        if not host:
            raise ValueError("must be non-empty")
        if "://" in host:
            parsed = urlparse(host)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"must be a hostname or http(s) URL, got: {value}")
        elif any(ch.isspace() or ch == "/" for ch in host):
            raise ValueError(f"must be a hostname or http(s) URL, got: {value}")
        return host.rstrip("/")

    @property
    def enabled(self) -> bool:
        return self.token is not None and self.project_id is not None


class FinderConfig(BaseModel):
    """Main configuration for a seed finding session."""

    simulator_path: Path = Field(default=DEFAULT_SIMULATOR_PATH, description="Path to the simulator binary")
    workload_file: Path = Field(description="Workload (test) file passed to the simulator")
    max_iterations: Optional[int] = Field(default=None, ge=0, description="Maximum number of seeds to run")
    seeds: Optional[List[int]] = Field(default=None, description="Explicit seeds to run")
    seed_file: Optional[Path] = Field(default=None, description="File with one seed per line")
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0, description="Number of seeds run in parallel")
    fail_fast: bool = Field(default=False, description="Stop dispatching after the first faulty seed")
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECS, gt=0, description="Per-seed simulation timeout")
    commit_id: Optional[str] = Field(default=None, description="Commit identifier of the tested build")
    halt_on_unreported_fault: bool = Field(
        default=True,
        description="Without GitLab, stop dispatching after the first fault printed locally",
    )
    work_dir: Optional[Path] = Field(default=None, description="Parent directory for per-run directories")
    stop_file: Optional[Path] = Field(default=None, description="Stop dispatching once this file exists")
    gitlab: GitlabSettings = Field(default_factory=GitlabSettings, description="Issue-tracking credentials")

    @field_validator("seeds")
    @classmethod
    def _seeds_in_range(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return value
        for seed in value:
            if seed < 0 or seed > MAX_SEED:
                raise ValueError(f"Seed {seed} is outside [0, {MAX_SEED}]")
        return value

    @model_validator(mode="after")
    def validate_paths(self) -> "FinderConfig":
        if not self.workload_file.is_file():
            raise ValueError(f"Workload file not found: {self.workload_file}")
        if self.seed_file is not None and not self.seed_file.is_file():
            raise ValueError(f"Seed file not found: {self.seed_file}")
        if self.work_dir is not None and not self.work_dir.is_dir():
            raise ValueError(f"Work directory not found: {self.work_dir}")
        return self


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()))
        message = err.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def load_config(**values: Any) -> FinderConfig:
    """Build a FinderConfig, raising ConfigurationError on invalid input."""
    try:
        return FinderConfig(**values)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {_format_validation_error(exc)}",
            cause=exc,
        ) from exc
