"""Project configuration model for spanscore.

Captures spanscore.yaml fields with sensible defaults for storage,
worker tuning and the credential table used by LLM scorers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

CONFIG_FILENAME = "spanscore.yaml"


class WorkerConfig(BaseModel):
    """Execution worker tuning.

    Controls per-execution span concurrency, how many executions one
    worker drives at once, transient retry budget and client polling.
    """

    model_config = {"extra": "forbid"}

    max_parallel_spans: int = Field(default=4, ge=1, le=64)
    max_concurrent_executions: int = Field(default=2, ge=1, le=32)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0)
    poll_interval_seconds: float = Field(default=5.0, gt=0.0)
    default_sample_limit: int = Field(default=1000, ge=1)
    manual_window: Literal["1h", "24h", "7d", "30d"] = "24h"


class CredentialConfig(BaseModel):
    """Provider binding for a credential_id.

    Secrets are never stored here; provider SDKs read their API keys
    from the environment.
    """

    model_config = {"extra": "forbid"}

    adapter: str = "openai"
    max_tokens: int = Field(default=1024, ge=1)


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from spanscore.yaml."""

    model_config = {"extra": "forbid"}

    project_id: str = "default"
    storage_dir: str = ".spanscore"
    evaluators_dir: str = "evaluators"
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    credentials: dict[str, CredentialConfig] = Field(default_factory=dict)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for spanscore.yaml or .spanscore/.

    Returns cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / ".spanscore").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from spanscore.yaml. Returns defaults if not found."""
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
