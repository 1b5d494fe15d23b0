"""Tests for spanscore.models.config -- spanscore.yaml loading and project discovery."""

import pytest
from pydantic import ValidationError

from spanscore.models.config import (
    CredentialConfig,
    ProjectConfig,
    WorkerConfig,
    find_project_root,
    load_project_config,
)


class TestProjectConfig:
    def test_defaults(self):
        config = ProjectConfig()
        assert config.project_id == "default"
        assert config.storage_dir == ".spanscore"
        assert config.evaluators_dir == "evaluators"
        assert config.worker.poll_interval_seconds == 5.0
        assert config.worker.default_sample_limit == 1000
        assert config.worker.manual_window == "24h"
        assert config.credentials == {}

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            ProjectConfig(storage="x")

    def test_worker_bounds(self):
        with pytest.raises(ValidationError):
            WorkerConfig(max_parallel_spans=0)
        with pytest.raises(ValidationError):
            WorkerConfig(poll_interval_seconds=0)
        with pytest.raises(ValidationError):
            WorkerConfig(manual_window="2h")

    def test_credential_defaults(self):
        credential = CredentialConfig()
        assert credential.adapter == "openai"
        assert credential.max_tokens == 1024


class TestLoadProjectConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_project_config(tmp_path) == ProjectConfig()

    def test_empty_file_gives_defaults(self, tmp_path):
        (tmp_path / "spanscore.yaml").write_text("")
        assert load_project_config(tmp_path) == ProjectConfig()

    def test_full_file(self, tmp_path):
        (tmp_path / "spanscore.yaml").write_text(
            "project_id: shop\n"
            "worker:\n"
            "  max_parallel_spans: 8\n"
            "  manual_window: 7d\n"
            "credentials:\n"
            "  cred-claude:\n"
            "    adapter: anthropic\n"
        )
        config = load_project_config(tmp_path)
        assert config.project_id == "shop"
        assert config.worker.max_parallel_spans == 8
        assert config.worker.manual_window == "7d"
        assert config.credentials["cred-claude"].adapter == "anthropic"


class TestFindProjectRoot:
    def test_walks_up_to_config(self, tmp_path):
        (tmp_path / "spanscore.yaml").write_text("project_id: p\n")
        nested = tmp_path / "evaluators" / "chat"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()

    def test_file_start(self, tmp_path):
        (tmp_path / ".spanscore").mkdir()
        evaluator = tmp_path / "ev.yaml"
        evaluator.write_text("name: x\n")
        assert find_project_root(evaluator) == tmp_path.resolve()

    def test_defaults_to_cwd(self, tmp_path, monkeypatch):
        bare = tmp_path / "bare"
        bare.mkdir()
        monkeypatch.chdir(bare)
        assert find_project_root().resolve() == bare.resolve()
