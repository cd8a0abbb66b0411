"""Unit tests for configuration (src.config).

Tests cover:
- Defaults of every sub-config
- Field validation
- require_credentials precondition policy
- save / load round-trip without secrets
- from_env overrides
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config import (
    Config,
    GeminiConfig,
    GenerationConfig,
    ReadinessConfig,
    SandboxConfig,
)
from src.errors import ErrorKind, PreconditionError


class TestDefaults:
    @pytest.mark.unit
    def test_gemini(self):
        cfg = GeminiConfig()
        assert cfg.model == "gemini-2.5-flash"
        assert cfg.base_url.endswith("/v1beta")
        assert cfg.api_key == ""

    @pytest.mark.unit
    def test_sandbox(self):
        cfg = SandboxConfig()
        assert cfg.backend == "e2b"
        assert cfg.workdir == "/home/user/app"
        assert cfg.app_port == 3000
        assert cfg.timeout == 900

    @pytest.mark.unit
    def test_readiness(self):
        cfg = ReadinessConfig()
        assert cfg.max_attempts == 30
        assert cfg.interval == 2.0

    @pytest.mark.unit
    def test_generation(self):
        assert GenerationConfig().max_files == 12


class TestValidation:
    @pytest.mark.unit
    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            SandboxConfig(backend="docker")

    @pytest.mark.unit
    def test_zero_attempts_rejected(self):
        with pytest.raises(ValidationError):
            ReadinessConfig(max_attempts=0)

    @pytest.mark.unit
    def test_max_files_bounds(self):
        with pytest.raises(ValidationError):
            GenerationConfig(max_files=0)
        with pytest.raises(ValidationError):
            GenerationConfig(max_files=101)

    @pytest.mark.unit
    def test_api_keys_hidden_from_repr(self):
        assert "secret" not in repr(GeminiConfig(api_key="secret"))


class TestRequireCredentials:
    @pytest.mark.unit
    def test_missing_gemini_key(self):
        cfg = Config(sandbox=SandboxConfig(backend="memory"))
        with pytest.raises(PreconditionError, match="GOOGLE_GENERATIVE_AI_API_KEY") as info:
            cfg.require_credentials()
        assert info.value.kind is ErrorKind.PRECONDITION

    @pytest.mark.unit
    def test_missing_e2b_key_is_fatal_for_e2b_backend(self):
        cfg = Config(gemini=GeminiConfig(api_key="g"))
        with pytest.raises(PreconditionError, match="E2B_API_KEY"):
            cfg.require_credentials()

    @pytest.mark.unit
    def test_memory_backend_needs_no_e2b_key(self):
        cfg = Config(gemini=GeminiConfig(api_key="g"), sandbox=SandboxConfig(backend="memory"))
        cfg.require_credentials()

    @pytest.mark.unit
    def test_all_keys_present(self):
        cfg = Config(gemini=GeminiConfig(api_key="g"), sandbox=SandboxConfig(api_key="e"))
        cfg.require_credentials()


class TestSaveLoad:
    @pytest.mark.unit
    def test_round_trip_without_secrets(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        cfg = Config(
            gemini=GeminiConfig(api_key="g-secret", model="gemini-2.5-pro"),
            sandbox=SandboxConfig(api_key="e-secret", backend="memory", app_port=4000),
        )
        path = cfg.save(tmp_path / "nested" / "config.json")

        raw = json.loads(path.read_text())
        assert "api_key" not in raw["gemini"]
        assert "api_key" not in raw["sandbox"]

        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "from-env")
        loaded = Config.load(path)
        assert loaded.gemini.model == "gemini-2.5-pro"
        assert loaded.sandbox.app_port == 4000
        assert loaded.gemini.api_key == "from-env"
        assert loaded.sandbox.api_key == ""


class TestFromEnv:
    @pytest.mark.unit
    def test_defaults_without_env(self):
        cfg = Config.from_env()
        assert cfg.gemini.api_key == ""
        assert cfg.sandbox.backend == "e2b"

    @pytest.mark.unit
    def test_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g")
        monkeypatch.setenv("E2B_API_KEY", "e")
        monkeypatch.setenv("WEBFORGE_GEMINI_MODEL", "gemini-2.0-flash")
        monkeypatch.setenv("WEBFORGE_SANDBOX_BACKEND", "memory")
        monkeypatch.setenv("WEBFORGE_APP_PORT", "8080")
        monkeypatch.setenv("WEBFORGE_READY_ATTEMPTS", "5")
        monkeypatch.setenv("WEBFORGE_READY_INTERVAL", "0.5")
        monkeypatch.setenv("WEBFORGE_MAX_FILES", "7")

        cfg = Config.from_env()
        assert cfg.gemini.api_key == "g"
        assert cfg.sandbox.api_key == "e"
        assert cfg.gemini.model == "gemini-2.0-flash"
        assert cfg.sandbox.backend == "memory"
        assert cfg.sandbox.app_port == 8080
        assert cfg.readiness.max_attempts == 5
        assert cfg.readiness.interval == 0.5
        assert cfg.generation.max_files == 7
