"""WebForge configuration.

Centralised, typed configuration for a generation run. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.errors import PreconditionError

GEMINI_KEY_ENV = "GOOGLE_GENERATIVE_AI_API_KEY"
E2B_KEY_ENV = "E2B_API_KEY"


class GeminiConfig(BaseModel):
    """Configuration for the Google Gemini text generator."""

    api_key: str = Field(default="", repr=False)
    model: str = Field(default="gemini-2.5-flash")
    base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    timeout: int = Field(default=120, ge=10, description="Per-request timeout in seconds")


class SandboxConfig(BaseModel):
    """Where and how the generated project is materialised and run.

    ``backend="memory"`` selects the in-process simulation.  It is only ever
    used when configured explicitly; a missing E2B key with the default
    ``"e2b"`` backend is an error, not a silent downgrade.
    """

    backend: Literal["e2b", "memory"] = Field(default="e2b")
    api_key: str = Field(default="", repr=False)
    template: str = Field(default="base", description="E2B sandbox template")
    timeout: int = Field(default=900, ge=60, description="Sandbox lifetime in seconds")
    workdir: str = Field(default="/home/user/app")
    app_port: int = Field(default=3000, ge=1, le=65535)
    install_timeout: int = Field(default=300, ge=30, description="npm install timeout in seconds")
    dev_log_path: str = Field(default="/tmp/webforge-dev.log")


class ReadinessConfig(BaseModel):
    """Retry budget for waiting on the dev server."""

    max_attempts: int = Field(default=30, ge=1)
    interval: float = Field(default=2.0, ge=0.0, description="Seconds between attempts")
    request_timeout: float = Field(default=5.0, gt=0.0)
    process_listing: bool = Field(
        default=True, description="Attach a best-effort `ps` listing to failed attempts"
    )


class GenerationConfig(BaseModel):
    """Tuning knobs for planning and file generation."""

    max_files: int = Field(default=12, ge=1, le=100, description="Cap on planned files")
    project_name: str = Field(default="", description="npm package name; derived if empty")


class Config(BaseModel):
    """Global WebForge configuration.

    Instances are typically created once by the CLI entry point (or by the
    HTTP transport per request) and passed to ``ProjectOrchestrator``.
    """

    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def require_credentials(self) -> None:
        """Raise ``PreconditionError`` if a credential needed for this run is missing."""
        if not self.gemini.api_key:
            raise PreconditionError(
                f"{GEMINI_KEY_ENV} environment variable is not set. "
                "Please configure your Google AI API key."
            )
        if self.sandbox.backend == "e2b" and not self.sandbox.api_key:
            raise PreconditionError(
                f"{E2B_KEY_ENV} environment variable is not set. "
                "Configure it, or select the in-memory sandbox explicitly."
            )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration (without secrets) to a JSON file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = self.model_dump_json(
            indent=2,
            exclude={"gemini": {"api_key"}, "sandbox": {"api_key"}},
        )
        target.write_text(payload, encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON.

        Credentials are never stored on disk; they are picked up from the
        environment afterwards.
        """
        raw = Path(path).read_text(encoding="utf-8")
        config = cls.model_validate_json(raw)
        config.gemini.api_key = config.gemini.api_key or os.environ.get(GEMINI_KEY_ENV, "")
        config.sandbox.api_key = config.sandbox.api_key or os.environ.get(E2B_KEY_ENV, "")
        return config

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            GOOGLE_GENERATIVE_AI_API_KEY, E2B_API_KEY,
            WEBFORGE_GEMINI_MODEL, WEBFORGE_GEMINI_TIMEOUT,
            WEBFORGE_SANDBOX_BACKEND, WEBFORGE_SANDBOX_TEMPLATE,
            WEBFORGE_SANDBOX_TIMEOUT, WEBFORGE_APP_PORT,
            WEBFORGE_READY_ATTEMPTS, WEBFORGE_READY_INTERVAL,
            WEBFORGE_MAX_FILES.
        """
        gemini_kwargs: dict[str, Any] = {"api_key": os.environ.get(GEMINI_KEY_ENV, "")}
        if os.environ.get("WEBFORGE_GEMINI_MODEL"):
            gemini_kwargs["model"] = os.environ["WEBFORGE_GEMINI_MODEL"]
        if os.environ.get("WEBFORGE_GEMINI_TIMEOUT"):
            gemini_kwargs["timeout"] = int(os.environ["WEBFORGE_GEMINI_TIMEOUT"])

        sandbox_kwargs: dict[str, Any] = {"api_key": os.environ.get(E2B_KEY_ENV, "")}
        if os.environ.get("WEBFORGE_SANDBOX_BACKEND"):
            sandbox_kwargs["backend"] = os.environ["WEBFORGE_SANDBOX_BACKEND"]
        if os.environ.get("WEBFORGE_SANDBOX_TEMPLATE"):
            sandbox_kwargs["template"] = os.environ["WEBFORGE_SANDBOX_TEMPLATE"]
        if os.environ.get("WEBFORGE_SANDBOX_TIMEOUT"):
            sandbox_kwargs["timeout"] = int(os.environ["WEBFORGE_SANDBOX_TIMEOUT"])
        if os.environ.get("WEBFORGE_APP_PORT"):
            sandbox_kwargs["app_port"] = int(os.environ["WEBFORGE_APP_PORT"])

        readiness_kwargs: dict[str, Any] = {}
        if os.environ.get("WEBFORGE_READY_ATTEMPTS"):
            readiness_kwargs["max_attempts"] = int(os.environ["WEBFORGE_READY_ATTEMPTS"])
        if os.environ.get("WEBFORGE_READY_INTERVAL"):
            readiness_kwargs["interval"] = float(os.environ["WEBFORGE_READY_INTERVAL"])

        generation_kwargs: dict[str, Any] = {}
        if os.environ.get("WEBFORGE_MAX_FILES"):
            generation_kwargs["max_files"] = int(os.environ["WEBFORGE_MAX_FILES"])

        return cls(
            gemini=GeminiConfig(**gemini_kwargs),
            sandbox=SandboxConfig(**sandbox_kwargs),
            readiness=ReadinessConfig(**readiness_kwargs),
            generation=GenerationConfig(**generation_kwargs),
        )
