"""Sandbox provisioning: create, seed, install.

The provisioner prepares everything that does not depend on the generated
files, so it can run while the model is still planning and writing code:

1. create one sandbox bound to the configured lifetime,
2. seed the fixed Next.js configuration and the shadcn/ui component catalog,
3. run ``npm install``.

The same fixed file set defines which paths the file generator must skip.
"""

from __future__ import annotations

from collections.abc import Callable

from src.config import SandboxConfig
from src.events import EventChannel, SandboxCreatedEvent
from src.utils import truncate

from .base import CommandResult, ExecutionEnvironment, SandboxBackend, SandboxError
from .renderer import TemplateRenderer

NEXT_VERSION = "14.2.3"

# Core configuration seeded by the provisioner (plus common aliases the model
# likes to plan, which would clash with the seeded variants).
PROVISIONED_FILES: frozenset[str] = frozenset(
    {
        "package.json",
        "package-lock.json",
        "tsconfig.json",
        "next.config.js",
        "next.config.mjs",
        "tailwind.config.ts",
        "tailwind.config.js",
        "postcss.config.js",
        "postcss.config.mjs",
        "components.json",
        "lib/utils.ts",
    }
)

PROVISIONED_PREFIXES: tuple[str, ...] = ("components/ui/",)


def is_provisioned(path: str) -> bool:
    """Return ``True`` if *path* is seeded by the provisioner and must not be generated."""
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.lstrip("/")
    return normalized in PROVISIONED_FILES or normalized.startswith(PROVISIONED_PREFIXES)


def backend_for(config: SandboxConfig) -> SandboxBackend:
    """Instantiate the backend selected by *config*."""
    if config.backend == "memory":
        from .memory import MemoryBackend

        return MemoryBackend(workdir=config.workdir)

    from .remote import E2BBackend

    return E2BBackend(api_key=config.api_key, template=config.template, workdir=config.workdir)


class SandboxProvisioner:
    """Creates and prepares the sandbox for one run."""

    def __init__(
        self,
        backend: SandboxBackend,
        config: SandboxConfig,
        events: EventChannel,
        project_name: str = "webforge-app",
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.backend = backend
        self.config = config
        self.events = events
        self.project_name = project_name
        self.renderer = renderer or TemplateRenderer()
        self._seed_cache: dict[str, str] | None = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def create(self) -> ExecutionEnvironment:
        """Create the sandbox and announce it."""
        self.events.log(f"Creating {self.backend.name} sandbox...")
        environment = await self.backend.create(self.config.timeout)
        self.events.emit(SandboxCreatedEvent(sandbox_id=environment.environment_id))
        self.events.log(f"Sandbox created: {environment.environment_id}")
        return environment

    def seed_files(self) -> dict[str, str]:
        """Return the rendered config files and UI components, keyed by path."""
        if self._seed_cache is None:
            context = {"project_name": self.project_name, "next_version": NEXT_VERSION}
            seeds = self.renderer.render_tree("project", context)
            seeds.update(self.renderer.render_tree("ui", context))
            self._seed_cache = seeds
        return dict(self._seed_cache)

    async def seed(self, environment: ExecutionEnvironment) -> list[str]:
        """Write every seed file into *environment*, overwriting existing copies."""
        seeds = self.seed_files()
        config_files = [p for p in seeds if not p.startswith(PROVISIONED_PREFIXES)]
        components = [p for p in seeds if p.startswith(PROVISIONED_PREFIXES)]

        self.events.log(f"Writing {len(config_files)} configuration files...")
        for path in config_files:
            await environment.write_file(path, seeds[path])

        self.events.log(f"Installing {len(components)} UI components...")
        for path in components:
            await environment.write_file(path, seeds[path])

        return config_files + components

    async def install(self, environment: ExecutionEnvironment) -> CommandResult:
        """Run ``npm install`` and fail the run if it does not succeed."""
        self.events.log("Installing dependencies (npm install)...")
        result = await environment.run_command(
            "npm install --no-audit --no-fund --loglevel=error",
            timeout=self.config.install_timeout,
        )
        if result.stdout.strip():
            self.events.log(truncate(result.stdout.strip(), 1000))
        if not result.ok:
            raise SandboxError(
                f"npm install exited with code {result.exit_code}: "
                f"{truncate(result.stderr.strip(), 500)}"
            )
        self.events.log("✓ Dependencies installed")
        return result

    async def provision(
        self,
        on_created: Callable[[ExecutionEnvironment], None] | None = None,
    ) -> ExecutionEnvironment:
        """Create, seed, and install.

        ``on_created`` receives the environment as soon as it exists, so the
        caller can tear it down even if seeding or installation fails.
        """
        environment = await self.create()
        if on_created is not None:
            on_created(environment)
        await self.seed(environment)
        await self.install(environment)
        return environment
