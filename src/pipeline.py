"""WebForge Project Orchestrator.

Drives one generation run from a free-text description to a running
preview:

  PLAN      -- ask the model for the file list (fallback on bad output).
  GENERATE  -- stream every file into the staging store.
  PROVISION -- create the sandbox, seed config + UI kit, npm install.
               Runs concurrently with PLAN and GENERATE.
  FLUSH     -- write the staged files into the sandbox.
  BRING-UP  -- start ``npm run dev`` and poll the preview URL.

Progress is reported exclusively through an :class:`EventChannel`; a run
ends with exactly one ``complete`` or ``error`` event.

Usage::

    python -m src.pipeline "Build a blog website"
    python -m src.pipeline "Admin dashboard for a gym" --backend memory --export out.tar.gz
"""

from __future__ import annotations

import asyncio
import sys
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.markup import escape

from src.config import Config
from src.errors import USER_MESSAGES, ErrorKind, ExportError, WebForgeError, classify_error
from src.events import (
    CompleteEvent,
    ErrorEvent,
    EventChannel,
    GenerationEvent,
    PreviewUrlEvent,
    RunStatus,
    StatusEvent,
)
from src.gemini_client import GeminiClient, TextGenerator
from src.generation import FileGenerator, PlanGenerator, ProjectContext
from src.sandbox import (
    DevServerLauncher,
    ExecutionEnvironment,
    ReadinessProber,
    SandboxBackend,
    SandboxProvisioner,
    backend_for,
)
from src.sandbox.readiness import SleepFn
from src.staging import StagedFile, StagingStore
from src.utils import (
    console,
    format_duration,
    print_banner,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    sanitize_name,
)

# ---------------------------------------------------------------------------
# Exceptions & results
# ---------------------------------------------------------------------------


class RunCancelled(WebForgeError):
    """Raised inside the run when a cooperative cancellation was requested."""

    def __init__(self) -> None:
        super().__init__("Generation cancelled", kind=ErrorKind.CANCELLED)


@dataclass
class RunResult:
    """Structured outcome of :meth:`ProjectOrchestrator.run`."""

    status: RunStatus
    sandbox_id: str | None = None
    url: str | None = None
    files: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETE


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ProjectOrchestrator:
    """Coordinates planning, generation, provisioning and bring-up for one run.

    The orchestrator owns the sandbox handle for the lifetime of the run.
    On failure or cancellation it tears the sandbox down itself; on success
    the sandbox is kept so the preview and :meth:`export_project` keep
    working, and the caller releases it with :meth:`cleanup` (or by using
    the orchestrator as an async context manager).

    Attributes:
        config: Run configuration.
        events: Channel receiving every progress event.
        context: Description and (once planned) file list.
        staging: Generated files, before and after the flush.
        environment: The live sandbox, or ``None``.
        status: Current :class:`RunStatus`.
    """

    def __init__(
        self,
        description: str,
        config: Config,
        *,
        events: EventChannel | None = None,
        client: TextGenerator | None = None,
        backend: SandboxBackend | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self.events = events or EventChannel()
        self.context = ProjectContext(description=description)
        self.staging = StagingStore()

        self.client: TextGenerator = client or GeminiClient(
            api_key=config.gemini.api_key,
            model=config.gemini.model,
            base_url=config.gemini.base_url,
            timeout=config.gemini.timeout,
        )
        self.backend = backend or backend_for(config.sandbox)

        project_name = config.generation.project_name or sanitize_name(description)
        self.planner = PlanGenerator(self.client, self.events, config.generation.max_files)
        self.file_generator = FileGenerator(self.client, self.staging, self.events)
        self.provisioner = SandboxProvisioner(
            self.backend, config.sandbox, self.events, project_name=project_name
        )
        self.launcher = DevServerLauncher(config.sandbox, self.events)
        self.prober = ReadinessProber(config.readiness, self.events, sleep=sleep)

        self.environment: ExecutionEnvironment | None = None
        self.status = RunStatus.IDLE
        self.preview_url: str | None = None
        self._cancel_requested = False
        self._started = False

    async def __aenter__(self) -> "ProjectOrchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> RunResult:
        """Execute the whole pipeline.

        Never raises for pipeline failures: they are reported as a single
        ``error`` event and an ``ERROR`` result.  ``asyncio.CancelledError``
        is re-raised after teardown.
        """
        if self._started:
            raise RuntimeError("A ProjectOrchestrator can only run once")
        self._started = True

        started = time.monotonic()
        provision_task: asyncio.Task[ExecutionEnvironment] | None = None
        self.events.log("🚀 Starting AI project generation...")

        try:
            self.config.require_credentials()
            self._raise_if_cancelled()

            # Provisioning overlaps with planning and generation.
            provision_task = asyncio.create_task(
                self.provisioner.provision(on_created=self._adopt_environment),
                name="webforge-provision",
            )

            files = await self._plan_alongside(provision_task)
            await self._generate_files(files, provision_task)

            self._raise_if_cancelled()
            if not provision_task.done():
                self.events.log("Waiting for sandbox provisioning to finish...")
            environment = await provision_task
            self._raise_if_cancelled()

            self._set_status(RunStatus.BUILDING)
            written = await self.staging.flush(environment)
            self.events.log(f"Wrote {len(written)} generated files to the sandbox")
            self._raise_if_cancelled()

            url = await self._bring_up(environment)
            self._raise_if_cancelled()

            self.status = RunStatus.COMPLETE
            self.events.emit(CompleteEvent(sandbox_id=environment.environment_id, url=url))
            return RunResult(
                status=RunStatus.COMPLETE,
                sandbox_id=environment.environment_id,
                url=url,
                files=self.staging.paths(),
                duration_seconds=time.monotonic() - started,
            )

        except asyncio.CancelledError:
            await self._drain(provision_task)
            self._fail(ErrorKind.CANCELLED, USER_MESSAGES[ErrorKind.CANCELLED])
            await self.cleanup()
            raise

        except Exception as exc:
            await self._drain(provision_task)
            kind, message = classify_error(exc)
            self._fail(kind, message)
            await self.cleanup()
            return RunResult(
                status=RunStatus.ERROR,
                sandbox_id=None,
                files=self.staging.paths(),
                error=message,
                error_kind=kind,
                duration_seconds=time.monotonic() - started,
            )

    def cancel(self) -> None:
        """Request a cooperative stop.

        The in-flight await is allowed to finish; the run then skips the
        remaining stages, tears the sandbox down and ends with an error event.
        """
        if not self._cancel_requested and not self.status.is_terminal:
            self._cancel_requested = True
            self.events.log("Cancellation requested", level="warning")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _plan_alongside(
        self, provision_task: asyncio.Task[ExecutionEnvironment]
    ) -> list[str]:
        """Plan while provisioning runs, failing fast if provisioning fails first."""
        plan_task = asyncio.create_task(
            self.planner.generate_plan(self.context), name="webforge-plan"
        )
        try:
            done, _ = await asyncio.wait(
                {plan_task, provision_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if plan_task not in done:
                provision_task.result()
            return await plan_task
        finally:
            if not plan_task.done():
                plan_task.cancel()
                try:
                    await plan_task
                except asyncio.CancelledError:
                    pass

    async def _generate_files(
        self,
        files: list[str],
        provision_task: asyncio.Task[ExecutionEnvironment],
    ) -> None:
        """Stream every planned file into the staging store, one at a time."""
        for path in files:
            self._raise_if_cancelled()
            self._check_provisioning(provision_task)
            self._set_status(RunStatus.GENERATING, current_file=path)

            async with aclosing(self.file_generator.generate(path, self.context)) as results:
                async for _ in results:
                    self._raise_if_cancelled()
                    self._check_provisioning(provision_task)

    async def _bring_up(self, environment: ExecutionEnvironment) -> str | None:
        """Start the dev server and wait for it; ``None`` if it never answers."""
        await self.launcher.start(environment)
        probe = await self.prober.wait_until_ready(
            environment,
            self.config.sandbox.app_port,
            should_stop=lambda: self._cancel_requested,
        )
        self._raise_if_cancelled()

        if probe.ready and probe.url:
            self.preview_url = probe.url
            self.events.emit(PreviewUrlEvent(url=probe.url))
            return probe.url

        self.events.log(
            f"Preview not reachable after {probe.attempts} attempts ({probe.last_error}); "
            "the generated files are still available.",
            level="warning",
        )
        output = await self.launcher.read_log(environment)
        if output:
            self.events.log(f"Dev server output:\n{output}", level="warning")
        return None

    # ------------------------------------------------------------------
    # Save / browse / export
    # ------------------------------------------------------------------

    def files(self) -> dict[str, str]:
        """Return the materialised file tree (generated files only)."""
        return self.staging.snapshot()

    async def save_file(self, path: str, content: str) -> StagedFile:
        """Persist an edit to the staging store and the live sandbox."""
        staged = self.staging.put(path, content)
        if self.environment is not None and self.environment.is_alive:
            await self.environment.write_file(staged.path, content)
            self.events.log(f"Saved {staged.path}")
        return staged

    async def export_project(self) -> bytes:
        """Return a ``.tar.gz`` of the sandbox working directory.

        Raises:
            ExportError: If there is no live sandbox or archiving fails.
        """
        environment = self.environment
        if environment is None or not environment.is_alive:
            raise ExportError("No live sandbox to export. Generate a project first.")
        try:
            return await environment.export_archive()
        except WebForgeError as exc:
            raise ExportError(f"Export failed: {exc}", kind=exc.kind) from exc

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Destroy the sandbox, if any.  Failures are logged, never raised."""
        environment, self.environment = self.environment, None
        if environment is None:
            return
        try:
            await environment.destroy()
            self.events.log("Sandbox cleaned up")
        except Exception as exc:
            self.events.log(f"Sandbox cleanup failed (not critical): {exc}", level="warning")

    async def _drain(self, task: asyncio.Task[ExecutionEnvironment] | None) -> None:
        """Cancel provisioning (if still running) and wait for it to settle."""
        if task is None:
            return
        if task.done():
            # Its failure (if any) is the one being reported.
            if not task.cancelled():
                task.exception()
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            self.events.log(f"Sandbox provisioning stopped: {exc}", level="warning")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _adopt_environment(self, environment: ExecutionEnvironment) -> None:
        self.environment = environment

    def _raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise RunCancelled()

    @staticmethod
    def _check_provisioning(task: asyncio.Task[ExecutionEnvironment]) -> None:
        """Re-raise a provisioning failure as soon as it is observed."""
        if task.done():
            task.result()

    def _set_status(self, status: RunStatus, current_file: str = "") -> None:
        if not self.status.can_transition(status):
            raise RuntimeError(f"Illegal status transition {self.status.value} -> {status.value}")
        self.status = status
        self.events.emit(StatusEvent(status=status, current_file=current_file))

    def _fail(self, kind: ErrorKind, message: str) -> None:
        self.status = RunStatus.ERROR
        if self.events.closed:
            self.events.log(message, level="error")
            return
        self.events.emit(ErrorEvent(message=message, kind=kind))


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class EventRenderer:
    """Prints run events to the Rich console."""

    _LEVEL_STYLES = {"info": "dim", "warning": "yellow", "error": "red"}

    def __call__(self, event: GenerationEvent) -> None:
        if event.type == "log":
            style = self._LEVEL_STYLES[event.level]
            console.print(f"  [{style}]{escape(event.message)}[/{style}]", highlight=False)
        elif event.type == "sandbox_created":
            console.print(f"  [green]+[/green] Sandbox [bold]{escape(event.sandbox_id)}[/bold]")
        elif event.type == "file_start":
            console.print(f"[cyan]-> {escape(event.path)}[/cyan]")
        elif event.type == "status" and event.status is RunStatus.BUILDING:
            console.rule("[bold bright_yellow] Building [/bold bright_yellow]")
        elif event.type == "preview_url":
            print_success(f"Preview ready: {event.url}")
        elif event.type == "error":
            print_error(f"Error: {escape(event.message)}")


async def _run_cli(
    description: str,
    config: Config,
    export_path: Path | None,
    keep_alive: bool,
) -> RunResult:
    orchestrator = ProjectOrchestrator(description, config)
    orchestrator.events.add_callback(EventRenderer())
    try:
        result = await orchestrator.run()
        if result.success and export_path is not None:
            try:
                archive = await orchestrator.export_project()
            except ExportError as exc:
                print_warning(str(exc))
            else:
                export_path.write_bytes(archive)
                print_success(f"Exported project to {export_path} ({len(archive)} bytes)")
    finally:
        if keep_alive and orchestrator.environment is not None:
            print_warning(
                f"Sandbox {orchestrator.environment.environment_id} left running "
                f"until its {config.sandbox.timeout}s timeout."
            )
        else:
            await orchestrator.cleanup()
    return result


def main() -> None:
    """CLI entry point for ``python -m src.pipeline``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="WebForge -- generate and run a Next.js project from a description",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  python -m src.pipeline "Build a blog website"\n'
            '  python -m src.pipeline "Online shop for plants" --backend memory\n'
            '  python -m src.pipeline "Admin dashboard" --export project.tar.gz --keep-alive\n'
        ),
    )
    parser.add_argument("description", help="Free-text description of the project")
    parser.add_argument(
        "--backend",
        choices=["e2b", "memory"],
        default=None,
        help="Sandbox backend (default: e2b, or WEBFORGE_SANDBOX_BACKEND)",
    )
    parser.add_argument("--max-files", type=int, default=None, help="Cap on planned files")
    parser.add_argument("--export", default=None, help="Write a .tar.gz of the project here")
    parser.add_argument(
        "--keep-alive",
        action="store_true",
        help="Leave the sandbox running after a successful run",
    )

    args = parser.parse_args()

    if not args.description.strip():
        console.print("[bold red]Error:[/bold red] The description must not be empty")
        sys.exit(1)

    config = Config.from_env()
    if args.backend:
        config.sandbox.backend = args.backend
    if args.max_files is not None:
        if args.max_files < 1:
            console.print(f"[bold red]Error:[/bold red] Invalid --max-files: {args.max_files}")
            sys.exit(1)
        config.generation.max_files = args.max_files

    print_banner(
        "WebForge",
        f"[bold bright_cyan]Generating project[/bold bright_cyan]\n"
        f"Description : {args.description}\n"
        f"Sandbox     : {config.sandbox.backend}\n"
        f"Model       : {config.gemini.model}",
    )

    export_path = Path(args.export) if args.export else None
    result = asyncio.run(_run_cli(args.description, config, export_path, args.keep_alive))

    print_summary_table(
        {
            "Status": result.status.value,
            "Sandbox": result.sandbox_id or "-",
            "Preview": result.url or "-",
            "Files generated": str(len(result.files)),
            "Duration": format_duration(result.duration_seconds),
        },
        title="Run Summary",
    )

    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
