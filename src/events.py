"""Typed progress events for a generation run.

A run reports everything it does through a single :class:`EventChannel`.
Events are immutable pydantic models forming a closed, discriminated union on
their ``type`` field, so consumers (the SSE transport, the CLI renderer,
tests) can pattern-match on them safely.

Wire format: events serialise with camelCase keys (``sandboxId``,
``isComplete``, ``currentFile``) because that is what the browser client
consumes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from src.errors import ErrorKind, WebForgeError
from src.utils import print_warning


# ---------------------------------------------------------------------------
# Run status
# ---------------------------------------------------------------------------


class RunStatus(str, Enum):
    """Coarse lifecycle of a run."""

    IDLE = "idle"
    GENERATING = "generating"
    BUILDING = "building"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.ERROR)

    def can_transition(self, target: "RunStatus") -> bool:
        """Return ``True`` if moving from this status to *target* is legal."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.IDLE: frozenset({RunStatus.GENERATING, RunStatus.ERROR}),
    # generating -> generating happens once per file (currentFile changes).
    RunStatus.GENERATING: frozenset(
        {RunStatus.GENERATING, RunStatus.BUILDING, RunStatus.ERROR}
    ),
    RunStatus.BUILDING: frozenset({RunStatus.COMPLETE, RunStatus.ERROR}),
    RunStatus.COMPLETE: frozenset(),
    RunStatus.ERROR: frozenset(),
}


# ---------------------------------------------------------------------------
# Event models
# ---------------------------------------------------------------------------


class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    seq: int = Field(default=0, description="Position in the run's event log (1-based)")


class LogEvent(_BaseEvent):
    type: Literal["log"] = "log"
    message: str
    level: Literal["info", "warning", "error"] = "info"


class SandboxCreatedEvent(_BaseEvent):
    type: Literal["sandbox_created"] = "sandbox_created"
    sandbox_id: str


class FileStartEvent(_BaseEvent):
    type: Literal["file_start"] = "file_start"
    path: str


class FileContentEvent(_BaseEvent):
    """Cumulative content of one file; ``delta`` is the newly arrived text."""

    type: Literal["file_content"] = "file_content"
    path: str
    content: str
    delta: str = ""
    is_complete: bool = False


class StatusEvent(_BaseEvent):
    type: Literal["status"] = "status"
    status: RunStatus
    current_file: str = ""


class PreviewUrlEvent(_BaseEvent):
    type: Literal["preview_url"] = "preview_url"
    url: str


class CompleteEvent(_BaseEvent):
    type: Literal["complete"] = "complete"
    sandbox_id: Optional[str] = None
    url: Optional[str] = None


class ErrorEvent(_BaseEvent):
    type: Literal["error"] = "error"
    message: str
    kind: ErrorKind = ErrorKind.UNKNOWN


GenerationEvent = Annotated[
    Union[
        LogEvent,
        SandboxCreatedEvent,
        FileStartEvent,
        FileContentEvent,
        StatusEvent,
        PreviewUrlEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[GenerationEvent] = TypeAdapter(GenerationEvent)

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})

EventCallback = Callable[[GenerationEvent], None]


def is_terminal(event: GenerationEvent) -> bool:
    return event.type in TERMINAL_EVENT_TYPES


def parse_event(data: dict | str) -> GenerationEvent:
    """Rebuild an event from its JSON (or dict) wire form."""
    if isinstance(data, str):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)


def event_to_sse(event: GenerationEvent) -> str:
    """Frame an event as a single server-sent-events ``data:`` message."""
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


# ---------------------------------------------------------------------------
# Event channel
# ---------------------------------------------------------------------------


class EventChannelClosed(WebForgeError):
    """Raised when a non-log event is emitted after the terminal event."""


class EventChannel:
    """Single-producer, multi-consumer channel for one run's events.

    Consumers either register a synchronous callback (invoked inline on
    every emit) or iterate :meth:`stream` from another task.  The channel
    keeps the full history so late subscribers see the run from the start.

    Once a terminal event (``complete`` or ``error``) has been emitted the
    channel is closed: another terminal or progress event raises
    :class:`EventChannelClosed`.  Trailing ``log`` events are still recorded
    and passed to callbacks, but streams have already finished.
    """

    def __init__(self, *callbacks: EventCallback) -> None:
        self._callbacks: list[EventCallback] = list(callbacks)
        self._queues: list[asyncio.Queue[GenerationEvent | None]] = []
        self._history: list[GenerationEvent] = []
        self._terminal: GenerationEvent | None = None

    @property
    def history(self) -> tuple[GenerationEvent, ...]:
        return tuple(self._history)

    @property
    def terminal(self) -> GenerationEvent | None:
        return self._terminal

    @property
    def closed(self) -> bool:
        return self._terminal is not None

    def add_callback(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def emit(self, event: GenerationEvent) -> GenerationEvent:
        """Stamp *event* with the next sequence number and deliver it."""
        already_closed = self.closed
        if already_closed and event.type != "log":
            raise EventChannelClosed(
                f"Cannot emit '{event.type}' event: run already ended with "
                f"'{self._terminal.type}'"  # type: ignore[union-attr]
            )

        stamped = event.model_copy(update={"seq": len(self._history) + 1})
        self._history.append(stamped)
        if is_terminal(stamped):
            self._terminal = stamped

        for callback in list(self._callbacks):
            try:
                callback(stamped)
            except Exception as exc:
                print_warning(f"Event callback failed on '{stamped.type}': {exc}")

        if not already_closed:
            for queue in self._queues:
                queue.put_nowait(stamped)
                if self.closed:
                    queue.put_nowait(None)

        return stamped

    def log(self, message: str, level: Literal["info", "warning", "error"] = "info") -> None:
        self.emit(LogEvent(message=message, level=level))

    async def stream(self) -> AsyncIterator[GenerationEvent]:
        """Yield every event of the run, ending after the terminal event."""
        queue: asyncio.Queue[GenerationEvent | None] = asyncio.Queue()
        for past in self._history:
            queue.put_nowait(past)
            if past is self._terminal:
                queue.put_nowait(None)
                break
        if not self.closed:
            self._queues.append(queue)

        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)
