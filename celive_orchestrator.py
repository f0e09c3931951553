"""Debounced, superseding compile/execute requests for the live session."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from functools import partial
from typing import Any

from PyQt6.QtCore import QObject, QTimer

from celive_core import LOG
from celive_models import CompileResult, OutputFilters, Session, build_compile_payload


class RequestClass(enum.Enum):

    COMPILE = "compile"
    EXECUTE = "execute"

    @property
    def execute(self) -> bool:

        return self is RequestClass.EXECUTE


class Status(enum.Enum):

    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


@dataclass
class RequestSlot:
    """Holds the single logically current request of one class."""

    kind: RequestClass
    handle: Any = None

    def is_busy(self) -> bool:

        return self.handle is not None and not self.handle.is_done()

    def holds(self, handle: Any) -> bool:

        return self.handle is handle


class RequestOrchestrator(QObject):
    """Turns session snapshots into compile and execute requests.

    `service` must offer `compile(compiler_id, payload, execute) -> handle`,
    where a handle has `succeeded`/`failed` signals plus `is_done()` and
    `cancel()`. `renderer` receives `render_compilation`, `render_execution`
    and `render_status` calls, always on the GUI thread.
    """

    def __init__(
        self,
        service: Any,
        renderer: Any,
        filters: OutputFilters | None = None,
        debounce_ms: int = 500,
        parent: QObject | None = None,
    ):

        super().__init__(parent)
        self._service = service
        self._renderer = renderer
        self.filters = filters or OutputFilters()
        self._slots = {kind: RequestSlot(kind) for kind in RequestClass}
        self._pending_session: Session | None = None
        self._errors: dict[RequestClass, str] = {}

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(int(debounce_ms))
        self._timer.timeout.connect(self._on_debounce_timeout)

    @property
    def service(self) -> Any:

        return self._service

    @property
    def debounce_ms(self) -> int:

        return self._timer.interval()

    def set_debounce_ms(self, ms: int) -> None:

        self._timer.setInterval(int(ms))

    def slot(self, kind: RequestClass) -> RequestSlot:

        return self._slots[kind]

    def is_scheduled(self) -> bool:

        return self._timer.isActive()

    def schedule_recompile(self, session: Session) -> None:

        # Restarting an active single-shot timer replaces the pending firing.
        self._pending_session = session
        self._timer.start()

    def fire_now(self, session: Session) -> None:

        self._timer.stop()
        self._pending_session = None
        self._issue(session)

    def cancel_all(self) -> None:

        self._timer.stop()
        self._pending_session = None
        for slot in self._slots.values():
            if slot.is_busy():
                slot.handle.cancel()
            slot.handle = None
        self._errors.clear()

    def _on_debounce_timeout(self) -> None:

        session, self._pending_session = self._pending_session, None
        if session is not None:
            self._issue(session)

    def _issue(self, session: Session) -> None:

        if not session.is_resolved():
            LOG.debug("Skipping compile for unresolved session")
            return

        self._errors.clear()
        self._renderer.render_status(Status.PENDING, f"Compiling with {session.compiler_id}...")
        for kind, slot in self._slots.items():
            if slot.is_busy():
                LOG.debug("Superseding in-flight %s request", kind.value)
                slot.handle.cancel()
            slot.handle = None

            payload = build_compile_payload(session, self.filters, execute=kind.execute)
            try:
                handle = self._service.compile(session.compiler_id, payload, execute=kind.execute)
            except Exception as e:
                LOG.exception("Could not issue %s request", kind.value)
                self._errors[kind] = str(e)
                continue

            slot.handle = handle
            handle.succeeded.connect(partial(self._on_succeeded, kind, handle))
            handle.failed.connect(partial(self._on_failed, kind, handle))

        self._report_status()

    def _on_succeeded(self, kind: RequestClass, handle: Any, resp: object) -> None:

        if not self._slots[kind].holds(handle):
            LOG.debug("Discarding superseded %s response", kind.value)
            return

        result = CompileResult.from_response(resp, execute=kind.execute)
        if kind is RequestClass.COMPILE:
            self._renderer.render_compilation(
                result.assembly, result.compiler_stdout, result.compiler_stderr, result.exit_code
            )
        else:
            self._renderer.render_execution(result.program_stdout, result.program_stderr, result.program_exit_code)
        self._report_status()

    def _on_failed(self, kind: RequestClass, handle: Any, msg: str) -> None:

        if not self._slots[kind].holds(handle):
            LOG.debug("Discarding failure of superseded %s request: %s", kind.value, msg)
            return
        LOG.warning("%s request failed: %s", kind.value, msg)
        self._errors[kind] = msg
        self._report_status()

    def _report_status(self) -> None:

        if self._errors:
            details = "; ".join(f"{k.value}: {v}" for k, v in self._errors.items())
            self._renderer.render_status(Status.ERROR, details)
        elif any(slot.is_busy() for slot in self._slots.values()):
            self._renderer.render_status(Status.PENDING, "Waiting for Compiler Explorer...")
        else:
            self._renderer.render_status(Status.DONE, "")
