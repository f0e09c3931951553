"""Client state and the user commands that drive sessions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any

from celive_core import LOG, UnknownCompiler, UnknownLanguage, UnknownLibrary
from celive_history import SessionStore
from celive_layout import LayoutCatalog
from celive_models import CeLibraryInfo, CompilerInfo, LanguageInfo, Session, build_shortener_payload
from celive_orchestrator import RequestOrchestrator


class SessionState(enum.Enum):

    NO_ACTIVE_SESSION = "no-active-session"
    ACTIVE_SESSION = "active-session"
    STANDBY_HELD = "standby-held"


@dataclass
class Catalog:
    """What the service offers, as last fetched."""

    languages: list[LanguageInfo] = field(default_factory=list)
    compilers: list[CompilerInfo] = field(default_factory=list)
    libraries: dict[str, list[CeLibraryInfo]] = field(default_factory=dict)

    def language_by_name(self, name: str) -> LanguageInfo:

        key = (name or "").strip().casefold()
        for lang in self.languages:
            if lang.name.casefold() == key or lang.id.casefold() == key:
                return lang
        raise UnknownLanguage(name)

    def compiler(self, compiler_id: str, language_id: str | None = None) -> CompilerInfo:

        for c in self.compilers:
            if c.id == compiler_id and (language_id is None or c.lang == language_id):
                return c
        raise UnknownCompiler(compiler_id)

    def compilers_for(self, language_id: str) -> list[CompilerInfo]:

        return [c for c in self.compilers if c.lang == language_id]

    def library(self, language_id: str, lib_id: str, version: str) -> CeLibraryInfo:

        for lib in self.libraries.get(language_id, []):
            if lib.id == lib_id:
                if version not in lib.versions:
                    raise UnknownLibrary(f"{lib_id} {version}")
                return lib
        raise UnknownLibrary(lib_id)


@dataclass
class ClientState:

    session: Session | None = None
    layout_index: int = 0
    catalog: Catalog = field(default_factory=Catalog)


class SessionController:
    """Glue between user commands, the session store and the orchestrator.

    Every command either succeeds and triggers a recompile, or raises one of
    the Unknown* errors and leaves the session untouched.
    """

    def __init__(
        self,
        state: ClientState,
        store: SessionStore,
        orchestrator: RequestOrchestrator,
        layouts: LayoutCatalog,
    ):

        self.state = state
        self.store = store
        self.orchestrator = orchestrator
        self.layouts = layouts
        self._listeners: list[Any] = []

    def add_listener(self, fn) -> None:
        """`fn(session_or_None)` runs after every change of the live session."""

        self._listeners.append(fn)

    def _notify(self) -> None:

        for fn in self._listeners:
            fn(self.state.session)

    @property
    def session_state(self) -> SessionState:

        if self.state.session is not None:
            return SessionState.ACTIVE_SESSION
        if self.store.standby is not None:
            return SessionState.STANDBY_HELD
        return SessionState.NO_ACTIVE_SESSION

    def _require_session(self) -> Session:

        if self.state.session is None:
            raise RuntimeError("No active session")
        return self.state.session

    def _language_id(self, session: Session) -> str:

        return self.state.catalog.language_by_name(session.language_name).id

    def _activate(self, session: Session) -> None:

        self.state.session = session
        LOG.debug("Active session language=%s compiler=%s", session.language_name, session.compiler_id)
        self._notify()
        self.orchestrator.fire_now(session)

    def _update(self, session: Session, *, debounce: bool = False) -> None:

        self.state.session = session
        if debounce:
            self.orchestrator.schedule_recompile(session)
        else:
            self._notify()
            self.orchestrator.fire_now(session)

    def new_session(self, language_name: str, compiler_id: str | None = None, source: str = "") -> Session:

        lang = self.state.catalog.language_by_name(language_name)
        cid = compiler_id or lang.default_compiler
        self.state.catalog.compiler(cid, lang.id)

        if self.state.session is not None:
            self.exit_session()
        self.store.flush_standby()
        session = Session(language_name=lang.name, compiler_id=cid, source=source)
        self._activate(session)
        return session

    def set_compiler(self, compiler_id: str) -> None:

        s = self._require_session()
        self.state.catalog.compiler(compiler_id, self._language_id(s))
        self._update(replace(s, compiler_id=compiler_id))

    def add_library(self, lib_id: str, version: str) -> None:

        s = self._require_session()
        self.state.catalog.library(self._language_id(s), lib_id, version)
        self._update(s.with_library(lib_id, version))

    def remove_library(self, lib_id: str) -> None:

        s = self._require_session()
        if lib_id not in dict(s.libraries):
            raise UnknownLibrary(lib_id)
        self._update(s.without_library(lib_id))

    def set_compiler_arguments(self, args: str) -> None:

        self._update(replace(self._require_session(), compiler_arguments=args))

    def set_execution_arguments(self, args: str) -> None:

        self._update(replace(self._require_session(), execution_arguments=args))

    def set_execution_stdin(self, stdin: str) -> None:

        self._update(replace(self._require_session(), execution_stdin=stdin))

    def on_source_edited(self, text: str) -> None:

        s = self.state.session
        if s is None or s.source == text:
            return
        self._update(replace(s, source=text), debounce=True)

    def recompile(self) -> None:

        self.orchestrator.fire_now(self._require_session())

    def _teardown(self) -> Session | None:

        self.orchestrator.cancel_all()
        s, self.state.session = self.state.session, None
        return s

    def exit_session(self) -> None:

        s = self._teardown()
        if s is not None:
            self.store.capture(s)
            LOG.debug("Session closed; kept in standby")
        self._notify()

    def discard_session(self) -> None:

        self._teardown()
        self._notify()

    def restore_previous(self) -> Session:

        # Pop before pushing the replaced session, or we'd get it straight back.
        prev = self.store.pop_most_recent()
        current = self._teardown()
        if current is not None:
            self.store.push_to_history(current)
        self._activate(prev)
        return prev

    def select_layout(self, n: int | None = None) -> int:

        if n is None:
            n = self.state.layout_index + 1
        self.state.layout_index = self.layouts.select(n)
        return self.state.layout_index

    def shortener_state(self) -> dict[str, Any]:

        s = self._require_session()
        return build_shortener_payload([(s, self._language_id(s))], self.orchestrator.filters)

    def make_link(self):
        """Ask the service for a short link to the live session; returns its handle."""

        return self.orchestrator.service.shorten(self.shortener_state())

    def persist(self) -> None:

        if self.state.session is not None:
            self.exit_session()
        self.store.persist()
