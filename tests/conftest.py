from __future__ import annotations

import pytest
from PyQt6.QtCore import QCoreApplication, QObject, pyqtSignal

from celive_layout import build_catalog
from celive_models import CeLibraryInfo, CompilerInfo, LanguageInfo
from celive_prefs import AppSettings


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


class FakeHandle(QObject):
    succeeded = pyqtSignal(object)
    failed = pyqtSignal(str)

    def __init__(self, compiler_id: str, payload: dict, execute: bool):
        super().__init__()
        self.compiler_id = compiler_id
        self.payload = payload
        self.execute = execute
        self.cancelled = False
        self._done = False

    def is_done(self) -> bool:
        return self._done

    def cancel(self) -> None:
        if not self._done:
            self._done = True
            self.cancelled = True

    def complete(self, resp: dict) -> None:
        # Transports may still deliver after a cancel; the orchestrator must cope.
        self._done = True
        self.succeeded.emit(resp)

    def fail(self, msg: str) -> None:
        self._done = True
        self.failed.emit(msg)


class FakeService:
    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.shortened: list[dict] = []

    def compile(self, compiler_id: str, payload: dict, execute: bool = False) -> FakeHandle:
        h = FakeHandle(compiler_id, payload, execute)
        self.handles.append(h)
        return h

    def shorten(self, state: dict) -> FakeHandle:
        self.shortened.append(state)
        return FakeHandle("", state, False)

    def of_kind(self, execute: bool) -> list[FakeHandle]:
        return [h for h in self.handles if h.execute == execute]


class FakeRenderer:
    def __init__(self):
        self.compilations: list[tuple] = []
        self.executions: list[tuple] = []
        self.statuses: list[tuple] = []

    def render_compilation(self, assembly, stdout, stderr, exit_code):
        self.compilations.append((assembly, stdout, stderr, exit_code))

    def render_execution(self, stdout, stderr, exit_code):
        self.executions.append((stdout, stderr, exit_code))

    def render_status(self, state, details):
        self.statuses.append((state, details))


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def settings(tmp_path, qapp):
    return AppSettings(str(tmp_path / "celive.ini"))


@pytest.fixture
def layouts():
    return build_catalog()


def compile_response(asm: str = "ret", code: int = 0) -> dict:
    return {"asm": [{"text": asm}], "stdout": [], "stderr": [], "code": code}


def execute_response(out: str = "hello", code: int = 0) -> dict:
    return {
        "didExecute": True,
        "stdout": [{"text": out}],
        "stderr": [],
        "code": code,
        "buildResult": {"stdout": [], "stderr": [], "code": 0},
    }


LANGUAGES = [
    LanguageInfo(id="c++", name="C++", default_compiler="g132"),
    LanguageInfo(id="rust", name="Rust", default_compiler="r1750"),
]

COMPILERS = [
    CompilerInfo(id="g132", name="x86-64 gcc 13.2", lang="c++", semver="13.2"),
    CompilerInfo(id="clang1701", name="x86-64 clang 17.0.1", lang="c++", semver="17.0.1"),
    CompilerInfo(id="r1750", name="rustc 1.75.0", lang="rust", semver="1.75.0"),
]

LIBRARIES = {
    "c++": [
        CeLibraryInfo(id="fmt", name="fmt", versions=["1000", "900"]),
        CeLibraryInfo(id="boost", name="Boost", versions=["184", "183"]),
    ]
}
