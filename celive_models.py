"""Data models: sessions, output filters, compile results and catalog records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from typing import Any


@dataclass(frozen=True)
class LanguageInfo:

    id: str
    name: str
    default_compiler: str
    extensions: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompilerInfo:

    id: str
    name: str
    lang: str
    semver: str | None = None


@dataclass(frozen=True)
class CeLibraryInfo:

    id: str
    name: str
    versions: list[str]


def parse_semver_key(s: str | None) -> tuple[int, int, int, str]:
    """Sort key for CE library/compiler version strings."""

    # "trunk"-like versions sort as newest.
    if not s:
        return (0, 0, 0, "")
    st = s.strip().lower()
    if any(k in st for k in ("trunk", "head", "snapshot", "nightly")) and not re.match(r"^\d", st):
        return (9999, 9999, 9999, st)
    m = re.match(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(.*)$", st)
    if not m:
        return (0, 0, 0, st)
    return (int(m.group(1) or 0), int(m.group(2) or 0), int(m.group(3) or 0), (m.group(4) or "").strip())


def _normalize_user_flags_text(s: str) -> str:


    return re.sub(r"\s+", " ", str(s or "")).strip()


def _normalize_library_pairs(pairs: Any) -> tuple[tuple[str, str], ...]:

    # Later entries win, but a library keeps the position it was first added at.
    chosen: dict[str, str] = {}
    if not isinstance(pairs, (list, tuple)):
        return ()
    for it in pairs:
        if isinstance(it, dict):
            lid, ver = it.get("id"), it.get("version")
        elif isinstance(it, (list, tuple)) and len(it) == 2:
            lid, ver = it
        else:
            continue
        lid = str(lid or "").strip()
        ver = str(ver or "").strip()
        if lid and ver:
            chosen[lid] = ver
    return tuple(chosen.items())


@dataclass(frozen=True)
class Session:
    """Everything that determines what gets compiled and executed.

    Sessions are immutable values; commands produce modified copies with
    `dataclasses.replace`, so a captured session can never change later.
    """

    language_name: str
    compiler_id: str
    libraries: tuple[tuple[str, str], ...] = ()
    compiler_arguments: str = ""
    execution_arguments: str = ""
    execution_stdin: str = ""
    source: str = ""

    def __post_init__(self):

        object.__setattr__(self, "libraries", _normalize_library_pairs(self.libraries))

    def is_resolved(self) -> bool:

        return bool(self.language_name and self.compiler_id)

    def with_library(self, lib_id: str, version: str) -> "Session":

        libs = dict(self.libraries)
        libs[lib_id] = version
        return replace(self, libraries=tuple(libs.items()))

    def without_library(self, lib_id: str) -> "Session":

        return replace(self, libraries=tuple((k, v) for k, v in self.libraries if k != lib_id))

    def library_payload(self) -> list[dict[str, str]]:

        return [{"id": lid, "version": ver} for lid, ver in self.libraries]

    def to_dict(self) -> dict[str, Any]:

        return {
            "language": self.language_name,
            "compiler": self.compiler_id,
            "libraries": self.library_payload(),
            "compilerArguments": self.compiler_arguments,
            "executionArguments": self.execution_arguments,
            "executionStdin": self.execution_stdin,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, d: Any) -> "Session | None":
        """Rebuild a session from `to_dict` output; unknown keys are ignored.

        Returns None when the record can't produce a fully resolved session.
        """

        if not isinstance(d, dict):
            return None
        s = cls(
            language_name=str(d.get("language") or ""),
            compiler_id=str(d.get("compiler") or ""),
            libraries=d.get("libraries") or (),
            compiler_arguments=str(d.get("compilerArguments") or ""),
            execution_arguments=str(d.get("executionArguments") or ""),
            execution_stdin=str(d.get("executionStdin") or ""),
            source=str(d.get("source") or ""),
        )
        return s if s.is_resolved() else None


@dataclass(frozen=True)
class OutputFilters:
    """Server-side output shaping toggles sent with every compile request."""

    binary_output: bool = False
    comments_only: bool = True
    demangle_symbols: bool = True
    show_directives: bool = True
    intel_syntax: bool = True
    unused_labels: bool = True
    library_code: bool = False
    trim_whitespace: bool = False

    WIRE_NAMES = {
        "binary_output": "binary",
        "comments_only": "commentOnly",
        "demangle_symbols": "demangle",
        "show_directives": "directives",
        "intel_syntax": "intel",
        "unused_labels": "labels",
        "library_code": "libraryCode",
        "trim_whitespace": "trim",
    }

    def to_wire(self, execute: bool = False) -> dict[str, bool]:

        out = {wire: bool(getattr(self, name)) for name, wire in self.WIRE_NAMES.items()}
        out["execute"] = bool(execute)
        return out

    @classmethod
    def names(cls) -> list[str]:

        return [f.name for f in fields(cls)]


def _text_lines(parts: Any) -> list[str]:

    if not isinstance(parts, list):
        return []
    lines: list[str] = []
    for it in parts:
        if isinstance(it, dict) and "text" in it:
            lines.append(str(it["text"]))
        elif isinstance(it, str):
            lines.append(it)
    return lines


def _int_or(value: Any, default: int) -> int:

    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class CompileResult:

    assembly: list[str] = field(default_factory=list)
    compiler_stdout: list[str] = field(default_factory=list)
    compiler_stderr: list[str] = field(default_factory=list)
    exit_code: int = -1
    executed: bool = False
    program_stdout: list[str] = field(default_factory=list)
    program_stderr: list[str] = field(default_factory=list)
    program_exit_code: int | None = None

    @classmethod
    def from_response(cls, resp: Any, execute: bool = False) -> "CompileResult":

        if not isinstance(resp, dict):
            resp = {}
        if not execute:
            return cls(
                assembly=_text_lines(resp.get("asm")),
                compiler_stdout=_text_lines(resp.get("stdout")),
                compiler_stderr=_text_lines(resp.get("stderr")),
                exit_code=_int_or(resp.get("code"), -1),
            )

        # Execution responses keep the compiler's own output under buildResult.
        build = resp.get("buildResult")
        if not isinstance(build, dict):
            build = {}
        return cls(
            assembly=_text_lines(resp.get("asm")),
            compiler_stdout=_text_lines(build.get("stdout")),
            compiler_stderr=_text_lines(build.get("stderr")),
            exit_code=_int_or(build.get("code"), -1),
            executed=bool(resp.get("didExecute", True)),
            program_stdout=_text_lines(resp.get("stdout")),
            program_stderr=_text_lines(resp.get("stderr")),
            program_exit_code=_int_or(resp.get("code"), -1),
        )


def build_compile_payload(session: Session, filters: OutputFilters, execute: bool) -> dict[str, Any]:

    return {
        "source": session.source,
        "options": {
            "userArguments": _normalize_user_flags_text(session.compiler_arguments),
            "executeParameters": {
                "args": session.execution_arguments,
                "stdin": session.execution_stdin,
            },
            "compilerOptions": {"executorRequest": bool(execute)},
            "filters": filters.to_wire(execute=execute),
            "tools": [],
            "libraries": session.library_payload(),
        },
        "allowStoreCodeDebug": True,
    }


def build_shortener_payload(
    sessions: list[tuple[Session, str]],
    filters: OutputFilters,
) -> dict[str, Any]:
    """Client state for /shortener from (session, language id) pairs."""

    out: list[dict[str, Any]] = []
    for i, (s, lang_id) in enumerate(sessions, start=1):
        libs = [{"name": lid, "ver": ver} for lid, ver in s.libraries]
        opts = _normalize_user_flags_text(s.compiler_arguments)
        out.append(
            {
                "id": i,
                "language": lang_id,
                "source": s.source,
                "compilers": [
                    {
                        "id": s.compiler_id,
                        "options": opts,
                        "libs": libs,
                        "filters": filters.to_wire(),
                    }
                ],
                "executors": [
                    {
                        "arguments": s.execution_arguments,
                        "stdin": s.execution_stdin,
                        "compiler": {"id": s.compiler_id, "libs": libs, "options": opts},
                    }
                ],
            }
        )
    return {"sessions": out}
