"""Compiler Explorer API client, request handles and workers."""

from __future__ import annotations

import http.client
import json
import threading
import urllib.error
import urllib.request
from typing import Any, Callable
from urllib.parse import quote

from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot

from celive_core import LOG, CancelledByUser, TransportError
from celive_models import CeLibraryInfo, CompilerInfo, LanguageInfo, parse_semver_key

MAX_RESPONSE_BYTES_KEY = "compile/maxResponseBytes"


def oversized_response(size: int, limit: int, execute: bool) -> dict[str, Any]:

    msg = (
        f"Compiler Explorer returned {size} bytes, more than the {limit} byte limit. "
        f"Raise the '{MAX_RESPONSE_BYTES_KEY}' setting to see this output."
    )
    # One line, in the view that renders this request class.
    if execute:
        return {
            "stdout": [],
            "stderr": [{"text": msg}],
            "code": -1,
            "didExecute": False,
            "buildResult": {"stdout": [], "stderr": [], "code": -1},
        }
    return {"asm": [{"text": msg}], "stdout": [], "stderr": [], "code": -1}


def track_pending(pending: list[Any], handle: Any) -> Any:
    """Keep `handle` in `pending` until it finishes, pruning finished ones."""

    pending[:] = [h for h in pending if not h.is_done()]
    pending.append(handle)

    def drop(*_args) -> None:

        if handle in pending:
            pending.remove(handle)

    handle.succeeded.connect(drop)
    handle.failed.connect(drop)
    return handle


class CeClient:
    """Blocking Compiler Explorer HTTP client; run it from a worker thread."""

    def __init__(self, base_url: str = "https://godbolt.org/api", max_response_bytes: int = 1_000_000):

        self.base_url = base_url.rstrip("/")
        self.max_response_bytes = int(max_response_bytes)

    def _request_raw(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        abort_event: threading.Event | None = None,
    ) -> bytes:

        url = f"{self.base_url}{path}"
        data = None
        headers = {"Accept": "application/json"}
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        if abort_event is not None and abort_event.is_set():
            raise CancelledByUser()

        # No client-side timeout and no retries: the next edit is the retry.
        LOG.debug("HTTP %s %s", method, url)
        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            code = int(getattr(e, "code", 0) or 0)
            body_text = ""
            try:
                body_text = e.read().decode("utf-8", errors="replace")
            except Exception:
                body_text = ""
            LOG.error("HTTPError code=%d url=%s body=%s", code, url, body_text[:4000])
            raise TransportError(f"HTTP {code} from {url}", status=code) from e
        except urllib.error.URLError as e:
            LOG.error("URLError url=%s err=%s", url, str(e))
            raise TransportError(f"Cannot reach {url}: {e.reason}") from e
        except (http.client.HTTPException, OSError) as e:
            LOG.error("Connection error url=%s err=%s", url, str(e))
            raise TransportError(f"Connection error talking to {url}: {e}") from e

        if abort_event is not None and abort_event.is_set():
            raise CancelledByUser()
        return raw

    def _request_json(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        abort_event: threading.Event | None = None,
    ) -> Any:

        raw = self._request_raw(method, path, body, abort_event=abort_event)
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise TransportError(f"Malformed JSON from {path}: {e}") from e

    def list_languages(self, abort_event: threading.Event | None = None) -> list[LanguageInfo]:

        items = self._request_json("GET", "/languages?fields=id,name,extensions,defaultCompiler", abort_event=abort_event)
        if not isinstance(items, list):
            return []
        out: list[LanguageInfo] = []
        for it in items:
            if not isinstance(it, dict):
                continue
            lid = str(it.get("id") or "")
            if not lid:
                continue
            exts = it.get("extensions")
            out.append(
                LanguageInfo(
                    id=lid,
                    name=str(it.get("name") or lid),
                    default_compiler=str(it.get("defaultCompiler") or ""),
                    extensions=tuple(str(e) for e in exts) if isinstance(exts, list) else (),
                )
            )
        out.sort(key=lambda x: x.name.casefold())
        LOG.debug("Loaded %d languages", len(out))
        return out

    def list_compilers(self, abort_event: threading.Event | None = None) -> list[CompilerInfo]:

        items = self._request_json("GET", "/compilers?fields=id,name,lang,semver", abort_event=abort_event)
        if isinstance(items, dict) and isinstance(items.get("compilers"), list):
            items = items["compilers"]
        if not isinstance(items, list):
            return []

        out: list[CompilerInfo] = []
        for it in items:
            if not isinstance(it, dict):
                continue
            cid = str(it.get("id") or "")
            if not cid:
                continue
            semver = it.get("semver")
            out.append(
                CompilerInfo(
                    id=cid,
                    name=str(it.get("name") or cid),
                    lang=str(it.get("lang") or ""),
                    semver=(str(semver) if semver is not None else None),
                )
            )
        LOG.debug("Loaded %d compilers", len(out))
        return out

    def list_libraries(self, language_id: str, abort_event: threading.Event | None = None) -> list[CeLibraryInfo]:

        lang = quote(language_id, safe="")
        items = self._request_json("GET", f"/libraries/{lang}", abort_event=abort_event)
        if isinstance(items, dict) and isinstance(items.get("libraries"), list):
            items = items["libraries"]
        if not isinstance(items, list):
            return []

        out: list[CeLibraryInfo] = []
        for it in items:
            if not isinstance(it, dict):
                continue
            lid = str(it.get("id") or "")
            versions_raw = it.get("versions")
            versions: list[str] = []
            if isinstance(versions_raw, list):
                for v in versions_raw:
                    if isinstance(v, dict):
                        versions.append(str(v.get("id") or v.get("version") or ""))
                    elif v is not None:
                        versions.append(str(v))
            versions = [v.strip() for v in versions if v.strip()]
            if not lid or not versions:
                continue
            versions.sort(key=parse_semver_key, reverse=True)
            out.append(CeLibraryInfo(id=lid, name=str(it.get("name") or lid), versions=versions))
        out.sort(key=lambda x: x.name.casefold())
        return out

    def compile(
        self,
        compiler_id: str,
        payload: dict[str, Any],
        execute: bool = False,
        abort_event: threading.Event | None = None,
    ) -> dict[str, Any]:

        cid = quote(compiler_id, safe="")
        LOG.debug(
            "Compile compiler_id=%s execute=%s source_len=%d",
            compiler_id,
            execute,
            len(str(payload.get("source") or "")),
        )
        raw = self._request_raw("POST", f"/compiler/{cid}/compile", payload, abort_event=abort_event)
        if len(raw) > self.max_response_bytes:
            LOG.warning("Compile response of %d bytes exceeds limit %d", len(raw), self.max_response_bytes)
            return oversized_response(len(raw), self.max_response_bytes, execute)
        try:
            resp = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise TransportError(f"Malformed compile response: {e}") from e
        return resp if isinstance(resp, dict) else {}

    def shorten(self, state: dict[str, Any], abort_event: threading.Event | None = None) -> str:

        resp = self._request_json("POST", "/shortener", state, abort_event=abort_event)
        url = resp.get("url") if isinstance(resp, dict) else None
        if not url:
            raise TransportError("Shortener response carried no url")
        return str(url)


class RequestHandle(QObject):
    """One in-flight remote call.

    Lives on the GUI thread, so `succeeded`/`failed` are always delivered there.
    A handle finishes exactly once; after `cancel()` it never emits.
    """

    succeeded = pyqtSignal(object)
    failed = pyqtSignal(str)

    def __init__(self, label: str, parent: QObject | None = None):

        super().__init__(parent)
        self.label = label
        self.abort_event = threading.Event()
        self._done = False
        self._cancelled = False

    def is_done(self) -> bool:

        return self._done

    def is_cancelled(self) -> bool:

        return self._cancelled

    def cancel(self) -> None:

        if self._done:
            return
        self._done = True
        self._cancelled = True
        self.abort_event.set()
        LOG.debug("Cancelled request %s", self.label)

    @pyqtSlot(object)
    def deliver(self, value: object) -> None:

        if self._done:
            return
        self._done = True
        self.succeeded.emit(value)

    @pyqtSlot(str)
    def fail(self, msg: str) -> None:

        if self._done:
            return
        self._done = True
        self.failed.emit(msg)

    @pyqtSlot()
    def abandon(self) -> None:

        self._done = True


class RequestWorker(QObject):


    loaded = pyqtSignal(object)
    failed = pyqtSignal(str)
    aborted = pyqtSignal()

    def __init__(self, fn: Callable[[threading.Event], Any], abort_event: threading.Event):

        super().__init__()
        self._fn = fn
        self._abort = abort_event

    def run(self):

        try:
            self.loaded.emit(self._fn(self._abort))
        except CancelledByUser:
            self.aborted.emit()
        except TransportError as e:
            self.failed.emit(str(e))
        except Exception as e:
            LOG.exception("Request failed")
            self.failed.emit(str(e))


class CeService(QObject):
    """Asynchronous facade over CeClient: every call returns a RequestHandle."""

    def __init__(self, ce: CeClient, parent: QObject | None = None):

        super().__init__(parent)
        self._ce = ce
        self._running: set[tuple[QThread, RequestWorker]] = set()

    @property
    def client(self) -> CeClient:

        return self._ce

    def _submit(self, label: str, fn: Callable[[threading.Event], Any]) -> RequestHandle:

        handle = RequestHandle(label)
        thread = QThread(self)
        worker = RequestWorker(fn, handle.abort_event)
        worker.moveToThread(thread)
        entry = (thread, worker)
        self._running.add(entry)

        thread.started.connect(worker.run)
        worker.loaded.connect(handle.deliver)
        worker.failed.connect(handle.fail)
        worker.aborted.connect(handle.abandon)

        worker.loaded.connect(thread.quit)
        worker.failed.connect(thread.quit)
        worker.aborted.connect(thread.quit)
        thread.finished.connect(worker.deleteLater)
        thread.finished.connect(lambda: self._reap(entry, handle))

        thread.start()
        return handle

    def _reap(self, entry: tuple[QThread, RequestWorker], handle: RequestHandle) -> None:

        self._running.discard(entry)
        entry[0].deleteLater()

    def list_languages(self) -> RequestHandle:

        return self._submit("languages", lambda ev: self._ce.list_languages(abort_event=ev))

    def list_compilers(self) -> RequestHandle:

        return self._submit("compilers", lambda ev: self._ce.list_compilers(abort_event=ev))

    def list_libraries(self, language_id: str) -> RequestHandle:

        return self._submit(f"libraries/{language_id}", lambda ev: self._ce.list_libraries(language_id, abort_event=ev))

    def compile(self, compiler_id: str, payload: dict[str, Any], execute: bool = False) -> RequestHandle:

        label = f"{'execute' if execute else 'compile'}/{compiler_id}"
        return self._submit(label, lambda ev: self._ce.compile(compiler_id, payload, execute=execute, abort_event=ev))

    def shorten(self, state: dict[str, Any]) -> RequestHandle:

        return self._submit("shortener", lambda ev: self._ce.shorten(state, abort_event=ev))

    def shutdown(self, wait_ms: int = 2000) -> None:

        for thread, _worker in list(self._running):
            try:
                thread.requestInterruption()
                thread.quit()
                thread.wait(wait_ms)
            except RuntimeError:
                pass
