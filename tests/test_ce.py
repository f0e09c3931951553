from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import patch

import pytest
from PyQt6.QtTest import QTest

from celive_ce import MAX_RESPONSE_BYTES_KEY, CeClient, CeService, RequestHandle, track_pending
from celive_core import TransportError
from celive_models import CompileResult, OutputFilters, Session, build_compile_payload


class FakeResponse:
    def __init__(self, body: bytes):
        self._body = body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self) -> bytes:
        return self._body


def respond_with(payload) -> FakeResponse:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return FakeResponse(body)


def payload_for(source: str = "int main() {}", execute: bool = False) -> dict:
    session = Session(language_name="C++", compiler_id="g132", source=source)
    return build_compile_payload(session, OutputFilters(), execute)


def test_compile_posts_to_compiler_endpoint():
    ce = CeClient(base_url="https://ce.example/api/")
    seen = []

    def fake_urlopen(req):
        seen.append(req)
        return respond_with({"asm": [{"text": "main:"}], "stdout": [], "stderr": [], "code": 0})

    with patch("celive_ce.urllib.request.urlopen", side_effect=fake_urlopen):
        resp = ce.compile("g132", payload_for())

    assert resp["asm"] == [{"text": "main:"}]
    assert seen[0].full_url == "https://ce.example/api/compiler/g132/compile"
    assert seen[0].get_method() == "POST"
    body = json.loads(seen[0].data.decode("utf-8"))
    assert body["source"] == "int main() {}"
    assert body["options"]["compilerOptions"]["executorRequest"] is False


def test_oversized_response_is_never_parsed():
    ce = CeClient(max_response_bytes=2048)
    big = b"[" + b" " * 5000 + b"]"

    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with(big)), patch(
        "celive_ce.json.loads", side_effect=AssertionError("parsed an oversized body")
    ):
        resp = ce.compile("g132", payload_for())

    result = CompileResult.from_response(resp)
    assert len(result.assembly) == 1
    assert "2048" in result.assembly[0]
    assert MAX_RESPONSE_BYTES_KEY in result.assembly[0]
    assert result.compiler_stdout == [] and result.compiler_stderr == []


def test_oversized_execute_response_keeps_execution_shape():
    ce = CeClient(max_response_bytes=1024)
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with(b"x" * 4096)):
        resp = ce.compile("g132", payload_for(execute=True), execute=True)

    result = CompileResult.from_response(resp, execute=True)
    assert result.executed is False
    assert len(result.program_stderr) == 1
    assert "1024" in result.program_stderr[0]
    assert result.compiler_stderr == [] and result.assembly == []


def test_http_error_becomes_transport_error():
    ce = CeClient()
    err = urllib.error.HTTPError("https://x", 503, "busy", {}, io.BytesIO(b"try later"))
    with patch("celive_ce.urllib.request.urlopen", side_effect=err):
        with pytest.raises(TransportError) as ei:
            ce.compile("g132", payload_for())
    assert ei.value.status == 503


def test_unreachable_host_becomes_transport_error():
    ce = CeClient()
    with patch("celive_ce.urllib.request.urlopen", side_effect=urllib.error.URLError("dns")):
        with pytest.raises(TransportError):
            ce.list_languages()


def test_catalog_parsing():
    ce = CeClient()
    languages = [
        {"id": "rust", "name": "Rust", "extensions": [".rs"], "defaultCompiler": "r1750"},
        {"id": "c++", "name": "C++", "defaultCompiler": "g132"},
        {"name": "no id"},
    ]
    libraries = [
        {"id": "fmt", "name": "{fmt}", "versions": [{"id": "900"}, {"id": "1000"}, {"version": "trunk"}]},
        {"id": "empty", "versions": []},
    ]
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with(languages)):
        langs = ce.list_languages()
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with(libraries)):
        libs = ce.list_libraries("c++")

    assert [l.id for l in langs] == ["c++", "rust"]
    assert langs[1].extensions == (".rs",)
    assert len(libs) == 1
    assert libs[0].versions == ["trunk", "1000", "900"]


def test_shortener_returns_url():
    ce = CeClient()
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with({"url": "https://godbolt.org/z/abc"})):
        assert ce.shorten({"sessions": []}) == "https://godbolt.org/z/abc"
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with({})):
        with pytest.raises(TransportError):
            ce.shorten({"sessions": []})


def test_cancelled_handle_never_emits(qapp):
    h = RequestHandle("compile/g132")
    got = []
    h.succeeded.connect(got.append)
    h.failed.connect(got.append)

    h.cancel()
    h.deliver({"code": 0})
    h.fail("late")

    assert h.is_done() and h.is_cancelled()
    assert h.abort_event.is_set()
    assert got == []


def test_handle_finishes_once(qapp):
    h = RequestHandle("compile/g132")
    got = []
    h.succeeded.connect(got.append)
    h.deliver(1)
    h.deliver(2)
    h.cancel()
    assert got == [1]
    assert not h.is_cancelled()


def test_tracked_handles_are_dropped_when_finished(qapp):
    pending = []
    ok, bad, cancelled = RequestHandle("a"), RequestHandle("b"), RequestHandle("c")
    for h in (ok, bad, cancelled):
        track_pending(pending, h)
    assert pending == [ok, bad, cancelled]

    ok.deliver([])
    bad.fail("HTTP 500")
    cancelled.cancel()
    assert pending == [cancelled]

    fresh = track_pending(pending, RequestHandle("d"))
    assert pending == [fresh]


def wait_for(handle, timeout_ms: int = 3000) -> None:
    waited = 0
    while not handle.is_done() and waited < timeout_ms:
        QTest.qWait(20)
        waited += 20


def test_service_delivers_on_gui_thread(qapp):
    service = CeService(CeClient())
    body = {"asm": [{"text": "ret"}], "stdout": [], "stderr": [], "code": 0}
    got = []
    with patch("celive_ce.urllib.request.urlopen", return_value=respond_with(body)):
        h = service.compile("g132", payload_for())
        h.succeeded.connect(got.append)
        wait_for(h)
    QTest.qWait(50)

    assert got == [body]
    service.shutdown()


def test_service_reports_transport_failure(qapp):
    service = CeService(CeClient())
    errors = []
    with patch("celive_ce.urllib.request.urlopen", side_effect=urllib.error.URLError("down")):
        h = service.list_compilers()
        h.failed.connect(errors.append)
        wait_for(h)
    QTest.qWait(50)

    assert len(errors) == 1
    assert "down" in errors[0]
    service.shutdown()
