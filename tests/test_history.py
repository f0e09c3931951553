from __future__ import annotations

import json

import pytest

from celive_core import EmptyHistory
from celive_history import SessionHistory, SessionStore
from celive_models import Session
from celive_prefs import AppSettings


def s(n: int) -> Session:
    return Session(language_name="C++", compiler_id="g132", source=f"// session {n}\n")


def test_ring_evicts_oldest_beyond_capacity():
    h = SessionHistory(2)
    for i in (1, 2, 3):
        h.push(s(i))

    assert h.sessions() == [s(2), s(3)]
    assert len(h) == 2


def test_ring_never_exceeds_capacity():
    h = SessionHistory(5)
    for i in range(20):
        h.push(s(i))
        assert len(h) <= 5
    assert h.sessions()[0] == s(15)


def test_zero_capacity_is_rejected():
    with pytest.raises(ValueError):
        SessionHistory(0)


def test_pop_prefers_standby_and_leaves_ring_alone(settings):
    store = SessionStore(settings, capacity=3)
    store.push_to_history(s(1))
    store.capture(s(2))

    assert store.pop_most_recent() == s(2)
    assert store.standby is None
    assert store.history.sessions() == [s(1)]
    assert store.pop_most_recent() == s(1)
    with pytest.raises(EmptyHistory):
        store.pop_most_recent()


def test_second_capture_moves_old_standby_into_ring(settings):
    store = SessionStore(settings)
    store.capture(s(1))
    store.capture(s(2))

    assert store.standby == s(2)
    assert store.history.sessions() == [s(1)]


def test_unresolved_sessions_are_not_captured(settings):
    store = SessionStore(settings)
    store.capture(Session(language_name="C++", compiler_id=""))
    assert store.is_empty()


def test_persist_then_restore_round_trips(settings):
    store = SessionStore(settings, capacity=4)
    sessions = [
        s(1),
        Session(
            language_name="C++",
            compiler_id="clang1701",
            libraries=(("fmt", "1000"), ("boost", "184")),
            compiler_arguments="-O2 -Wall",
            execution_arguments="--verbose",
            execution_stdin="1 2 3\n",
            source="#include <fmt/core.h>\n",
        ),
        s(3),
    ]
    for x in sessions:
        store.push_to_history(x)
    store.persist()

    restored = SessionStore(settings, capacity=4)
    restored.restore()
    assert restored.history.sessions() == sessions


def test_persist_folds_standby_in_as_newest(settings):
    store = SessionStore(settings, capacity=2)
    store.push_to_history(s(1))
    store.push_to_history(s(2))
    store.capture(s(3))
    store.persist()

    restored = SessionStore(settings, capacity=2)
    restored.restore()
    assert restored.history.sessions() == [s(2), s(3)]
    assert restored.standby is None


def test_restore_from_missing_storage_is_empty(settings):
    store = SessionStore(settings)
    store.restore()
    assert store.is_empty()


def test_restore_from_malformed_storage_is_empty(settings):
    settings.set_value(AppSettings.K_HISTORY_JSON, "{not json")
    store = SessionStore(settings)
    store.restore()
    assert store.is_empty()

    settings.set_value(AppSettings.K_HISTORY_JSON, json.dumps({"sessions": []}))
    store.restore()
    assert store.is_empty()


def test_restore_tolerates_missing_and_extra_fields(settings):
    data = [
        {"language": "C++", "compiler": "g132", "source": "int x;", "futureField": {"a": 1}},
        {"language": "C++"},
        "garbage",
        {"language": "Rust", "compiler": "r1750", "libraries": [{"id": "serde"}]},
    ]
    settings.set_value(AppSettings.K_HISTORY_JSON, json.dumps(data))
    store = SessionStore(settings)
    store.restore()

    assert store.history.sessions() == [
        Session(language_name="C++", compiler_id="g132", source="int x;"),
        Session(language_name="Rust", compiler_id="r1750"),
    ]


def test_restore_keeps_only_newest_when_capacity_shrinks(settings):
    big = SessionStore(settings, capacity=5)
    for i in range(5):
        big.push_to_history(s(i))
    big.persist()

    small = SessionStore(settings, capacity=2)
    small.restore()
    assert small.history.sessions() == [s(3), s(4)]
