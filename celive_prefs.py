"""Preferences and persistent settings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from PyQt6.QtCore import QSettings

from celive_core import LOG
from celive_models import OutputFilters


def _clamp_int(value: object, default: int, lo: int, hi: int) -> int:

    try:
        v = int(value)
    except (TypeError, ValueError):
        v = int(default)
    return max(int(lo), min(int(hi), v))


def _as_bool(value: object, default: bool) -> bool:

    # INI-backed QSettings hands booleans back as "true"/"false" strings.
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("true", "1", "yes", "on"):
            return True
        if s in ("false", "0", "no", "off"):
            return False
        return default
    if isinstance(value, int):
        return bool(value)
    return default


class AppSettings:



    ORG = "CELive"
    APP = "CELive"

    K_GEOMETRY = "main/geometry"

    K_BASE_URL = "service/baseUrl"
    K_DEBOUNCE_MS = "compile/debounceMs"
    K_MAX_RESPONSE_BYTES = "compile/maxResponseBytes"

    K_HISTORY_SIZE = "history/size"
    K_HISTORY_JSON = "history/sessionsJson"

    K_FILTER_PREFIX = "filters/"

    K_LAYOUT_INDEX = "layout/index"
    K_LAYOUT_CATALOG_JSON = "layout/catalogJson"

    K_EDITOR_FONT_PT = "appearance/editorFontPt"

    def __init__(self, path: str | None = None):

        if path:
            self._s = QSettings(path, QSettings.Format.IniFormat)
        else:
            self._s = QSettings(self.ORG, self.APP)

    def set_value(self, key: str, value: Any) -> None:

        self._s.setValue(key, value)

    def get_value(self, key: str, default: Any = None) -> Any:

        return self._s.value(key, default)

    def sync(self) -> None:

        self._s.sync()


@dataclass(frozen=True)
class PreferencesState:


    base_url: str
    debounce_ms: int
    max_response_bytes: int
    history_size: int
    filters: OutputFilters
    layout_index: int
    editor_font_pt: int


DEFAULT_BASE_URL = "https://godbolt.org/api"


def _load_filters(settings: AppSettings) -> OutputFilters:

    defaults = OutputFilters()
    values = {}
    for name in OutputFilters.names():
        raw = settings.get_value(AppSettings.K_FILTER_PREFIX + name, getattr(defaults, name))
        values[name] = _as_bool(raw, getattr(defaults, name))
    return OutputFilters(**values)


def _save_filters(settings: AppSettings, filters: OutputFilters) -> None:

    for name in OutputFilters.names():
        settings.set_value(AppSettings.K_FILTER_PREFIX + name, bool(getattr(filters, name)))


def _load_preferences_state(settings: AppSettings) -> PreferencesState:

    base_url = str(settings.get_value(AppSettings.K_BASE_URL, DEFAULT_BASE_URL) or "").strip()
    return PreferencesState(
        base_url=base_url or DEFAULT_BASE_URL,
        debounce_ms=_clamp_int(settings.get_value(AppSettings.K_DEBOUNCE_MS, 500), 500, 0, 10000),
        max_response_bytes=_clamp_int(
            settings.get_value(AppSettings.K_MAX_RESPONSE_BYTES, 1_000_000), 1_000_000, 1024, 1 << 30
        ),
        history_size=_clamp_int(settings.get_value(AppSettings.K_HISTORY_SIZE, 5), 5, 1, 100),
        filters=_load_filters(settings),
        layout_index=_clamp_int(settings.get_value(AppSettings.K_LAYOUT_INDEX, 0), 0, 0, 1000),
        editor_font_pt=_clamp_int(settings.get_value(AppSettings.K_EDITOR_FONT_PT, 12), 12, 8, 28),
    )


def _save_preferences_state(settings: AppSettings, p: PreferencesState) -> None:

    settings.set_value(AppSettings.K_BASE_URL, str(p.base_url or DEFAULT_BASE_URL).strip())
    settings.set_value(AppSettings.K_DEBOUNCE_MS, int(p.debounce_ms))
    settings.set_value(AppSettings.K_MAX_RESPONSE_BYTES, int(p.max_response_bytes))
    settings.set_value(AppSettings.K_HISTORY_SIZE, int(p.history_size))
    settings.set_value(AppSettings.K_LAYOUT_INDEX, int(p.layout_index))
    settings.set_value(AppSettings.K_EDITOR_FONT_PT, int(p.editor_font_pt))
    _save_filters(settings, p.filters)


def _load_layout_catalog_json(settings: AppSettings) -> list[Any] | None:
    """User-defined layouts, or None to use the built-in catalog."""

    raw = settings.get_value(AppSettings.K_LAYOUT_CATALOG_JSON, "")
    if not raw:
        return None
    try:
        data = raw if isinstance(raw, list) else json.loads(str(raw))
    except ValueError:
        LOG.warning("Ignoring malformed %s", AppSettings.K_LAYOUT_CATALOG_JSON)
        return None
    if not isinstance(data, list) or not data:
        return None
    return data
