"""Main window and application wiring."""

from __future__ import annotations

import sys

from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QInputDialog,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QVBoxLayout,
    QWidget,
)

from celive_ce import CeClient, CeService, RequestHandle, track_pending
from celive_core import LOG, EmptyHistory, InvalidLayout, UnknownIdentifier, choose_mono_font, setup_logging
from celive_history import SessionStore
from celive_layout import LayoutCatalog, LayoutEngine, Ref, ViewKind, build_catalog
from celive_models import Session
from celive_orchestrator import RequestOrchestrator
from celive_prefs import AppSettings, PreferencesState, _load_layout_catalog_json, _load_preferences_state
from celive_session import ClientState, SessionController
from celive_ui_widgets import ChooserDialog, EditorWidget, LibraryDialog, OutputViews, TextDialog, build_splitters


class MainWindow(QMainWindow):



    def __init__(self, service: CeService, settings: AppSettings, prefs: PreferencesState, layouts: LayoutCatalog):

        super().__init__()
        self.setWindowTitle("CELive")
        self._service = service
        self._settings = settings
        self._prefs = prefs
        self._pending_loads: list[RequestHandle] = []
        self._library_loads: list[RequestHandle] = []
        self._link_handle: RequestHandle | None = None

        mono = choose_mono_font(prefs.editor_font_pt)
        self._mono = mono

        self._status_label = QLabel("No session")
        self.statusBar().addPermanentWidget(self._status_label)

        self.editor = EditorWidget(mono)
        self.views = OutputViews(mono, self._status_label)

        self._central = QWidget()
        self._central_layout = QVBoxLayout(self._central)
        self._central_layout.setContentsMargins(0, 0, 0, 0)
        self.setCentralWidget(self._central)
        self._layout_root: QWidget | None = None

        self.store = SessionStore(settings, capacity=prefs.history_size)
        self.store.restore()
        orchestrator = RequestOrchestrator(service, self.views, prefs.filters, prefs.debounce_ms, parent=self)
        self.controller = SessionController(
            ClientState(layout_index=layouts.select(prefs.layout_index)),
            self.store,
            orchestrator,
            layouts,
        )
        self._engine = LayoutEngine(layouts)
        self.controller.add_listener(self._on_session_changed)

        self.editor.textChanged.connect(self._on_editor_changed)

        self._wire_actions()
        self._apply_layout()
        self._set_session_enabled(False)

        geom = self._settings.get_value(AppSettings.K_GEOMETRY)
        if geom is not None:
            self.restoreGeometry(geom)

        self.statusBar().showMessage("Loading languages and compilers...", 0)
        self._start_load_catalog()

    def _wire_actions(self) -> None:

        session_menu = self.menuBar().addMenu("&Session")
        self._session_actions: list[QAction] = []

        def add(menu, title: str, slot, shortcut: str | None = None, needs_session: bool = True) -> QAction:

            act = QAction(title, self)
            if shortcut:
                act.setShortcut(QKeySequence(shortcut))
            act.triggered.connect(slot)
            menu.addAction(act)
            if needs_session:
                self._session_actions.append(act)
            return act

        add(session_menu, "New session...", self.new_session, "Ctrl+N", needs_session=False)
        add(session_menu, "Previous session", self.restore_previous, "Ctrl+P", needs_session=False)
        add(session_menu, "Close session", self.exit_session, "Ctrl+W")
        add(session_menu, "Discard session", self.discard_session)
        session_menu.addSeparator()
        add(session_menu, "Copy link", self.make_link, "Ctrl+L")

        compiler_menu = self.menuBar().addMenu("&Compiler")
        add(compiler_menu, "Set compiler...", self.set_compiler, "Ctrl+K")
        add(compiler_menu, "Compiler arguments...", self.set_compiler_arguments)
        add(compiler_menu, "Add library...", self.add_library)
        add(compiler_menu, "Remove library...", self.remove_library)
        add(compiler_menu, "Recompile now", self.recompile, "Ctrl+R")

        exec_menu = self.menuBar().addMenu("&Execution")
        add(exec_menu, "Program arguments...", self.set_execution_arguments)
        add(exec_menu, "Program input...", self.set_execution_stdin)

        view_menu = self.menuBar().addMenu("&View")
        add(view_menu, "Next layout", self.next_layout, "Ctrl+.", needs_session=False)

    def _set_session_enabled(self, on: bool) -> None:

        for act in self._session_actions:
            act.setEnabled(on)
        self.editor.setReadOnly(not on)

    def _view_for(self, kind: ViewKind) -> QWidget:

        return {
            ViewKind.SOURCE: self.editor,
            ViewKind.ASSEMBLY: self.views.asm,
            ViewKind.COMBINED_OUTPUT: self.views.output,
            ViewKind.EXECUTION_OUTPUT: self.views.exe,
        }[kind]

    def _apply_layout(self) -> None:

        try:
            spec = self._engine.resolve(Ref(self.controller.state.layout_index))
        except InvalidLayout as e:
            LOG.error("Layout %d is invalid: %s", self.controller.state.layout_index, e)
            self.statusBar().showMessage(f"Invalid layout: {e}", 5000)
            return

        # Views outlive the splitters that hold them.
        for kind in ViewKind:
            self._view_for(kind).setParent(None)
        if self._layout_root is not None:
            self._central_layout.removeWidget(self._layout_root)
            self._layout_root.deleteLater()
        self._layout_root = build_splitters(spec, self._view_for)
        self._central_layout.addWidget(self._layout_root)

    def _error(self, title: str, e: Exception) -> None:

        LOG.debug("%s: %s", title, e)
        self.statusBar().showMessage(str(e), 5000)
        QMessageBox.warning(self, title, str(e))

    def _start_load_catalog(self) -> None:

        h_lang = self._service.list_languages()
        h_lang.succeeded.connect(self._on_languages_loaded)
        h_lang.failed.connect(lambda msg: self._on_catalog_failed("languages", msg))
        h_comp = self._service.list_compilers()
        h_comp.succeeded.connect(self._on_compilers_loaded)
        h_comp.failed.connect(lambda msg: self._on_catalog_failed("compilers", msg))
        self._pending_loads = [h_lang, h_comp]

    def _on_languages_loaded(self, languages) -> None:

        self.controller.state.catalog.languages = list(languages)
        self._catalog_progress()

    def _on_compilers_loaded(self, compilers) -> None:

        self.controller.state.catalog.compilers = list(compilers)
        self._catalog_progress()

    def _catalog_progress(self) -> None:

        if all(h.is_done() for h in self._pending_loads):
            cat = self.controller.state.catalog
            self.statusBar().showMessage(
                f"Loaded {len(cat.languages)} languages and {len(cat.compilers)} compilers", 5000
            )

    def _on_catalog_failed(self, what: str, msg: str) -> None:

        LOG.error("Loading %s failed: %s", what, msg)
        self.statusBar().showMessage(f"Could not load {what}: {msg}", 0)

    def _ensure_libraries(self, language_id: str) -> None:

        if language_id in self.controller.state.catalog.libraries:
            return
        self.controller.state.catalog.libraries[language_id] = []
        h = self._service.list_libraries(language_id)

        def loaded(libs) -> None:

            self.controller.state.catalog.libraries[language_id] = list(libs)
            LOG.debug("Loaded %d libraries for %s", len(libs), language_id)

        def failed(msg: str) -> None:

            self.controller.state.catalog.libraries.pop(language_id, None)
            self._on_catalog_failed(f"libraries for {language_id}", msg)

        h.succeeded.connect(loaded)
        h.failed.connect(failed)
        track_pending(self._library_loads, h)

    def _on_session_changed(self, session: Session | None) -> None:

        self._set_session_enabled(session is not None)
        if session is None:
            self.editor.set_text_quietly("")
            self.views.clear()
            self._status_label.setText("No session")
            self.setWindowTitle("CELive")
            return
        try:
            lang_id = self.controller.state.catalog.language_by_name(session.language_name).id
        except UnknownIdentifier:
            lang_id = session.language_name.lower()
        self.editor.set_language(lang_id)
        if self.editor.text() != session.source:
            self.editor.set_text_quietly(session.source)
        self._ensure_libraries(lang_id)
        libs = ", ".join(f"{lid} {ver}" for lid, ver in session.libraries)
        title = f"CELive - {session.language_name} - {session.compiler_id}"
        self.setWindowTitle(f"{title} [{libs}]" if libs else title)

    def _on_editor_changed(self) -> None:

        self.controller.on_source_edited(self.editor.text())

    def new_session(self) -> None:

        cat = self.controller.state.catalog
        if not cat.languages:
            self.statusBar().showMessage("Languages are still loading...", 4000)
            return
        dlg = ChooserDialog(
            title="New session",
            label="Language",
            items=[(lang.name, lang.name) for lang in cat.languages],
            parent=self,
        )
        if not dlg.exec():
            return
        try:
            self.controller.new_session(dlg.value())
        except UnknownIdentifier as e:
            self._error("New session", e)

    def set_compiler(self) -> None:

        s = self.controller.state.session
        if s is None:
            return
        cat = self.controller.state.catalog
        try:
            lang_id = cat.language_by_name(s.language_name).id
        except UnknownIdentifier as e:
            self._error("Set compiler", e)
            return
        items = [(f"{c.name} ({c.id})", c.id) for c in cat.compilers_for(lang_id)]
        dlg = ChooserDialog(title="Set compiler", label="Compiler", items=items, current=s.compiler_id, parent=self)
        if not dlg.exec():
            return
        try:
            self.controller.set_compiler(dlg.value())
        except UnknownIdentifier as e:
            self._error("Set compiler", e)

    def add_library(self) -> None:

        s = self.controller.state.session
        if s is None:
            return
        cat = self.controller.state.catalog
        try:
            lang_id = cat.language_by_name(s.language_name).id
        except UnknownIdentifier as e:
            self._error("Add library", e)
            return
        libs = cat.libraries.get(lang_id)
        if not libs:
            self.statusBar().showMessage(f"No libraries loaded for {s.language_name}", 4000)
            return
        dlg = LibraryDialog(libs, parent=self)
        if not dlg.exec():
            return
        try:
            self.controller.add_library(*dlg.selection())
        except UnknownIdentifier as e:
            self._error("Add library", e)

    def remove_library(self) -> None:

        s = self.controller.state.session
        if s is None or not s.libraries:
            self.statusBar().showMessage("No libraries in this session", 4000)
            return
        items = [(f"{lid} {ver}", lid) for lid, ver in s.libraries]
        dlg = ChooserDialog(title="Remove library", label="Library", items=items, parent=self)
        if not dlg.exec():
            return
        try:
            self.controller.remove_library(dlg.value())
        except UnknownIdentifier as e:
            self._error("Remove library", e)

    def _ask_line(self, title: str, label: str, current: str) -> str | None:

        text, ok = QInputDialog.getText(self, title, label, QLineEdit.EchoMode.Normal, current)
        return text if ok else None

    def set_compiler_arguments(self) -> None:

        s = self.controller.state.session
        if s is None:
            return
        args = self._ask_line("Compiler arguments", "Arguments", s.compiler_arguments)
        if args is not None:
            self.controller.set_compiler_arguments(args)

    def set_execution_arguments(self) -> None:

        s = self.controller.state.session
        if s is None:
            return
        args = self._ask_line("Program arguments", "Arguments", s.execution_arguments)
        if args is not None:
            self.controller.set_execution_arguments(args)

    def set_execution_stdin(self) -> None:

        s = self.controller.state.session
        if s is None:
            return
        dlg = TextDialog("Program input", s.execution_stdin, self._mono, parent=self)
        if dlg.exec():
            self.controller.set_execution_stdin(dlg.text())

    def recompile(self) -> None:

        if self.controller.state.session is not None:
            self.controller.recompile()

    def restore_previous(self) -> None:

        try:
            self.controller.restore_previous()
        except EmptyHistory:
            self.statusBar().showMessage("No previous session", 4000)

    def exit_session(self) -> None:

        self.controller.exit_session()

    def discard_session(self) -> None:

        self.controller.discard_session()

    def next_layout(self) -> None:

        idx = self.controller.select_layout()
        self._settings.set_value(AppSettings.K_LAYOUT_INDEX, idx)
        self._apply_layout()
        self.statusBar().showMessage(f"Layout: {self.controller.layouts.names()[idx]}", 3000)

    def make_link(self) -> None:

        try:
            self._link_handle = self.controller.make_link()
        except UnknownIdentifier as e:
            self._error("Copy link", e)
            return
        self._link_handle.succeeded.connect(self._on_link_ready)
        self._link_handle.failed.connect(lambda msg: self.statusBar().showMessage(f"Link failed: {msg}", 5000))
        self.statusBar().showMessage("Creating link...", 0)

    def _on_link_ready(self, url) -> None:

        QApplication.clipboard().setText(str(url))
        self.statusBar().showMessage(f"Copied {url}", 8000)

    def closeEvent(self, event):

        self.controller.persist()
        self._service.shutdown()
        self._settings.set_value(AppSettings.K_GEOMETRY, self.saveGeometry())
        self._settings.sync()
        super().closeEvent(event)


def main():
    """Run the Qt application."""
    setup_logging()
    app = QApplication(sys.argv)

    settings = AppSettings()
    prefs = _load_preferences_state(settings)
    try:
        layouts = build_catalog(_load_layout_catalog_json(settings))
    except InvalidLayout:
        LOG.exception("Configured layouts are invalid; using the defaults")
        layouts = build_catalog()

    ce = CeClient(base_url=prefs.base_url, max_response_bytes=prefs.max_response_bytes)
    service = CeService(ce)

    w = MainWindow(service, settings, prefs, layouts)
    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
