"""Qt widgets: editor, output views, layout splitters and dialogs."""

from __future__ import annotations

from typing import Callable

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import (
    QComboBox,
    QCompleter,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QPlainTextEdit,
    QSizePolicy,
    QSplitter,
    QVBoxLayout,
    QWidget,
)
from PyQt6.Qsci import QsciLexerCPP, QsciScintilla

from celive_core import strip_ansi
from celive_layout import HSplit, LayoutSpec, Leaf, VSplit, ViewKind
from celive_models import CeLibraryInfo
from celive_orchestrator import Status

C_LIKE_LANGUAGES = {"c", "c++", "cuda", "objective-c", "objective-c++", "hlsl", "cppx"}


class EditorWidget(QsciScintilla):

    def __init__(self, mono: QFont, parent: QWidget | None = None):

        super().__init__(parent)
        self._mono = mono
        self._lexer: QsciLexerCPP | None = None
        self._setup_base()
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

    def _setup_base(self) -> None:

        self.setUtf8(True)
        self.setFont(self._mono)
        self.setMarginsFont(self._mono)

        self.setMarginType(0, QsciScintilla.MarginType.NumberMargin)
        self.setMarginLineNumbers(0, True)
        self.setMarginWidth(0, "00000")

        self.setIndentationsUseTabs(False)
        self.setTabWidth(4)
        self.setAutoIndent(True)
        self.setBraceMatching(QsciScintilla.BraceMatch.SloppyBraceMatch)

    def set_language(self, language_id: str) -> None:

        # Only C-family sources get highlighting; everything else is plain text.
        if language_id.lower() in C_LIKE_LANGUAGES:
            if self._lexer is None:
                self._lexer = QsciLexerCPP(self)
                self._lexer.setDefaultFont(self._mono)
                for style in range(128):
                    self._lexer.setFont(self._mono, style)
            self.setLexer(self._lexer)
        else:
            self.setLexer(None)
            self.setFont(self._mono)

    def set_text_quietly(self, text: str) -> None:

        self.blockSignals(True)
        try:
            self.setText(text)
        finally:
            self.blockSignals(False)


class OutputView(QPlainTextEdit):

    def __init__(self, mono: QFont, placeholder: str, parent: QWidget | None = None):

        super().__init__(parent)
        self.setReadOnly(True)
        self.setFont(mono)
        self.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)
        self.setPlaceholderText(placeholder)

    def set_lines(self, lines: list[str]) -> None:

        self.setPlainText(strip_ansi("\n".join(lines)))


def _exit_line(label: str, code: int | None) -> str:

    return f"[{label} exited with code {code if code is not None else '?'}]"


class OutputViews:
    """The three result views; receives render calls from the orchestrator."""

    def __init__(self, mono: QFont, status_label: QLabel):

        self.asm = OutputView(mono, "Assembly")
        self.output = OutputView(mono, "Compiler output")
        self.exe = OutputView(mono, "Program output")
        self._status = status_label

    def render_compilation(self, assembly: list[str], stdout: list[str], stderr: list[str], exit_code: int) -> None:

        self.asm.set_lines(assembly)
        self.output.set_lines([*stdout, *stderr, _exit_line("Compiler", exit_code)])

    def render_execution(self, stdout: list[str], stderr: list[str], exit_code: int | None) -> None:

        self.exe.set_lines([*stdout, *stderr, _exit_line("Program", exit_code)])

    def render_status(self, state: Status, details: str) -> None:

        text = {Status.PENDING: "Compiling", Status.DONE: "Done", Status.ERROR: "Error"}[state]
        if details:
            text = f"{text}: {details}"
        self._status.setText(text)
        self._status.setToolTip(details)

    def clear(self) -> None:

        for v in (self.asm, self.output, self.exe):
            v.clear()


def build_splitters(spec: LayoutSpec, view_provider: Callable[[ViewKind], QWidget]) -> QWidget:
    """Widget tree for a Ref-free layout; see LayoutEngine.resolve."""

    if isinstance(spec, Leaf):
        return view_provider(spec.view)
    if isinstance(spec, HSplit):
        sp = QSplitter(Qt.Orientation.Horizontal)
        sp.addWidget(build_splitters(spec.left, view_provider))
        sp.addWidget(build_splitters(spec.right, view_provider))
    elif isinstance(spec, VSplit):
        sp = QSplitter(Qt.Orientation.Vertical)
        sp.addWidget(build_splitters(spec.top, view_provider))
        sp.addWidget(build_splitters(spec.bottom, view_provider))
    else:
        raise TypeError(f"Unresolved layout node: {spec!r}")
    sp.setChildrenCollapsible(False)
    sp.setStretchFactor(0, 1)
    sp.setStretchFactor(1, 1)
    return sp


class ChooserDialog(QDialog):
    """Pick one entry from a long list by typing part of its label."""

    def __init__(
        self,
        *,
        title: str,
        label: str,
        items: list[tuple[str, str]],
        current: str | None = None,
        parent: QWidget | None = None,
    ):

        super().__init__(parent)
        self.setWindowTitle(title)
        self.setModal(True)

        root = QVBoxLayout(self)
        form = QFormLayout()
        root.addLayout(form)

        self.combo = QComboBox()
        self.combo.setEditable(True)
        self.combo.setInsertPolicy(QComboBox.InsertPolicy.NoInsert)
        for text, data in items:
            self.combo.addItem(text, data)
        comp = QCompleter([t for t, _ in items])
        comp.setCaseSensitivity(Qt.CaseSensitivity.CaseInsensitive)
        comp.setFilterMode(Qt.MatchFlag.MatchContains)
        self.combo.setCompleter(comp)
        if current is not None:
            idx = self.combo.findData(current)
            if idx >= 0:
                self.combo.setCurrentIndex(idx)
        form.addRow(label, self.combo)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        root.addWidget(buttons)

    def value(self) -> str:

        idx = self.combo.findText(self.combo.currentText())
        if idx >= 0:
            return str(self.combo.itemData(idx))
        return self.combo.currentText().strip()


class LibraryDialog(QDialog):

    def __init__(self, libraries: list[CeLibraryInfo], parent: QWidget | None = None):

        super().__init__(parent)
        self.setWindowTitle("Add library")
        self.setModal(True)
        self._lib_by_id = {lib.id: lib for lib in libraries}

        root = QVBoxLayout(self)
        form = QFormLayout()
        root.addLayout(form)

        self.combo_lib = QComboBox()
        self.combo_lib.setEditable(True)
        self.combo_lib.setInsertPolicy(QComboBox.InsertPolicy.NoInsert)
        for lib in libraries:
            self.combo_lib.addItem(f"{lib.name} ({lib.id})", lib.id)
        comp = QCompleter([self.combo_lib.itemText(i) for i in range(self.combo_lib.count())])
        comp.setCaseSensitivity(Qt.CaseSensitivity.CaseInsensitive)
        comp.setFilterMode(Qt.MatchFlag.MatchContains)
        self.combo_lib.setCompleter(comp)
        form.addRow("Library", self.combo_lib)

        self.combo_version = QComboBox()
        form.addRow("Version", self.combo_version)

        self.combo_lib.currentIndexChanged.connect(self._refresh_versions)
        self._refresh_versions()

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        root.addWidget(buttons)

    def _refresh_versions(self) -> None:

        self.combo_version.clear()
        lib = self._lib_by_id.get(str(self.combo_lib.currentData() or ""))
        if lib is not None:
            self.combo_version.addItems(lib.versions)

    def selection(self) -> tuple[str, str]:

        return str(self.combo_lib.currentData() or ""), self.combo_version.currentText()


class TextDialog(QDialog):

    def __init__(self, title: str, text: str, mono: QFont, parent: QWidget | None = None):

        super().__init__(parent)
        self.setWindowTitle(title)
        self.setModal(True)
        root = QVBoxLayout(self)
        self.edit = QPlainTextEdit()
        self.edit.setFont(mono)
        self.edit.setPlainText(text)
        root.addWidget(self.edit)
        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        root.addWidget(buttons)

    def text(self) -> str:

        return self.edit.toPlainText()
