"""Core helpers, logging and the error taxonomy."""

import logging
import re
import sys

from PyQt6.QtGui import QFont, QFontDatabase


LOG = logging.getLogger("celive")


class CancelledByUser(Exception):


    pass


class TransportError(Exception):
    """Network or HTTP failure talking to Compiler Explorer."""

    def __init__(self, message: str, status: int | None = None):

        super().__init__(message)
        self.status = status


class EmptyHistory(Exception):


    pass


class InvalidLayout(ValueError):


    pass


class UnknownIdentifier(LookupError):

    kind = "identifier"

    def __init__(self, ident: str):

        super().__init__(f"Unknown {self.kind}: {ident}")
        self.ident = ident


class UnknownLanguage(UnknownIdentifier):

    kind = "language"


class UnknownCompiler(UnknownIdentifier):

    kind = "compiler"


class UnknownLibrary(UnknownIdentifier):

    kind = "library"


def setup_logging(level: int = logging.DEBUG) -> None:


    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def strip_ansi(text: str) -> str:

    # Compilers are invoked with colour diagnostics; plain text views can't show them.
    return ANSI_RE.sub("", text)


def choose_mono_font(point_size: int) -> QFont:

    preferred = ["Menlo", "SF Mono", "DejaVu Sans Mono", "Liberation Mono", "Consolas", "Courier New"]
    families = set(QFontDatabase.families())
    f = QFont()
    for name in preferred:
        if name in families:
            f = QFont(name)
            break
    f.setPointSize(point_size)
    f.setStyleHint(QFont.StyleHint.Monospace)
    f.setFixedPitch(True)
    return f
