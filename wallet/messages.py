"""Diagnostic output for remote command errors."""
import sys
from typing import List, Optional, TextIO

PROGRAM_NAME = "wallet"


class DiagnosticSink:
    """Reports diagnostics to a stream as they arrive, each line prefixed with the
    program name. The sink is created once at startup and handed to whatever needs it."""

    def __init__(self, program_name: str = PROGRAM_NAME, stream: Optional[TextIO] = None) -> None:
        self.program_name = program_name
        self._stream = stream

    def report(self, text: str) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        stream.write("{}: {}".format(self.program_name, text))
        if not text.endswith("\n"):
            stream.write("\n")
        stream.flush()


class CollectingSink(DiagnosticSink):
    """Keeps reported diagnostics in memory instead of writing them anywhere."""

    def __init__(self, program_name: str = PROGRAM_NAME) -> None:
        super().__init__(program_name)
        self.messages: List[str] = []

    def report(self, text: str) -> None:
        self.messages.append("{}: {}".format(self.program_name, text))
