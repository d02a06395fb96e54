"""Utilities relating to running wallet commands over a remctl transport

A Channel submits one command at a time and folds the transport's output events into a
single CommandResult: the exit status, the bytes written to standard output, and whatever
the server wrote to standard error or reported as an error.
"""
import logging
import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from .errors import CommandError
from .messages import DiagnosticSink
from .transport import BaseTransport, OutputType, Word

log = logging.getLogger(__name__)

ERROR_STATUS = 255


@dataclass
class CommandResult:
    status: int
    payload: bytes = b""
    diagnostics: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0


class Channel:
    def __init__(
        self,
        transport: BaseTransport,
        sink: Optional[DiagnosticSink] = None,
        stdout: Optional[BinaryIO] = None,
    ) -> None:
        self.transport = transport
        self.sink = sink if sink is not None else DiagnosticSink()
        self._stdout = stdout

    def _standard_output(self) -> BinaryIO:
        if self._stdout is not None:
            return self._stdout
        return sys.stdout.buffer

    def run_command(self, command: Sequence[Word], capture: bool = True) -> CommandResult:
        """Runs the command and returns its result.

        With capture disabled, standard output of the command is written straight to our own
        standard output and the returned payload is empty. Errors from the server are always
        reported through the sink as they arrive. A transport that refuses the command yields
        status 255 rather than an exception.
        """
        if not self.transport.command(command):
            message = self.transport.error()
            self.sink.report(message)
            return CommandResult(status=ERROR_STATUS, diagnostics=message)

        payload = bytearray()
        diagnostics = []
        status = ERROR_STATUS
        while True:
            output = self.transport.output()
            if output.type == OutputType.OUTPUT:
                if output.stream == 1:
                    if capture:
                        payload += output.data
                    else:
                        stream = self._standard_output()
                        stream.write(output.data)
                        stream.flush()
                else:
                    text = output.data.decode("utf-8", "replace")
                    self.sink.report(text)
                    diagnostics.append(text)
            elif output.type == OutputType.STATUS:
                status = output.status
            elif output.type == OutputType.ERROR:
                text = output.data.decode("utf-8", "replace")
                self.sink.report(text)
                diagnostics.append(text)
                status = ERROR_STATUS
                break
            elif output.type == OutputType.DONE:
                break

        if status != 0:
            log.debug("Got exit status %d to command: %s", status, _describe(command))
        return CommandResult(status=status, payload=bytes(payload), diagnostics="".join(diagnostics))

    def object_exists(self, prefix: str, type: str, name: str) -> bool:
        """Asks the server whether an object exists. Raises CommandError if the check fails."""
        result = self.run_command([prefix, "check", type, name])
        if not result.ok:
            raise CommandError(result.status)
        return result.payload == b"yes\n"

    def object_autocreate(self, prefix: str, type: str, name: str) -> None:
        result = self.run_command([prefix, "autocreate", type, name], capture=False)
        if not result.ok:
            raise CommandError(result.status)

    def close(self) -> None:
        self.transport.close()


def _describe(command: Sequence[Word]) -> str:
    return " ".join(BaseTransport.to_bytes(w).decode("utf-8", "replace") for w in command[:4])
