"""
Transports that carry a single remctl command to the wallet server and hand back its output
as a sequence of events.
"""
import collections
import enum
import logging
import subprocess
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence, Tuple, Union

log = logging.getLogger(__name__)

DEFAULT_REMCTL_BINARY = "remctl"
# Exit status and message prefix of the remctl client when it fails on its own side.
CLIENT_FAILURE_STATUS = 1
CLIENT_ERROR_PREFIX = b"remctl: "

Word = Union[str, bytes]


class OutputType(enum.Enum):
    OUTPUT = 1
    STATUS = 2
    ERROR = 3
    DONE = 4


@dataclass
class OutputEvent:
    type: OutputType
    data: bytes = b""
    stream: int = 0
    status: int = 0

    @staticmethod
    def output(data: bytes, stream: int = 1) -> "OutputEvent":
        return OutputEvent(OutputType.OUTPUT, data=data, stream=stream)

    @staticmethod
    def exit_status(status: int) -> "OutputEvent":
        return OutputEvent(OutputType.STATUS, status=status)

    @staticmethod
    def error(message: Union[str, bytes]) -> "OutputEvent":
        if isinstance(message, str):
            message = message.encode("utf-8")
        return OutputEvent(OutputType.ERROR, data=message)

    @staticmethod
    def done() -> "OutputEvent":
        return OutputEvent(OutputType.DONE)


class BaseTransport:
    """
    Contract for the command transport.

    command() submits one command and returns False (with error() explaining why) if the
    transport refused it. output() then returns that command's events in arrival order;
    the last one is DONE or ERROR.
    """

    name: str = "base"

    def command(self, command: Sequence[Word]) -> bool:
        raise NotImplementedError

    def error(self) -> str:
        raise NotImplementedError

    def output(self) -> OutputEvent:
        raise NotImplementedError

    def close(self) -> None:
        return

    @staticmethod
    def to_bytes(word: Word) -> bytes:
        if isinstance(word, bytes):
            return word
        return word.encode("utf-8", "surrogateescape")


class RemctlTransport(BaseTransport):
    """Runs each command through the remctl command-line client.

    The client is run to completion and its standard output, standard error and exit status
    are replayed as events, so a command's payload is held in memory in full.
    """

    name = "remctl"

    def __init__(
        self,
        server: str,
        port: int = 0,
        principal: Optional[str] = None,
        binary: str = DEFAULT_REMCTL_BINARY,
        timeout_seconds: Optional[int] = None,
    ) -> None:
        self.server = server
        self.port = port
        self.principal = principal
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self._error = ""
        self._events: Deque[OutputEvent] = collections.deque()

    def _args(self, command: Sequence[Word]) -> List[bytes]:
        args = [self.to_bytes(self.binary)]
        if self.port:
            args += [b"-p", str(self.port).encode("ascii")]
        if self.principal:
            args += [b"-s", self.to_bytes(self.principal)]
        args.append(self.to_bytes(self.server))
        args += [self.to_bytes(word) for word in command]
        return args

    def command(self, command: Sequence[Word]) -> bool:
        self._events.clear()
        args = self._args(command)
        if any(b"\0" in arg for arg in args):
            self._error = "cannot pass NUL bytes to {} on the command line".format(self.binary)
            return False
        # Only the leading words are logged; trailing arguments may carry secret data.
        log.debug(
            "(remctl %s) %s",
            self.server,
            " ".join(self.to_bytes(w).decode("utf-8", "replace") for w in command[:3]),
        )
        try:
            result = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            self._error = "remctl to {} timed out after {} seconds".format(
                self.server, self.timeout_seconds
            )
            return False
        except OSError as e:
            self._error = "cannot run {}: {}".format(self.binary, e.strerror or e)
            return False

        stderr, client_error = self._split_client_error(result.returncode, result.stderr)
        if result.stdout:
            self._events.append(OutputEvent.output(result.stdout, stream=1))
        if stderr:
            self._events.append(OutputEvent.output(stderr, stream=2))
        if client_error is not None:
            self._events.append(OutputEvent.error(client_error))
            return True
        if result.returncode < 0:
            self._events.append(
                OutputEvent.error("remctl killed by signal {}".format(-result.returncode))
            )
            return True
        self._events.append(OutputEvent.exit_status(result.returncode))
        self._events.append(OutputEvent.done())
        return True

    @staticmethod
    def _split_client_error(returncode: int, stderr: bytes) -> Tuple[bytes, Optional[bytes]]:
        """Separates the client's own fatal message from remote diagnostics.

        The remctl client reports connection and authentication failures as a final
        "remctl: ..." line on standard error and exits 1, which would otherwise be
        indistinguishable from a remote command exiting 1.
        """
        if returncode != CLIENT_FAILURE_STATUS or not stderr:
            return stderr, None
        head, _, last = stderr.rstrip(b"\n").rpartition(b"\n")
        if not last.startswith(CLIENT_ERROR_PREFIX):
            return stderr, None
        remote = head + b"\n" if head else b""
        return remote, last[len(CLIENT_ERROR_PREFIX):]

    def error(self) -> str:
        return self._error

    def output(self) -> OutputEvent:
        if not self._events:
            return OutputEvent.error("no command pending")
        return self._events.popleft()

    def close(self) -> None:
        self._events.clear()
