"""Shared fixtures for the wallet unit tests."""
import collections
from typing import Deque, Dict, List, Optional, Sequence, Tuple

import pytest

from .keytab import KeytabEntry, Principal, encode_keytab
from .messages import CollectingSink
from .remctl import Channel
from .transport import BaseTransport, OutputEvent, Word

REALM = "EXAMPLE.COM"


class ScriptedTransport(BaseTransport):
    """Replays canned events. Responses are looked up by command words, falling back to a
    queue of scripts consumed in order."""

    name = "scripted"

    def __init__(self) -> None:
        self.commands: List[Tuple[bytes, ...]] = []
        self.responses: Dict[Tuple[bytes, ...], List[OutputEvent]] = {}
        self.scripts: Deque[List[OutputEvent]] = collections.deque()
        self.refuse: Optional[str] = None
        self._events: Deque[OutputEvent] = collections.deque()

    def respond(self, command: Sequence[Word], events: List[OutputEvent]) -> None:
        self.responses[tuple(self.to_bytes(w) for w in command)] = events

    def command(self, command: Sequence[Word]) -> bool:
        key = tuple(self.to_bytes(w) for w in command)
        self.commands.append(key)
        if self.refuse is not None:
            return False
        if key in self.responses:
            events = self.responses[key]
        elif self.scripts:
            events = self.scripts.popleft()
        else:
            events = [OutputEvent.error("unknown command"), OutputEvent.done()]
        self._events = collections.deque(events)
        return True

    def error(self) -> str:
        return self.refuse or ""

    def output(self) -> OutputEvent:
        return self._events.popleft()


def success(payload: bytes = b"") -> List[OutputEvent]:
    events = [OutputEvent.output(payload)] if payload else []
    return events + [OutputEvent.exit_status(0), OutputEvent.done()]


def failure(message: bytes = b"failed\n", status: int = 1) -> List[OutputEvent]:
    return [OutputEvent.output(message, stream=2), OutputEvent.exit_status(status), OutputEvent.done()]


def keytab_bytes(*specs: Tuple[str, int]) -> bytes:
    """Builds a keytab image with one aes256 entry per (principal, kvno)."""
    entries = [
        KeytabEntry(Principal.parse(name, REALM), kvno, 18, bytes([kvno]) * 32, timestamp=1000)
        for name, kvno in specs
    ]
    return encode_keytab(entries)


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def channel(transport: ScriptedTransport, sink: CollectingSink) -> Channel:
    return Channel(transport, sink)
