#!/usr/bin/env -S python3 -B -u
"""
Session protocol handler for the debug console.

One Session serves one client connection: it turns the incoming byte stream
into lines (with backspace editing), keeps a bounded history of accepted
lines, hands each line to the dispatcher and writes the prompt.

Telnet option negotiation is not implemented; IAC command sequences sent by
telnet clients are skipped.
"""

import codecs
import selectors
import socket
import threading
from collections import deque
from typing import Iterator, List, Optional

from .models import CommandNode
from .output import OutputRouter
from .structured_logging import StructuredLogger, get_logger


RECV_SIZE = 4096

# Control bytes
NUL = 0x00
ETX = 0x03   # Ctrl-C
BS = 0x08
TAB = 0x09
LF = 0x0a
CR = 0x0d
DEL = 0x7f

# Telnet commands
IAC = 0xff
SB = 0xfa
SE = 0xf0
WILL, WONT, DO, DONT = 0xfb, 0xfc, 0xfd, 0xfe

_NORMAL, _IAC, _OPTION, _SUBNEG, _SUBNEG_IAC = range(5)


class LineEditor:
    """
    Incremental line assembler.

    Lines end with LF, CR, CR LF or CR NUL. Backspace and DEL remove the
    character before the cursor and never reach into a completed line.
    """

    def __init__(self):
        self.buffer: List[str] = []
        self.cursor = 0
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._after_cr = False
        self._telnet = _NORMAL

    def feed(self, data: bytes) -> List[str]:
        """Consume bytes and return the lines they complete, in order."""
        lines = []
        for byte in data:
            if self._telnet != _NORMAL:
                self._telnet_byte(byte)
                continue

            after_cr, self._after_cr = self._after_cr, False

            if byte == IAC:
                self._telnet = _IAC
            elif byte == CR:
                lines.append(self._complete())
                self._after_cr = True
            elif byte == LF:
                if not after_cr:
                    lines.append(self._complete())
            elif byte == NUL:
                pass
            elif byte in (BS, DEL):
                self.backspace()
            elif byte == ETX:
                self.clear()
            elif byte == TAB:
                self._insert('\t')
            elif byte < 0x20:
                pass
            else:
                self._insert(self._decoder.decode(bytes((byte,))))
        return lines

    def _telnet_byte(self, byte: int) -> None:
        if self._telnet == _IAC:
            if byte in (WILL, WONT, DO, DONT):
                self._telnet = _OPTION
            elif byte == SB:
                self._telnet = _SUBNEG
            else:
                self._telnet = _NORMAL
        elif self._telnet == _OPTION:
            self._telnet = _NORMAL
        elif self._telnet == _SUBNEG:
            if byte == IAC:
                self._telnet = _SUBNEG_IAC
        elif self._telnet == _SUBNEG_IAC:
            self._telnet = _NORMAL if byte == SE else _SUBNEG

    def _insert(self, text: str) -> None:
        for char in text:
            self.buffer.insert(self.cursor, char)
            self.cursor += 1

    def backspace(self) -> None:
        pending, _ = self._decoder.getstate()
        if pending:
            # drop an incomplete multi-byte character
            self._decoder.reset()
            return
        if self.cursor > 0:
            del self.buffer[self.cursor - 1]
            self.cursor -= 1

    def clear(self) -> None:
        self.buffer.clear()
        self.cursor = 0
        self._decoder.reset()

    def _complete(self) -> str:
        self._insert(self._decoder.decode(b'', final=True))
        line = ''.join(self.buffer)
        self.clear()
        return line

    @property
    def pending(self) -> str:
        """The in-progress line."""
        return ''.join(self.buffer)


class HistoryRing:
    """Bounded history of accepted lines; the oldest entry is evicted when full."""

    def __init__(self, size: int):
        self.size = size
        self._lines = deque(maxlen=size)

    def append(self, line: str) -> None:
        self._lines.append(line)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __len__(self) -> int:
        return len(self._lines)


class Session:
    """
    Per-connection protocol state and receive loop.

    The receive wait also watches the console's wake socket, so the server
    thread leaves it as soon as stop() signals, even if the client is idle.
    """

    def __init__(self, sock: socket.socket, peer: str, hostname: str,
                 history_size: int, dispatcher, router: OutputRouter,
                 wake: Optional[socket.socket] = None,
                 stop_event: Optional[threading.Event] = None,
                 logger: Optional[StructuredLogger] = None):
        self.sock = sock
        self.peer = peer
        self.hostname = hostname
        self.dispatcher = dispatcher
        self.router = router
        self.wake = wake
        self.stop_event = stop_event or threading.Event()
        self.logger = (logger or get_logger(__name__)).bind(peer=peer)

        self.editor = LineEditor()
        self.history = HistoryRing(history_size)
        self.argv: List[str] = []
        self.context: Optional[CommandNode] = None
        self.closing = False

    @property
    def prompt(self) -> str:
        if self.context is not None:
            return f"{self.hostname}({self.context.name})> "
        return f"{self.hostname}> "

    def close(self) -> None:
        """Ask the session to end once the current line is handled."""
        self.closing = True

    def run(self) -> None:
        """Serve the client until it leaves, disconnects or the console stops."""
        selector = selectors.DefaultSelector()
        selector.register(self.sock, selectors.EVENT_READ)
        if self.wake is not None:
            selector.register(self.wake, selectors.EVENT_READ)

        self.router.attach(self.sock)
        try:
            self.router.emit(self.prompt)
            while not self.closing and not self.stop_event.is_set():
                events = selector.select()
                if any(key.fileobj is self.wake for key, _ in events) or self.stop_event.is_set():
                    self.logger.debug("Session interrupted by stop")
                    break

                try:
                    data = self.sock.recv(RECV_SIZE)
                except OSError as e:
                    self.logger.warning(f"Receive failed: {e}")
                    break
                if not data:
                    break

                for line in self.editor.feed(data):
                    self.handle_line(line)
                    if self.closing or self.stop_event.is_set():
                        break
        finally:
            self.router.detach()
            selector.close()

    def handle_line(self, line: str) -> None:
        """Record, dispatch and prompt for one completed line."""
        if line.strip():
            self.history.append(line)
            self.dispatcher.dispatch(self, line)
        if not self.closing:
            self.router.emit(self.prompt)
