#!/usr/bin/env -S python3 -B -u
"""
Output router for the debug console.

Every byte sent to the connected client goes through OutputRouter.emit():
command output written by handlers, built-in command listings, prompts and
log records bridged by ConsoleLogHandler. Lines are converted from the host's
"\\n" to the protocol's "\\r\\n" on the way out.
"""

import logging
import re
import socket
import threading
from typing import Any, Mapping, Optional, Sequence, Union

from .exceptions import WriteFailedError
from .structured_logging import StructuredLogger, get_logger


_BARE_LF = re.compile(r'(?<!\r)\n')

FormatArgs = Union[Sequence[Any], Mapping[str, Any]]


def to_wire(text: str) -> str:
    """Convert bare line feeds to CR LF."""
    return _BARE_LF.sub('\r\n', text)


class OutputRouter:
    """
    Single byte sink writing to the currently connected client.

    Only meant to be used from the server thread, i.e. from inside a
    command handler. Writes with no client attached return -1.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or get_logger(__name__)
        self._sock: Optional[socket.socket] = None
        self._owner: Optional[int] = None

    def attach(self, sock: socket.socket) -> None:
        """Route output to sock; the calling thread becomes the owner."""
        self._sock = sock
        self._owner = threading.get_ident()

    def detach(self) -> None:
        self._sock = None
        self._owner = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def owner(self) -> Optional[int]:
        """Thread ident of the server thread while a client is attached."""
        return self._owner

    def write(self, fmt: str, *args: Any) -> int:
        """printf-style write: fmt % args."""
        return self.write_va(fmt, args)

    def write_va(self, fmt: str, args: FormatArgs = ()) -> int:
        """
        Write with a pre-assembled argument tuple or mapping.

        Returns:
            Number of characters accepted, not counting newline conversion,
            or -1 on a formatting or write failure
        """
        if isinstance(args, Mapping):
            values = args
        else:
            values = tuple(args)

        try:
            text = fmt % values
        except (TypeError, ValueError, KeyError) as e:
            self.logger.warning(f"Bad console output format {fmt!r}: {e}")
            return -1

        return self.emit(text)

    def emit(self, text: str) -> int:
        """Send text to the client as-is apart from newline conversion."""
        sock = self._sock
        if sock is None:
            return -1

        data = to_wire(text).encode('utf-8', errors='replace')
        try:
            sock.sendall(data)
        except OSError as e:
            error = WriteFailedError(str(e), cause=e)
            self.logger.warning(error.message, socket_error=str(e))
            return -1

        return len(text)

    def writeln(self, text: str = '') -> int:
        return self.emit(text + '\n')


class ConsoleLogHandler(logging.Handler):
    """
    Bridge standard logging records to the console client.

    Records are forwarded only when they are logged on the server thread
    while a client is attached, i.e. from inside a command handler; records
    from other threads are dropped.
    """

    def __init__(self, router: OutputRouter, level: int = logging.NOTSET):
        super().__init__(level)
        self.router = router

    def emit(self, record: logging.LogRecord) -> None:
        if self.router.owner is None or record.thread != self.router.owner:
            return
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.router.write_va("%s\n", (msg,))
