#!/usr/bin/env -S python3 -B -u
"""
Line-protocol client for a running debug console.
"""

import socket
from typing import Optional

from ..core.exceptions import TransportError
from ..core.structured_logging import get_logger


PROMPT_SUFFIX = '> '
RECV_SIZE = 4096


class ConsoleClient:
    """
    Blocking client that sends one line and collects output up to the next prompt.

    The server writes a prompt after every line except the one that ends
    the session, so send_command() returns either at the next prompt or
    when the server closes the connection.
    """

    def __init__(self, host: str, port: int, timeout: float = 5.0, verbose_level: int = 0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logger = get_logger(__name__, verbose_level)
        self.sock: Optional[socket.socket] = None
        self.prompt = ''

    @property
    def connected(self) -> bool:
        return self.sock is not None

    def connect(self) -> str:
        """Open the connection and return the server's first prompt."""
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise TransportError(
                f"Cannot connect to debug console at {self.host}:{self.port}",
                suggestion="Check that the console is running and the address is correct",
                details={"socket_error": str(e)},
                cause=e,
            ) from e

        self.logger.info(f"Connected to {self.host}:{self.port}")
        return self._read_until_prompt()

    def send_command(self, line: str) -> str:
        """
        Send one line and return the output it produced, without the prompt.

        Raises:
            TransportError: not connected, or the connection failed
        """
        if self.sock is None:
            raise TransportError("Not connected to a debug console",
                                 suggestion="Use 'connect' first")
        try:
            self.sock.sendall(line.encode('utf-8') + b'\r\n')
        except OSError as e:
            self.close()
            raise TransportError(f"Send failed: {e}", cause=e) from e
        self.logger.debug("Sent line", line=line)
        return self._read_until_prompt()

    def _read_until_prompt(self) -> str:
        chunks = []
        text = ''
        while True:
            try:
                data = self.sock.recv(RECV_SIZE)
            except socket.timeout as e:
                raise TransportError(
                    f"No prompt from {self.host}:{self.port} within {self.timeout}s",
                    details={"received": text},
                    cause=e,
                ) from e
            except OSError as e:
                self.close()
                raise TransportError(f"Receive failed: {e}", cause=e) from e

            if not data:
                # server ended the session
                self.close()
                self.prompt = ''
                return text.replace('\r\n', '\n')

            chunks.append(data)
            text = b''.join(chunks).decode('utf-8', errors='replace')
            last_line = text.rsplit('\n', 1)[-1]
            if last_line.endswith(PROMPT_SUFFIX):
                self.prompt = last_line
                body = text[:len(text) - len(last_line)]
                return body.replace('\r\n', '\n')

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.close()
        finally:
            self.sock = None
            self.logger.info(f"Disconnected from {self.host}:{self.port}")
