#!/usr/bin/env -S python3 -B -u
"""
Debug console lifecycle controller.

DebugConsole is the context object an application owns to expose a debug
console over TCP. It moves through the states

    UNINITIALIZED --init--> INITIALIZED --start--> RUNNING --stop--> STOPPED
    INITIALIZED/STOPPED --term--> UNINITIALIZED

and runs exactly one server thread while RUNNING. The server thread calls
the init hook, listens, and serves one client at a time; all command
handlers run on it. stop() wakes the thread through a socket pair, shuts
down the active client connection and joins the thread. There is no
timeout on that join: a handler that never returns blocks stop().

Lifecycle methods are not thread-safe; call them from one thread.

Example:
    console = DebugConsole()
    console.init(ServerParameters(hostname='worker-1'))
    console.register_command('stats', lambda argv: console.log("%d jobs\\n", jobs))
    console.start()
    ...
    console.stop()
    console.term()
"""

import logging
import selectors
import socket
import threading
from typing import Any, Optional, Tuple

from .dispatcher import Dispatcher
from .exceptions import (
    AcceptFailedError,
    AlreadyInitializedError,
    BindFailedError,
    HookError,
    InitHookFailedError,
    StateOrderViolationError,
    TermHookFailedError,
    ThreadSpawnFailedError,
)
from .models import (
    CommandHandler,
    CommandNode,
    ConsoleCapability,
    LifecycleState,
    ServerParameters,
    ServerHook,
)
from .output import ConsoleLogHandler, FormatArgs, OutputRouter
from .registry import RESERVED_NAMES, CommandRegistry
from .session import Session
from .structured_logging import get_logger


LISTEN_BACKLOG = 1


class DebugConsole:
    """Embedded debug console served over a TCP line protocol."""

    def __init__(self, verbose_level: int = 0):
        self.verbose_level = verbose_level
        self.logger = get_logger(__name__, verbose_level)

        self._state = LifecycleState.UNINITIALIZED
        self._params: Optional[ServerParameters] = None
        self._registry: Optional[CommandRegistry] = None
        self._router = OutputRouter(self.logger)

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._started = threading.Event()
        self._startup_error: Optional[Exception] = None
        self._term_error: Optional[HookError] = None

        self._wake_r: Optional[socket.socket] = None
        self._wake_w: Optional[socket.socket] = None
        self._server_address: Optional[Tuple[str, int]] = None
        self._client: Optional[socket.socket] = None
        self._client_lock = threading.Lock()

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def params(self) -> Optional[ServerParameters]:
        return self._params

    @property
    def registry(self) -> Optional[CommandRegistry]:
        return self._registry

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        """(address, port) actually bound while RUNNING."""
        if self._state != LifecycleState.RUNNING:
            return None
        return self._server_address

    def _require(self, operation: str, *allowed: LifecycleState) -> None:
        if self._state not in allowed:
            raise StateOrderViolationError(operation, self._state.value, [s.value for s in allowed])

    def _transition(self, operation: str, new_state: LifecycleState, **details: Any) -> None:
        old_state, self._state = self._state, new_state
        self.logger.log_transition(operation, old_state.value, new_state.value, **details)

    def init(self, params: Optional[ServerParameters] = None) -> None:
        """
        Capture server parameters and create an empty command registry.

        Raises:
            AlreadyInitializedError: the console is not UNINITIALIZED
        """
        if self._state != LifecycleState.UNINITIALIZED:
            raise AlreadyInitializedError(self._state.value)

        params = params if params is not None else ServerParameters()
        self._params = params
        self._registry = CommandRegistry(params.max_user_commands, params.max_parent_commands)
        self._transition('init', LifecycleState.INITIALIZED,
                         address=params.address, port=params.port, hostname=params.hostname)

    def register_command(self, name: str, handler: Optional[CommandHandler],
                         help_text: Optional[str] = None,
                         parent: Optional[str] = None) -> CommandNode:
        """
        Register a user command, or a sub-command of a registered top-level command.

        The handler is called on the server thread with the list of tokens
        that follow the command name(s). Command names are case-insensitive
        and displayed in the case given here. A top-level command registered
        with handler=None is a group: typing its name enters its context.

        Raises:
            StateOrderViolationError: not INITIALIZED
            NameConflictError, UnknownParentError, CapacityError
        """
        self._require('register_command', LifecycleState.INITIALIZED)
        node = self._registry.register(name, handler, help_text=help_text, parent=parent)
        self.logger.debug(f"Registered command '{node.qualified_name}'",
                          total=len(self._registry))
        return node

    def start(self) -> None:
        """
        Spawn the server thread and wait until it accepts connections.

        Raises:
            StateOrderViolationError: not INITIALIZED
            ThreadSpawnFailedError: the thread could not be started
            InitHookFailedError: the init hook failed; state stays INITIALIZED
            BindFailedError: the listening socket could not be opened
        """
        self._require('start', LifecycleState.INITIALIZED)

        with self.logger.timer('console start'):
            self._stop_event.clear()
            self._started.clear()
            self._startup_error = None
            self._term_error = None
            self._wake_r, self._wake_w = socket.socketpair()

            dispatcher = Dispatcher(self._registry, self.logger)
            thread = threading.Thread(target=self._serve, args=(dispatcher,),
                                      name='dbgcon-server', daemon=True)
            try:
                thread.start()
            except RuntimeError as e:
                self._close_wake()
                raise ThreadSpawnFailedError(str(e), cause=e) from e

            self._started.wait()
            if self._startup_error is not None:
                thread.join()
                self._close_wake()
                error, self._startup_error = self._startup_error, None
                raise error

            self._thread = thread

        host, port = self._server_address
        self._transition('start', LifecycleState.RUNNING, address=host, port=port)

    def stop(self) -> None:
        """
        Disconnect the client, stop the server thread and wait for it to exit.

        Raises:
            StateOrderViolationError: not RUNNING
            TermHookFailedError: the term hook failed; the console is STOPPED anyway
        """
        self._require('stop', LifecycleState.RUNNING)

        with self.logger.timer('console stop'):
            with self._client_lock:
                self._stop_event.set()
                client = self._client

            self._wake_w.send(b'\0')
            if client is not None:
                try:
                    client.shutdown(socket.SHUT_RDWR)
                except OSError as e:
                    self.logger.debug(f"Client shutdown: {e}")

            self._thread.join()
            self._thread = None
            self._close_wake()

        term_error, self._term_error = self._term_error, None
        self._transition('stop', LifecycleState.STOPPED)
        if term_error is not None:
            raise term_error

    def term(self) -> None:
        """
        Release the registry and parameters.

        Raises:
            StateOrderViolationError: neither INITIALIZED nor STOPPED
        """
        self._require('term', LifecycleState.INITIALIZED, LifecycleState.STOPPED)
        self._registry.clear()
        self._registry = None
        self._params = None
        self._server_address = None
        self._transition('term', LifecycleState.UNINITIALIZED)

    def log(self, fmt: str, *args: Any) -> int:
        """
        Print to the connected client, printf-style.

        Only valid inside a command handler.

        Returns:
            Characters written (before newline conversion), negative on failure
        """
        return self._router.write_va(fmt, args)

    def log_va(self, fmt: str, args: FormatArgs) -> int:
        """Like log(), with an already assembled argument tuple or mapping."""
        return self._router.write_va(fmt, args)

    def log_handler(self, level: int = logging.NOTSET) -> ConsoleLogHandler:
        """A logging handler that forwards records logged inside command handlers."""
        return ConsoleLogHandler(self._router, level)

    def capability(self) -> ConsoleCapability:
        """
        Describe the console's limits and current usage.

        Raises:
            StateOrderViolationError: UNINITIALIZED
        """
        self._require('query capability', LifecycleState.INITIALIZED,
                      LifecycleState.RUNNING, LifecycleState.STOPPED)
        params = self._params
        return ConsoleCapability(
            state=self._state,
            max_user_commands=params.max_user_commands,
            max_parent_commands=params.max_parent_commands,
            history_size=params.history_size,
            registered_commands=len(self._registry),
            registered_parents=self._registry.parent_count,
            builtin_commands=RESERVED_NAMES,
        )

    def _close_wake(self) -> None:
        for sock in (self._wake_r, self._wake_w):
            if sock is not None:
                sock.close()
        self._wake_r = self._wake_w = None

    # Server thread

    def _serve(self, dispatcher: Dispatcher) -> None:
        params = self._params
        try:
            listener = self._startup(params)
        except Exception as e:
            self._startup_error = e
            self._started.set()
            return

        self._started.set()
        try:
            self._accept_loop(listener, dispatcher, params)
        finally:
            listener.close()
            self.logger.debug("Listening socket closed")
            if params.term_hook is not None:
                self._term_error = self._call_hook('term', params.term_hook, params.term_hook_arg)

    def _startup(self, params: ServerParameters) -> socket.socket:
        """Run the init hook and open the listening socket."""
        if params.init_hook is not None:
            error = self._call_hook('init', params.init_hook, params.init_hook_arg)
            if error is not None:
                raise error

        try:
            return self._open_listener(params)
        except BindFailedError as e:
            self.logger.error(e.message, address=params.address, port=params.port)
            # term hook runs whenever the init hook succeeded
            if params.term_hook is not None:
                self._call_hook('term', params.term_hook, params.term_hook_arg)
            raise

    def _call_hook(self, name: str, hook: ServerHook, arg: Any) -> Optional[HookError]:
        """Run a hook; return the error to report, or None on success."""
        error_class = InitHookFailedError if name == 'init' else TermHookFailedError
        try:
            result = hook(arg)
        except Exception as e:
            self.logger.error(f"Server {name} hook raised {type(e).__name__}: {e}")
            return error_class(repr(e), cause=e)

        if result is not None and result != 0:
            self.logger.error(f"Server {name} hook returned {result!r}")
            return error_class(result)
        self.logger.debug(f"Server {name} hook completed")
        return None

    def _open_listener(self, params: ServerParameters) -> socket.socket:
        family = socket.AF_INET6 if ':' in params.address else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((params.address, params.port))
            sock.listen(LISTEN_BACKLOG)
        except OSError as e:
            sock.close()
            raise BindFailedError(params.address, params.port, str(e), cause=e) from e

        self._server_address = sock.getsockname()[:2]
        self.logger.info(f"Debug console listening on {self._server_address[0]}:{self._server_address[1]}")
        return sock

    def _accept_loop(self, listener: socket.socket, dispatcher: Dispatcher,
                     params: ServerParameters) -> None:
        selector = selectors.DefaultSelector()
        selector.register(listener, selectors.EVENT_READ)
        selector.register(self._wake_r, selectors.EVENT_READ)
        try:
            while not self._stop_event.is_set():
                selector.select()
                if self._stop_event.is_set():
                    break
                try:
                    conn, addr = listener.accept()
                except OSError as e:
                    error = AcceptFailedError(str(e), cause=e)
                    self.logger.error(error.message, socket_error=str(e))
                    break
                self._serve_client(conn, addr, dispatcher, params)
        finally:
            selector.close()

    def _serve_client(self, conn: socket.socket, addr, dispatcher: Dispatcher,
                      params: ServerParameters) -> None:
        peer = f"{addr[0]}:{addr[1]}"
        with self._client_lock:
            if self._stop_event.is_set():
                conn.close()
                return
            self._client = conn

        self.logger.log_connection(peer, True)
        session = Session(conn, peer, params.hostname, params.history_size,
                          dispatcher, self._router, wake=self._wake_r,
                          stop_event=self._stop_event, logger=self.logger)
        try:
            session.run()
        finally:
            with self._client_lock:
                self._client = None
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()
            self.logger.log_connection(peer, False, lines=len(session.history))
