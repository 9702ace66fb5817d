"""
Structured Exception Hierarchy for the Debug Console

Every failure a public console operation can report is a ConsoleError
subclass carrying an operator-facing message, an optional suggestion, an
exit code for the command-line tools and machine-readable details.

Families:
- Lifecycle: operation called in the wrong state
- Registration: name conflicts, unknown parents, exhausted slots
- Transport: bind, accept, thread spawn and write failures
- Hooks: init/term hook reported failure
- Dispatch and configuration
"""

import sys
import functools
import traceback
from typing import Optional, Dict, Any, List
from enum import IntEnum


class ErrorCode(IntEnum):
    """Standard exit codes for the console tools."""
    SUCCESS = 0
    NOT_FOUND = 2
    STATE_ERROR = 10
    CONFIGURATION_ERROR = 11
    TRANSPORT_ERROR = 12
    REGISTRATION_ERROR = 13
    HOOK_ERROR = 14
    INTERNAL_ERROR = 15


class ConsoleError(Exception):
    """
    Base class for all debug console errors.

    Args:
        message: One-line description shown to the operator
        suggestion: What to do about it, if anything useful can be said
        error_code: Exit code used by ErrorHandler
        details: Key/value facts shown from verbosity 1
        cause: Lower-level exception, shown from verbosity 2
    """

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def format_error(self, verbose_level: int = 0) -> str:
        """
        Render the error for a terminal.

        0 prints message and suggestion, 1 adds details, 2 adds the cause,
        3 adds the traceback of this exception when it has been raised.
        """
        lines = [f"Error: {self.message}"]
        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")

        if verbose_level >= 1 and self.details:
            lines.append("\nDetails:")
            lines.extend(f"  {key}: {value}" for key, value in self.details.items())

        if verbose_level >= 2 and self.cause is not None:
            lines.append(f"\nCaused by: {type(self.cause).__name__}: {self.cause}")

        if verbose_level >= 3:
            lines.append("\nStack trace:")
            if self.__traceback__ is not None:
                lines.append(''.join(traceback.format_tb(self.__traceback__)).rstrip())
            else:
                lines.append("(not raised, no traceback)")

        return "\n".join(lines)


# Lifecycle Errors

class StateOrderViolationError(ConsoleError):
    """Raised when an operation is invoked outside its legal lifecycle state."""

    def __init__(self, operation: str, state: str, allowed: Optional[List[str]] = None, **kwargs):
        details = kwargs.pop('details', {})
        details.update({
            "operation": operation,
            "state": state,
            "allowed_states": allowed or []
        })
        kwargs.pop('error_code', None)
        suggestion = kwargs.pop('suggestion', None)
        if suggestion is None and allowed:
            suggestion = f"'{operation}' is only legal in state(s): {', '.join(allowed)}"
        super().__init__(
            message=f"Cannot {operation} while console is {state}",
            suggestion=suggestion,
            error_code=ErrorCode.STATE_ERROR,
            details=details,
            **kwargs
        )
        self.operation = operation
        self.state = state


class AlreadyInitializedError(StateOrderViolationError):
    """Raised when init is called on a console that is already set up."""

    def __init__(self, state: str, **kwargs):
        super().__init__(
            "init",
            state,
            allowed=["UNINITIALIZED"],
            suggestion="Call term() (after stop() if running) before initializing again",
            **kwargs
        )


# Registration Errors

class RegistrationError(ConsoleError):
    """Base class for command registration failures."""

    def __init__(self, message: str, **kwargs):
        kwargs['error_code'] = ErrorCode.REGISTRATION_ERROR
        super().__init__(message=message, **kwargs)


class NameConflictError(RegistrationError):
    """Raised when a command name collides with a sibling or a built-in."""

    def __init__(self, name: str, existing: Optional[str] = None,
                 parent: Optional[str] = None, reserved: bool = False, **kwargs):
        details = kwargs.pop('details', {})
        details.update({"name": name, "existing": existing, "parent": parent})
        if reserved:
            message = f"Command name '{name}' is reserved for a built-in command"
        elif parent:
            message = f"Command '{name}' already registered under '{parent}' as '{existing}'"
        else:
            message = f"Command '{name}' already registered as '{existing}'"
        super().__init__(
            message,
            suggestion="Command names are case-insensitive; choose a distinct name",
            details=details,
            **kwargs
        )
        self.name = name


class UnknownParentError(RegistrationError):
    """Raised when a sub-command names a parent that is not registered."""

    def __init__(self, parent: str, available: Optional[List[str]] = None, **kwargs):
        hint = ""
        if available:
            hint = f"\nRegistered top-level commands: {', '.join(available)}"
        super().__init__(
            f"Parent command '{parent}' not found",
            suggestion=f"Register the parent command before its sub-commands.{hint}",
            details={"parent": parent},
            **kwargs
        )
        self.parent = parent


class CapacityError(RegistrationError):
    """Raised when a configured command slot limit is exhausted."""

    def __init__(self, name: str, limit_name: str, limit: int, **kwargs):
        super().__init__(
            f"Cannot register '{name}': {limit_name} limit of {limit} reached",
            suggestion=f"Increase {limit_name} in the server parameters",
            details={"name": name, "limit_name": limit_name, "limit": limit},
            **kwargs
        )
        self.limit_name = limit_name
        self.limit = limit


# Transport and Setup Errors

class TransportError(ConsoleError):
    """Base class for socket and thread setup failures."""

    def __init__(self, message: str, **kwargs):
        kwargs['error_code'] = ErrorCode.TRANSPORT_ERROR
        super().__init__(message=message, **kwargs)


class BindFailedError(TransportError):
    """Raised when the listening socket cannot be bound."""

    def __init__(self, address: str, port: int, error: str, **kwargs):
        super().__init__(
            f"Failed to listen on {address}:{port}",
            suggestion=(
                "The listening socket could not be opened. Check:\n"
                "  1. No other process is using the port\n"
                "  2. The address is configured on this host\n"
                "  3. Ports below 1024 require elevated privileges"
            ),
            details={"address": address, "port": port, "socket_error": error},
            **kwargs
        )


class AcceptFailedError(TransportError):
    """Raised when accepting a client connection fails."""

    def __init__(self, error: str, **kwargs):
        super().__init__(
            "Failed to accept client connection",
            details={"socket_error": error},
            **kwargs
        )


class ThreadSpawnFailedError(TransportError):
    """Raised when the server thread cannot be started."""

    def __init__(self, error: str, **kwargs):
        super().__init__(
            "Failed to spawn console server thread",
            suggestion="The process may have reached its thread limit",
            details={"thread_error": error},
            **kwargs
        )


class WriteFailedError(TransportError):
    """Raised when writing to the connected client fails."""

    def __init__(self, error: str, **kwargs):
        super().__init__(
            "Failed to write to console client",
            details={"socket_error": error},
            **kwargs
        )


# Hook Errors

class HookError(ConsoleError):
    """Base class for caller-supplied hook failures."""

    def __init__(self, hook: str, result: Any, **kwargs):
        kwargs['error_code'] = ErrorCode.HOOK_ERROR
        super().__init__(
            message=f"Server {hook} hook failed (result: {result!r})",
            details={"hook": hook, "result": result},
            **kwargs
        )
        self.hook = hook
        self.result = result


class InitHookFailedError(HookError):
    """Raised by start() when the init hook signals failure."""

    def __init__(self, result: Any, **kwargs):
        super().__init__("init", result, **kwargs)
        self.suggestion = (
            "The console was left INITIALIZED and no socket was opened. "
            "Fix the hook's precondition and call start() again"
        )


class TermHookFailedError(HookError):
    """Raised by stop() when the term hook signals failure; the console is STOPPED regardless."""

    def __init__(self, result: Any, **kwargs):
        super().__init__("term", result, **kwargs)


# Dispatch Errors

class CommandNotFoundError(ConsoleError):
    """Raised by the registry when a line resolves to no command."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            message=f"Unknown command: {name}",
            suggestion="Type 'help' to list available commands",
            error_code=ErrorCode.NOT_FOUND,
            details={"name": name},
            **kwargs
        )
        self.name = name


# Configuration Errors

class ConfigurationError(ConsoleError):
    """Raised when server parameters or the config file are invalid."""

    def __init__(self, message: str, config_file: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_file:
            details['config_file'] = config_file
            suggestion = f"Fix the value in {config_file} or remove it to use the default"
        else:
            suggestion = "Check the ServerParameters values passed to init()"
        suggestion = kwargs.pop('suggestion', suggestion)
        super().__init__(
            message=message,
            suggestion=suggestion,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )
        self.config_file = config_file


# Error Handler Utility

class ErrorHandler:
    """Turns exceptions escaping a command-line entry point into exit codes."""

    verbose_level = 0

    @classmethod
    def set_verbose_level(cls, verbose_level: int) -> None:
        """Verbosity used by wrap_main; entry points set it after parsing -v."""
        cls.verbose_level = verbose_level

    @staticmethod
    def handle_error(error: Exception, verbose_level: int = 0) -> int:
        """
        Print an error to stderr.

        Returns:
            The error's exit code, or INTERNAL_ERROR for unexpected exceptions
        """
        if isinstance(error, ConsoleError):
            print(error.format_error(verbose_level), file=sys.stderr)
            return int(error.error_code)

        print(f"Error: Unexpected {type(error).__name__}", file=sys.stderr)
        print("Suggestion: This is probably a bug; rerun with -vvv and report the output", file=sys.stderr)
        if verbose_level >= 1:
            print(f"\nError message: {error}", file=sys.stderr)
        if verbose_level >= 3:
            print("\nStack trace:", file=sys.stderr)
            traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)
        return int(ErrorCode.INTERNAL_ERROR)

    @classmethod
    def wrap_main(cls, main_func):
        """
        Decorator for entry points: errors become messages and exit codes.

        Usage:
            @ErrorHandler.wrap_main
            def run(argv=None) -> int:
                ...
        """
        @functools.wraps(main_func)
        def wrapper(*args, **kwargs):
            try:
                return main_func(*args, **kwargs)
            except KeyboardInterrupt:
                print("\nInterrupted", file=sys.stderr)
                return int(ErrorCode.INTERNAL_ERROR)
            except Exception as e:
                return cls.handle_error(e, cls.verbose_level)

        return wrapper
