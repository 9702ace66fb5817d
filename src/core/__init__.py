#!/usr/bin/env -S python3 -B -u
"""
Debug Console Core

Command registry, session protocol, dispatcher, output router and the
lifecycle controller that runs them on one server thread.
"""

from .server import DebugConsole
from .models import CommandNode, ConsoleCapability, LifecycleState, ServerParameters
from .output import ConsoleLogHandler
from .exceptions import (
    AcceptFailedError,
    AlreadyInitializedError,
    BindFailedError,
    CapacityError,
    CommandNotFoundError,
    ConfigurationError,
    ConsoleError,
    ErrorCode,
    InitHookFailedError,
    NameConflictError,
    StateOrderViolationError,
    TermHookFailedError,
    ThreadSpawnFailedError,
    UnknownParentError,
    WriteFailedError,
)

__all__ = [
    'DebugConsole',
    'CommandNode',
    'ConsoleCapability',
    'ConsoleLogHandler',
    'LifecycleState',
    'ServerParameters',
    'AcceptFailedError',
    'AlreadyInitializedError',
    'BindFailedError',
    'CapacityError',
    'CommandNotFoundError',
    'ConfigurationError',
    'ConsoleError',
    'ErrorCode',
    'InitHookFailedError',
    'NameConflictError',
    'StateOrderViolationError',
    'TermHookFailedError',
    'ThreadSpawnFailedError',
    'UnknownParentError',
    'WriteFailedError',
]
