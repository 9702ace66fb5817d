#!/usr/bin/env -S python3 -B -u
"""
Data Models for the Debug Console

This module provides the typed data structures shared by the console
components: server parameters, lifecycle state, command nodes and the
capability record.

Key Features:
- Immutable, validated server parameters
- Explicit lifecycle state enumeration
- Registration-ordered command tree nodes
"""

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from enum import Enum
import ipaddress

from .exceptions import ConfigurationError


# User command handler: receives the tokens that follow the command name(s)
CommandHandler = Callable[[List[str]], Any]

# Server thread hook: receives its opaque argument, returns 0 on success
ServerHook = Callable[[Any], int]

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 55555
DEFAULT_HOSTNAME = "dbgcon"
DEFAULT_MAX_USER_COMMANDS = 50
DEFAULT_MAX_PARENT_COMMANDS = 10
DEFAULT_HISTORY_SIZE = 32


class LifecycleState(str, Enum):
    """Console lifecycle state."""
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class ServerParameters:
    """
    Console server parameters.

    Captured once by DebugConsole.init() and never modified afterwards.
    Port 0 binds an ephemeral port; see DebugConsole.server_address.
    """
    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    hostname: str = DEFAULT_HOSTNAME
    max_user_commands: int = DEFAULT_MAX_USER_COMMANDS
    max_parent_commands: int = DEFAULT_MAX_PARENT_COMMANDS
    history_size: int = DEFAULT_HISTORY_SIZE
    init_hook: Optional[ServerHook] = None
    init_hook_arg: Any = None
    term_hook: Optional[ServerHook] = None
    term_hook_arg: Any = None

    def __post_init__(self):
        """Validate parameter values after initialization."""
        try:
            ipaddress.ip_address(self.address)
        except ValueError as e:
            raise ConfigurationError(f"Invalid bind address: {self.address!r}", cause=e) from e

        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port: {self.port!r} (expected 0-65535)")

        if not isinstance(self.hostname, str):
            raise ConfigurationError(f"Invalid hostname: {self.hostname!r}")

        for name in ('max_user_commands', 'max_parent_commands', 'history_size'):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"Invalid {name}: {value!r} (expected a non-negative integer)")

        for name in ('init_hook', 'term_hook'):
            hook = getattr(self, name)
            if hook is not None and not callable(hook):
                raise ConfigurationError(f"{name} must be callable, got {type(hook).__name__}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'ServerParameters':
        """
        Build parameters from a configuration mapping.

        Hooks cannot be expressed in a config file and are rejected along
        with any other unknown key.
        """
        allowed = {f.name for f in fields(cls)} - {
            'init_hook', 'init_hook_arg', 'term_hook', 'term_hook_arg'
        }
        unknown = sorted(set(config) - allowed)
        if unknown:
            raise ConfigurationError(f"Unknown server parameter(s): {', '.join(unknown)}")
        return cls(**dict(config))


@dataclass
class CommandNode:
    """
    One entry of the command registry.

    The name keeps the case it was registered in; lookups compare the
    casefolded key.
    """
    name: str
    handler: Optional[CommandHandler] = None
    help_text: Optional[str] = None
    parent: Optional['CommandNode'] = field(default=None, repr=False)
    children: Dict[str, 'CommandNode'] = field(default_factory=dict, repr=False)

    @property
    def key(self) -> str:
        return command_key(self.name)

    @property
    def is_group(self) -> bool:
        """True for a top-level node without a handler (only owns children)."""
        return self.handler is None

    @property
    def qualified_name(self) -> str:
        if self.parent is not None:
            return f"{self.parent.name} {self.name}"
        return self.name

    def child(self, name: str) -> Optional['CommandNode']:
        return self.children.get(command_key(name))


@dataclass(frozen=True)
class ConsoleCapability:
    """Capability record returned by DebugConsole.capability()."""
    state: LifecycleState
    max_user_commands: int
    max_parent_commands: int
    history_size: int
    registered_commands: int
    registered_parents: int
    builtin_commands: Tuple[str, ...]

    @property
    def free_command_slots(self) -> int:
        return max(0, self.max_user_commands - self.registered_commands)


def command_key(name: str) -> str:
    """Case-insensitive lookup key for a command name."""
    return name.casefold()
