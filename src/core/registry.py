#!/usr/bin/env -S python3 -B -u
"""
Command registry for the debug console.

Holds a two-level namespace of commands: top-level commands, each of which
may own a bounded set of sub-commands. Names are case-insensitive for lookup
and keep their registration case for display.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

from .exceptions import (
    CapacityError,
    CommandNotFoundError,
    NameConflictError,
    UnknownParentError,
)
from .models import CommandHandler, CommandNode, command_key


# Built-in commands handled by the dispatcher; not available as top-level user names
RESERVED_NAMES = ('help', 'history', 'exit', 'quit')


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a tokenized line against the registry."""
    node: CommandNode
    consumed: int


class CommandRegistry:
    """Two-level command namespace with slot limits."""

    def __init__(self, max_user_commands: int, max_parent_commands: int):
        self.max_user_commands = max_user_commands
        self.max_parent_commands = max_parent_commands
        self._commands: Dict[str, CommandNode] = {}
        self._count = 0

    def register(self, name: str, handler: Optional[CommandHandler],
                 help_text: Optional[str] = None,
                 parent: Optional[str] = None) -> CommandNode:
        """
        Register a command, optionally as a sub-command of a top-level command.

        A top-level command may be registered without a handler, in which
        case it only groups sub-commands.

        Raises:
            NameConflictError: name collides with a sibling or a built-in
            UnknownParentError: parent is given but not registered
            CapacityError: a slot limit is exhausted
        """
        name = self._validate_name(name)
        if handler is not None and not callable(handler):
            raise TypeError(f"handler for '{name}' must be callable")

        if parent is None:
            return self._register_top_level(name, handler, help_text)

        if handler is None:
            raise TypeError(f"sub-command '{name}' requires a handler")

        parent_node = self._commands.get(command_key(parent))
        if parent_node is None:
            raise UnknownParentError(parent, available=[n.name for n in self])

        existing = parent_node.child(name)
        if existing is not None:
            raise NameConflictError(name, existing=existing.name, parent=parent_node.name)

        self._check_total_capacity(name)
        if len(parent_node.children) >= self.max_parent_commands:
            raise CapacityError(name, 'max_parent_commands', self.max_parent_commands)
        if not parent_node.children and self.parent_count >= self.max_parent_commands:
            raise CapacityError(name, 'max_parent_commands', self.max_parent_commands)

        node = CommandNode(name=name, handler=handler, help_text=help_text, parent=parent_node)
        parent_node.children[node.key] = node
        self._count += 1
        return node

    def _register_top_level(self, name: str, handler: Optional[CommandHandler],
                            help_text: Optional[str]) -> CommandNode:
        key = command_key(name)
        if key in RESERVED_NAMES:
            raise NameConflictError(name, reserved=True)

        existing = self._commands.get(key)
        if existing is not None:
            raise NameConflictError(name, existing=existing.name)

        self._check_total_capacity(name)

        node = CommandNode(name=name, handler=handler, help_text=help_text)
        self._commands[key] = node
        self._count += 1
        return node

    def _check_total_capacity(self, name: str) -> None:
        if self._count >= self.max_user_commands:
            raise CapacityError(name, 'max_user_commands', self.max_user_commands)

    @staticmethod
    def _validate_name(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("command name must be a non-empty string")
        if len(name.split()) != 1:
            raise ValueError(f"command name must be a single word: {name!r}")
        return name.strip()

    def resolve(self, tokens: Sequence[str]) -> Resolution:
        """
        Resolve the leading tokens of a line to the most specific command.

        A parent and child pair wins over the parent alone receiving the
        child name as its first argument.

        Raises:
            CommandNotFoundError: no command matches
        """
        if not tokens:
            raise CommandNotFoundError('')

        top = self._commands.get(command_key(tokens[0]))
        if top is None:
            raise CommandNotFoundError(tokens[0])

        if len(tokens) > 1:
            child = top.child(tokens[1])
            if child is not None:
                return Resolution(child, 2)
            if top.is_group:
                raise CommandNotFoundError(f"{tokens[0]} {tokens[1]}")

        return Resolution(top, 1)

    def resolve_in_context(self, parent: CommandNode, tokens: Sequence[str]) -> Resolution:
        """Resolve the first token among the sub-commands of parent."""
        if not tokens:
            raise CommandNotFoundError('')
        child = parent.child(tokens[0])
        if child is None:
            raise CommandNotFoundError(tokens[0])
        return Resolution(child, 1)

    def get(self, name: str) -> Optional[CommandNode]:
        """Look up a top-level command by name."""
        return self._commands.get(command_key(name))

    def walk(self) -> Iterator[CommandNode]:
        """Yield every node in registration order, each parent before its children."""
        for node in self._commands.values():
            yield node
            yield from node.children.values()

    def names(self) -> List[str]:
        return [node.qualified_name for node in self.walk()]

    @property
    def parent_count(self) -> int:
        """Number of top-level commands that own sub-commands."""
        return sum(1 for node in self._commands.values() if node.children)

    def clear(self) -> None:
        for node in self._commands.values():
            node.children.clear()
        self._commands.clear()
        self._count = 0

    def __iter__(self) -> Iterator[CommandNode]:
        return iter(list(self._commands.values()))

    def __len__(self) -> int:
        return self._count

    def __contains__(self, name: str) -> bool:
        return command_key(name) in self._commands
