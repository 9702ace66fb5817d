#!/usr/bin/env -S python3 -B -u
"""
Command dispatcher for the debug console.

Tokenizes a completed line, resolves it to a command and executes it on the
server thread. Built-in commands are matched before user commands; inside a
command group context the group's sub-commands are tried before the global
namespace.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .exceptions import CommandNotFoundError
from .models import CommandNode
from .registry import CommandRegistry, Resolution
from .structured_logging import StructuredLogger, get_logger


def tokenize(line: str) -> List[str]:
    """Split a line on whitespace; no quoting."""
    return line.split()


class Command(ABC):
    """Anything the dispatcher can execute."""

    name: str = ''
    help_text: Optional[str] = None

    @abstractmethod
    def execute(self, session, argv: List[str]) -> None:
        """Run the command with the tokens following its name."""


class UserCommand(Command):
    """A registered command; calls its handler with argv."""

    def __init__(self, node: CommandNode):
        self.node = node
        self.name = node.qualified_name
        self.help_text = node.help_text

    def execute(self, session, argv: List[str]) -> None:
        self.node.handler(argv)


class EnterGroupCommand(Command):
    """Make a handler-less group the session's current context."""

    def __init__(self, node: CommandNode):
        self.node = node
        self.name = node.name
        self.help_text = node.help_text

    def execute(self, session, argv: List[str]) -> None:
        session.context = self.node


class HelpCommand(Command):
    name = 'help'
    usage = 'help [command]'
    help_text = 'List commands, or show help for one command'

    def __init__(self, dispatcher: 'Dispatcher'):
        self.dispatcher = dispatcher

    def execute(self, session, argv: List[str]) -> None:
        rows = []
        if argv:
            builtin = self.dispatcher.builtins.get(argv[0].casefold())
            if builtin is not None:
                rows.append((getattr(builtin, 'usage', builtin.name), builtin.help_text))
            else:
                try:
                    node = self.dispatcher.resolve(session, argv).node
                except CommandNotFoundError as e:
                    session.router.writeln(e.message)
                    return
                rows.append((node.qualified_name, node.help_text))
                rows.extend((child.qualified_name, child.help_text)
                            for child in node.children.values())
        else:
            session.router.writeln("Available commands:")
            for builtin in self.dispatcher.builtins.values():
                rows.append((getattr(builtin, 'usage', builtin.name), builtin.help_text))
            rows.extend((node.qualified_name, node.help_text)
                        for node in self.dispatcher.registry.walk())

        width = max(20, max(len(name) for name, _ in rows) + 2)
        for name, text in rows:
            if text:
                session.router.writeln(f"  {name:<{width}}{text}")
            else:
                session.router.writeln(f"  {name}")


class HistoryCommand(Command):
    name = 'history'
    help_text = 'Show previously entered lines'

    def execute(self, session, argv: List[str]) -> None:
        for index, line in enumerate(session.history, 1):
            session.router.writeln(f"{index:5d}  {line}")


class ExitCommand(Command):
    name = 'exit'
    help_text = 'Leave the current command group, or end the session'

    def execute(self, session, argv: List[str]) -> None:
        if session.context is not None:
            session.context = None
            return
        session.router.writeln("Goodbye!")
        session.close()


class QuitCommand(Command):
    name = 'quit'
    help_text = 'End the session'

    def execute(self, session, argv: List[str]) -> None:
        session.router.writeln("Goodbye!")
        session.close()


class Dispatcher:
    """Resolve lines to commands and execute them synchronously."""

    def __init__(self, registry: CommandRegistry, logger: Optional[StructuredLogger] = None):
        self.registry = registry
        self.logger = logger or get_logger(__name__)
        self.builtins: Dict[str, Command] = {}
        for command in (HelpCommand(self), HistoryCommand(), ExitCommand(), QuitCommand()):
            self.builtins[command.name] = command

    def resolve(self, session, tokens: List[str]) -> Resolution:
        """
        Resolve tokens against the session context, then the registry.

        Raises:
            CommandNotFoundError: nothing matches
        """
        if session.context is not None:
            try:
                return self.registry.resolve_in_context(session.context, tokens)
            except CommandNotFoundError:
                pass
        return self.registry.resolve(tokens)

    def lookup(self, session, tokens: List[str]):
        """Return (command, argv) for a tokenized line."""
        builtin = self.builtins.get(tokens[0].casefold())
        if builtin is not None:
            return builtin, tokens[1:]

        resolution = self.resolve(session, tokens)
        argv = tokens[resolution.consumed:]
        if resolution.node.is_group:
            return EnterGroupCommand(resolution.node), argv
        return UserCommand(resolution.node), argv

    def dispatch(self, session, line: str) -> None:
        """Execute one line; unknown commands and handler errors are reported to the client."""
        tokens = tokenize(line)
        if not tokens:
            return
        session.argv = tokens

        try:
            command, argv = self.lookup(session, tokens)
        except CommandNotFoundError as e:
            self.logger.debug("Unknown command", line=line, peer=session.peer)
            session.router.writeln(e.message)
            return

        self.logger.log_dispatch(line, command.name, len(argv), peer=session.peer)
        try:
            command.execute(session, argv)
        except Exception as e:
            self.logger.error(f"Command '{command.name}' raised {type(e).__name__}: {e}")
            session.router.writeln(f"Error: command '{command.name}' failed: {e}")
