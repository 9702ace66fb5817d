#!/usr/bin/env -S python3 -B -u

"""
Interactive client shell for the debug console.

Lines typed while connected are forwarded to the console verbatim and the
reply is printed; connect, disconnect, status and send are handled locally.
"""

import os
import sys
import argparse
from typing import Optional

import cmd2
from cmd2 import with_argparser, Cmd2ArgumentParser
import colorama
from colorama import Fore, Style

from ..core.config_loader import get_shell_config, load_console_config
from ..core.exceptions import ErrorHandler, TransportError
from ..core.structured_logging import get_logger, setup_logging
from .client import ConsoleClient

colorama.init()


def _connect_parser() -> Cmd2ArgumentParser:
    parser = Cmd2ArgumentParser(prog='connect', description='Connect to a running debug console')
    parser.add_argument('host', nargs='?', help='Console address (default from configuration)')
    parser.add_argument('port', nargs='?', type=int, help='Console port (default from configuration)')
    parser.add_argument('-t', '--timeout', type=float, help='Seconds to wait for a reply')
    return parser


class DebugConsoleShell(cmd2.Cmd):
    """Interactive shell talking to one debug console at a time."""

    def __init__(self, *args, shell_config: Optional[dict] = None, verbose_level: int = 0, **kwargs):
        self.is_interactive = sys.stdin.isatty() and sys.stdout.isatty()

        # Only enable history in interactive mode
        if self.is_interactive and 'persistent_history_file' not in kwargs:
            kwargs['persistent_history_file'] = os.path.expanduser('~/.dbgcon_history.json')

        # Lines must reach the console untouched
        kwargs.setdefault('allow_redirection', False)
        super().__init__(*args, **kwargs)

        self.verbose_level = verbose_level
        self.logger = get_logger(__name__, verbose_level)
        self.shell_config = shell_config if shell_config is not None else get_shell_config()
        self.client: Optional[ConsoleClient] = None

        if self.is_interactive:
            self.intro = f"""{Fore.CYAN}
╔══════════════════════════════════════════════════════╗
║                 Debug Console Shell                  ║
╚══════════════════════════════════════════════════════╝
{Style.RESET_ALL}
Type 'connect [host] [port]' to attach to a console, then any console command.
"""
        else:
            self.intro = ""
            self.quit_on_error = True

        self._update_prompt()

    def _update_prompt(self) -> None:
        if self.client is not None and self.client.connected and self.client.prompt:
            self.prompt = f"{Fore.CYAN}{self.client.prompt[:-2]}{Style.RESET_ALL}> "
        else:
            self.prompt = f"{Fore.GREEN}dbgcon{Style.RESET_ALL}> "

    @property
    def connected(self) -> bool:
        return self.client is not None and self.client.connected

    def _forward(self, line: str) -> None:
        """Send a line to the console and print the reply."""
        self.logger.debug("Forwarding line", line=line)
        try:
            output = self.client.send_command(line)
        except TransportError as e:
            self.perror(f"{Fore.RED}✗ {e.message}{Style.RESET_ALL}")
            self._drop_client()
            return

        if output:
            self.poutput(output.rstrip('\n'))
        if not self.client.connected:
            self.poutput(f"{Fore.YELLOW}Console closed the session{Style.RESET_ALL}")
            self._drop_client()
        self._update_prompt()

    def _drop_client(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self._update_prompt()

    @with_argparser(_connect_parser())
    def do_connect(self, args: argparse.Namespace):
        """Connect to a running debug console."""
        if self.connected:
            self.perror(f"{Fore.RED}✗ Already connected to "
                        f"{self.client.host}:{self.client.port}{Style.RESET_ALL}")
            return

        host = args.host or self.shell_config.get('host', '127.0.0.1')
        port = args.port if args.port is not None else self.shell_config.get('port')
        timeout = args.timeout if args.timeout is not None else self.shell_config.get('timeout', 5.0)

        client = ConsoleClient(host, int(port), timeout=float(timeout), verbose_level=self.verbose_level)
        try:
            banner = client.connect()
        except TransportError as e:
            self.perror(f"{Fore.RED}✗ {e.message}{Style.RESET_ALL}")
            return

        self.client = client
        if banner.strip():
            self.poutput(banner.rstrip('\n'))
        self.poutput(f"{Fore.GREEN}✓{Style.RESET_ALL} Connected to {host}:{port}")
        self._update_prompt()

    def do_disconnect(self, _):
        """Close the connection to the console."""
        if not self.connected:
            self.pwarning(f"{Fore.YELLOW}Not connected{Style.RESET_ALL}")
            return
        host, port = self.client.host, self.client.port
        self._drop_client()
        self.poutput(f"{Fore.GREEN}✓{Style.RESET_ALL} Disconnected from {host}:{port}")

    def do_status(self, _):
        """Show the connection status."""
        if self.connected:
            self.poutput(f"Connected to {self.client.host}:{self.client.port} "
                         f"(prompt: {self.client.prompt.strip()})")
        else:
            self.poutput("Not connected")

    def do_send(self, statement: cmd2.Statement):
        """Forward a line to the console even if it names a local command."""
        if not self.connected:
            self.perror(f"{Fore.RED}✗ Not connected{Style.RESET_ALL}")
            return
        self._forward(statement.args)

    def default(self, statement: cmd2.Statement):
        """Forward unrecognized lines to the console."""
        if self.connected:
            self._forward(statement.raw.strip())
            return

        self.perror(f"{Fore.RED}✗ Unknown command: '{statement.command}'{Style.RESET_ALL}")
        if self.is_interactive:
            self.poutput(f"{Fore.YELLOW}ℹ Use 'connect' to attach to a console{Style.RESET_ALL}")

    def do_help(self, args):
        """Show console help when connected, shell help otherwise."""
        if self.connected:
            self._forward(f"help {args}".strip())
        else:
            super().do_help(args)

    def do_history(self, args):
        """Show the console's line history when connected, the shell's otherwise."""
        if self.connected:
            self._forward(f"history {args}".strip())
        else:
            super().do_history(args)

    def do_exit(self, _):
        """Leave the console's command group or session, or exit the shell."""
        if self.connected:
            self._forward('exit')
            return None
        if self.is_interactive:
            self.poutput(f"{Fore.CYAN}Goodbye!{Style.RESET_ALL}")
        return True

    def do_quit(self, _):
        """End the console session, or exit the shell."""
        if self.connected:
            self._forward('quit')
            return None
        return self.do_exit(_)

    def do_EOF(self, _):
        """Handle Ctrl+D - exit shell."""
        self._drop_client()
        if self.is_interactive:
            self.poutput(f"\n{Fore.CYAN}Goodbye!{Style.RESET_ALL}")
        return True

    def emptyline(self):
        """Do nothing instead of repeating the last command."""
        pass


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Interactive client for the debug console')
    parser.add_argument('--config', help='Configuration file (default: $DBGCON_CONF, ~/dbgcon.yaml, ./dbgcon.yaml)')
    parser.add_argument('--host', help='Console address')
    parser.add_argument('--port', type=int, help='Console port')
    parser.add_argument('-c', '--connect', action='store_true', help='Connect on startup')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (-v, -vv, -vvv)')
    return parser


@ErrorHandler.wrap_main
def run(argv=None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.verbose)
    ErrorHandler.set_verbose_level(args.verbose)

    config = load_console_config(args.config)
    shell_config = get_shell_config(config)
    if args.host:
        shell_config['host'] = args.host
    if args.port is not None:
        shell_config['port'] = args.port

    shell = DebugConsoleShell(shell_config=shell_config, verbose_level=args.verbose,
                              allow_cli_args=False)
    if args.connect:
        shell.onecmd_plus_hooks('connect')

    if shell.is_interactive:
        shell.cmdloop()
        return 0

    # Batch mode: one line per command, stop at the first exit
    for line in sys.stdin:
        if shell.onecmd_plus_hooks(line.rstrip('\n')):
            break
    shell._drop_client()
    return 0


def main():
    """Main entry point for running the shell standalone."""
    sys.exit(run())


if __name__ == '__main__':
    main()
