#!/usr/bin/env -S python3 -B -u
"""
Debug Console Demo

Runs a DebugConsole with a handful of diagnostic commands until interrupted:

    uptime          seconds since the demo started
    threads         threads alive in this process
    echo ARGS...    print the arguments back
    log level [L]   show or set the level of the demo logger
    log test [MSG]  log a record that is bridged to the client

Connect with `telnet 127.0.0.1 55555` or `dbgcon-shell -c`.
"""

import sys
import time
import logging
import argparse
import threading
from typing import List

from ..core.config_loader import load_server_parameters
from ..core.exceptions import ErrorHandler
from ..core.server import DebugConsole
from ..core.structured_logging import setup_logging


LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class DemoCommands:
    """Sample handlers; each runs on the console's server thread."""

    def __init__(self, console: DebugConsole):
        self.console = console
        self.started = time.monotonic()
        self.logger = logging.getLogger('dbgcon.demo')
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.logger.addHandler(console.log_handler())

    def register(self) -> None:
        register = self.console.register_command
        register('uptime', self.uptime, 'Seconds since the demo started')
        register('threads', self.threads, 'List threads alive in this process')
        register('echo', self.echo, 'Print the arguments back')
        register('log', None, 'Demo logger commands')
        register('level', self.log_level, 'Show or set the demo logger level', parent='log')
        register('test', self.log_test, 'Log a test record to this session', parent='log')

    def uptime(self, argv: List[str]) -> int:
        return self.console.log("up %.1f seconds\n", time.monotonic() - self.started)

    def threads(self, argv: List[str]) -> None:
        for thread in threading.enumerate():
            flags = ' (daemon)' if thread.daemon else ''
            self.console.log("  %-24s%s\n", thread.name, flags)

    def echo(self, argv: List[str]) -> None:
        self.console.log("%s\n", ' '.join(argv))

    def log_level(self, argv: List[str]) -> None:
        if argv:
            level = argv[0].upper()
            if level not in LEVELS:
                self.console.log("Unknown level '%s' (choose from %s)\n", argv[0], ', '.join(LEVELS))
                return
            self.logger.setLevel(level)
        self.console.log("demo logger level: %s\n", logging.getLevelName(self.logger.level))

    def log_test(self, argv: List[str]) -> None:
        self.logger.warning("%s", ' '.join(argv) or 'test record from the demo logger')


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Run a debug console with sample commands')
    parser.add_argument('--config', help='Configuration file (default: $DBGCON_CONF, ~/dbgcon.yaml, ./dbgcon.yaml)')
    parser.add_argument('--address', help='Address to listen on')
    parser.add_argument('--port', type=int, help='Port to listen on (0 picks a free port)')
    parser.add_argument('--hostname', help='Name shown in the prompt')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (-v, -vv, -vvv)')
    return parser


@ErrorHandler.wrap_main
def run(argv=None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.verbose)
    ErrorHandler.set_verbose_level(args.verbose)

    params = load_server_parameters(args.config, address=args.address,
                                    port=args.port, hostname=args.hostname)
    console = DebugConsole(verbose_level=args.verbose)
    console.init(params)
    DemoCommands(console).register()

    console.start()
    host, port = console.server_address
    print(f"Debug console listening on {host}:{port} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping debug console")
    finally:
        console.stop()
        console.term()
    return 0


def main():
    """Main entry point for the demo."""
    sys.exit(run())


if __name__ == '__main__':
    main()
