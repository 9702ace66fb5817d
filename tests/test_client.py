#!/usr/bin/env -S python3 -B -u
"""
Test suite for the console client and the interactive shell.
"""

import unittest
import sys
import os
import socket
from io import StringIO

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.server import DebugConsole
from src.core.models import ServerParameters
from src.core.exceptions import TransportError
from src.shell.client import ConsoleClient
from src.shell.dbgcon_shell import DebugConsoleShell


def free_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class RunningConsoleTestCase(unittest.TestCase):
    """Starts a console with an echo command on an ephemeral port."""

    def setUp(self):
        self.console = DebugConsole()
        self.console.init(ServerParameters(port=0, hostname='test'))
        console = self.console
        console.register_command('echo', lambda argv: console.log("%s\n", ' '.join(argv)),
                                 'Print arguments')
        console.register_command('pool', None)
        console.register_command('size', lambda argv: console.log("4\n"), parent='pool')
        console.start()
        self.host, self.port = console.server_address

    def tearDown(self):
        self.console.stop()
        self.console.term()


class TestConsoleClient(RunningConsoleTestCase):

    def setUp(self):
        super().setUp()
        self.client = ConsoleClient(self.host, self.port, timeout=5)

    def tearDown(self):
        self.client.close()
        super().tearDown()

    def test_connect_reads_prompt(self):
        self.assertEqual(self.client.connect(), '')
        self.assertTrue(self.client.connected)
        self.assertEqual(self.client.prompt, 'test> ')

    def test_send_command(self):
        self.client.connect()
        self.assertEqual(self.client.send_command('echo hello world'), 'hello world\n')
        self.assertEqual(self.client.send_command('bogus'), 'Unknown command: bogus\n')

    def test_prompt_follows_context(self):
        self.client.connect()
        self.assertEqual(self.client.send_command('pool'), '')
        self.assertEqual(self.client.prompt, 'test(pool)> ')
        self.assertEqual(self.client.send_command('size'), '4\n')

    def test_quit_closes(self):
        self.client.connect()
        self.assertEqual(self.client.send_command('quit'), 'Goodbye!\n')
        self.assertFalse(self.client.connected)
        with self.assertRaises(TransportError):
            self.client.send_command('echo late')

    def test_connect_refused(self):
        client = ConsoleClient('127.0.0.1', free_port(), timeout=1)
        with self.assertRaises(TransportError) as ctx:
            client.connect()
        self.assertIn('Cannot connect', ctx.exception.message)
        self.assertFalse(client.connected)


class TestDebugConsoleShell(RunningConsoleTestCase):

    def setUp(self):
        super().setUp()
        self.stdout = StringIO()
        self.shell = DebugConsoleShell(
            shell_config={'host': self.host, 'port': self.port, 'timeout': 5.0},
            stdout=self.stdout,
            allow_cli_args=False,
        )

    def tearDown(self):
        self.shell._drop_client()
        super().tearDown()

    def run_line(self, line):
        self.stdout.seek(0)
        self.stdout.truncate()
        self.shell.onecmd_plus_hooks(line)
        return self.stdout.getvalue()

    def test_status_when_disconnected(self):
        self.assertIn('Not connected', self.run_line('status'))

    def test_connect_and_forward(self):
        self.assertIn('Connected to', self.run_line('connect'))
        self.assertTrue(self.shell.connected)
        self.assertIn('test', self.shell.prompt)
        self.assertIn('hello', self.run_line('echo hello'))

    def test_help_forwarded_when_connected(self):
        self.run_line('connect')
        output = self.run_line('help')
        self.assertIn('Available commands:', output)
        self.assertIn('echo', output)

    def test_send_forces_forwarding(self):
        self.run_line('connect')
        self.assertIn('Unknown command: status', self.run_line('send status'))

    def test_quit_ends_console_session(self):
        self.run_line('connect')
        output = self.run_line('quit')
        self.assertIn('Goodbye!', output)
        self.assertFalse(self.shell.connected)

    def test_disconnect(self):
        self.run_line('connect')
        self.assertIn('Disconnected', self.run_line('disconnect'))
        self.assertIn('Not connected', self.run_line('status'))

    def test_connect_with_explicit_address(self):
        output = self.run_line(f'connect {self.host} {self.port}')
        self.assertIn(f'{self.host}:{self.port}', output)


if __name__ == '__main__':
    unittest.main()
