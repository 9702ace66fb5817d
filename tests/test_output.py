#!/usr/bin/env -S python3 -B -u
"""
Test suite for the output router and the logging bridge.
"""

import unittest
import sys
import os
import socket
import logging
import threading

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.output import OutputRouter, ConsoleLogHandler, to_wire


class TestToWire(unittest.TestCase):

    def test_bare_lf_converted(self):
        self.assertEqual(to_wire('a\nb\n'), 'a\r\nb\r\n')

    def test_existing_crlf_kept(self):
        self.assertEqual(to_wire('a\r\nb'), 'a\r\nb')


class TestOutputRouter(unittest.TestCase):
    """Test writing to an attached socket."""

    def setUp(self):
        self.server_sock, self.client_sock = socket.socketpair()
        self.client_sock.settimeout(5)
        self.router = OutputRouter()

    def tearDown(self):
        self.server_sock.close()
        self.client_sock.close()

    def test_no_client(self):
        self.assertFalse(self.router.connected)
        self.assertEqual(self.router.write("hello\n"), -1)

    def test_write_formats_and_converts(self):
        self.router.attach(self.server_sock)
        count = self.router.write("%d jobs\n", 3)
        self.assertEqual(count, len("3 jobs\n"))
        self.assertEqual(self.client_sock.recv(100), b'3 jobs\r\n')

    def test_percent_escape_with_and_without_args(self):
        self.router.attach(self.server_sock)
        self.assertEqual(self.router.write("100%%\n"), 5)
        self.assertEqual(self.router.write("%d%%\n", 5), 3)
        self.assertEqual(self.router.write_va("%%\n", {}), 2)
        data = b''
        while len(data) < len(b'100%\r\n5%\r\n%\r\n'):
            data += self.client_sock.recv(100)
        self.assertEqual(data, b'100%\r\n5%\r\n%\r\n')

    def test_lone_percent_without_args_is_format_error(self):
        self.router.attach(self.server_sock)
        self.assertEqual(self.router.write("100%\n"), -1)

    def test_write_va_mapping(self):
        self.router.attach(self.server_sock)
        self.router.write_va("%(name)s=%(value)d\n", {'name': 'jobs', 'value': 7})
        self.assertEqual(self.client_sock.recv(100), b'jobs=7\r\n')

    def test_bad_format(self):
        self.router.attach(self.server_sock)
        self.assertEqual(self.router.write("%d\n", 'text'), -1)

    def test_write_after_peer_closed(self):
        self.router.attach(self.server_sock)
        self.client_sock.close()
        results = [self.router.write("x" * 65536) for _ in range(8)]
        self.assertIn(-1, results)

    def test_detach(self):
        self.router.attach(self.server_sock)
        self.assertEqual(self.router.owner, threading.get_ident())
        self.router.detach()
        self.assertIsNone(self.router.owner)
        self.assertEqual(self.router.writeln('x'), -1)


class TestConsoleLogHandler(unittest.TestCase):
    """Test bridging log records to the client."""

    def setUp(self):
        self.server_sock, self.client_sock = socket.socketpair()
        self.client_sock.settimeout(5)
        self.router = OutputRouter()
        self.logger = logging.getLogger('dbgcon.test.bridge')
        self.logger.propagate = False
        self.logger.setLevel(logging.INFO)
        self.handler = ConsoleLogHandler(self.router)
        self.handler.setFormatter(logging.Formatter('%(levelname)s %(message)s'))
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)
        self.server_sock.close()
        self.client_sock.close()

    def test_record_on_owner_thread_forwarded(self):
        self.router.attach(self.server_sock)
        self.logger.warning("queue %s full", 'jobs')
        self.assertEqual(self.client_sock.recv(100), b'WARNING queue jobs full\r\n')

    def test_record_on_other_thread_dropped(self):
        self.router.attach(self.server_sock)
        thread = threading.Thread(target=self.logger.warning, args=("elsewhere",))
        thread.start()
        thread.join()
        self.logger.info("mine")
        self.assertEqual(self.client_sock.recv(100), b'INFO mine\r\n')

    def test_record_without_client_dropped(self):
        self.logger.warning("nobody listening")
        self.router.attach(self.server_sock)
        self.logger.info("now")
        self.assertEqual(self.client_sock.recv(100), b'INFO now\r\n')


if __name__ == '__main__':
    unittest.main()
