#!/usr/bin/env -S python3 -B -u
"""
Test suite for the command registry.

Covers:
- Top-level and sub-command registration
- Case-insensitive conflicts and reserved built-in names
- Slot limits (max_user_commands, max_parent_commands)
- Resolution of tokenized lines
"""

import unittest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.registry import CommandRegistry, RESERVED_NAMES
from src.core.exceptions import (
    CapacityError, CommandNotFoundError, ErrorCode, NameConflictError, UnknownParentError
)


def noop(argv):
    return 0


class TestRegistration(unittest.TestCase):
    """Test registering commands."""

    def setUp(self):
        self.registry = CommandRegistry(max_user_commands=10, max_parent_commands=3)

    def test_register_top_level(self):
        node = self.registry.register('stats', noop, 'Show statistics')
        self.assertEqual(node.name, 'stats')
        self.assertEqual(node.help_text, 'Show statistics')
        self.assertIsNone(node.parent)
        self.assertEqual(len(self.registry), 1)
        self.assertIn('STATS', self.registry)

    def test_register_child(self):
        self.registry.register('pool', noop)
        child = self.registry.register('size', noop, parent='pool')
        self.assertEqual(child.qualified_name, 'pool size')
        self.assertIs(child.parent, self.registry.get('pool'))
        self.assertEqual(len(self.registry), 2)
        self.assertEqual(self.registry.parent_count, 1)

    def test_parent_lookup_is_case_insensitive(self):
        self.registry.register('Pool', noop)
        child = self.registry.register('size', noop, parent='POOL')
        self.assertEqual(child.parent.name, 'Pool')

    def test_case_insensitive_conflict(self):
        self.registry.register('Stats', noop)
        with self.assertRaises(NameConflictError) as ctx:
            self.registry.register('stats', noop)
        self.assertEqual(ctx.exception.error_code, ErrorCode.REGISTRATION_ERROR)
        self.assertIn("'Stats'", ctx.exception.message)

    def test_child_conflict_within_parent(self):
        self.registry.register('pool', noop)
        self.registry.register('size', noop, parent='pool')
        with self.assertRaises(NameConflictError):
            self.registry.register('SIZE', noop, parent='pool')

    def test_same_child_name_under_different_parents(self):
        self.registry.register('pool', noop)
        self.registry.register('cache', noop)
        self.registry.register('size', noop, parent='pool')
        self.registry.register('size', noop, parent='cache')
        self.assertEqual(self.registry.names(), ['pool', 'pool size', 'cache', 'cache size'])

    def test_child_may_share_top_level_name(self):
        self.registry.register('size', noop)
        self.registry.register('pool', noop)
        self.registry.register('size', noop, parent='pool')
        self.assertEqual(len(self.registry), 3)

    def test_reserved_names_rejected_at_top_level(self):
        for name in RESERVED_NAMES:
            with self.subTest(name=name):
                with self.assertRaises(NameConflictError) as ctx:
                    self.registry.register(name.upper(), noop)
                self.assertIn('reserved', ctx.exception.message)
        self.assertEqual(len(self.registry), 0)

    def test_reserved_name_allowed_as_child(self):
        self.registry.register('pool', noop)
        node = self.registry.register('help', noop, parent='pool')
        self.assertEqual(node.qualified_name, 'pool help')

    def test_unknown_parent(self):
        self.registry.register('stats', noop)
        with self.assertRaises(UnknownParentError) as ctx:
            self.registry.register('size', noop, parent='pool')
        self.assertIn("'pool'", ctx.exception.message)
        self.assertIn('stats', ctx.exception.suggestion)
        self.assertEqual(len(self.registry), 1)

    def test_group_without_handler(self):
        node = self.registry.register('log', None, 'Logger commands')
        self.assertTrue(node.is_group)

    def test_child_requires_handler(self):
        self.registry.register('log', None)
        with self.assertRaises(TypeError):
            self.registry.register('level', None, parent='log')

    def test_handler_must_be_callable(self):
        with self.assertRaises(TypeError):
            self.registry.register('stats', 'not callable')

    def test_invalid_names(self):
        for name in ('', '   ', 'two words'):
            with self.subTest(name=name):
                with self.assertRaises(ValueError):
                    self.registry.register(name, noop)


class TestCapacity(unittest.TestCase):
    """Test slot limits."""

    def test_max_user_commands_counts_children(self):
        registry = CommandRegistry(max_user_commands=3, max_parent_commands=5)
        registry.register('a', noop)
        registry.register('b', noop)
        registry.register('c', noop, parent='a')
        with self.assertRaises(CapacityError) as ctx:
            registry.register('d', noop)
        self.assertEqual(ctx.exception.limit_name, 'max_user_commands')
        with self.assertRaises(CapacityError):
            registry.register('e', noop, parent='b')
        self.assertEqual(len(registry), 3)

    def test_max_parent_commands_per_parent(self):
        registry = CommandRegistry(max_user_commands=20, max_parent_commands=2)
        registry.register('pool', noop)
        registry.register('a', noop, parent='pool')
        registry.register('b', noop, parent='pool')
        with self.assertRaises(CapacityError) as ctx:
            registry.register('c', noop, parent='pool')
        self.assertEqual(ctx.exception.limit_name, 'max_parent_commands')

    def test_max_parent_commands_limits_parents(self):
        registry = CommandRegistry(max_user_commands=20, max_parent_commands=1)
        registry.register('pool', noop)
        registry.register('cache', noop)
        registry.register('size', noop, parent='pool')
        with self.assertRaises(CapacityError):
            registry.register('size', noop, parent='cache')
        self.assertEqual(registry.parent_count, 1)

    def test_zero_capacity(self):
        registry = CommandRegistry(max_user_commands=0, max_parent_commands=0)
        with self.assertRaises(CapacityError):
            registry.register('stats', noop)

    def test_failed_registration_leaves_registry_unchanged(self):
        registry = CommandRegistry(max_user_commands=1, max_parent_commands=1)
        registry.register('stats', noop)
        with self.assertRaises(CapacityError):
            registry.register('other', noop)
        self.assertEqual(registry.names(), ['stats'])


class TestResolution(unittest.TestCase):
    """Test resolving tokenized lines."""

    def setUp(self):
        self.registry = CommandRegistry(max_user_commands=10, max_parent_commands=3)
        self.registry.register('Pool', noop)
        self.registry.register('size', noop, parent='pool')
        self.registry.register('log', None)
        self.registry.register('level', noop, parent='log')

    def test_resolve_top_level(self):
        resolution = self.registry.resolve(['pool'])
        self.assertEqual(resolution.node.name, 'Pool')
        self.assertEqual(resolution.consumed, 1)

    def test_resolve_child_wins(self):
        resolution = self.registry.resolve(['POOL', 'Size', '3'])
        self.assertEqual(resolution.node.qualified_name, 'Pool size')
        self.assertEqual(resolution.consumed, 2)

    def test_parent_receives_unknown_second_token(self):
        resolution = self.registry.resolve(['pool', 'other'])
        self.assertEqual(resolution.node.name, 'Pool')
        self.assertEqual(resolution.consumed, 1)

    def test_group_with_unknown_child(self):
        with self.assertRaises(CommandNotFoundError) as ctx:
            self.registry.resolve(['log', 'nope'])
        self.assertEqual(ctx.exception.message, 'Unknown command: log nope')

    def test_unknown_command(self):
        with self.assertRaises(CommandNotFoundError) as ctx:
            self.registry.resolve(['bogus', 'x'])
        self.assertEqual(ctx.exception.message, 'Unknown command: bogus')
        self.assertEqual(ctx.exception.error_code, ErrorCode.NOT_FOUND)

    def test_resolve_in_context(self):
        parent = self.registry.get('log')
        resolution = self.registry.resolve_in_context(parent, ['LEVEL', 'debug'])
        self.assertEqual(resolution.node.qualified_name, 'log level')
        self.assertEqual(resolution.consumed, 1)
        with self.assertRaises(CommandNotFoundError):
            self.registry.resolve_in_context(parent, ['size'])

    def test_walk_order(self):
        self.assertEqual(self.registry.names(), ['Pool', 'Pool size', 'log', 'log level'])

    def test_clear(self):
        self.registry.clear()
        self.assertEqual(len(self.registry), 0)
        self.assertEqual(list(self.registry), [])
        self.registry.register('pool', noop)


if __name__ == '__main__':
    unittest.main()
