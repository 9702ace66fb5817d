#!/usr/bin/env -S python3 -B -u
"""
dbgcon - Embedded Debug Console

Exposes a running process's diagnostic commands over a telnet-style TCP
line protocol.
"""

__version__ = '1.0.0'
__author__ = 'Network Analysis Tool'
__license__ = 'MIT'

from .core import (
    CommandNode,
    ConsoleCapability,
    ConsoleError,
    DebugConsole,
    LifecycleState,
    ServerParameters,
)

__all__ = [
    'core',
    'shell',
    'scripts',
    'CommandNode',
    'ConsoleCapability',
    'ConsoleError',
    'DebugConsole',
    'LifecycleState',
    'ServerParameters',
]
