"""Composer input commands (/join, /leave, /me)."""

from .parser import CommandKind, InputCommand, dispatch_input, parse_input

__all__ = [
    'CommandKind',
    'InputCommand',
    'dispatch_input',
    'parse_input',
]
