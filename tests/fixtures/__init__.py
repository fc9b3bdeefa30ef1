"""
Test fixtures for chatsync.

Provides an in-memory session transport.
"""

from .transport import FakeEvent, FakeMember, FakeRoom, FakeSession, FakeTransport

__all__ = [
    "FakeEvent",
    "FakeMember",
    "FakeRoom",
    "FakeSession",
    "FakeTransport",
]
