"""
Parser for composer input.

Recognised forms:
- ``/join <room id or alias>``
- ``/leave`` (leaves the room the input was typed in)
- ``/me <action>`` (emote)

Anything else, including unknown slash commands, is sent as a message.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

from ..utils.logging import get_logger

if TYPE_CHECKING:
    from ..sync.engine import SyncStateEngine
    from ..sync.typing_notifier import TypingNotifier


logger = get_logger(__name__)


class CommandKind(Enum):
    """What a line of input asks for."""
    EMPTY = "empty"
    MESSAGE = "message"
    EMOTE = "emote"
    JOIN = "join"
    LEAVE = "leave"


@dataclass(frozen=True)
class InputCommand:
    """A parsed line of composer input."""
    kind: CommandKind
    argument: str = ""
    raw: str = ""


JOIN_PATTERN = re.compile(r'^/join\s+(\S.*)$', re.DOTALL)
EMOTE_PATTERN = re.compile(r'^/me (.+)$', re.DOTALL)
LEAVE_COMMAND = "/leave"


def parse_input(text: Optional[str]) -> InputCommand:
    """Classify a line of input typed into the composer."""
    raw = text or ""
    stripped = raw.strip()
    if not stripped:
        return InputCommand(CommandKind.EMPTY, raw=raw)

    match = JOIN_PATTERN.match(stripped)
    if match:
        return InputCommand(CommandKind.JOIN, match.group(1).strip(), raw=raw)

    if stripped == LEAVE_COMMAND:
        return InputCommand(CommandKind.LEAVE, raw=raw)

    match = EMOTE_PATTERN.match(stripped)
    if match:
        return InputCommand(CommandKind.EMOTE, match.group(1), raw=raw)

    return InputCommand(CommandKind.MESSAGE, stripped, raw=raw)


async def dispatch_input(
    engine: "SyncStateEngine",
    room_id: Optional[str],
    text: Optional[str],
    notifier: Optional["TypingNotifier"] = None,
) -> InputCommand:
    """
    Parse ``text`` and run it against ``engine``.

    Transport errors from the engine propagate to the caller.

    Returns:
        The parsed command
    """
    command = parse_input(text)
    if command.kind is CommandKind.EMPTY:
        return command

    if notifier is not None and room_id:
        notifier.stop(room_id)

    logger.debug("input_dispatched", kind=command.kind.value, room_id=room_id)

    if command.kind is CommandKind.JOIN:
        await engine.join_room(command.argument)
    elif room_id is None:
        logger.debug("input_without_room", kind=command.kind.value)
    elif command.kind is CommandKind.LEAVE:
        await engine.leave_room(room_id)
    elif command.kind is CommandKind.EMOTE:
        await engine.send_emote(room_id, command.argument)
    else:
        await engine.send_message(room_id, command.argument)

    return command
