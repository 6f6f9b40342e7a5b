"""
Console envelope classifier.

This module maps raw relay envelopes onto typed chat events. Only player chat
broadcasts (``say:`` / ``sayteam:`` lines) and direct-message notifications
are kept; all other console chatter is ignored.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from panel_chat.constants import MessageTypes
from panel_chat.protocol_definitions import (
    ChatEvent, ConsoleLine, EventKind, new_event_id, text_field
)
from panel_chat.chat.text import has_chat_prefix, parse_timestamp


class MalformedEnvelopeError(ValueError):
    """Raised when an envelope does not have the expected shape."""


class Route:
    """Where a classified envelope goes in the chat log."""
    HISTORY = 'history'
    LIVE = 'live'
    IGNORE = 'ignore'


@dataclass
class Classification:
    """Result of classifying one envelope."""
    route: str
    events: List[ChatEvent] = field(default_factory=list)


IGNORED = Classification(Route.IGNORE)


def classify_envelope(envelope: Any, id_factory: Callable[[], str] = new_event_id) -> Classification:
    """
    Classify a decoded relay envelope.

    Args:
        envelope: Decoded JSON frame
        id_factory: Generator for event ids

    Returns:
        Classification with the route and zero or more events

    Raises:
        MalformedEnvelopeError: Envelope or its data has the wrong shape
    """
    if not isinstance(envelope, dict):
        raise MalformedEnvelopeError(f"envelope is not an object: {type(envelope).__name__}")

    msg_type = envelope.get('type')
    if not isinstance(msg_type, str):
        raise MalformedEnvelopeError("envelope has no type")

    data = envelope.get('data')

    if msg_type == MessageTypes.CONSOLE_HISTORY:
        return Classification(Route.HISTORY, classify_history(data, id_factory))

    if msg_type == MessageTypes.CONSOLE_LINE:
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("console_line data is not an object")
        event = classify_line(ConsoleLine.from_dict(data), id_factory)
        if event is None:
            return IGNORED
        return Classification(Route.LIVE, [event])

    if msg_type == MessageTypes.PLAYER_DM:
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("player_dm data is not an object")
        return Classification(Route.LIVE, [classify_direct_message(data, id_factory)])

    return IGNORED


def classify_history(data: Any, id_factory: Callable[[], str] = new_event_id) -> List[ChatEvent]:
    """Keep the chat lines of a history batch, in batch order."""
    if not isinstance(data, list):
        raise MalformedEnvelopeError("console_history data is not a list")

    events = []
    for item in data:
        if not isinstance(item, dict):
            raise MalformedEnvelopeError("console_history entry is not an object")
        event = classify_line(ConsoleLine.from_dict(item), id_factory)
        if event is not None:
            events.append(event)
    return events


def classify_line(line: ConsoleLine, id_factory: Callable[[], str] = new_event_id):
    """Turn a chat console line into an event, or return None for other lines."""
    if not has_chat_prefix(line.raw):
        return None
    return ChatEvent(
        id=id_factory(),
        timestamp=parse_timestamp(line.timestamp),
        kind=EventKind.CHAT,
        actor=line.player,
        body=line.message or line.raw,
        raw=line.raw,
    )


def classify_direct_message(data: Dict[str, Any], id_factory: Callable[[], str] = new_event_id) -> ChatEvent:
    """Turn a player DM notification into a received-DM event."""
    slot = data.get('slot')
    if isinstance(slot, bool) or not isinstance(slot, int):
        slot = None
    return ChatEvent(
        id=id_factory(),
        timestamp=parse_timestamp(data.get('timestamp')),
        kind=EventKind.DM_RECEIVED,
        actor=text_field(data, 'name'),
        body=text_field(data, 'message') or '',
        peer_slot=slot,
    )
