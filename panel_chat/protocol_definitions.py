"""
Protocol definitions for the panel chat client.

This module defines the message structures and data formats exchanged with the
console relay (WebSocket envelopes) and the console HTTP API.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional

from panel_chat.constants import MessageTypes


class EventKind:
    """Kinds of entries held in the chat log."""
    CHAT = 'chat'
    DM_SENT = 'dm_sent'
    DM_RECEIVED = 'dm_received'
    SYSTEM = 'system'

    ALL = (CHAT, DM_SENT, DM_RECEIVED, SYSTEM)
    DIRECT = (DM_SENT, DM_RECEIVED)


class ChatTab:
    """Tabs of the chat view."""
    CHAT = 'chat'
    DM = 'dm'

    ALL = (CHAT, DM)


def new_event_id() -> str:
    """Generate a locally unique chat event id."""
    return uuid.uuid4().hex


def text_field(data: Dict[str, Any], key: str) -> Optional[str]:
    """Return ``data[key]`` if it is a string, else None."""
    value = data.get(key)
    return value if isinstance(value, str) else None


@dataclass
class ChatEvent:
    """Single entry of the chat log."""
    timestamp: datetime
    kind: str
    body: str
    actor: Optional[str] = None
    peer_slot: Optional[int] = None
    raw: Optional[str] = None
    id: str = field(default_factory=new_event_id)

    @property
    def is_direct(self) -> bool:
        return self.kind in EventKind.DIRECT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'kind': self.kind,
            'actor': self.actor,
            'body': self.body,
            'peer_slot': self.peer_slot,
            'raw': self.raw,
        }


@dataclass
class ConsoleLine:
    """Console line as published by the relay."""
    timestamp: Optional[str]
    raw: Optional[str]
    player: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConsoleLine':
        return cls(
            timestamp=text_field(data, 'timestamp'),
            raw=text_field(data, 'raw'),
            player=text_field(data, 'player'),
            message=text_field(data, 'message'),
            type=text_field(data, 'type'),
        )


@dataclass(frozen=True)
class DmTarget:
    """Reference to a roster entry selected for direct messages."""
    slot: int
    name: str


@dataclass
class Player:
    """Roster entry returned by the console API."""
    slot: int
    name: str
    ping: int = 0
    is_bot: bool = False
    score: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Player':
        return cls(
            slot=int(data['slot']),
            name=str(data.get('name', '')),
            ping=int(data.get('ping') or 0),
            is_bot=bool(data.get('isBot', False)),
            score=int(data.get('score') or 0),
        )

    def as_target(self) -> DmTarget:
        return DmTarget(slot=self.slot, name=self.name)


def create_subscribe_message() -> Dict[str, Any]:
    """Create a console subscription message."""
    return {
        "type": MessageTypes.SUBSCRIBE_CONSOLE
    }


def create_unsubscribe_message() -> Dict[str, Any]:
    """Create a console unsubscription message."""
    return {
        "type": MessageTypes.UNSUBSCRIBE_CONSOLE
    }
