"""
Visible-log projection for the chat tabs.
"""

from typing import Iterable, List, Optional

from panel_chat.protocol_definitions import ChatEvent, ChatTab, DmTarget, EventKind
from panel_chat.chat.text import same_player_name


def project_events(events: Iterable[ChatEvent], tab: str,
                   target: Optional[DmTarget] = None) -> List[ChatEvent]:
    """
    Select the events shown for a tab, keeping log order.

    The chat tab shows broadcast chat only. The DM tab shows every direct
    message, or, with a target, those exchanged with that player: matched by
    slot, or by color-stripped name when the player changed slot mid-session.
    """
    if tab == ChatTab.CHAT:
        return [event for event in events if event.kind == EventKind.CHAT]

    if tab == ChatTab.DM:
        if target is None:
            return [event for event in events if event.is_direct]
        return [event for event in events if event.is_direct and is_with_target(event, target)]

    raise ValueError(f"unknown chat tab: {tab}")


def is_with_target(event: ChatEvent, target: DmTarget) -> bool:
    """Whether a direct message was exchanged with ``target``."""
    if event.peer_slot is not None and event.peer_slot == target.slot:
        return True
    return same_player_name(event.actor, target.name)
