"""
Chat session module.

UI-agnostic state behind a chat view: the active tab, the direct-message
target, the compose line and the latest roster. Both front-ends drive the chat
core through this class.
"""

from dataclasses import dataclass
from typing import List, Optional

from panel_chat.constants import DM_ROLES, ROLE_USER
from panel_chat.protocol_definitions import ChatEvent, ChatTab, DmTarget, Player
from panel_chat.chat.send_gateway import SendError, require_text
from panel_chat.chat.view_projector import project_events


class SendNotAllowedError(SendError):
    """Raised when the current tab/target/role does not allow sending."""


@dataclass
class PendingSend:
    """Validated send waiting to be issued."""
    tab: str
    text: str
    target: Optional[DmTarget] = None


class ChatSession:
    """Tab, target and input state over a chat log."""

    def __init__(self, store, gateway=None, role: str = ROLE_USER):
        self.store = store
        self.gateway = gateway
        self.role = role
        self.active_tab = ChatTab.CHAT
        self.dm_target: Optional[DmTarget] = None
        self.input_text = ''
        self.players: List[Player] = []

    @property
    def can_send_dm(self) -> bool:
        return self.role in DM_ROLES

    @property
    def human_players(self) -> List[Player]:
        return [p for p in self.players if not p.is_bot]

    @property
    def bot_players(self) -> List[Player]:
        return [p for p in self.players if p.is_bot]

    def update_roster(self, players: List[Player]):
        """Replace the roster snapshot."""
        self.players = list(players)

    def select_tab(self, tab: str):
        """Switch tabs; entering the DM tab picks the first human player if none is selected."""
        if tab not in ChatTab.ALL:
            raise ValueError(f"unknown chat tab: {tab}")
        self.active_tab = tab
        if tab == ChatTab.DM and self.dm_target is None:
            humans = self.human_players
            if humans:
                self.dm_target = humans[0].as_target()

    def select_player(self, player: Player) -> bool:
        """Start a DM with ``player``. Returns False if this role may not DM."""
        if not self.can_send_dm:
            return False
        self.dm_target = player.as_target()
        self.active_tab = ChatTab.DM
        return True

    def clear_dm_target(self):
        """Show direct messages with everyone."""
        self.dm_target = None

    def visible_events(self) -> List[ChatEvent]:
        return project_events(self.store.events, self.active_tab, self.dm_target)

    def prepare_send(self) -> PendingSend:
        """
        Validate the compose line for the current tab.

        Raises:
            EmptyMessageError: Blank input
            SendNotAllowedError: DM tab without a target or without DM privilege
        """
        text = require_text(self.input_text)
        if self.active_tab == ChatTab.DM:
            if self.dm_target is None:
                raise SendNotAllowedError("select a player to message")
            if not self.can_send_dm:
                raise SendNotAllowedError("direct messages need the admin or moderator role")
            return PendingSend(ChatTab.DM, text, self.dm_target)
        return PendingSend(ChatTab.CHAT, text)

    async def submit(self) -> Optional[ChatEvent]:
        """
        Send the compose line. The line is cleared only when the send succeeds.

        Raises:
            SendError: Validation or the request failed; input is kept
        """
        if self.gateway is None:
            raise SendError("not connected")
        pending = self.prepare_send()
        if pending.tab == ChatTab.DM:
            event = await self.gateway.send_dm(pending.target, pending.text)
        else:
            event = await self.gateway.send_chat(pending.text)
        self.complete_send()
        return event

    def complete_send(self):
        """Clear the compose line after a confirmed send."""
        self.input_text = ''
