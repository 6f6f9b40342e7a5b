"""
Outbound chat module.

Sends broadcast chat and direct messages through the console API and, once
the server has confirmed a send, echoes it into the chat log.
"""

from typing import Optional

from panel_chat.constants import DEFAULT_DISPLAY_NAME
from panel_chat.protocol_definitions import ChatEvent, DmTarget, EventKind
from panel_chat.chat.console_api import ConsoleApiError
from panel_chat.chat.connection import CancellationToken
from panel_chat.chat.text import now, strip_colors
from panel_chat.utils.logger import logger


class SendError(Exception):
    """Raised when a message could not be sent."""


class EmptyMessageError(SendError):
    """Raised for blank input; no request is made."""


class MissingTargetError(SendError):
    """Raised when a direct message has no recipient."""


def _confirmed_text(value, fallback: str) -> str:
    return value if isinstance(value, str) and value else fallback


def require_text(text: Optional[str]) -> str:
    """Return the trimmed message text or raise EmptyMessageError."""
    body = (text or '').strip()
    if not body:
        raise EmptyMessageError("message is empty")
    return body


class SendGateway:
    """
    Sends messages and appends optimistic echoes on success.

    The gateway does not check whether the caller may send direct messages;
    callers are expected to have done that.
    """

    def __init__(self, api, sink, display_name: Optional[str] = None,
                 token: Optional[CancellationToken] = None):
        self.api = api
        self.sink = sink
        self.display_name = display_name
        self.token = token or CancellationToken()

    async def send_chat(self, text: str) -> Optional[ChatEvent]:
        """
        Broadcast ``text`` to all players.

        Returns:
            The echoed event, or None if torn down while the request was in flight

        Raises:
            EmptyMessageError: Blank input
            SendError: The server did not accept the message
        """
        body = require_text(text)
        try:
            response = await self.api.say(body)
        except ConsoleApiError as e:
            logger.log_error("chat send", e)
            raise SendError(str(e)) from e

        if self.token.cancelled:
            return None

        event = ChatEvent(
            timestamp=now(),
            kind=EventKind.CHAT,
            actor=self.display_name or DEFAULT_DISPLAY_NAME,
            body=_confirmed_text(response.get('message'), body),
        )
        self.sink.append_live(event)
        logger.log_send("Chat", event.body)
        return event

    async def send_dm(self, target: Optional[DmTarget], text: str) -> Optional[ChatEvent]:
        """
        Send ``text`` privately to ``target``.

        Returns:
            The echoed event, or None if torn down while the request was in flight

        Raises:
            EmptyMessageError: Blank input
            MissingTargetError: No target selected
            SendError: The server did not accept the message
        """
        body = require_text(text)
        if target is None:
            raise MissingTargetError("no direct message target selected")

        try:
            response = await self.api.dm(target.slot, body)
        except ConsoleApiError as e:
            logger.log_error("direct message send", e)
            raise SendError(str(e)) from e

        if self.token.cancelled:
            return None

        target_slot = response.get('targetSlot')
        if isinstance(target_slot, bool) or not isinstance(target_slot, int):
            target_slot = target.slot

        event = ChatEvent(
            timestamp=now(),
            kind=EventKind.DM_SENT,
            actor=strip_colors(_confirmed_text(response.get('targetName'), target.name)),
            body=_confirmed_text(response.get('message'), body),
            peer_slot=target_slot,
        )
        self.sink.append_live(event)
        logger.log_send("Direct message", event.body, target=event.actor)
        return event
