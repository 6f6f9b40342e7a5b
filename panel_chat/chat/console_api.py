"""
Console HTTP API client.

Client for the panel's console endpoints: broadcast chat, direct messages to a
player slot and the online player roster.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from panel_chat.constants import REQUEST_TIMEOUT
from panel_chat.protocol_definitions import Player


class ConsoleApiError(Exception):
    """Raised when a console API request fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConsoleApi:
    """
    Client for the console HTTP API.

    Args:
        base_url: API root, e.g. ``http://localhost:3000/api``
        token: Bearer access token, if the panel requires one
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def say(self, text: str) -> Dict[str, Any]:
        """
        Broadcast a chat line to every player.

        Returns:
            Response body, ``message`` holds the text the server sent
        """
        return await self._request('POST', '/console/say', json={'message': text})

    async def dm(self, slot: int, text: str) -> Dict[str, Any]:
        """
        Send a private message to the player in ``slot``.

        Returns:
            Response body with ``targetSlot``, ``targetName`` and ``message``
        """
        return await self._request('POST', '/console/dm', json={'slot': slot, 'message': text})

    async def players(self) -> List[Player]:
        """Fetch the players currently on the server."""
        data = await self._request('GET', '/console/players')
        players = []
        for entry in data.get('players') or []:
            try:
                players.append(Player.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise ConsoleApiError(f"Invalid player entry: {e}")
        return players

    async def aclose(self):
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make a request and decode the JSON body.

        Raises:
            ConsoleApiError: Request failed or the server reported a failure
        """
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'

        url = f"{self.base_url}{endpoint}"
        try:
            async with self._get_session().request(method, url, headers=headers, **kwargs) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None

                if response.status == 401:
                    raise ConsoleApiError("Not authenticated", response.status)
                if response.status >= 400:
                    raise ConsoleApiError(_error_text(body), response.status)
                if not isinstance(body, dict):
                    raise ConsoleApiError("Invalid response format", response.status)
                if body.get('success') is False:
                    raise ConsoleApiError(_error_text(body), response.status)
                return body

        except asyncio.TimeoutError:
            raise ConsoleApiError("Request timed out")
        except aiohttp.ClientError as e:
            raise ConsoleApiError(f"Cannot reach {self.base_url}: {e}")


def _error_text(body: Any) -> str:
    if isinstance(body, dict) and body.get('error'):
        return str(body['error'])
    return 'Request failed'
