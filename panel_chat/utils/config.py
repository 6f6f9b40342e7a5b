"""
Client configuration module.

This module handles client-side configuration settings.
"""

import os
from typing import Optional

from panel_chat.constants import (
    DEFAULT_WS_URL, DEFAULT_API_URL, RECONNECT_DELAY, MAX_CHAT_HISTORY,
    AUTO_FOLLOW_THRESHOLD, ROSTER_POLL_INTERVAL, REQUEST_TIMEOUT,
    KNOWN_ROLES, ROLE_USER
)


class ClientConfig:
    """Client configuration class."""

    def __init__(self, ws_url: str = DEFAULT_WS_URL, api_url: str = DEFAULT_API_URL,
                 token: Optional[str] = None, username: Optional[str] = None, role: str = ROLE_USER):
        self.ws_url = ws_url
        self.api_url = api_url.rstrip('/')
        self.token = token or None
        self.username = username or None
        self.role = normalize_role(role)

        # Connection settings
        self.reconnect_delay = RECONNECT_DELAY
        self.request_timeout = REQUEST_TIMEOUT

        # Chat log settings
        self.history_capacity = MAX_CHAT_HISTORY
        self.auto_follow_threshold = AUTO_FOLLOW_THRESHOLD

        # Roster settings
        self.roster_poll_interval = ROSTER_POLL_INTERVAL

    @classmethod
    def from_env(cls, environ=None) -> 'ClientConfig':
        """Build a configuration from PANEL_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            ws_url=env.get('PANEL_WS_URL', DEFAULT_WS_URL),
            api_url=env.get('PANEL_API_URL', DEFAULT_API_URL),
            token=env.get('PANEL_TOKEN'),
            username=env.get('PANEL_USERNAME'),
            role=env.get('PANEL_ROLE', ROLE_USER),
        )

    def update(self, ws_url: str = None, api_url: str = None, token: str = None,
               username: str = None, role: str = None):
        """Override settings that were given explicitly."""
        if ws_url is not None:
            self.ws_url = ws_url
        if api_url is not None:
            self.api_url = api_url.rstrip('/')
        if token is not None:
            self.token = token or None
        if username is not None:
            self.username = username or None
        if role is not None:
            self.role = normalize_role(role)

    def get_connection_info(self):
        """Get connection information."""
        return {
            'ws_url': self.ws_url,
            'api_url': self.api_url,
            'username': self.username,
            'role': self.role
        }


def normalize_role(role: Optional[str]) -> str:
    """Return a known role name, falling back to the unprivileged one."""
    role = (role or '').strip().lower()
    return role if role in KNOWN_ROLES else ROLE_USER
