"""
Shared constants for the panel chat client.

This module contains all constants used across the chat core and front-ends.
"""

# Network Configuration
DEFAULT_WS_URL = 'ws://localhost:3000/ws'
DEFAULT_API_URL = 'http://localhost:3000/api'

# Timeouts
RECONNECT_DELAY = 3.0  # seconds, constant (no backoff)
WS_HEARTBEAT_INTERVAL = 20.0  # seconds
REQUEST_TIMEOUT = 10.0  # seconds

# Chat History
MAX_CHAT_HISTORY = 500

# Viewport
AUTO_FOLLOW_THRESHOLD = 150  # pixels from the bottom

# Roster
ROSTER_POLL_INTERVAL = 5.0  # seconds

# Console lines that count as player chat
CHAT_LINE_PREFIXES = ('say:', 'sayteam:')

# Roles
ROLE_ADMIN = 'admin'
ROLE_MODERATOR = 'moderator'
ROLE_USER = 'user'
KNOWN_ROLES = (ROLE_ADMIN, ROLE_MODERATOR, ROLE_USER)
DM_ROLES = (ROLE_ADMIN, ROLE_MODERATOR)

# Display name used for optimistic chat echoes when none is configured
DEFAULT_DISPLAY_NAME = 'You'


# Message Types
class MessageTypes:
    # Client to Relay
    SUBSCRIBE_CONSOLE = 'subscribe_console'
    UNSUBSCRIBE_CONSOLE = 'unsubscribe_console'

    # Relay to Client
    CONSOLE_HISTORY = 'console_history'
    CONSOLE_LINE = 'console_line'
    PLAYER_DM = 'player_dm'
