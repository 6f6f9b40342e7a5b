"""
Panel chat client for the game-server console relay.

This package contains the client-side chat functionality including:
- Live console subscription over WebSocket
- Chat and direct-message classification
- Bounded message log with history replay
- Broadcast chat and direct-message sending
- PyQt6 and command-line front-ends
"""

__version__ = "0.1.0"
