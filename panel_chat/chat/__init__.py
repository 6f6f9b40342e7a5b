"""
Chat module for client-side console chat functionality.

Handles:
- Classifying relay envelopes into chat events
- Holding the bounded chat log
- Keeping the relay connection alive
- Sending broadcast chat and direct messages
- Projecting and following the visible log
"""
