#!/usr/bin/env python3
"""
Panel Chat Client - Main Entry Point

Chat client for the game-server console relay with two front-ends:
- PyQt6 chat window (default)
- Command-line chat

Usage:
    python main_client.py [--gui | --cli] [--ws-url URL] [--api-url URL]
                          [--token TOKEN] [--username NAME] [--role ROLE] [--debug]

Settings not given on the command line are read from PANEL_WS_URL,
PANEL_API_URL, PANEL_TOKEN, PANEL_USERNAME and PANEL_ROLE.
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from panel_chat.main_client import main


if __name__ == "__main__":
    main()
