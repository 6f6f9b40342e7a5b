#!/usr/bin/env python3
"""
Panel Chat Client - Main Entry Point

Console client for the game-server chat relay, plus the launcher shared with
the PyQt6 window.

Usage:
    panel-chat [--gui | --cli] [--ws-url URL] [--api-url URL] [--token TOKEN]
               [--username NAME] [--role ROLE] [--debug]
"""

import asyncio
import argparse
import logging
import sys
from typing import Callable, Optional

from panel_chat.constants import ROLE_USER
from panel_chat.protocol_definitions import ChatEvent, ChatTab, EventKind, Player
from panel_chat.chat.connection import ConnectionManager, WebSocketTransport, CancellationToken
from panel_chat.chat.console_api import ConsoleApi, ConsoleApiError
from panel_chat.chat.message_store import MessageStore
from panel_chat.chat.send_gateway import SendError, SendGateway
from panel_chat.chat.session import ChatSession
from panel_chat.chat.text import format_time, strip_colors
from panel_chat.utils.config import ClientConfig
from panel_chat.utils.logger import logger


def format_event(event: ChatEvent) -> str:
    """One console line for a chat event."""
    stamp = format_time(event.timestamp)
    actor = strip_colors(event.actor)
    body = strip_colors(event.body)
    if event.kind == EventKind.DM_RECEIVED:
        return f"[{stamp}] 📨 [DM from {actor}] {body}"
    if event.kind == EventKind.DM_SENT:
        return f"[{stamp}] 📨 [DM to {actor}] {body}"
    if actor:
        return f"[{stamp}] [CHAT] {actor}: {body}"
    return f"[{stamp}] [CHAT] {body}"


def format_player(player: Player) -> str:
    suffix = " (bot)" if player.is_bot else ""
    return f"  #{player.slot:<3} {strip_colors(player.name)}  {player.ping}ms{suffix}"


class ChatConsoleClient:
    """Command-line chat client wiring the chat core together."""

    def __init__(self, config: ClientConfig, api=None, transport=None,
                 output: Callable[[str], None] = print):
        self.config = config
        self.output = output
        self.running = False

        self.token = CancellationToken()
        self.store = MessageStore(config.history_capacity)
        self.api = api or ConsoleApi(config.api_url, token=config.token, timeout=config.request_timeout)
        self.transport = transport or WebSocketTransport(config.ws_url, token=config.token)
        self.gateway = SendGateway(self.api, self.store, display_name=config.username, token=self.token)
        self.session = ChatSession(self.store, self.gateway, role=config.role)
        self.manager = ConnectionManager(
            self.transport, self.store,
            reconnect_delay=config.reconnect_delay,
            on_state_change=self.on_state_change,
            token=self.token
        )

        self._printed = set()
        self.store.add_listener(self.on_store_mutated)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def on_store_mutated(self):
        """Print the events that have not been shown yet."""
        current = set()
        for event in self.store.events:
            current.add(event.id)
            if event.id not in self._printed:
                self.output(format_event(event))
        self._printed = current

    def on_state_change(self, state: str):
        self.output(f"*** Console connection {state}")

    # ========================================================================
    # COMMANDS
    # ========================================================================

    async def handle_input(self, line: str) -> bool:
        """
        Handle one line of user input.

        Returns:
            False when the user asked to quit
        """
        text = line.strip()
        if not text:
            return True

        if not text.startswith('/'):
            await self.send(text)
            return True

        command, _, rest = text.partition(' ')
        command = command.lower()
        if command == '/quit':
            return False
        if command == '/players':
            await self.show_players()
        elif command == '/tab':
            self.switch_tab(rest.strip().lower())
        elif command == '/dm':
            await self.send_dm_command(rest)
        else:
            self.output(f"[ERROR] Unknown command: {command}")
        return True

    async def send(self, text: str):
        """Send ``text`` on the active tab."""
        self.session.input_text = text
        try:
            await self.session.submit()
        except SendError as e:
            self.output(f"[ERROR] Send failed: {e}")

    async def send_dm_command(self, args: str):
        """``/dm <slot> <text>``"""
        slot_text, _, message = args.strip().partition(' ')
        try:
            slot = int(slot_text)
        except ValueError:
            self.output("[ERROR] Usage: /dm <slot> <text>")
            return

        player = self.find_player(slot)
        if player is None:
            await self.refresh_players()
            player = self.find_player(slot)
        if player is None:
            self.output(f"[ERROR] No player in slot {slot}")
            return

        if not self.session.select_player(player):
            self.output("[ERROR] Direct messages need the admin or moderator role")
            return
        await self.send(message)

    def find_player(self, slot: int) -> Optional[Player]:
        for player in self.session.players:
            if player.slot == slot:
                return player
        return None

    def switch_tab(self, tab: str):
        try:
            self.session.select_tab(tab)
        except ValueError:
            self.output("[ERROR] Usage: /tab chat|dm")
            return

        target = self.session.dm_target
        if tab == ChatTab.DM and target is not None:
            self.output(f"--- Direct messages with {strip_colors(target.name)} ---")
        elif tab == ChatTab.DM:
            self.output("--- Direct messages ---")
        else:
            self.output("--- Game chat ---")
        for event in self.session.visible_events():
            self.output(format_event(event))

    async def refresh_players(self) -> bool:
        """Fetch the roster into the session. Returns False if the request failed."""
        try:
            players = await self.api.players()
        except ConsoleApiError as e:
            logger.warning(f"[WARNING] Roster refresh failed: {e}")
            return False
        self.session.update_roster(players)
        return True

    async def show_players(self):
        if not await self.refresh_players():
            self.output("[ERROR] Could not load the player list")
            return
        humans = self.session.human_players
        self.output(f"Online players ({len(humans)}):")
        for player in humans + self.session.bot_players:
            self.output(format_player(player))

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def interactive_mode(self):
        """Run client with interactive chat input."""
        self.running = True
        self.manager.start()
        logger.show_interactive_mode_info()
        await self.refresh_players()

        try:
            while self.running:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, sys.stdin.readline
                )
                if not user_input:
                    break
                if not await self.handle_input(user_input):
                    break
        except asyncio.CancelledError:
            pass
        finally:
            await self.aclose()

    async def aclose(self):
        """Stop the connection and release the HTTP sessions."""
        self.running = False
        await self.manager.aclose()
        await self.api.aclose()
        self.store.clear()
        logger.info("[INFO] Disconnected from console relay")


def run_gui_client(config: ClientConfig):
    """Run the GUI client."""
    try:
        from panel_chat.ui.chat_gui import main as gui_main
    except ImportError:
        print("[ERROR] PyQt6 not installed. Install with: pip install PyQt6")
        sys.exit(1)

    gui_main(config)


def run_cli_client(config: ClientConfig):
    """Run the CLI client."""
    client = ChatConsoleClient(config)
    try:
        asyncio.run(client.interactive_mode())
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Panel Chat Client')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--gui', action='store_true',
                      help='Run with the PyQt6 window (default)')
    mode.add_argument('--cli', action='store_true',
                      help='Run in command-line mode')
    parser.add_argument('--ws-url', type=str, default=None,
                        help='Console relay WebSocket URL (env: PANEL_WS_URL)')
    parser.add_argument('--api-url', type=str, default=None,
                        help='Console API base URL (env: PANEL_API_URL)')
    parser.add_argument('--token', type=str, default=None,
                        help='Bearer access token (env: PANEL_TOKEN)')
    parser.add_argument('--username', type=str, default=None,
                        help='Display name for your chat echoes (env: PANEL_USERNAME)')
    parser.add_argument('--role', type=str, default=None,
                        help=f'Panel role: admin, moderator or user (env: PANEL_ROLE, default: {ROLE_USER})')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser


def config_from_args(args: argparse.Namespace, environ=None) -> ClientConfig:
    """Environment settings overridden by explicit command-line flags."""
    config = ClientConfig.from_env(environ)
    config.update(
        ws_url=args.ws_url,
        api_url=args.api_url,
        token=args.token,
        username=args.username,
        role=args.role
    )
    return config


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    if args.debug:
        logger.set_level(logging.DEBUG)

    config = config_from_args(args)
    logger.debug(f"Configuration: {config.get_connection_info()}")

    if args.cli:
        run_cli_client(config)
    else:
        run_gui_client(config)


if __name__ == "__main__":
    main()
