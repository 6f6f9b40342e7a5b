#!/usr/bin/env python3
"""
Chat GUI - PyQt6 Application

This module hosts the console chat window.
Features:
- Live / disconnected status badge
- Game chat and direct message tabs
- Online player list with DM selection
- Message view that follows new messages unless scrolled away
- Compose line for broadcast chat and direct messages
"""

import sys
import asyncio
import threading
from html import escape
from typing import List, Optional

# PyQt6 imports
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QLabel,
    QPushButton, QTextBrowser, QLineEdit, QListWidget, QListWidgetItem
)
from PyQt6.QtCore import Qt, QThread, QTimer, pyqtSignal
from PyQt6.QtGui import QColor

from panel_chat.protocol_definitions import ChatEvent, ChatTab, DmTarget, EventKind, Player
from panel_chat.chat.connection import (
    CancellationToken, ConnectionManager, ConnectionState, WebSocketTransport
)
from panel_chat.chat.console_api import ConsoleApi, ConsoleApiError
from panel_chat.chat.message_store import MessageStore
from panel_chat.chat.scroll_policy import ScrollPolicy
from panel_chat.chat.send_gateway import SendError, SendGateway
from panel_chat.chat.session import ChatSession, PendingSend
from panel_chat.chat.text import format_time, strip_colors
from panel_chat.utils.config import ClientConfig
from panel_chat.utils.logger import logger


# ============================================================================
# PLAYER PANEL
# ============================================================================

class PlayerPanel(QWidget):
    """Online players; clicking a human starts a direct message."""

    player_selected = pyqtSignal(object)  # Player

    def __init__(self):
        super().__init__()
        self._players: List[Player] = []
        self.setup_ui()

    def setup_ui(self):
        layout = QVBoxLayout()
        layout.setContentsMargins(5, 5, 5, 5)

        self.title_label = QLabel("Online Players (0)")
        self.title_label.setStyleSheet("font-weight: bold;")
        layout.addWidget(self.title_label)

        self.player_list = QListWidget()
        self.player_list.setStyleSheet("""
            QListWidget {
                background-color: #2C2C2C;
                border: 1px solid #34495E;
                border-radius: 5px;
            }
        """)
        self.player_list.itemClicked.connect(self._on_item_clicked)
        layout.addWidget(self.player_list)

        self.empty_label = QLabel("No human players online")
        self.empty_label.setStyleSheet("color: #7F8C8D;")
        layout.addWidget(self.empty_label)

        self.bots_label = QLabel("")
        self.bots_label.setStyleSheet("color: #7F8C8D; font-size: 9pt;")
        self.bots_label.setWordWrap(True)
        layout.addWidget(self.bots_label)

        self.setLayout(layout)

    def update_players(self, humans: List[Player], bots: List[Player],
                       can_select: bool, selected_slot: Optional[int] = None):
        """Redraw the roster."""
        self._players = list(humans)
        self.player_list.clear()
        hint = "  (select to DM)" if can_select else ""
        self.title_label.setText(f"Online Players ({len(humans)}){hint}")

        for row, player in enumerate(humans):
            item = QListWidgetItem(f"{strip_colors(player.name)}   #{player.slot}   {player.ping}ms")
            item.setData(Qt.ItemDataRole.UserRole, row)
            item.setForeground(QColor(_ping_color(player.ping)))
            if not can_select:
                item.setFlags(item.flags() & ~Qt.ItemFlag.ItemIsSelectable)
            self.player_list.addItem(item)
            if selected_slot is not None and player.slot == selected_slot:
                self.player_list.setCurrentItem(item)

        self.empty_label.setVisible(not humans)
        self.player_list.setEnabled(can_select or bool(humans))
        if bots:
            names = ", ".join(strip_colors(bot.name) for bot in bots)
            self.bots_label.setText(f"Bots ({len(bots)}): {names}")
        else:
            self.bots_label.setText("")

    def _on_item_clicked(self, item: QListWidgetItem):
        row = item.data(Qt.ItemDataRole.UserRole)
        if row is not None and 0 <= row < len(self._players):
            self.player_selected.emit(self._players[row])


def _ping_color(ping: int) -> str:
    if ping < 50:
        return '#2ECC71'
    if ping < 100:
        return '#F1C40F'
    return '#E74C3C'


# ============================================================================
# CHAT WIDGET
# ============================================================================

_KIND_BACKGROUND = {
    EventKind.DM_RECEIVED: '#3B2A1A',
    EventKind.DM_SENT: '#1A2A3B',
    EventKind.CHAT: '#1C2B1F',
}


def render_event_html(event: ChatEvent) -> str:
    """HTML line for one chat event."""
    parts = [f'<span style="color: #7F8C8D;">{format_time(event.timestamp)}</span> ']
    actor = escape(strip_colors(event.actor))
    if event.kind == EventKind.DM_RECEIVED:
        parts.append(f'<span style="color: #E67E22;">[from {actor}]</span> ')
    elif event.kind == EventKind.DM_SENT:
        parts.append(f'<span style="color: #3498DB;">[to {actor}]</span> ')
    elif event.kind == EventKind.CHAT and event.actor:
        parts.append(f'<span style="color: #F1C40F;">{actor}:</span> ')
    parts.append(f'<span style="color: #ECF0F1;">{escape(strip_colors(event.body))}</span>')
    background = _KIND_BACKGROUND.get(event.kind, '#2C2C2C')
    return (f'<table width="100%" cellpadding="3" style="background-color: {background};">'
            f'<tr><td>{"".join(parts)}</td></tr></table>')


class ChatWidget(QWidget):
    """Tabs, message view and compose line."""

    send_requested = pyqtSignal()
    tab_selected = pyqtSignal(str)  # ChatTab value
    show_all_dms_requested = pyqtSignal()
    input_changed = pyqtSignal(str)
    scrolled = pyqtSignal(int)  # distance from bottom in pixels

    def __init__(self):
        super().__init__()
        self._rendering = False
        self.setup_ui()

    def setup_ui(self):
        """Setup chat interface UI."""
        layout = QVBoxLayout()
        layout.setSpacing(5)
        layout.setContentsMargins(5, 5, 5, 5)

        # Header: title and connection badge
        header = QHBoxLayout()
        title = QLabel("Chat")
        title.setStyleSheet("font-size: 14pt; font-weight: bold;")
        header.addWidget(title)
        self.status_label = QLabel()
        header.addWidget(self.status_label)
        header.addStretch()
        layout.addLayout(header)
        self.set_connected(False)

        # Tabs
        tabs = QHBoxLayout()
        self.chat_tab_btn = QPushButton("Game Chat")
        self.chat_tab_btn.setCheckable(True)
        self.chat_tab_btn.clicked.connect(lambda: self.tab_selected.emit(ChatTab.CHAT))
        tabs.addWidget(self.chat_tab_btn)
        self.dm_tab_btn = QPushButton("Direct Messages")
        self.dm_tab_btn.setCheckable(True)
        self.dm_tab_btn.clicked.connect(lambda: self.tab_selected.emit(ChatTab.DM))
        tabs.addWidget(self.dm_tab_btn)
        tabs.addStretch()
        layout.addLayout(tabs)

        # DM header
        dm_header = QHBoxLayout()
        self.dm_label = QLabel("")
        dm_header.addWidget(self.dm_label)
        dm_header.addStretch()
        self.show_all_btn = QPushButton("Show all DMs")
        self.show_all_btn.clicked.connect(self.show_all_dms_requested.emit)
        dm_header.addWidget(self.show_all_btn)
        self.dm_header_widget = QWidget()
        self.dm_header_widget.setLayout(dm_header)
        self.dm_header_widget.setVisible(False)
        layout.addWidget(self.dm_header_widget)

        # Message view
        self.chat_text = QTextBrowser()
        self.chat_text.setReadOnly(True)
        self.chat_text.setOpenExternalLinks(False)
        self.chat_text.setStyleSheet("""
            QTextBrowser {
                background-color: #2C2C2C;
                color: #ECF0F1;
                border: 1px solid #34495E;
                border-radius: 5px;
                padding: 5px;
                font-family: monospace;
                font-size: 10pt;
            }
        """)
        scrollbar = self.chat_text.verticalScrollBar()
        scrollbar.valueChanged.connect(self._on_scroll_changed)
        layout.addWidget(self.chat_text)

        # Input area
        input_layout = QHBoxLayout()
        self.input_field = QLineEdit()
        self.input_field.setStyleSheet("""
            QLineEdit {
                background-color: #34495E;
                color: #ECF0F1;
                border: 1px solid #2C3E50;
                border-radius: 5px;
                padding: 5px;
            }
        """)
        self.input_field.textChanged.connect(self.input_changed.emit)
        self.input_field.returnPressed.connect(self.send_requested.emit)
        input_layout.addWidget(self.input_field)

        self.send_btn = QPushButton("Send")
        self.send_btn.clicked.connect(self.send_requested.emit)
        self.send_btn.setStyleSheet("""
            QPushButton {
                background-color: #E67E22;
                color: white;
                border: none;
                padding: 8px 15px;
                border-radius: 5px;
                font-weight: bold;
            }
            QPushButton:disabled {
                background-color: #7F8C8D;
            }
        """)
        input_layout.addWidget(self.send_btn)
        layout.addLayout(input_layout)

        self.error_label = QLabel("")
        self.error_label.setStyleSheet("color: #E74C3C;")
        self.error_label.setVisible(False)
        layout.addWidget(self.error_label)

        self.setLayout(layout)

    def set_connected(self, connected: bool):
        """Update the connection badge."""
        if connected:
            self.status_label.setText("● Live")
            self.status_label.setStyleSheet("background-color: #145A32; color: #82E0AA; padding: 2px 6px;")
        else:
            self.status_label.setText("○ Disconnected")
            self.status_label.setStyleSheet("background-color: #641E16; color: #F1948A; padding: 2px 6px;")

    def set_tab(self, tab: str, target: Optional[DmTarget]):
        """Reflect the active tab and DM target."""
        self.chat_tab_btn.setChecked(tab == ChatTab.CHAT)
        self.dm_tab_btn.setChecked(tab == ChatTab.DM)
        self.dm_header_widget.setVisible(tab == ChatTab.DM and target is not None)
        if target is not None:
            self.dm_label.setText(f"DM with {strip_colors(target.name)}")

        if tab == ChatTab.DM and target is not None:
            self.input_field.setPlaceholderText(f"Message {strip_colors(target.name)}...")
        elif tab == ChatTab.DM:
            self.input_field.setPlaceholderText("Select a player to DM...")
        else:
            self.input_field.setPlaceholderText("Type a message to all players...")

    def set_controls_enabled(self, input_enabled: bool, send_enabled: bool):
        self.input_field.setEnabled(input_enabled)
        self.send_btn.setEnabled(send_enabled)

    def show_error(self, message: str):
        self.error_label.setText(message)
        self.error_label.setVisible(bool(message))

    def render_events(self, events: List[ChatEvent], empty_text: str, follow: bool):
        """Rebuild the message view, keeping the scroll position unless following."""
        scrollbar = self.chat_text.verticalScrollBar()
        previous = scrollbar.value()
        self._rendering = True
        try:
            if events:
                self.chat_text.setHtml("".join(render_event_html(event) for event in events))
            else:
                self.chat_text.setHtml(f'<p align="center" style="color: #7F8C8D;">{escape(empty_text)}</p>')
            if not follow:
                scrollbar.setValue(min(previous, scrollbar.maximum()))
        finally:
            self._rendering = False

    def scroll_to_bottom(self):
        scrollbar = self.chat_text.verticalScrollBar()
        self._rendering = True
        try:
            scrollbar.setValue(scrollbar.maximum())
        finally:
            self._rendering = False

    def distance_from_bottom(self) -> int:
        scrollbar = self.chat_text.verticalScrollBar()
        return scrollbar.maximum() - scrollbar.value()

    def _on_scroll_changed(self, value: int):
        if not self._rendering:
            self.scrolled.emit(self.distance_from_bottom())


# ============================================================================
# MAIN WINDOW
# ============================================================================

class ChatMainWindow(QMainWindow):
    """Main chat window."""

    def __init__(self, config: ClientConfig):
        super().__init__()
        self.config = config
        self.network_thread: Optional['NetworkThread'] = None
        self.closing = False
        self.send_pending = False

        # Chat core (GUI thread only)
        self.store = MessageStore(config.history_capacity)
        self.session = ChatSession(self.store, role=config.role)

        # Setup UI
        self.setup_ui()
        self.scroll_policy = ScrollPolicy(config.auto_follow_threshold,
                                          scroll_to_bottom=self.chat_widget.scroll_to_bottom)
        self.setup_connections()

        # Render first, then let the scroll policy follow the new content
        self.store.add_listener(self.refresh_messages)
        self.store.add_listener(self.scroll_policy.on_store_mutated)

        self.refresh_view()
        self.setup_roster_timer()

    def setup_ui(self):
        """Setup the main window UI."""
        self.setWindowTitle("Panel Chat")
        self.setGeometry(100, 100, 1000, 800)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_layout = QVBoxLayout()
        main_layout.setSpacing(5)
        main_layout.setContentsMargins(10, 10, 10, 10)

        self.player_panel = PlayerPanel()
        main_layout.addWidget(self.player_panel, stretch=2)

        self.chat_widget = ChatWidget()
        main_layout.addWidget(self.chat_widget, stretch=3)

        central_widget.setLayout(main_layout)
        self.apply_dark_theme()

    def setup_connections(self):
        """Setup signal-slot connections."""
        self.chat_widget.send_requested.connect(self.on_send_requested)
        self.chat_widget.tab_selected.connect(self.on_tab_selected)
        self.chat_widget.show_all_dms_requested.connect(self.on_show_all_dms)
        self.chat_widget.input_changed.connect(self.on_input_changed)
        self.chat_widget.scrolled.connect(self.on_viewport_scrolled)
        self.chat_widget.chat_text.verticalScrollBar().rangeChanged.connect(self.on_scroll_range_changed)
        self.player_panel.player_selected.connect(self.on_player_selected)

    def apply_dark_theme(self):
        """Apply dark theme styling."""
        self.setStyleSheet("""
            QMainWindow {
                background-color: #1A1A1A;
            }
            QWidget {
                background-color: #1A1A1A;
                color: #ECF0F1;
            }
        """)

    def setup_roster_timer(self):
        """Poll the player roster periodically."""
        self.roster_timer = QTimer(parent=self)
        self.roster_timer.timeout.connect(self.request_players)
        self.roster_timer.setInterval(int(self.config.roster_poll_interval * 1000))

    # ========================================================================
    # CONNECTION & NETWORKING
    # ========================================================================

    def start_network(self):
        """Start the network thread and the roster poll."""
        self.network_thread = NetworkThread(self.config)
        self.network_thread.event_received.connect(self.on_event_received)
        self.network_thread.history_received.connect(self.on_history_received)
        self.network_thread.state_changed.connect(self.on_state_changed)
        self.network_thread.send_finished.connect(self.on_send_finished)
        self.network_thread.players_received.connect(self.on_players_received)
        self.network_thread.start()
        self.roster_timer.start()
        self.request_players()

    def request_players(self):
        if self.network_thread is not None:
            self.network_thread.request_players()

    def on_event_received(self, event: ChatEvent):
        if not self.closing:
            self.store.append_live(event)

    def on_history_received(self, batch: list):
        if not self.closing:
            self.store.prepend_history(batch)

    def on_state_changed(self, state: str):
        if self.closing:
            return
        connected = state == ConnectionState.OPEN
        self.chat_widget.set_connected(connected)
        status = "Live" if connected else "Disconnected"
        self.setWindowTitle(f"Panel Chat - {self.config.username or 'guest'} ({status})")

    def on_players_received(self, players: list):
        if self.closing:
            return
        self.session.update_roster(players)
        self.refresh_players()

    # ========================================================================
    # USER ACTIONS
    # ========================================================================

    def on_tab_selected(self, tab: str):
        self.session.select_tab(tab)
        self.refresh_view()

    def on_player_selected(self, player: Player):
        if self.session.select_player(player):
            self.refresh_view()

    def on_show_all_dms(self):
        self.session.clear_dm_target()
        self.refresh_view()

    def on_input_changed(self, text: str):
        self.session.input_text = text
        self.refresh_controls()

    def on_viewport_scrolled(self, distance: int):
        self.scroll_policy.on_scroll(distance)

    def on_scroll_range_changed(self, minimum: int, maximum: int):
        if self.scroll_policy.auto_follow:
            self.chat_widget.scroll_to_bottom()

    def on_send_requested(self):
        """Validate the compose line and hand it to the network thread."""
        if self.send_pending:
            return
        try:
            pending = self.session.prepare_send()
        except SendError as e:
            if self.session.input_text.strip():
                self.chat_widget.show_error(str(e))
            return

        if self.network_thread is None:
            self.chat_widget.show_error("Not connected")
            return

        self.chat_widget.show_error("")
        self.send_pending = True
        self.refresh_controls()
        self.network_thread.submit_send(pending)

    def on_send_finished(self, success: bool, error: str):
        """Clear the compose line on success; keep it for a retry otherwise."""
        if self.closing:
            return
        self.send_pending = False
        if success:
            self.session.complete_send()
            self.chat_widget.input_field.clear()
            self.chat_widget.show_error("")
        else:
            self.chat_widget.show_error(f"Send failed: {error}")
        self.refresh_controls()

    # ========================================================================
    # RENDERING
    # ========================================================================

    def refresh_view(self):
        self.chat_widget.set_tab(self.session.active_tab, self.session.dm_target)
        self.refresh_players()
        self.refresh_messages()
        self.refresh_controls()
        self.scroll_policy.on_store_mutated()

    def refresh_messages(self):
        if self.session.active_tab == ChatTab.CHAT:
            empty_text = "No chat messages yet..."
        else:
            empty_text = "No direct messages yet..."
        self.chat_widget.render_events(self.session.visible_events(), empty_text,
                                       follow=self.scroll_policy.auto_follow)

    def refresh_players(self):
        target = self.session.dm_target
        self.player_panel.update_players(
            self.session.human_players,
            self.session.bot_players,
            can_select=self.session.can_send_dm,
            selected_slot=target.slot if target is not None else None
        )

    def refresh_controls(self):
        blocked = (self.session.active_tab == ChatTab.DM
                   and (self.session.dm_target is None or not self.session.can_send_dm))
        input_enabled = not self.send_pending and not blocked
        send_enabled = input_enabled and bool(self.session.input_text.strip())
        self.chat_widget.set_controls_enabled(input_enabled, send_enabled)
        self.chat_widget.send_btn.setText("..." if self.send_pending else "Send")

    def closeEvent(self, event):
        """Tear the chat down when the window closes."""
        self.closing = True
        self.roster_timer.stop()
        if self.network_thread is not None:
            self.network_thread.stop()
            self.network_thread.wait(5000)
            self.network_thread = None
        self.store.clear()
        super().closeEvent(event)


# ============================================================================
# NETWORK THREAD
# ============================================================================

class NetworkThread(QThread):
    """
    Thread owning the asyncio loop for the relay connection and HTTP sends.

    It also stands in for the chat log on the network side: appended events
    are forwarded to the GUI thread as signals, where the real store lives.
    """

    event_received = pyqtSignal(object)  # ChatEvent
    history_received = pyqtSignal(object)  # list[ChatEvent]
    state_changed = pyqtSignal(str)
    send_finished = pyqtSignal(bool, str)  # success, error
    players_received = pyqtSignal(object)  # list[Player]

    def __init__(self, config: ClientConfig):
        super().__init__()
        self.config = config
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.loop_ready = threading.Event()
        self.token = CancellationToken()
        self.manager: Optional[ConnectionManager] = None
        self.gateway: Optional[SendGateway] = None
        self.api: Optional[ConsoleApi] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stopping = False

    def run(self):
        """Run network loop."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        finally:
            self.loop.close()

    async def _serve(self):
        self._stop_event = asyncio.Event()
        self.api = ConsoleApi(self.config.api_url, token=self.config.token,
                              timeout=self.config.request_timeout)
        transport = WebSocketTransport(self.config.ws_url, token=self.config.token)
        self.manager = ConnectionManager(
            transport, self,
            reconnect_delay=self.config.reconnect_delay,
            on_state_change=self.state_changed.emit,
            token=self.token
        )
        self.gateway = SendGateway(self.api, self, display_name=self.config.username, token=self.token)
        self.loop_ready.set()
        # stop() before the loop was ready only sets the flag
        if self._stopping:
            self._request_stop()
        else:
            self.manager.start()

        await self._stop_event.wait()
        await self.manager.aclose()
        await self.api.aclose()
        logger.info("[INFO] Chat network thread stopped")

    # Chat log proxy, called on the network thread
    def append_live(self, event: ChatEvent):
        self.event_received.emit(event)

    def prepend_history(self, batch: list):
        self.history_received.emit(list(batch))

    def submit_send(self, pending: PendingSend):
        """Send from the GUI thread; the result arrives as ``send_finished``."""
        if not self.loop_ready.is_set() or self._stopping:
            self.send_finished.emit(False, "Network not ready")
            return
        asyncio.run_coroutine_threadsafe(self._send(pending), self.loop)

    async def _send(self, pending: PendingSend):
        try:
            if pending.tab == ChatTab.DM:
                await self.gateway.send_dm(pending.target, pending.text)
            else:
                await self.gateway.send_chat(pending.text)
        except SendError as e:
            if not self.token.cancelled:
                self.send_finished.emit(False, str(e))
            return
        except Exception as e:
            logger.log_error("send", e)
            if not self.token.cancelled:
                self.send_finished.emit(False, str(e))
            return
        if not self.token.cancelled:
            self.send_finished.emit(True, "")

    def request_players(self):
        """Fetch the roster from the GUI thread; results arrive as ``players_received``."""
        if self.loop_ready.is_set() and not self.token.cancelled:
            asyncio.run_coroutine_threadsafe(self._fetch_players(), self.loop)

    async def _fetch_players(self):
        try:
            players = await self.api.players()
        except ConsoleApiError as e:
            logger.warning(f"[WARNING] Roster refresh failed: {e}")
            return
        if not self.token.cancelled:
            self.players_received.emit(players)

    def stop(self):
        """Stop network thread."""
        self._stopping = True
        if self.loop_ready.is_set():
            self.loop.call_soon_threadsafe(self._request_stop)

    def _request_stop(self):
        self.manager.stop()
        self._stop_event.set()


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def main(config: Optional[ClientConfig] = None):
    """Main entry point."""
    app = QApplication(sys.argv)

    window = ChatMainWindow(config or ClientConfig.from_env())
    window.show()
    window.start_network()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
