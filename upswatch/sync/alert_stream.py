"""
Live alert stream client.

Keeps one WebSocket connection to the backend's alert feed, seeds the
local buffer with ``get_alerts`` on every connect and merges pushed
alerts into a bounded, most-recent-first buffer.

Connection lifecycle::

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED (retry)

A failed connect or a close goes back to DISCONNECTED and arms the single
retry timer; the retry only connects if the client is still disconnected
and not stopping.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import ConfigurationError, Settings
from ..core.bus import ALERT_NOTIFICATION, ALERTS_UPDATED, STREAM_STATE, EventBus
from ..models import LiveAlertEntry

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_BUFFER_SIZE = 10
DEFAULT_DISPLAY_SIZE = 5

CRITICAL_DISPLAY_SECONDS = 10.0
WARNING_DISPLAY_SECONDS = 8.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Notification:
    """A user-facing alert notification (toast)."""
    level: str
    title: str
    description: str
    duration: float
    entry: LiveAlertEntry


def build_notification(entry: LiveAlertEntry) -> Optional[Notification]:
    """Critical alerts get a 10s high-priority notification, warnings 8s; others none."""
    alert = entry.alert
    description = f"{entry.ups_id} - {alert.message}"
    if alert.type == "critical":
        return Notification("critical", f"Critical Alert: {alert.title}", description, CRITICAL_DISPLAY_SECONDS, entry)
    if alert.type == "warning":
        return Notification("warning", f"Warning: {alert.title}", description, WARNING_DISPLAY_SECONDS, entry)
    return None


class LiveAlertStream:
    """
    WebSocket client for the backend's push alert feed.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        display_size: int = DEFAULT_DISPLAY_SIZE,
        bus: Optional[EventBus] = None,
        connect: Callable[..., Any] = websockets.connect,
    ):
        """
        Initialize the stream client.

        Args:
            url: WebSocket URL of the alert feed.
            reconnect_delay: Seconds between a close and the next connect attempt.
            buffer_size: Maximum number of alerts kept.
            display_size: Number of alerts shown by ``displayed_alerts``.
            bus: Optional event bus for buffer updates, notifications and state.
            connect: Coroutine function opening the connection (``websockets.connect``).
        """
        if not url:
            raise ConfigurationError("Live alert stream URL is not set")
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.buffer_size = buffer_size
        self.display_size = display_size
        self.bus = bus
        self._connect = connect

        self.state = ConnectionState.DISCONNECTED
        self.unread_count = 0
        self.connect_attempts = 0
        self._alerts: List[LiveAlertEntry] = []
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._stopping = False

    @classmethod
    def from_settings(cls, settings: Settings, bus: Optional[EventBus] = None) -> "LiveAlertStream":
        return cls(
            settings.WS_URL,
            reconnect_delay=settings.RECONNECT_DELAY,
            buffer_size=settings.ALERT_BUFFER_SIZE,
            display_size=settings.ALERT_DISPLAY_SIZE,
            bus=bus,
        )

    # Buffer views

    @property
    def alerts(self) -> Tuple[LiveAlertEntry, ...]:
        return tuple(self._alerts)

    @property
    def displayed_alerts(self) -> Tuple[LiveAlertEntry, ...]:
        return tuple(self._alerts[:self.display_size])

    @property
    def critical_alerts(self) -> List[LiveAlertEntry]:
        return [a for a in self._alerts if a.alert.type == "critical"]

    @property
    def warning_alerts(self) -> List[LiveAlertEntry]:
        return [a for a in self._alerts if a.alert.type == "warning"]

    @property
    def has_active_alerts(self) -> bool:
        return bool(self.critical_alerts or self.warning_alerts)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    def retry_due_in(self) -> Optional[float]:
        """Seconds until the armed retry fires, or None."""
        if self._retry_handle is None:
            return None
        return self._retry_handle.when() - asyncio.get_running_loop().time()

    def mark_read(self) -> None:
        self.unread_count = 0

    # Lifecycle

    async def start(self) -> None:
        """Open the connection in a background task."""
        if (self._task and not self._task.done()) or self.state is not ConnectionState.DISCONNECTED:
            logger.warning("Alert stream is already running.")
            return
        self._stopping = False
        self._cancel_retry()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Close the connection and cancel any pending retry."""
        self._stopping = True
        self._cancel_retry()
        ws = self._ws
        if ws is not None:
            await ws.close()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._ws = None
        self.state = ConnectionState.DISCONNECTED
        logger.info("Alert stream stopped.")

    async def _run(self) -> None:
        self.connect_attempts += 1
        self.state = ConnectionState.CONNECTING
        try:
            ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning(f"Failed to connect to alert stream {self.url}: {e}")
            await self._handle_closed()
            return

        self._ws = ws
        self.state = ConnectionState.CONNECTED
        logger.info(f"Connected to alert stream {self.url}")
        await self._publish(STREAM_STATE, self.state)
        try:
            await ws.send(json.dumps({"type": "get_alerts"}))
            async for message in ws:
                await self.handle_message(message)
        except ConnectionClosed as e:
            logger.info(f"Alert stream connection closed: {e}")
        except Exception:
            logger.exception("Alert stream listener failed")
        finally:
            self._ws = None
        await self._handle_closed()

    async def _handle_closed(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        if self._stopping:
            return
        self._schedule_retry()
        await self._publish(STREAM_STATE, self.state)

    def _schedule_retry(self) -> None:
        self._cancel_retry()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(self.reconnect_delay, self._retry)
        logger.info(f"Reconnecting to alert stream in {self.reconnect_delay:g}s")

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _retry(self) -> None:
        self._retry_handle = None
        if self._stopping or self.state is not ConnectionState.DISCONNECTED:
            logger.debug("Skipping alert stream retry in state %s", self.state.value)
            return
        self._task = asyncio.create_task(self._run())

    # Messages

    async def handle_message(self, raw: Any) -> None:
        """
        Apply one inbound frame. Malformed or unknown frames are logged and ignored.
        """
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON alert stream frame: %.100r", raw)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring alert stream frame without a type: %.100r", raw)
            return

        msg_type = message.get("type")
        data = message.get("data")
        try:
            if msg_type == "current_alerts":
                await self._replace_alerts(data)
            elif msg_type == "new_alert":
                await self._add_alert(data)
            elif msg_type in ("status_update", "pong"):
                logger.debug("Received %s", msg_type)
            else:
                logger.warning(f"Unknown alert stream message type '{msg_type}'")
        except ValidationError as e:
            logger.warning("Ignoring malformed %s message: %d validation errors", msg_type, e.error_count())

    async def _replace_alerts(self, data: Any) -> None:
        if data is None:
            data = []
        if not isinstance(data, list):
            logger.warning("Ignoring current_alerts frame with non-list data: %.100r", data)
            return
        entries = [LiveAlertEntry.model_validate(item) for item in data]
        self._alerts = entries[:self.buffer_size]
        logger.info("Alert buffer resynced with %d alerts", len(self._alerts))
        await self._publish(ALERTS_UPDATED, self.alerts)

    async def _add_alert(self, data: Any) -> None:
        entry = LiveAlertEntry.model_validate(data)
        self._alerts = [entry, *self._alerts][:self.buffer_size]
        self.unread_count += 1
        logger.info("New %s alert for %s: %s", entry.alert.type, entry.ups_id, entry.alert.title)
        await self._publish(ALERTS_UPDATED, self.alerts)

        notification = build_notification(entry)
        if notification is not None:
            await self._publish(ALERT_NOTIFICATION, notification)

    async def _publish(self, topic: str, data: Any) -> None:
        if self.bus is not None:
            await self.bus.publish(topic, data)
