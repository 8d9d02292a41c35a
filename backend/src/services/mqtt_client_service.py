# pyright: reportMissingTypeStubs=false
"""
MQTT client management.

Keeps one persistent paho-mqtt client per configured server. Clients are
created on first use, run paho's network loop in a background thread and
reconnect automatically. Concurrent first use of a server shares a single
connection attempt. Connection and publish outcomes are counted per server
for the status endpoint.
"""

import asyncio
import logging
import secrets
from contextlib import AbstractContextManager
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from sqlalchemy.orm import Session

from core.constants import (
    MQTT_CLIENT_ID_PREFIX,
    MQTT_CONNECT_TIMEOUT_SECONDS,
    MQTT_KEEPALIVE_SECONDS,
    MQTT_RECONNECT_PERIOD_SECONDS,
)
from core.database import get_db_context
from models import MqttServer
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class MqttConnectionError(Exception):
    """Raised when a connection to an MQTT server cannot be established."""
    pass


class MqttPublishError(Exception):
    """Raised when a message cannot be published."""
    pass


@dataclass(frozen=True)
class MqttServerSettings:
    """Connection settings copied out of an MqttServer row."""

    server_id: int
    host: str
    port: int
    use_tls: bool
    client_id: str
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_model(cls, server: MqttServer) -> "MqttServerSettings":
        return cls(
            server_id=server.id,
            host=server.host,
            port=server.port,
            use_tls=server.use_tls,
            client_id=server.client_id or generate_client_id(),
            username=server.username,
            password=server.password,
        )


@dataclass
class MqttServerStats:
    """Connection and publish counters for one server."""

    connect_attempts: int = 0
    connect_successes: int = 0
    connect_failures: int = 0
    publish_successes: int = 0
    publish_failures: int = 0
    last_error: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None


def generate_client_id() -> str:
    """Random client id, e.g. 'makerspace-api-3f9a1c2e'."""
    return f"{MQTT_CLIENT_ID_PREFIX}{secrets.token_hex(4)}"


def create_paho_client(settings: MqttServerSettings) -> mqtt.Client:
    """Build a paho client configured for the given server (not yet connected)."""
    client = mqtt.Client(
        callback_api_version=CallbackAPIVersion.VERSION2,
        client_id=settings.client_id,
        reconnect_on_failure=True,
    )
    if settings.username:
        client.username_pw_set(settings.username, settings.password)
    if settings.use_tls:
        client.tls_set()
    client.reconnect_delay_set(
        min_delay=MQTT_RECONNECT_PERIOD_SECONDS,
        max_delay=MQTT_RECONNECT_PERIOD_SECONDS
    )
    return client


SessionFactory = Callable[[], AbstractContextManager[Session]]
ClientFactory = Callable[[MqttServerSettings], mqtt.Client]


class MqttClientService:
    """
    Manages persistent MQTT connections, one per server.

    Attributes:
        connect_timeout: Seconds to wait for the broker's CONNACK
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_db_context,
        client_factory: ClientFactory = create_paho_client,
        connect_timeout: float = MQTT_CONNECT_TIMEOUT_SECONDS
    ):
        self._session_factory = session_factory
        self._client_factory = client_factory
        self.connect_timeout = connect_timeout
        self._clients: Dict[int, mqtt.Client] = {}
        self._pending: Dict[int, "asyncio.Task[mqtt.Client]"] = {}
        self._generations: Dict[int, int] = {}
        self._stats: Dict[int, MqttServerStats] = {}

    # ===== Connections =====

    async def get_client(self, server_id: int) -> mqtt.Client:
        """
        Return a connected client for the server, connecting if needed.

        Callers arriving while a connection attempt is in flight wait for that
        same attempt.

        Raises:
            MqttConnectionError: If the server is unknown, the connection fails,
                or the cached client is disconnected and still reconnecting
        """
        client = self._clients.get(server_id)
        if client is not None:
            if client.is_connected():
                return client
            raise MqttConnectionError(f"MQTT server {server_id} is disconnected (reconnecting)")

        pending = self._pending.get(server_id)
        if pending is None:
            generation = self._generations.get(server_id, 0)
            pending = asyncio.ensure_future(self._connect_and_cache(server_id, generation))
            self._pending[server_id] = pending
            pending.add_done_callback(lambda task: self._forget_pending(server_id, task))
        return await asyncio.shield(pending)

    def is_connected(self, server_id: int) -> bool:
        """Check if a cached, connected client exists for the server."""
        client = self._clients.get(server_id)
        return client is not None and client.is_connected()

    async def disconnect(self, server_id: int) -> None:
        """
        Close and forget the client of a server, if any.

        A connection attempt still in flight is abandoned: its client is closed
        when it completes and its waiters get MqttConnectionError.
        """
        self._generations[server_id] = self._generations.get(server_id, 0) + 1
        self._pending.pop(server_id, None)
        client = self._clients.pop(server_id, None)
        if client is None:
            return
        self._close(client)
        logger.info(f"Disconnected from MQTT server {server_id}")

    async def disconnect_all(self) -> None:
        """Close every cached client and abandon attempts in flight."""
        for server_id in set(self._clients.keys()) | set(self._pending.keys()):
            await self.disconnect(server_id)

    # ===== Publishing =====

    async def publish(self, server_id: int, topic: str, message: str) -> None:
        """
        Publish a message to a topic on the given server.

        Raises:
            MqttConnectionError: If the server cannot be reached
            MqttPublishError: If paho rejects the publish
        """
        client = await self.get_client(server_id)
        stats = self._stats_for(server_id)

        info = client.publish(topic, message)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            error = mqtt.error_string(info.rc)
            stats.publish_failures += 1
            stats.last_error = error
            stats.last_error_at = utc_now()
            raise MqttPublishError(f"Failed to publish to {topic} on server {server_id}: {error}")

        stats.publish_successes += 1
        logger.debug(f"Published to {topic} on MQTT server {server_id}")

    # ===== Testing and monitoring =====

    async def test_connection(self, db: Session, server_id: int) -> Dict[str, Any]:
        """
        Try a fresh connection to a server without touching the cached client.

        Args:
            db: Database session
            server_id: Server to test

        Returns:
            {"success": bool, "message": str}
        """
        server = db.get(MqttServer, server_id)
        if not server:
            return {"success": False, "message": f"Connection failed: MQTT server {server_id} not found"}

        settings = MqttServerSettings.from_model(server)
        settings = replace(settings, client_id=f"{settings.client_id}-test-{secrets.token_hex(2)}")
        try:
            client = await self._open(settings)
        except MqttConnectionError as e:
            return {"success": False, "message": f"Connection failed: {e}"}

        self._close(client)
        return {"success": True, "message": f"Connection successful to {server.url}"}

    def get_status(self, server_id: int) -> Dict[str, Any]:
        """Connection state and counters of a server."""
        stats = self._stats_for(server_id)
        status = asdict(stats)
        status["server_id"] = server_id
        status["connected"] = self.is_connected(server_id)
        return status

    def get_all_statuses(self) -> Dict[int, Dict[str, Any]]:
        """Statuses of every server seen since startup."""
        server_ids = set(self._stats.keys()) | set(self._clients.keys())
        return {server_id: self.get_status(server_id) for server_id in sorted(server_ids)}

    # ===== Internals =====

    async def _connect_and_cache(self, server_id: int, generation: int) -> mqtt.Client:
        settings = self._load_settings(server_id)
        stats = self._stats_for(server_id)
        stats.connect_attempts += 1
        try:
            client = await self._open(settings)
        except MqttConnectionError as e:
            stats.connect_failures += 1
            stats.last_error = str(e)
            stats.last_error_at = utc_now()
            raise

        if self._generations.get(server_id, 0) != generation:
            self._close(client)
            logger.info(f"Dropped connection to MQTT server {server_id}: disconnected while connecting")
            raise MqttConnectionError(f"MQTT server {server_id} was disconnected while connecting")

        stats.connect_successes += 1
        stats.last_connected_at = utc_now()
        self._clients[server_id] = client
        return client

    def _forget_pending(self, server_id: int, task: "asyncio.Task[mqtt.Client]") -> None:
        if self._pending.get(server_id) is task:
            del self._pending[server_id]

    def _load_settings(self, server_id: int) -> MqttServerSettings:
        with self._session_factory() as db:
            server = db.get(MqttServer, server_id)
            if not server:
                raise MqttConnectionError(f"MQTT server {server_id} not found")
            return MqttServerSettings.from_model(server)

    async def _open(self, settings: MqttServerSettings) -> mqtt.Client:
        """Create a client and wait for its first successful CONNACK."""
        loop = asyncio.get_running_loop()
        connected: "asyncio.Future[None]" = loop.create_future()
        client = self._client_factory(settings)
        target = f"{settings.host}:{settings.port}"

        def resolve(error: Optional[str]) -> None:
            if connected.done():
                return
            if error:
                connected.set_exception(MqttConnectionError(error))
            else:
                connected.set_result(None)

        def on_connect(client, userdata, flags, reason_code, properties):  # type: ignore
            if reason_code.is_failure:
                logger.warning(f"MQTT server {target} refused connection: {reason_code}")
                loop.call_soon_threadsafe(resolve, f"broker refused connection: {reason_code}")
            else:
                logger.info(f"Connected to MQTT server {target}")
                loop.call_soon_threadsafe(resolve, None)

        def on_connect_fail(client, userdata):  # type: ignore
            loop.call_soon_threadsafe(resolve, f"could not reach {target}")

        def on_disconnect(client, userdata, disconnect_flags, reason_code, properties):  # type: ignore
            logger.warning(f"Disconnected from MQTT server {target}: {reason_code}")

        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_disconnect = on_disconnect

        try:
            client.connect_async(settings.host, settings.port, keepalive=MQTT_KEEPALIVE_SECONDS)
            client.loop_start()
            await asyncio.wait_for(connected, timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            self._close(client)
            raise MqttConnectionError(f"timed out connecting to {target} after {self.connect_timeout:.0f}s")
        except MqttConnectionError:
            self._close(client)
            raise
        except Exception as e:
            self._close(client)
            raise MqttConnectionError(f"error connecting to {target}: {e}") from e

        return client

    @staticmethod
    def _close(client: mqtt.Client) -> None:
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    def _stats_for(self, server_id: int) -> MqttServerStats:
        return self._stats.setdefault(server_id, MqttServerStats())
