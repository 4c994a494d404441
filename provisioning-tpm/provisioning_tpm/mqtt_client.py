# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Async wrapper over the Paho MQTT client, used for both DPS registration and IoTHub telemetry"""

import asyncio
import functools
import logging
import paho.mqtt.client as mqtt  # type: ignore
import ssl
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple, Union
from .config import ClientConfig, ProxyOptions


logger = logging.getLogger(__name__)

# Port and websocket path of the Azure IoT MQTT endpoints
MQTT_PORT = 8883
WEBSOCKETS_PORT = 443
WEBSOCKETS_PATH = "/$iothub/websocket"

# Paho rc values that are expected from each method. Anything else gets a warning.
expected_subscribe_rc = [mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN]
expected_publish_rc = [mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN, mqtt.MQTT_ERR_QUEUE_SIZE]
expected_on_connect_rc = [
    mqtt.CONNACK_ACCEPTED,
    mqtt.CONNACK_REFUSED_PROTOCOL_VERSION,
    mqtt.CONNACK_REFUSED_IDENTIFIER_REJECTED,
    mqtt.CONNACK_REFUSED_SERVER_UNAVAILABLE,
    mqtt.CONNACK_REFUSED_BAD_USERNAME_PASSWORD,
    mqtt.CONNACK_REFUSED_NOT_AUTHORIZED,
]


class MQTTError(Exception):
    """An operation failed with a Paho error rc"""

    def __init__(self, rc):
        self.rc = rc
        super().__init__(mqtt.error_string(rc))


class MQTTConnectionFailedError(Exception):
    """The client could not connect, either refused with a CONNACK rc or failed with a message"""

    def __init__(self, rc=None, message=None):
        if not rc and not message:
            raise ValueError("Either rc or message is required")
        if rc and message:
            raise ValueError("Only one of rc and message may be given")
        self.rc = rc
        super().__init__(mqtt.connack_string(rc) if rc else message)


class MQTTClient:
    """
    A single MQTT connection with awaitable connect, subscribe and publish.

    Subscribes and publishes use QoS 1 and complete on the SUBACK or PUBACK. The client never
    reconnects. When the connection drops, operations waiting for an ack fail with MQTTError.
    """

    def __init__(
        self,
        client_id: str,
        hostname: str,
        port: int,
        transport: str = "tcp",
        keep_alive: int = 60,
        ssl_context: Optional[ssl.SSLContext] = None,
        websockets_path: Optional[str] = None,
        proxy_options: Optional[ProxyOptions] = None,
    ) -> None:
        """
        Must be created on the running event loop, which Paho handlers report back to.

        :param str client_id: MQTT client id
        :param str hostname: Broker hostname
        :param int port: Broker port
        :param str transport: "tcp" or "websockets"
        :param int keep_alive: MQTT keepalive, in seconds
        :param ssl_context: TLS settings. Paho's default context is used if not given.
        :type ssl_context: :class:`ssl.SSLContext`
        :param str websockets_path: Request path, when using websockets
        :param proxy_options: Proxy to connect through, if any
        :type proxy_options: :class:`provisioning_tpm.config.ProxyOptions`
        """
        self._hostname = hostname
        self._port = port
        self._keep_alive = keep_alive
        self._event_loop = asyncio.get_running_loop()

        # Written only on the event loop, from Paho handlers
        self._connected = False
        self._disconnected = asyncio.Condition()

        # Held from a connect attempt until its CONNACK
        self._connection_lock = asyncio.Lock()
        self._pending_connect: Optional[asyncio.Future] = None
        self._network_loop: Optional[asyncio.Future] = None

        # Futures for outstanding SUBACKs and PUBACKs, by mid
        self._ack_lock = asyncio.Lock()
        self._pending_subacks: Dict[int, asyncio.Future] = {}
        self._pending_pubacks: Dict[int, asyncio.Future] = {}

        self._filter_queues: Dict[str, asyncio.Queue[mqtt.MQTTMessage]] = {}

        self._mqtt_client = self._create_mqtt_client(
            client_id, transport, ssl_context, proxy_options, websockets_path
        )

    def _create_mqtt_client(
        self,
        client_id: str,
        transport: str,
        ssl_context: Optional[ssl.SSLContext],
        proxy_options: Optional[ProxyOptions],
        websockets_path: Optional[str],
    ) -> mqtt.Client:
        logger.debug("Creating Paho client")
        mqtt_client = mqtt.Client(
            client_id=client_id,
            clean_session=True,
            protocol=mqtt.MQTTv311,
            transport=transport,
            reconnect_on_failure=False,
        )
        mqtt_client.enable_logger(logging.getLogger("paho"))

        if transport == "websockets" and websockets_path:
            logger.debug("Paho client uses websockets at {}".format(websockets_path))
            mqtt_client.ws_set_options(path=websockets_path)
        if proxy_options:
            logger.debug("Paho client connects through a {} proxy".format(proxy_options.proxy_type))
            mqtt_client.proxy_set(
                proxy_type=proxy_options.proxy_type_socks,
                proxy_addr=proxy_options.proxy_address,
                proxy_port=proxy_options.proxy_port,
                proxy_username=proxy_options.proxy_username,
                proxy_password=proxy_options.proxy_password,
            )
        mqtt_client.tls_set_context(context=ssl_context)

        mqtt_client.on_connect = self._on_connect
        mqtt_client.on_disconnect = self._on_disconnect
        mqtt_client.on_subscribe = self._on_subscribe
        mqtt_client.on_publish = self._on_publish
        mqtt_client.on_message = self._on_message
        return mqtt_client

    # Paho handlers. These run on the Paho network loop thread.

    def _run_on_loop(self, coro, wait: bool = True) -> None:
        future = asyncio.run_coroutine_threadsafe(coro, self._event_loop)
        if wait:
            future.result()

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Dict[str, int], rc: int) -> None:
        logger.debug("CONNACK received: rc {} - {}".format(rc, mqtt.connack_string(rc)))
        if rc not in expected_on_connect_rc:
            logger.warning("Unexpected CONNACK rc {}".format(rc))

        async def resolve_connect() -> None:
            if rc == mqtt.CONNACK_ACCEPTED:
                logger.debug("Connected to {}".format(self._hostname))
                self._connected = True
            if self._pending_connect:
                self._pending_connect.set_result(rc)
            else:
                logger.warning("CONNACK received with no connect in progress")

        # The connected state must be set before Paho delivers anything else
        self._run_on_loop(resolve_connect())

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, rc: int) -> None:
        rc_msg = mqtt.error_string(rc)
        if not self._connected:
            # Also called after a refused CONNACK
            logger.debug("Disconnect while not connected: rc {} - {}".format(rc, rc_msg))
            return
        if rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug("Disconnected: rc {} - {}".format(rc, rc_msg))
        else:
            logger.warning("Connection lost: rc {} - {}".format(rc, rc_msg))

        async def mark_disconnected() -> None:
            self._connected = False
            async with self._disconnected:
                self._disconnected.notify_all()

        async def fail_pending_acks() -> None:
            async with self._ack_lock:
                for pending in (self._pending_subacks, self._pending_pubacks):
                    for ack in pending.values():
                        if not ack.done():
                            ack.set_exception(MQTTError(mqtt.MQTT_ERR_CONN_LOST))
                    pending.clear()

        self._run_on_loop(mark_disconnected())
        # An operation may hold the ack lock while awaiting, so this one is not waited on
        self._run_on_loop(fail_pending_acks(), wait=False)

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, granted_qos: int) -> None:
        logger.debug("SUBACK received for mid {}".format(mid))
        self._run_on_loop(self._resolve_ack(self._pending_subacks, mid, "SUBACK"), wait=False)

    def _on_publish(self, client: mqtt.Client, userdata: Any, mid: int) -> None:
        logger.debug("PUBACK received for mid {}".format(mid))
        self._run_on_loop(self._resolve_ack(self._pending_pubacks, mid, "PUBACK"), wait=False)

    def _on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        logger.debug("Dropping message on {}, which matches no filter".format(message.topic))

    async def _resolve_ack(self, pending: Dict[int, asyncio.Future], mid: int, ack: str) -> None:
        async with self._ack_lock:
            if mid in pending:
                pending[mid].set_result(True)
            else:
                logger.warning("{} for unknown mid {}".format(ack, mid))

    def is_connected(self) -> bool:
        """True if the broker accepted the connection and it has not dropped since"""
        return self._connected

    def set_credentials(self, username: str, password: Optional[str] = None) -> None:
        """Set the username, and optionally the password, used by the next .connect()"""
        self._mqtt_client.username_pw_set(username=username, password=password)

    def add_incoming_message_filter(self, topic: str) -> None:
        """
        Queue incoming messages that match a topic filter, for .get_incoming_message_generator()

        :raises: ValueError if the topic already has a filter
        """
        if topic in self._filter_queues:
            raise ValueError("Topic {} already has a filter".format(topic))
        queue: asyncio.Queue[mqtt.MQTTMessage] = asyncio.Queue()
        self._filter_queues[topic] = queue

        def on_filtered_message(client, userdata, message):
            logger.debug("Message received on {}".format(message.topic))
            self._event_loop.call_soon_threadsafe(queue.put_nowait, message)

        self._mqtt_client.message_callback_add(topic, on_filtered_message)

    def get_incoming_message_generator(
        self, filter_topic: str
    ) -> AsyncGenerator[mqtt.MQTTMessage, None]:
        """
        Return an async generator over the messages queued for a topic filter

        :raises: ValueError if the topic has no filter
        """
        try:
            queue = self._filter_queues[filter_topic]
        except KeyError:
            raise ValueError("Topic {} has no filter".format(filter_topic)) from None

        async def messages() -> AsyncGenerator[mqtt.MQTTMessage, None]:
            while True:
                yield await queue.get()

        return messages()

    async def connect(self) -> None:
        """
        Connect to the broker and wait for the CONNACK. Does nothing if already connected.

        :raises: MQTTConnectionFailedError if the connect fails or is refused
        """
        async with self._connection_lock:
            if self._connected:
                logger.debug("Already connected to {}".format(self._hostname))
                return
            self._pending_connect = self._event_loop.create_future()
            try:
                await self._connect_and_wait()
            except asyncio.CancelledError:
                logger.warning("Connect cancelled. Paho may still complete it")
                raise
            finally:
                self._pending_connect = None

    async def _connect_and_wait(self) -> None:
        logger.debug("Connecting to {}:{}".format(self._hostname, self._port))
        try:
            rc = await self._event_loop.run_in_executor(
                None,
                functools.partial(
                    self._mqtt_client.connect,
                    host=self._hostname,
                    port=self._port,
                    keepalive=self._keep_alive,
                ),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise MQTTConnectionFailedError(message="Paho .connect() raised") from e
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning("Paho .connect() returned rc {}".format(rc))
            raise MQTTConnectionFailedError(message="Paho .connect() failed") from MQTTError(rc)

        # The network loop needs the socket opened by .connect(). It may survive a cancelled attempt.
        if not (self._network_loop and not self._network_loop.done()):
            logger.debug("Starting Paho network loop")
            self._network_loop = self._event_loop.run_in_executor(
                None, self._mqtt_client.loop_forever
            )

        assert self._pending_connect is not None
        rc = await self._pending_connect
        if rc != mqtt.CONNACK_ACCEPTED:
            # Paho ends the network loop after a refusal
            if self._network_loop is not None:
                await self._network_loop
                self._network_loop = None
            raise MQTTConnectionFailedError(rc=rc)

    async def disconnect(self) -> None:
        """Disconnect from the broker and stop the network loop. Does nothing if not connected."""
        async with self._connection_lock:
            if not self._network_loop:
                logger.debug("Not connected to {}".format(self._hostname))
                return
            logger.debug("Disconnecting from {}".format(self._hostname))
            rc = await self._event_loop.run_in_executor(None, self._mqtt_client.disconnect)
            if rc == mqtt.MQTT_ERR_SUCCESS:
                async with self._disconnected:
                    await self._disconnected.wait_for(lambda: not self._connected)
                await self._network_loop
            elif rc != mqtt.MQTT_ERR_NO_CONN:
                logger.warning("Paho .disconnect() returned rc {}".format(rc))
            self._network_loop = None

    async def subscribe(self, topic: str) -> None:
        """
        Subscribe to a topic at QoS 1 and wait for the SUBACK

        :raises: MQTTError if the subscribe fails, or the connection drops first
        """
        await self._send_and_wait_for_ack(
            "subscribe",
            self._pending_subacks,
            expected_subscribe_rc,
            functools.partial(self._mqtt_client.subscribe, topic=topic, qos=1),
        )

    async def publish(self, topic: str, payload: Union[str, bytes, int, float, None]) -> None:
        """
        Publish a message at QoS 1 and wait for the PUBACK

        :raises: ValueError or TypeError if Paho rejects the topic or payload
        :raises: MQTTError if the publish fails, or the connection drops first
        """

        def send() -> Tuple[int, int]:
            message_info = self._mqtt_client.publish(topic=topic, payload=payload, qos=1)
            return message_info.rc, message_info.mid

        await self._send_and_wait_for_ack("publish", self._pending_pubacks, expected_publish_rc, send)

    async def _send_and_wait_for_ack(
        self,
        operation: str,
        pending: Dict[int, asyncio.Future],
        expected_rc: List[int],
        send: Callable[[], Tuple[int, Optional[int]]],
    ) -> None:
        mid = None
        try:
            # The ack handler takes the same lock, so the Future exists before it can resolve
            async with self._ack_lock:
                rc, mid = await self._event_loop.run_in_executor(None, send)
                logger.debug("Paho .{}() returned rc {} for mid {}".format(operation, rc, mid))
                if rc != mqtt.MQTT_ERR_SUCCESS:
                    if rc not in expected_rc:
                        logger.warning("Unexpected rc {} from Paho .{}()".format(rc, operation))
                    raise MQTTError(rc)
                ack = self._event_loop.create_future()
                pending[mid] = ack
            await ack
        except asyncio.CancelledError:
            if mid:
                logger.warning("Cancelled {} of mid {}. It may still complete".format(operation, mid))
            raise
        finally:
            async with self._ack_lock:
                pending.pop(mid, None)


def create_client_from_config(client_id: str, client_config: ClientConfig) -> MQTTClient:
    """Create an MQTTClient for an Azure IoT endpoint, over TCP or, if the config enables them,
    websockets"""
    if client_config.websockets:
        transport = "websockets"
        port = WEBSOCKETS_PORT
        websockets_path: Optional[str] = WEBSOCKETS_PATH
    else:
        transport = "tcp"
        port = MQTT_PORT
        websockets_path = None
    logger.debug(
        "Creating MQTTClient {} for {}:{} over {}".format(
            client_id, client_config.hostname, port, transport
        )
    )
    return MQTTClient(
        client_id=client_id,
        hostname=client_config.hostname,
        port=port,
        transport=transport,
        keep_alive=client_config.keep_alive,
        ssl_context=client_config.ssl_context,
        websockets_path=websockets_path,
        proxy_options=client_config.proxy_options,
    )
