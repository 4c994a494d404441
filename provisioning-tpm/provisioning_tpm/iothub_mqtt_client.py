# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Minimal IoTHub device client, used to verify a freshly provisioned identity"""

import logging
import ssl
import urllib.parse
from typing import Optional, Union
from .config import IoTHubClientConfig, ProxyOptions, default_ssl_context
from .sastoken import RenewableSasToken
from .signing_mechanism import TpmSigningMechanism
from . import constant, user_agent
from . import mqtt_client as mqtt
from . import mqtt_topic

logger = logging.getLogger(__name__)


class IoTHubMQTTClient:
    def __init__(self, client_config: IoTHubClientConfig) -> None:
        """Instantiate the client

        :param client_config: The config object for the client
        :type client_config: :class:`IoTHubClientConfig`
        """
        self._device_id = client_config.device_id
        self._username = _format_username(
            hostname=client_config.hostname, client_id=self._device_id
        )
        self._sastoken = client_config.sastoken
        self._mqtt_client = mqtt.create_client_from_config(self._device_id, client_config)

    async def connect(self) -> None:
        """Connect to IoTHub

        :raises: MQTTConnectionFailedError if there is a failure connecting
        """
        password = str(self._sastoken) if self._sastoken else None
        self._mqtt_client.set_credentials(self._username, password)
        logger.debug("Connecting to IoTHub...")
        await self._mqtt_client.connect()
        logger.debug("Connect succeeded")

    async def disconnect(self) -> None:
        """Disconnect from IoTHub"""
        logger.debug("Disconnecting from IoTHub...")
        await self._mqtt_client.disconnect()
        logger.debug("Disconnect succeeded")

    async def send_message(self, payload: Union[str, bytes]) -> None:
        """Send a telemetry message to IoTHub.

        :param payload: The message body. Strings are sent utf-8 encoded.

        :raises: MQTTError if there is an error sending the message
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        logger.debug("Sending telemetry message to IoTHub...")
        await self._mqtt_client.publish(
            mqtt_topic.get_telemetry_topic_for_publish(self._device_id), payload
        )
        logger.debug("Sending telemetry message succeeded")


async def send_test_message(
    hub: str,
    device_id: str,
    security,
    *,
    payload: str = constant.TEST_MESSAGE_PAYLOAD,
    ssl_context: Optional[ssl.SSLContext] = None,
    proxy_options: Optional[ProxyOptions] = None,
    websockets: bool = False,
) -> None:
    """Connect to the hub as the device, send one telemetry message, and disconnect.

    The device authenticates with a SAS token signed by the identity key in the TPM, so
    this only works after the device was registered with DPS.
    """
    sastoken = RenewableSasToken(
        uri="{hub}/devices/{device_id}".format(hub=hub, device_id=device_id),
        signing_mechanism=TpmSigningMechanism(security),
    )
    client_config = IoTHubClientConfig(
        hostname=hub,
        device_id=device_id,
        sastoken=sastoken,
        ssl_context=ssl_context or default_ssl_context(),
        proxy_options=proxy_options,
        websockets=websockets,
    )
    client = IoTHubMQTTClient(client_config)
    await client.connect()
    try:
        await client.send_message(payload)
    finally:
        await client.disconnect()


def _format_username(hostname: str, client_id: str) -> str:
    query_param_seq = [
        ("api-version", constant.IOTHUB_API_VERSION),
        ("DeviceClientType", user_agent.get_iothub_user_agent()),
    ]
    # Hostname and client id are never URL encoded in the username, the query parameters are
    return "{hostname}/{client_id}/?{query_params}".format(
        hostname=hostname,
        client_id=client_id,
        query_params=urllib.parse.urlencode(query_param_seq, quote_via=urllib.parse.quote),
    )
