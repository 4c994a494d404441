# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Transport handlers used by the ProvisioningDeviceClient.

A transport handler holds the connection options for one transport, and owns the
clients it creates. Leaving its context stops any client still running.
"""

import abc
import asyncio
import logging
import ssl
from typing import List, Optional, Type
from types import TracebackType
from .config import ProxyOptions, ProvisioningClientConfig, default_ssl_context
from .provisioning_client import ProvisioningClient
from .provisioning_mqtt_client import ProvisioningMQTTClient
from .provisioning_http_client import ProvisioningHTTPClient

logger = logging.getLogger(__name__)


class ProvisioningTransportHandler(abc.ABC):
    def __init__(
        self,
        *,
        ssl_context: Optional[ssl.SSLContext] = None,
        proxy_options: Optional[ProxyOptions] = None,
        keep_alive: int = 60,
        websockets: bool = False,
    ) -> None:
        """
        :param ssl_context: Custom SSL context to be used when establishing a connection.
            If not provided, a default one will be used
        :type ssl_context: :class:`ssl.SSLContext`
        :param proxy_options: Configuration structure for sending traffic through a proxy server
        :type proxy_options: :class:`ProxyOptions`
        :param int keep_alive: Maximum period in seconds between MQTT communications.
        :param bool websockets: Set to 'True' to use WebSockets over MQTT.
        """
        self._ssl_context = ssl_context
        self._proxy_options = proxy_options
        self._keep_alive = keep_alive
        self._websockets = websockets
        self._clients: List[ProvisioningClient] = []

    @abc.abstractmethod
    def _client_class(self) -> Type[ProvisioningClient]:
        pass

    def create_client(
        self, *, hostname: str, id_scope: str, registration_id: str
    ) -> ProvisioningClient:
        """Create a (not yet started) client using the options of this transport

        :param str hostname: The provisioning endpoint
        :param str id_scope: The ID scope of the provisioning service instance
        :param str registration_id: The device registration identity being provisioned
        """
        client_config = ProvisioningClientConfig(
            hostname=hostname,
            id_scope=id_scope,
            registration_id=registration_id,
            ssl_context=self._ssl_context or default_ssl_context(),
            proxy_options=self._proxy_options,
            keep_alive=self._keep_alive,
            websockets=self._websockets,
        )
        client = self._client_class()(client_config)
        self._clients.append(client)
        return client

    async def close(self) -> None:
        """Stop every client created by this transport handler"""
        clients, self._clients = self._clients, []
        if not clients:
            return
        logger.debug("Stopping {} provisioning client(s)".format(len(clients)))
        results = await asyncio.gather(*[c.stop() for c in clients], return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result

    async def __aenter__(self) -> "ProvisioningTransportHandler":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.close()


class ProvisioningTransportHandlerMqtt(ProvisioningTransportHandler):
    """Registers over MQTT (port 8883, or 443 with websockets)"""

    def _client_class(self) -> Type[ProvisioningClient]:
        return ProvisioningMQTTClient


class ProvisioningTransportHandlerHttp(ProvisioningTransportHandler):
    """Registers over HTTPS using the DPS REST API"""

    def _client_class(self) -> Type[ProvisioningClient]:
        return ProvisioningHTTPClient


def create_transport_handler(name: str, **kwargs) -> ProvisioningTransportHandler:
    """Return the transport handler registered under the given name ("mqtt" or "http")

    :raises: ValueError if the name is unknown
    """
    try:
        cls = _transport_handlers[name.lower()]
    except KeyError:
        raise ValueError("Unsupported transport: '{}'".format(name))
    return cls(**kwargs)


_transport_handlers = {
    "mqtt": ProvisioningTransportHandlerMqtt,
    "http": ProvisioningTransportHandlerHttp,
}
