# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Connection options shared by the DPS and IoTHub device-side clients"""

import logging
import socks
import ssl
from typing import Optional, Any
from .sastoken import RenewableSasToken

logger = logging.getLogger(__name__)

# The max keep alive is determined by the load balancer currently.
MAX_KEEP_ALIVE_SECS = 1740


string_to_socks_constant_map = {"HTTP": socks.HTTP, "SOCKS4": socks.SOCKS4, "SOCKS5": socks.SOCKS5}


class ProxyOptions:
    """
    A class containing various options to send traffic through proxy servers by enabling
    proxying of MQTT connection.
    """

    def __init__(
        self,
        proxy_type: str,
        proxy_address: str,
        proxy_port: Optional[int] = None,
        proxy_username: Optional[str] = None,
        proxy_password: Optional[str] = None,
    ):
        """
        :param str proxy_type: The type of the proxy server. One of "HTTP", "SOCKS4", or "SOCKS5"
        :param str proxy_address: IP address or DNS name of proxy server
        :param int proxy_port: The port of the proxy server. Defaults to 1080 for socks and 8080 for http.
        :param str proxy_username: (optional) username for the proxy
        :param str proxy_password: (optional) password for the proxy
        """
        try:
            self.proxy_type_socks = string_to_socks_constant_map[proxy_type]
        except KeyError:
            raise ValueError("Invalid Proxy Type")
        self.proxy_type = proxy_type
        self.proxy_address = proxy_address
        if proxy_port is None:
            self.proxy_port = 8080 if proxy_type == "HTTP" else 1080
        else:
            self.proxy_port = int(proxy_port)
        self.proxy_username = proxy_username
        self.proxy_password = proxy_password


class ClientConfig:
    """
    Class for storing the configuration/options shared by the device-side clients.
    """

    def __init__(
        self,
        *,
        ssl_context: ssl.SSLContext,
        hostname: str,
        sastoken: Optional[RenewableSasToken] = None,
        proxy_options: Optional[ProxyOptions] = None,
        keep_alive: int = 60,
        websockets: bool = False,
    ) -> None:
        """Initializer for ClientConfig

        :param ssl_context: SSLContext to use with the client
        :type ssl_context: :class:`ssl.SSLContext`
        :param str hostname: The hostname being connected to
        :param sastoken: SasToken used as credential, if any
        :type sastoken: :class:`provisioning_tpm.sastoken.RenewableSasToken`
        :param proxy_options: Details of proxy configuration
        :type proxy_options: :class:`ProxyOptions`
        :param int keep_alive: Maximum period in seconds between communications with the
            broker.
        :param bool websockets: Use MQTT over websockets on port 443 (for when a firewall
            blocks port 8883).
        """
        # Network
        self.hostname = hostname
        self.proxy_options = proxy_options

        # Auth
        self.sastoken = sastoken
        self.ssl_context = ssl_context

        # MQTT
        self.keep_alive = _sanitize_keep_alive(keep_alive)
        self.websockets = websockets


class IoTHubClientConfig(ClientConfig):
    def __init__(self, *, device_id: str, **kwargs: Any) -> None:
        """
        Config object used for the IoTHub client.

        :param str device_id: The device identity being used with the IoTHub

        Additional parameters found in the docstring of the parent class
        """
        self.device_id = device_id
        super().__init__(**kwargs)


class ProvisioningClientConfig(ClientConfig):
    def __init__(self, *, registration_id: str, id_scope: str, **kwargs: Any) -> None:
        """
        Config object used for Provisioning clients.

        :param str registration_id: The device registration identity being provisioned
        :param str id_scope: The identity of the provisioning service being used

        Additional parameters found in the docstring of the parent class
        """
        self.registration_id = registration_id
        self.id_scope = id_scope
        super().__init__(**kwargs)


def _sanitize_keep_alive(keep_alive):
    try:
        keep_alive = int(keep_alive)
    except (ValueError, TypeError):
        raise TypeError("Invalid type for 'keep alive'. Must be a numeric value.")

    if keep_alive <= 0:
        # Not allowing a keep alive of 0 as this would mean frequent ping exchanges.
        raise ValueError("'keep alive' must be greater than 0")

    if keep_alive > MAX_KEEP_ALIVE_SECS:
        raise ValueError("'keep_alive' cannot exceed 1740 seconds (29 minutes)")

    return keep_alive


def default_ssl_context() -> ssl.SSLContext:
    """Return a default SSLContext"""
    ssl_context = ssl.SSLContext(protocol=ssl.PROTOCOL_TLS_CLIENT)
    ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    ssl_context.load_default_certs()
    return ssl_context
