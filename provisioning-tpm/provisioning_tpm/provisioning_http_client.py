# --------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
import aiohttp
import asyncio
import logging
import urllib.parse
from typing import Optional
from .provisioning_client import ProvisioningClient, DEFAULT_TIMEOUT_INTERVAL
from .sastoken import RenewableSasToken
from . import config, constant, user_agent
from . import request_response as rr

logger = logging.getLogger(__name__)

# Header Definitions
HEADER_AUTHORIZATION = "Authorization"
HEADER_USER_AGENT = "User-Agent"
HEADER_CONTENT_TYPE = "Content-Type"

# Query parameter definitions
PARAM_API_VERSION = "api-version"

CONTENT_TYPE_JSON = "application/json; charset=utf-8"


class ProvisioningHTTPClient(ProvisioningClient):
    def __init__(self, client_config: config.ProvisioningClientConfig) -> None:
        """Instantiate the client

        :param client_config: The config object for the client
        :type client_config: :class:`ProvisioningClientConfig`
        """
        super().__init__(client_config.registration_id)
        self._hostname = client_config.hostname
        self._id_scope = client_config.id_scope
        self._ssl_context = client_config.ssl_context
        self._sastoken = client_config.sastoken
        self._user_agent_string = user_agent.get_provisioning_user_agent()

        # aiohttp only proxies HTTP traffic per-request, and not for HTTPS over SOCKS
        if client_config.proxy_options:
            logger.warning("Proxy use with the HTTP provisioning transport is not supported")

        # Set upon `.start()`, as a session must be created within a running event loop
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the HTTP session. If already started, does nothing."""
        if not self._session:
            self._session = _create_client_session(self._hostname)

    async def stop(self) -> None:
        """Close the HTTP session. If already stopped, does nothing."""
        if self._session:
            await self._session.close()
            self._session = None
            # Wait 250ms for the underlying SSL connections to close
            # See: https://docs.aiohttp.org/en/stable/client_advanced.html#graceful-shutdown
            await asyncio.sleep(0.25)

    async def update_sastoken(self, sastoken: RenewableSasToken) -> None:
        self._sastoken = sastoken

    def _get_headers(self) -> dict:
        # NOTE: Other headers are auto-generated by aiohttp
        headers = {
            HEADER_USER_AGENT: urllib.parse.quote_plus(self._user_agent_string),
            HEADER_CONTENT_TYPE: CONTENT_TYPE_JSON,
        }
        if self._sastoken:
            headers[HEADER_AUTHORIZATION] = str(self._sastoken)
        return headers

    async def _request(self, method: str, path: str, body: Optional[str]) -> rr.Response:
        if not self._session:
            raise RuntimeError("ProvisioningHTTPClient must be started before sending requests")
        query_params = {PARAM_API_VERSION: constant.PROVISIONING_API_VERSION}
        logger.debug("Sending {} {} to Device Provisioning Service".format(method, path))
        async with self._session.request(
            method,
            url=path,
            data=body,
            params=query_params,
            headers=self._get_headers(),
            ssl=self._ssl_context,
        ) as response:
            response_body = await response.text()
            logger.debug(
                "Device Provisioning Service responded with status {}".format(response.status)
            )
            return rr.Response(
                request_id=response.headers.get("x-ms-request-id", ""),
                status=response.status,
                body=response_body,
                properties={k.lower(): v for k, v in response.headers.items()},
            )

    async def _send_register_request(self, body: str) -> rr.Response:
        path = "/{id_scope}/registrations/{registration_id}/register".format(
            id_scope=urllib.parse.quote(self._id_scope, safe=""),
            registration_id=urllib.parse.quote(self._registration_id, safe=""),
        )
        return await self._request("PUT", path, body)

    async def _send_polling_request(self, operation_id: str) -> rr.Response:
        path = "/{id_scope}/registrations/{registration_id}/operations/{operation_id}".format(
            id_scope=urllib.parse.quote(self._id_scope, safe=""),
            registration_id=urllib.parse.quote(self._registration_id, safe=""),
            operation_id=urllib.parse.quote(operation_id, safe=""),
        )
        return await self._request("GET", path, None)


def _create_client_session(hostname: str) -> aiohttp.ClientSession:
    """Create and return a aiohttp ClientSession object"""
    base_url = "https://{hostname}".format(hostname=hostname)
    timeout = aiohttp.ClientTimeout(total=DEFAULT_TIMEOUT_INTERVAL)
    logger.debug(
        "Creating HTTP Session for {url} with timeout of {timeout}".format(
            url=base_url, timeout=timeout.total
        )
    )
    return aiohttp.ClientSession(base_url=base_url, timeout=timeout)
