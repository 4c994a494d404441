# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import asyncio
import logging
import urllib.parse
import uuid
from typing import Optional
from .exceptions import ProvisioningServiceError
from .provisioning_client import ProvisioningClient, DEFAULT_TIMEOUT_INTERVAL
from .sastoken import RenewableSasToken
from . import config, constant, user_agent
from . import request_response as rr
from . import mqtt_client as mqtt
from . import mqtt_topic

logger = logging.getLogger(__name__)


class ProvisioningMQTTClient(ProvisioningClient):
    def __init__(self, client_config: config.ProvisioningClientConfig) -> None:
        """Instantiate the client

        :param client_config: The config object for the client
        :type client_config: :class:`ProvisioningClientConfig`
        """
        super().__init__(client_config.registration_id)
        self._username = _format_username(
            id_scope=client_config.id_scope, registration_id=self._registration_id
        )
        self._sastoken = client_config.sastoken

        self._mqtt_client = mqtt.create_client_from_config(self._registration_id, client_config)
        self._mqtt_client.add_incoming_message_filter(mqtt_topic.get_response_topic_for_subscribe())

        self._request_ledger = rr.RequestLedger()
        self._dps_responses_enabled = False

        # Set upon `.start()`
        self._process_dps_responses_task: Optional[asyncio.Task[None]] = None

    def _set_credentials(self) -> None:
        if self._sastoken:
            logger.debug("Using SASToken as password")
            password: Optional[str] = str(self._sastoken)
        else:
            logger.debug("No password used")
            password = None
        self._mqtt_client.set_credentials(self._username, password)

    async def _enable_dps_responses(self) -> None:
        logger.debug("Enabling receive of responses from Device Provisioning Service...")
        await self._mqtt_client.subscribe(mqtt_topic.get_response_topic_for_subscribe())
        self._dps_responses_enabled = True
        logger.debug("Device Provisioning Service responses receive enabled")

    async def _process_dps_responses(self) -> None:
        """Run indefinitely, matching responses from DPS with request ID"""
        logger.debug("Starting the '_process_dps_responses' background task")
        dps_responses = self._mqtt_client.get_incoming_message_generator(
            mqtt_topic.get_response_topic_for_subscribe()
        )

        async for mqtt_message in dps_responses:
            try:
                properties = mqtt_topic.extract_properties_from_response_topic(mqtt_message.topic)
                request_id = properties["$rid"]
                response = rr.Response(
                    request_id=request_id,
                    status=mqtt_topic.extract_status_code_from_response_topic(mqtt_message.topic),
                    # Interpreted by whoever is waiting on the request id
                    body=mqtt_message.payload.decode("utf-8"),
                    properties=properties,
                )
            except Exception as e:
                logger.error(
                    "Unexpected error ({}) while translating Device Provisioning Service response. Dropping.".format(
                        e
                    )
                )
                continue
            logger.debug("Device Provisioning Service response received (rid: {})".format(request_id))
            try:
                await self._request_ledger.match_response(response)
            except KeyError:
                # Only happens if the request was cancelled or timed out
                logger.warning(
                    "Device Provisioning Service response (rid: {}) does not match any request".format(
                        request_id
                    )
                )

    async def start(self) -> None:
        """Start up the client and connect.

        - Must be invoked before any other methods.
        - If already started, will not (meaningfully) do anything.

        :raises: MQTTConnectionFailedError if there is a failure connecting
        """
        self._set_credentials()
        if not self._process_dps_responses_task:
            self._process_dps_responses_task = asyncio.create_task(self._process_dps_responses())
        logger.debug("Connecting to Device Provisioning Service...")
        await self._mqtt_client.connect()
        logger.debug("Connect succeeded")

    async def stop(self) -> None:
        """Stop the client.

        - Must be invoked when done with the client for graceful exit.
        - If already stopped, will not do anything.
        """
        logger.debug("Stopping ProvisioningMQTTClient...")
        if self._process_dps_responses_task:
            self._process_dps_responses_task.cancel()
            try:
                await self._process_dps_responses_task
            except asyncio.CancelledError:
                pass
            self._process_dps_responses_task = None
        await self._mqtt_client.disconnect()
        self._dps_responses_enabled = False

    async def update_sastoken(self, sastoken: RenewableSasToken) -> None:
        """Reconnect using the SasToken as password.

        :raises: MQTTConnectionFailedError if there is a failure reconnecting
        """
        self._sastoken = sastoken
        self._set_credentials()
        logger.debug("Reconnecting to Device Provisioning Service with new credentials...")
        await self._mqtt_client.disconnect()
        # A new connection has no subscriptions
        self._dps_responses_enabled = False
        await self._mqtt_client.connect()

    async def _send_request(self, request_id: str, topic: str, payload: str) -> rr.Response:
        if not self._dps_responses_enabled:
            await self._enable_dps_responses()
        request = await self._request_ledger.create_request(request_id)
        try:
            logger.debug(
                "Sending request to Device Provisioning Service... (rid: {})".format(request_id)
            )
            await self._mqtt_client.publish(topic, payload)
            try:
                return await asyncio.wait_for(request.get_response(), DEFAULT_TIMEOUT_INTERVAL)
            except asyncio.TimeoutError as te:
                raise ProvisioningServiceError(
                    "Device Provisioning Service timed out while waiting for response to the "
                    "request (rid: {})".format(request_id)
                ) from te
        finally:
            # Matched responses are already removed from the ledger
            if request_id in self._request_ledger:
                await self._request_ledger.delete_request(request_id)

    async def _send_register_request(self, body: str) -> rr.Response:
        request_id = str(uuid.uuid4())
        topic = mqtt_topic.get_register_topic_for_publish(request_id=request_id)
        return await self._send_request(request_id, topic, body)

    async def _send_polling_request(self, operation_id: str) -> rr.Response:
        request_id = str(uuid.uuid4())
        topic = mqtt_topic.get_status_query_topic_for_publish(
            request_id=request_id, operation_id=operation_id
        )
        return await self._send_request(request_id, topic, " ")


def _format_username(id_scope: str, registration_id: str) -> str:
    query_param_seq = [
        ("api-version", constant.PROVISIONING_API_VERSION),
        ("ClientVersion", user_agent.get_provisioning_user_agent()),
    ]
    return "{id_scope}/registrations/{registration_id}/?{query_params}".format(
        id_scope=id_scope,
        registration_id=registration_id,
        query_params=urllib.parse.urlencode(query_param_seq, quote_via=urllib.parse.quote),
    )
