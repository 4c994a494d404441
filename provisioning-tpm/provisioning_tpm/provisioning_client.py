# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Transport-independent part of the TPM registration exchange with Device Provisioning Service"""

import abc
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional
from .custom_typing import (
    DeviceRegistrationRequest,
    JSONSerializable,
    RegistrationResult,
    RegistrationState,
    TpmAttestation,
)
from .exceptions import ProvisioningServiceError
from .sastoken import RenewableSasToken
from . import request_response as rr

logger = logging.getLogger(__name__)

DEFAULT_POLLING_INTERVAL: int = 2
DEFAULT_TIMEOUT_INTERVAL: int = 30

# DPS answers an unauthenticated TPM registration with this status, carrying the
# encrypted identity key
TPM_CHALLENGE_STATUS: int = 401
THROTTLED_STATUS: int = 429
SERVICE_UNAVAILABLE_STATUS: int = 503
MAX_RETRY_ATTEMPTS: int = 5


class ProvisioningClient(abc.ABC):
    """Base for the MQTT and HTTP clients.

    Subclasses deliver raw requests. This class drives the register/poll state machine on top.
    """

    def __init__(self, registration_id: str) -> None:
        self._registration_id = registration_id

    @abc.abstractmethod
    async def start(self) -> None:
        pass

    @abc.abstractmethod
    async def stop(self) -> None:
        pass

    @abc.abstractmethod
    async def update_sastoken(self, sastoken: RenewableSasToken) -> None:
        """Authenticate subsequent requests with the given SasToken"""
        pass

    @abc.abstractmethod
    async def _send_register_request(self, body: str) -> rr.Response:
        pass

    @abc.abstractmethod
    async def _send_polling_request(self, operation_id: str) -> rr.Response:
        pass

    async def _send_with_retry(
        self, send: Callable[[], Awaitable[rr.Response]], interval: int, description: str
    ) -> rr.Response:
        """Send, and send again while DPS throttles the request.

        A 429, or a 503 carrying retry-after, is retried after the retry-after interval, at most
        MAX_RETRY_ATTEMPTS times. Any other response is returned for the caller to interpret.
        """
        attempts = 0
        while True:
            await asyncio.sleep(interval)
            response = await send()
            if not _is_retryable(response) or attempts >= MAX_RETRY_ATTEMPTS:
                return response
            attempts += 1
            interval = _get_retry_after(response, default=DEFAULT_POLLING_INTERVAL)
            logger.debug(
                "Retrying {} request after {} secs to Device Provisioning Service (status {})".format(
                    description, interval, response.status
                )
            )

    async def send_tpm_nonce_request(self, tpm: TpmAttestation) -> str:
        """Register without credentials, to receive the TPM challenge.

        :param tpm: The endorsement key and storage root key of the device (base64)

        :returns: The authenticationKey (base64) that must be activated in the TPM
        :raises: ProvisioningServiceError if DPS does not answer with a TPM challenge
        """
        request: DeviceRegistrationRequest = {"registrationId": self._registration_id, "tpm": tpm}
        body = json.dumps(request, sort_keys=True)
        logger.debug("Sending TPM nonce request to Device Provisioning Service...")
        response = await self._send_with_retry(
            lambda: self._send_register_request(body), 0, "TPM nonce"
        )
        if response.status != TPM_CHALLENGE_STATUS:
            raise ProvisioningServiceError(
                "Device Provisioning Service responded to the TPM nonce request with unexpected status - {}. "
                "The detailed response is {}.".format(response.status, response.body)
            )
        try:
            authentication_key = json.loads(response.body)["authenticationKey"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProvisioningServiceError(
                "TPM challenge from Device Provisioning Service did not contain an authenticationKey"
            ) from e
        logger.debug("Received TPM challenge from Device Provisioning Service")
        return authentication_key

    async def send_register(
        self, tpm: TpmAttestation, payload: Optional[JSONSerializable] = None
    ) -> RegistrationResult:
        """Send the authenticated registration, polling until it completes.

        :param tpm: The endorsement key and storage root key of the device (base64)
        :param payload: Custom data sent to DPS (Optional)

        :raises: ProvisioningServiceError if DPS rejects the registration
        """
        request: DeviceRegistrationRequest = {
            "registrationId": self._registration_id,
            "tpm": tpm,
            "payload": payload,
        }
        body = json.dumps(request, sort_keys=True)
        logger.debug("The payload to be sent to Device Provisioning Service is {}".format(body))
        response = await self._send_with_retry(
            lambda: self._send_register_request(body), 0, "register"
        )
        decoded = _decode_success_body(response, "register")
        if decoded.get("status") == "assigning":
            logger.debug("Transitioning to polling request to Device Provisioning Service...")
            return await self.send_polling(decoded.get("operationId"))
        return _to_registration_result(decoded, response, "register")

    async def send_polling(self, operation_id: str) -> RegistrationResult:
        """Query the status of a registration operation until it is no longer assigning"""
        interval = DEFAULT_POLLING_INTERVAL
        while True:
            response = await self._send_with_retry(
                lambda: self._send_polling_request(operation_id), interval, "polling"
            )
            decoded = _decode_success_body(response, "polling")
            if decoded.get("status") != "assigning":
                return _to_registration_result(decoded, response, "polling")
            interval = _get_retry_after(response, default=DEFAULT_POLLING_INTERVAL)
            logger.debug(
                "Registration still assigning. Polling again after {} secs".format(interval)
            )


def _is_retryable(response: rr.Response) -> bool:
    if response.status == THROTTLED_STATUS:
        return True
    return (
        response.status == SERVICE_UNAVAILABLE_STATUS
        and response.properties is not None
        and "retry-after" in response.properties
    )


def _get_retry_after(response: rr.Response, default: int) -> int:
    if response.properties is not None:
        try:
            return int(response.properties.get("retry-after", default))
        except ValueError:
            logger.warning("Ignoring invalid retry-after value from Device Provisioning Service")
    return default


def _decode_success_body(response: rr.Response, description: str) -> dict:
    if response.status >= 300:
        raise ProvisioningServiceError(
            "Device Provisioning Service responded to the {} request with a failed status - {}. "
            "The detailed error is {}.".format(description, response.status, response.body)
        )
    logger.debug("Received response for {} request from Device Provisioning Service".format(description))
    return json.loads(response.body)


def _to_registration_result(
    decoded: dict, response: rr.Response, description: str
) -> RegistrationResult:
    registration_status = decoded.get("status")
    if registration_status not in ("assigned", "failed", "disabled"):
        raise ProvisioningServiceError(
            "Device Provisioning Service responded to the {} request with an invalid "
            "registration status {} - {}. The entire response is {}".format(
                description, registration_status, response.status, response.body
            )
        )
    decoded_state = decoded.get("registrationState") or {}
    registration_state: RegistrationState = {
        "deviceId": decoded_state.get("deviceId"),
        "assignedHub": decoded_state.get("assignedHub"),
        "subStatus": decoded_state.get("substatus", decoded_state.get("subStatus")),
        "errorCode": decoded_state.get("errorCode"),
        "errorMessage": decoded_state.get("errorMessage"),
        "createdDateTimeUtc": decoded_state.get("createdDateTimeUtc"),
        "lastUpdatedDateTimeUtc": decoded_state.get("lastUpdatedDateTimeUtc"),
        "etag": decoded_state.get("etag"),
        "payload": decoded_state.get("payload"),
    }
    return {
        "operationId": decoded.get("operationId"),
        "status": registration_status,
        "registrationState": registration_state,
    }
