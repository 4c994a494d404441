# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Device-side registration with the Device Provisioning Service using TPM attestation"""

import base64
import binascii
import logging
from . import constant
from .custom_typing import JSONSerializable, RegistrationResult, TpmAttestation
from .exceptions import ProvisioningServiceError
from .sastoken import RenewableSasToken
from .signing_mechanism import TpmSigningMechanism
from .transport import ProvisioningTransportHandler

logger = logging.getLogger(__name__)


class ProvisioningDeviceClient:
    """Registers the device whose identity is held by a TPM.

    The exchange with DPS runs in three steps:

    1. The EK and SRK are sent without a credential. DPS answers with an identity key,
       encrypted so that only this TPM can recover it.
    2. The identity key is activated and persisted in the TPM.
    3. The registration is sent again, authenticated by a SAS token that the TPM signs
       with the identity key, and polled until DPS finishes assigning the device.
    """

    def __init__(
        self,
        global_endpoint: str,
        id_scope: str,
        security,
        transport: ProvisioningTransportHandler,
    ) -> None:
        """
        :param str global_endpoint: The provisioning endpoint to register with
        :param str id_scope: The ID scope of the provisioning service instance
        :param security: The security provider giving access to the TPM
        :type security: :class:`provisioning_tpm.security.SecurityProviderTpm`
        :param transport: The transport handler used to reach DPS
        :type transport: :class:`ProvisioningTransportHandler`

        :raises: ValueError if an invalid parameter value is provided
        """
        if not (global_endpoint and global_endpoint.strip()):
            raise ValueError("Global endpoint can not be none, empty or blank.")
        if not (id_scope and id_scope.strip()):
            raise ValueError("ID Scope can not be none, empty or blank.")
        self._global_endpoint = global_endpoint
        self._id_scope = id_scope
        self._security = security
        self._transport = transport

    @classmethod
    def create(
        cls,
        global_endpoint: str = constant.PROVISIONING_GLOBAL_ENDPOINT,
        id_scope: str = "",
        security=None,
        transport: ProvisioningTransportHandler = None,
    ) -> "ProvisioningDeviceClient":
        """Factory mirroring the other Azure IoT SDKs. See __init__ for parameters."""
        if security is None or transport is None:
            raise ValueError("Both a security provider and a transport handler are required")
        return cls(global_endpoint, id_scope, security, transport)

    def _get_tpm_attestation(self) -> TpmAttestation:
        return {
            "endorsementKey": base64.b64encode(self._security.get_endorsement_key()).decode(
                "ascii"
            ),
            "storageRootKey": base64.b64encode(self._security.get_storage_root_key()).decode(
                "ascii"
            ),
        }

    async def register(self, payload: JSONSerializable = None) -> RegistrationResult:
        """Register the device

        :param payload: The JSON serializable data that constitutes the registration payload
        :type payload: dict, list, str, int, float, bool, None

        :returns: RegistrationResult
        :rtype: RegistrationResult

        :raises: ProvisioningServiceError if a error response is received from DPS
        :raises: TpmError if the TPM fails to activate the identity key or sign
        :raises: MQTTError or MQTTConnectionFailedError if the MQTT transport fails
        """
        registration_id = self._security.registration_id
        tpm = self._get_tpm_attestation()
        client = self._transport.create_client(
            hostname=self._global_endpoint,
            id_scope=self._id_scope,
            registration_id=registration_id,
        )
        await client.start()
        try:
            authentication_key = await client.send_tpm_nonce_request(tpm)
            try:
                decoded_key = base64.b64decode(authentication_key, validate=True)
            except (binascii.Error, TypeError) as e:
                raise ProvisioningServiceError(
                    "Device Provisioning Service sent an invalid authenticationKey"
                ) from e
            logger.debug("Activating identity key in the TPM")
            self._security.activate_identity_key(decoded_key)

            sastoken = RenewableSasToken(
                uri=_format_sas_uri(id_scope=self._id_scope, registration_id=registration_id),
                signing_mechanism=TpmSigningMechanism(self._security),
            )
            await client.update_sastoken(sastoken)
            return await client.send_register(tpm, payload)
        finally:
            await client.stop()


def _format_sas_uri(id_scope: str, registration_id: str) -> str:
    """Format the SAS URI DPS"""
    return "{id_scope}/registrations/{registration_id}".format(
        id_scope=id_scope, registration_id=registration_id
    )
