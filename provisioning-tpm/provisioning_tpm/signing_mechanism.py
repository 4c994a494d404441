# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""This module defines an abstract SigningMechanism, as well as the child implementations
used for Provisioning Service (symmetric key) and device (TPM) authentication
"""

import abc
import base64
import binascii
import hmac
import hashlib
from typing import AnyStr


class SigningMechanism(abc.ABC):
    @abc.abstractmethod
    def sign(self, data_str: AnyStr) -> str:
        pass


def _to_bytes(data_str: AnyStr) -> bytes:
    if isinstance(data_str, str):
        return data_str.encode("utf-8")
    else:
        return data_str


class SymmetricKeySigningMechanism(SigningMechanism):
    def __init__(self, key: AnyStr) -> None:
        """
        A mechanism that signs data using a symmetric key

        :param key: Symmetric Key (base64 encoded)
        :type key: str or bytes

        :raises: ValueError if provided key is invalid
        """
        # Derives the signing key
        try:
            self._signing_key = base64.b64decode(_to_bytes(key), validate=True)
        except binascii.Error:
            raise ValueError("Invalid Symmetric Key")

    def sign(self, data_str: AnyStr) -> str:
        """
        Sign a data string with symmetric key and the HMAC-SHA256 algorithm.

        :param data_str: Data string to be signed
        :type data_str: str or bytes

        :returns: The signed data
        :rtype: str

        :raises: ValueError if an invalid data string is provided
        """
        try:
            hmac_digest = hmac.HMAC(
                key=self._signing_key, msg=_to_bytes(data_str), digestmod=hashlib.sha256
            ).digest()
            signed_data = base64.b64encode(hmac_digest)
        except TypeError:
            raise ValueError("Unable to sign string using the provided symmetric key")
        # Convert from bytes to string
        return signed_data.decode("utf-8")


class TpmSigningMechanism(SigningMechanism):
    def __init__(self, security_provider) -> None:
        """
        A mechanism that signs data with the identity key held in a TPM.

        The identity key must already have been imported into the TPM via
        .activate_identity_key() on the security provider.

        :param security_provider: The provider giving access to the TPM
        :type security_provider: :class:`provisioning_tpm.security.SecurityProviderTpm`
        """
        self._security_provider = security_provider

    def sign(self, data_str: AnyStr) -> str:
        """
        Sign a data string with the TPM-resident HMAC-SHA256 identity key.

        :param data_str: Data string to be signed
        :type data_str: str or bytes

        :returns: The signed data (base64 encoded)
        :rtype: str

        :raises: TpmError if the TPM fails to sign the data
        """
        signature = self._security_provider.sign(_to_bytes(data_str))
        return base64.b64encode(signature).decode("utf-8")
