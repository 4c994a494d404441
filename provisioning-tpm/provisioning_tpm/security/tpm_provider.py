# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""This module provides access to a TPM 2.0 for Device Provisioning Service attestation.

The keys live at the persistent handles also used by the Azure IoT C SDK:

- the Endorsement Key (EK), which identifies the TPM to DPS
- the Storage Root Key (SRK), parent of the imported identity key
- the identity key, an HMAC key delivered by DPS and used to sign SAS tokens
"""

import logging
from typing import Dict, Optional, Type
from types import TracebackType
from tpm2_pytss import (
    ESAPI,
    ESYS_TR,
    TPM2_ALG,
    TPM2_RC,
    TPM2_SE,
    TPM2B_DATA,
    TPM2B_DIGEST,
    TPM2B_ENCRYPTED_SECRET,
    TPM2B_ID_OBJECT,
    TPM2B_MAX_BUFFER,
    TPM2B_NONCE,
    TPM2B_PRIVATE,
    TPM2B_PUBLIC,
    TPM2B_PUBLIC_KEY_RSA,
    TPM2B_SENSITIVE_CREATE,
    TPMA_OBJECT,
    TPMS_RSA_PARMS,
    TPMT_PUBLIC,
    TPMT_RSA_SCHEME,
    TPMT_SYM_DEF,
    TPMT_SYM_DEF_OBJECT,
    TPMU_PUBLIC_ID,
    TPMU_PUBLIC_PARMS,
    TSS2_Exception,
)
from ..constant import (
    EK_PERSISTENT_HANDLE,
    SRK_PERSISTENT_HANDLE,
    DPS_ID_KEY_PERSISTENT_HANDLE,
)
from ..exceptions import TpmError

logger = logging.getLogger(__name__)

# Largest input to a single TPM2_HMAC command
MAX_SIGN_DATA_SIZE = 1024

# Policy digest of PolicySecret(TPM_RH_ENDORSEMENT), from the TCG EK Credential Profile
EK_AUTH_POLICY = bytes.fromhex("837197674484B3F81A90CC8D46A5D724FD52D76E06520B64F2A1DA1B331469AA")

_COMMON_KEY_ATTRIBUTES = (
    TPMA_OBJECT.FIXEDTPM
    | TPMA_OBJECT.FIXEDPARENT
    | TPMA_OBJECT.SENSITIVEDATAORIGIN
    | TPMA_OBJECT.RESTRICTED
    | TPMA_OBJECT.DECRYPT
)


def _rsa_storage_template(object_attributes, auth_policy: bytes = b"") -> TPM2B_PUBLIC:
    """RSA 2048 restricted decryption key with AES-128-CFB, zero-filled unique field"""
    return TPM2B_PUBLIC(
        publicArea=TPMT_PUBLIC(
            type=TPM2_ALG.RSA,
            nameAlg=TPM2_ALG.SHA256,
            objectAttributes=object_attributes,
            authPolicy=TPM2B_DIGEST(auth_policy),
            parameters=TPMU_PUBLIC_PARMS(
                rsaDetail=TPMS_RSA_PARMS(
                    symmetric=TPMT_SYM_DEF_OBJECT.parse("aes128cfb"),
                    scheme=TPMT_RSA_SCHEME(scheme=TPM2_ALG.NULL),
                    keyBits=2048,
                    exponent=0,
                )
            ),
            unique=TPMU_PUBLIC_ID(rsa=TPM2B_PUBLIC_KEY_RSA(b"\x00" * 256)),
        )
    )


def ek_template() -> TPM2B_PUBLIC:
    """Default RSA Endorsement Key template (TCG EK Credential Profile, template L-1)"""
    return _rsa_storage_template(_COMMON_KEY_ATTRIBUTES | TPMA_OBJECT.ADMINWITHPOLICY, EK_AUTH_POLICY)


def srk_template() -> TPM2B_PUBLIC:
    """RSA Storage Root Key template with empty auth"""
    return _rsa_storage_template(
        _COMMON_KEY_ATTRIBUTES | TPMA_OBJECT.USERWITHAUTH | TPMA_OBJECT.NODA
    )


class SecurityProviderTpm:
    """Scoped access to a TPM for a single device registration.

    Use as a context manager, or call .close() when done.
    """

    def __init__(self, registration_id: str, tcti: Optional[str] = None) -> None:
        """
        :param str registration_id: The device registration identity being provisioned
        :param str tcti: TCTI configuration string (e.g. "mssim:host=localhost,port=2321" or
            "device:/dev/tpmrm0"). If not provided, the TSS default is used.

        :raises: TpmError if the TPM cannot be opened
        """
        if not (registration_id and registration_id.strip()):
            raise ValueError("Registration Id can not be none, empty or blank.")
        self.registration_id = registration_id
        logger.debug("Opening TPM (tcti: {})".format(tcti or "default"))
        try:
            self._esys: Optional[ESAPI] = ESAPI(tcti)
        except TSS2_Exception as e:
            raise TpmError("Unable to open the TPM") from e
        self._endorsement_key: Optional[bytes] = None
        self._storage_root_key: Optional[bytes] = None
        # ESYS_TRs of persistent handles, valid until the context is closed
        self._handles: Dict[int, ESYS_TR] = {}

    def __enter__(self) -> "SecurityProviderTpm":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()

    @property
    def _context(self) -> ESAPI:
        if self._esys is None:
            raise TpmError("TPM security provider is closed")
        return self._esys

    def close(self) -> None:
        """Close the TPM context. Safe to call more than once."""
        if self._esys is not None:
            logger.debug("Closing TPM")
            self._handles.clear()
            self._esys.close()
            self._esys = None

    def _get_persistent_handle(self, handle: int) -> Optional[ESYS_TR]:
        """Return the ESYS_TR of a persistent handle, or None if no object is persisted there

        :raises: TSS2_Exception for any TPM failure other than an unknown handle
        """
        if handle not in self._handles:
            try:
                self._handles[handle] = self._context.tr_from_tpmpublic(handle)
            except TSS2_Exception as e:
                if e.error != TPM2_RC.HANDLE:
                    raise
                return None
        return self._handles[handle]

    def _read_or_create_primary(
        self, handle: int, hierarchy: ESYS_TR, template: TPM2B_PUBLIC
    ) -> bytes:
        esys = self._context
        try:
            key = self._get_persistent_handle(handle)
            if key is None:
                logger.info("No key at persistent handle {:#x}. Creating it".format(handle))
                transient, _, _, _, _ = esys.create_primary(
                    TPM2B_SENSITIVE_CREATE(), template, hierarchy
                )
                try:
                    key = esys.evict_control(ESYS_TR.OWNER, transient, handle)
                finally:
                    esys.flush_context(transient)
                self._handles[handle] = key
            public, _, _ = esys.read_public(key)
        except TSS2_Exception as e:
            raise TpmError("Unable to read key at persistent handle {:#x}".format(handle)) from e
        return public.marshal()

    def get_endorsement_key(self) -> bytes:
        """Return the marshalled TPM2B_PUBLIC of the Endorsement Key, creating it if needed

        :raises: TpmError if the key cannot be read or created
        """
        if self._endorsement_key is None:
            self._endorsement_key = self._read_or_create_primary(
                EK_PERSISTENT_HANDLE, ESYS_TR.ENDORSEMENT, ek_template()
            )
        return self._endorsement_key

    def get_storage_root_key(self) -> bytes:
        """Return the marshalled TPM2B_PUBLIC of the Storage Root Key, creating it if needed

        :raises: TpmError if the key cannot be read or created
        """
        if self._storage_root_key is None:
            self._storage_root_key = self._read_or_create_primary(
                SRK_PERSISTENT_HANDLE, ESYS_TR.OWNER, srk_template()
            )
        return self._storage_root_key

    def activate_identity_key(self, authentication_key: bytes) -> None:
        """Recover the identity key sent by DPS, and persist it in the TPM.

        :param bytes authentication_key: The decoded authenticationKey from DPS, made of
            TPM2B_ID_OBJECT, TPM2B_ENCRYPTED_SECRET, TPM2B_PRIVATE, TPM2B_ENCRYPTED_SECRET
            and TPM2B_PUBLIC, in that order.

        :raises: TpmError if the blob is malformed, or was not made for this TPM
        """
        try:
            offset = 0
            credential_blob, n = TPM2B_ID_OBJECT.unmarshal(authentication_key[offset:])
            offset += n
            secret, n = TPM2B_ENCRYPTED_SECRET.unmarshal(authentication_key[offset:])
            offset += n
            duplicate, n = TPM2B_PRIVATE.unmarshal(authentication_key[offset:])
            offset += n
            seed, n = TPM2B_ENCRYPTED_SECRET.unmarshal(authentication_key[offset:])
            offset += n
            public, n = TPM2B_PUBLIC.unmarshal(authentication_key[offset:])
        except (TSS2_Exception, ValueError, IndexError) as e:
            raise TpmError("Malformed authentication key") from e

        # Make sure both primary keys exist before using their handles
        self.get_endorsement_key()
        self.get_storage_root_key()

        esys = self._context
        try:
            ek = self._get_persistent_handle(EK_PERSISTENT_HANDLE)
            srk = self._get_persistent_handle(SRK_PERSISTENT_HANDLE)

            # The EK may only be used under PolicySecret(TPM_RH_ENDORSEMENT)
            policy_session = esys.start_auth_session(
                ESYS_TR.NONE,
                ESYS_TR.NONE,
                TPM2_SE.POLICY,
                TPMT_SYM_DEF(algorithm=TPM2_ALG.NULL),
                TPM2_ALG.SHA256,
            )
            try:
                esys.policy_secret(
                    ESYS_TR.ENDORSEMENT, policy_session, TPM2B_NONCE(), TPM2B_DIGEST(), TPM2B_NONCE(), 0
                )
                inner_wrap_key = esys.activate_credential(
                    srk,
                    ek,
                    credential_blob,
                    secret,
                    session1=ESYS_TR.PASSWORD,
                    session2=policy_session,
                )
            finally:
                esys.flush_context(policy_session)
            logger.debug("Credential activated. Importing identity key")

            private = esys.import_(
                srk,
                TPM2B_DATA(bytes(inner_wrap_key)),
                public,
                duplicate,
                seed,
                TPMT_SYM_DEF_OBJECT.parse("aes128cfb"),
            )
            loaded = esys.load(srk, private, public)
            try:
                previous = self._get_persistent_handle(DPS_ID_KEY_PERSISTENT_HANDLE)
                if previous is not None:
                    logger.info("Evicting previous identity key")
                    esys.evict_control(ESYS_TR.OWNER, previous, DPS_ID_KEY_PERSISTENT_HANDLE)
                    del self._handles[DPS_ID_KEY_PERSISTENT_HANDLE]
                self._handles[DPS_ID_KEY_PERSISTENT_HANDLE] = esys.evict_control(
                    ESYS_TR.OWNER, loaded, DPS_ID_KEY_PERSISTENT_HANDLE
                )
            finally:
                esys.flush_context(loaded)
        except TSS2_Exception as e:
            raise TpmError("Unable to activate the identity key") from e
        logger.info(
            "Identity key persisted at handle {:#x}".format(DPS_ID_KEY_PERSISTENT_HANDLE)
        )

    def sign(self, data: bytes) -> bytes:
        """HMAC-SHA256 the data with the persisted identity key

        :raises: ValueError if the data exceeds a single TPM buffer
        :raises: TpmError if there is no identity key, or the TPM fails
        """
        if len(data) > MAX_SIGN_DATA_SIZE:
            raise ValueError(
                "Cannot sign more than {} bytes with the TPM".format(MAX_SIGN_DATA_SIZE)
            )
        try:
            key = self._get_persistent_handle(DPS_ID_KEY_PERSISTENT_HANDLE)
            if key is None:
                raise TpmError("No identity key in the TPM. The device must register first")
            digest = self._context.hmac(key, TPM2B_MAX_BUFFER(data), TPM2_ALG.SHA256)
        except TSS2_Exception as e:
            raise TpmError("TPM failed to sign data") from e
        return bytes(digest)
