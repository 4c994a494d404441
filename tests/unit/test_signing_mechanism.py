# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import pytest
import logging
import hmac
import hashlib
import base64
from provisioning_tpm.signing_mechanism import SymmetricKeySigningMechanism, TpmSigningMechanism
from provisioning_tpm.exceptions import TpmError

logging.basicConfig(level=logging.DEBUG)

FAKE_KEY = "NMgJDvdKTxjLi+xBxxkDDEwDJxEvOE5u8BiT0mVgPeg="
FAKE_SIGNING_KEY = b"4\xc8\t\x0e\xf7JO\x18\xcb\x8b\xecA\xc7\x19\x03\x0cL\x03'\x11/8Nn\xf0\x18\x93\xd2e`=\xe8"
FAKE_TPM_SIGNATURE = b"\x01\x02\x03\x04tpm-signature"


@pytest.mark.describe("SymmetricKeySigningMechanism - Instantiation")
class TestSymmetricKeySigningMechanismInstantiation(object):
    @pytest.mark.it("Derives the signing key by base64 decoding the symmetric key")
    @pytest.mark.parametrize(
        "key",
        [pytest.param(FAKE_KEY, id="String"), pytest.param(FAKE_KEY.encode("utf-8"), id="Bytes")],
    )
    def test_derives_signing_key(self, key):
        sm = SymmetricKeySigningMechanism(key)
        assert sm._signing_key == FAKE_SIGNING_KEY

    @pytest.mark.it("Raises a ValueError if the provided symmetric key is invalid")
    @pytest.mark.parametrize(
        "key",
        [pytest.param("not a key", id="Not a key"), pytest.param("YWJjx", id="Incomplete key")],
    )
    def test_invalid_key(self, key):
        with pytest.raises(ValueError):
            SymmetricKeySigningMechanism(key)


@pytest.mark.describe("SymmetricKeySigningMechanism - .sign()")
class TestSymmetricKeySigningMechanismSign(object):
    @pytest.fixture
    def signing_mechanism(self):
        return SymmetricKeySigningMechanism(FAKE_KEY)

    @pytest.mark.it("Returns the base64 encoded HMAC-SHA256 digest of the data")
    @pytest.mark.parametrize(
        "data",
        [pytest.param("sign this message", id="String"), pytest.param(b"sign this message", id="Bytes")],
    )
    def test_signature(self, signing_mechanism, data):
        expected = base64.b64encode(
            hmac.HMAC(key=FAKE_SIGNING_KEY, msg=b"sign this message", digestmod=hashlib.sha256).digest()
        ).decode("utf-8")
        assert signing_mechanism.sign(data) == expected

    @pytest.mark.it("Raises a ValueError if unable to sign the provided data")
    def test_bad_input(self, mocker, signing_mechanism):
        hmac_mock = mocker.patch.object(hmac, "HMAC")
        hmac_mock.side_effect = TypeError
        with pytest.raises(ValueError):
            signing_mechanism.sign("sign this message")


@pytest.mark.describe("TpmSigningMechanism - .sign()")
class TestTpmSigningMechanismSign(object):
    @pytest.fixture
    def security(self, mocker):
        security = mocker.MagicMock()
        security.sign.return_value = FAKE_TPM_SIGNATURE
        return security

    @pytest.mark.it("Signs the utf-8 encoded data with the security provider")
    def test_signs_with_security_provider(self, security):
        sm = TpmSigningMechanism(security)
        sm.sign("sign this message")
        assert security.sign.call_count == 1
        assert security.sign.call_args == ((b"sign this message",),)

    @pytest.mark.it("Returns the signature as a base64 string")
    def test_returns_base64(self, security):
        sm = TpmSigningMechanism(security)
        assert sm.sign(b"data") == base64.b64encode(FAKE_TPM_SIGNATURE).decode("utf-8")

    @pytest.mark.it("Allows errors from the security provider to propagate")
    def test_raises_tpm_error(self, security):
        security.sign.side_effect = TpmError("no key")
        sm = TpmSigningMechanism(security)
        with pytest.raises(TpmError):
            sm.sign("data")
