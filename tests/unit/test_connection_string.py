# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import pytest
import logging
from provisioning_tpm.connection_string import ConnectionString

logging.basicConfig(level=logging.DEBUG)

FAKE_CONNECTION_STRING = (
    "HostName=my-dps.azure-devices-provisioning.net;"
    "SharedAccessKeyName=provisioningserviceowner;SharedAccessKey=Zm9vYmFy"
)


@pytest.mark.describe("ConnectionString")
class TestConnectionString(object):
    @pytest.mark.it("Instantiates from a valid connection string")
    @pytest.mark.parametrize(
        "input_string",
        [
            pytest.param(FAKE_CONNECTION_STRING, id="Standard"),
            pytest.param(FAKE_CONNECTION_STRING + ";", id="Trailing delimiter"),
            pytest.param(
                "SharedAccessKey=Zm9vYmFy;HostName=my-dps.azure-devices-provisioning.net;"
                "SharedAccessKeyName=provisioningserviceowner",
                id="Different key order",
            ),
        ],
    )
    def test_instantiates_correctly_from_string(self, input_string):
        cs = ConnectionString(input_string)
        assert isinstance(cs, ConnectionString)

    @pytest.mark.it("Raises ValueError on invalid string input during instantiation")
    @pytest.mark.parametrize(
        "input_string",
        [
            pytest.param("", id="Empty string"),
            pytest.param("garbage", id="Not a connection string"),
            pytest.param(
                "SharedAccessKeyName=provisioningserviceowner;SharedAccessKey=Zm9vYmFy",
                id="Incomplete connection string (missing endpoint)",
            ),
            pytest.param(
                "HostName=my-dps.azure-devices-provisioning.net;SharedAccessKey=Zm9vYmFy",
                id="Incomplete connection string (missing key name)",
            ),
            pytest.param(
                "HostName=my-dps.azure-devices-provisioning.net;"
                "SharedAccessKeyName=provisioningserviceowner",
                id="Incomplete connection string (missing key)",
            ),
            pytest.param(
                "InvalidKey=my.host.name;SharedAccessKeyName=mykeyname;SharedAccessKey=Zm9vYmFy",
                id="Invalid key",
            ),
            pytest.param(
                "HostName=my.host.name;HostName=my.host.name;SharedAccessKeyName=mykeyname;"
                "SharedAccessKey=Zm9vYmFy",
                id="Duplicate key",
            ),
        ],
    )
    def test_raises_value_error_on_invalid_input(self, input_string):
        with pytest.raises(ValueError):
            ConnectionString(input_string)

    @pytest.mark.it("Raises TypeError on non-string input during instantiation")
    @pytest.mark.parametrize(
        "input_val",
        [
            pytest.param(2123, id="Integer"),
            pytest.param(23.098, id="Float"),
            pytest.param(b"bytes", id="Bytes"),
            pytest.param(object(), id="Complex object"),
            pytest.param(["a", "b"], id="List"),
            pytest.param({"a": "b"}, id="Dictionary"),
        ],
    )
    def test_raises_type_error_on_non_string_input(self, input_val):
        with pytest.raises(TypeError):
            ConnectionString(input_val)

    @pytest.mark.it("Uses the input connection string as a string representation")
    def test_string_representation_of_object_is_the_input_string(self):
        cs = ConnectionString(FAKE_CONNECTION_STRING)
        assert str(cs) == FAKE_CONNECTION_STRING

    @pytest.mark.it("Supports indexing syntax to return the stored value for a given key")
    def test_indexing_key_returns_corresponding_value(self):
        cs = ConnectionString(FAKE_CONNECTION_STRING)
        assert cs["HostName"] == "my-dps.azure-devices-provisioning.net"
        assert cs["SharedAccessKeyName"] == "provisioningserviceowner"
        assert cs["SharedAccessKey"] == "Zm9vYmFy"

    @pytest.mark.it("Raises KeyError if indexing on a key not contained in the ConnectionString")
    def test_indexing_key_raises_key_error_if_key_not_in_string(self):
        cs = ConnectionString(FAKE_CONNECTION_STRING)
        with pytest.raises(KeyError):
            cs["DeviceId"]

    @pytest.mark.it("Supports the 'in' operator for keys")
    def test_contains(self):
        cs = ConnectionString(FAKE_CONNECTION_STRING)
        assert "HostName" in cs
        assert "DeviceId" not in cs

    @pytest.mark.it(
        "Supports the 'get' function to return the stored value for a given key, or a default"
    )
    def test_calling_get_with_key_returns_corresponding_value(self):
        cs = ConnectionString(FAKE_CONNECTION_STRING)
        assert cs.get("HostName") == "my-dps.azure-devices-provisioning.net"
        assert cs.get("DeviceId") is None
        assert cs.get("DeviceId", "fallback") == "fallback"
