# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import logging
import pytest
import urllib.parse
from provisioning_tpm import iothub_mqtt_client as imc
from provisioning_tpm import mqtt_client as mqtt_client_module
from provisioning_tpm import constant, user_agent
from provisioning_tpm.config import IoTHubClientConfig
from provisioning_tpm.iothub_mqtt_client import IoTHubMQTTClient, send_test_message
from provisioning_tpm.mqtt_client import MQTTClient

logging.basicConfig(level=logging.DEBUG)

FAKE_HOSTNAME = "my-hub.azure-devices.net"
FAKE_DEVICE_ID = "MY-DEVICE"
FAKE_SASTOKEN = "SharedAccessSignature sr=fake&sig=fake&se=12345"


@pytest.fixture
def mock_mqtt_client(mocker):
    mock_client = mocker.MagicMock(spec=MQTTClient)
    mocker.patch.object(mqtt_client_module, "create_client_from_config", return_value=mock_client)
    return mock_client


@pytest.fixture
def sastoken(mocker):
    sastoken = mocker.MagicMock()
    sastoken.__str__.return_value = FAKE_SASTOKEN
    return sastoken


@pytest.fixture
def client_config(mocker, sastoken):
    return IoTHubClientConfig(
        hostname=FAKE_HOSTNAME,
        device_id=FAKE_DEVICE_ID,
        sastoken=sastoken,
        ssl_context=mocker.MagicMock(),
    )


@pytest.fixture
def security(mocker):
    security = mocker.MagicMock()
    security.sign.return_value = b"signature"
    return security


@pytest.mark.describe("IoTHubMQTTClient - Instantiation")
class TestInstantiation(object):
    @pytest.mark.it("Creates an MQTTClient using the device id as client id")
    def test_creates_mqtt_client(self, mocker, mock_mqtt_client, client_config):
        IoTHubMQTTClient(client_config)
        assert mqtt_client_module.create_client_from_config.call_args == mocker.call(
            FAKE_DEVICE_ID, client_config
        )

    @pytest.mark.it("Formats the username from the hostname, device id and versions")
    def test_username(self, mock_mqtt_client, client_config):
        client = IoTHubMQTTClient(client_config)
        expected = "{}/{}/?api-version={}&DeviceClientType={}".format(
            FAKE_HOSTNAME,
            FAKE_DEVICE_ID,
            constant.IOTHUB_API_VERSION,
            urllib.parse.quote(user_agent.get_iothub_user_agent(), safe=""),
        )
        assert client._username == expected


@pytest.mark.describe("IoTHubMQTTClient - .connect()")
class TestConnect(object):
    @pytest.mark.it("Connects using the SasToken as password")
    async def test_connect(self, mocker, mock_mqtt_client, client_config):
        client = IoTHubMQTTClient(client_config)
        await client.connect()
        assert mock_mqtt_client.set_credentials.call_args == mocker.call(
            client._username, FAKE_SASTOKEN
        )
        assert mock_mqtt_client.connect.await_count == 1


@pytest.mark.describe("IoTHubMQTTClient - .send_message()")
class TestSendMessage(object):
    @pytest.mark.it("Publishes the utf-8 encoded payload on the telemetry topic of the device")
    async def test_publish(self, mocker, mock_mqtt_client, client_config):
        client = IoTHubMQTTClient(client_config)
        await client.send_message("TestMessage")
        assert mock_mqtt_client.publish.call_args == mocker.call(
            "devices/{}/messages/events/".format(FAKE_DEVICE_ID), b"TestMessage"
        )

    @pytest.mark.it("Publishes bytes payloads unchanged")
    async def test_publish_bytes(self, mock_mqtt_client, client_config):
        client = IoTHubMQTTClient(client_config)
        await client.send_message(b"\x00\x01")
        assert mock_mqtt_client.publish.call_args[0][1] == b"\x00\x01"


@pytest.mark.describe("send_test_message()")
class TestSendTestMessage(object):
    @pytest.mark.it("Connects as the device with a TPM signed SasToken for the device uri")
    async def test_sastoken(self, mocker, mock_mqtt_client, security):
        await send_test_message(FAKE_HOSTNAME, FAKE_DEVICE_ID, security)
        client_config = mqtt_client_module.create_client_from_config.call_args[0][1]
        assert client_config.hostname == FAKE_HOSTNAME
        assert client_config.device_id == FAKE_DEVICE_ID
        assert client_config.sastoken.resource_uri == "{}/devices/{}".format(
            FAKE_HOSTNAME, FAKE_DEVICE_ID
        )
        assert security.sign.call_count >= 1
        password = mock_mqtt_client.set_credentials.call_args[0][1]
        assert password.startswith("SharedAccessSignature ")

    @pytest.mark.it("Sends the test message, then disconnects")
    async def test_sends_and_disconnects(self, mocker, mock_mqtt_client, security):
        await send_test_message(FAKE_HOSTNAME, FAKE_DEVICE_ID, security)
        assert mock_mqtt_client.publish.call_args[0][1] == constant.TEST_MESSAGE_PAYLOAD.encode(
            "utf-8"
        )
        assert mock_mqtt_client.disconnect.await_count == 1

    @pytest.mark.it("Disconnects even if sending fails")
    async def test_disconnects_on_failure(self, mock_mqtt_client, security, arbitrary_exception):
        mock_mqtt_client.publish.side_effect = arbitrary_exception
        with pytest.raises(type(arbitrary_exception)):
            await send_test_message(FAKE_HOSTNAME, FAKE_DEVICE_ID, security)
        assert mock_mqtt_client.disconnect.await_count == 1

    @pytest.mark.it("Uses the default SSL context if none is provided")
    async def test_default_ssl_context(self, mocker, mock_mqtt_client, security):
        mock_default = mocker.patch.object(imc, "default_ssl_context")
        await send_test_message(FAKE_HOSTNAME, FAKE_DEVICE_ID, security)
        client_config = mqtt_client_module.create_client_from_config.call_args[0][1]
        assert client_config.ssl_context is mock_default.return_value
