# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import asyncio
import json
import logging
import pytest
import urllib.parse
import paho.mqtt.client as mqtt
from provisioning_tpm import provisioning_client as pc
from provisioning_tpm import provisioning_mqtt_client as pmc
from provisioning_tpm import mqtt_client as mqtt_client_module
from provisioning_tpm import constant, user_agent
from provisioning_tpm.config import ProvisioningClientConfig
from provisioning_tpm.exceptions import ProvisioningServiceError
from provisioning_tpm.mqtt_client import MQTTClient, MQTTConnectionFailedError
from provisioning_tpm.provisioning_mqtt_client import ProvisioningMQTTClient

logging.basicConfig(level=logging.DEBUG)

FAKE_REGISTRATION_ID = "fake-registration-id"
FAKE_ID_SCOPE = "0ne00000A0A"
FAKE_HOSTNAME = "global.azure-devices-provisioning.net"
FAKE_OPERATION_ID = "fake_operation_id"
FAKE_SASTOKEN = "SharedAccessSignature sr=fake&sig=fake&se=12345"
FAKE_TPM = {"endorsementKey": "ZmFrZSBlaw==", "storageRootKey": "ZmFrZSBzcms="}
RESPONSE_TOPIC = "$dps/registrations/res/#"


def assigned_body():
    return {
        "operationId": FAKE_OPERATION_ID,
        "status": "assigned",
        "registrationState": {
            "assignedHub": "my-hub.azure-devices.net",
            "deviceId": "MY-DEVICE",
        },
    }


@pytest.fixture
def mock_mqtt_client(mocker):
    """MQTTClient mock that answers each publish with the next queued DPS response"""
    mock_client = mocker.MagicMock(spec=MQTTClient)
    incoming = asyncio.Queue()
    # Each entry is a (status, body, extra topic properties) tuple
    mock_client.responses = []

    async def generator():
        while True:
            yield await incoming.get()

    mock_client.get_incoming_message_generator.return_value = generator()

    async def publish(topic, payload):
        if not mock_client.responses:
            return
        status, body, properties = mock_client.responses.pop(0)
        query = urllib.parse.parse_qs(topic.split("?", 1)[1])
        props = {"$rid": query["$rid"][0]}
        props.update(properties)
        response_topic = "$dps/registrations/res/{}/?{}".format(
            status, urllib.parse.urlencode(props)
        )
        message = mqtt.MQTTMessage(topic=response_topic.encode("utf-8"))
        message.payload = json.dumps(body).encode("utf-8")
        incoming.put_nowait(message)

    mock_client.publish.side_effect = publish
    mock_client.incoming = incoming
    mocker.patch.object(mqtt_client_module, "create_client_from_config", return_value=mock_client)
    return mock_client


@pytest.fixture
def client_config(mocker):
    return ProvisioningClientConfig(
        registration_id=FAKE_REGISTRATION_ID,
        id_scope=FAKE_ID_SCOPE,
        hostname=FAKE_HOSTNAME,
        ssl_context=mocker.MagicMock(),
    )


@pytest.fixture
async def client(mock_mqtt_client, client_config):
    client = ProvisioningMQTTClient(client_config)
    yield client
    await client.stop()


@pytest.fixture
async def started_client(client):
    await client.start()
    return client


@pytest.fixture(autouse=True)
def no_polling_interval(mocker):
    mocker.patch.object(pc, "DEFAULT_POLLING_INTERVAL", 0)


@pytest.mark.describe("ProvisioningMQTTClient - Instantiation")
class TestInstantiation(object):
    @pytest.mark.it("Creates an MQTTClient using the registration id as client id")
    async def test_creates_mqtt_client(self, mocker, mock_mqtt_client, client_config):
        ProvisioningMQTTClient(client_config)
        assert mqtt_client_module.create_client_from_config.call_args == mocker.call(
            FAKE_REGISTRATION_ID, client_config
        )

    @pytest.mark.it("Adds an incoming message filter for DPS responses")
    async def test_filter(self, mocker, mock_mqtt_client, client_config):
        ProvisioningMQTTClient(client_config)
        assert mock_mqtt_client.add_incoming_message_filter.call_args == mocker.call(
            RESPONSE_TOPIC
        )

    @pytest.mark.it("Formats the username from the ID scope, registration id and versions")
    async def test_username(self, mock_mqtt_client, client_config):
        client = ProvisioningMQTTClient(client_config)
        expected = "{}/registrations/{}/?api-version={}&ClientVersion={}".format(
            FAKE_ID_SCOPE,
            FAKE_REGISTRATION_ID,
            constant.PROVISIONING_API_VERSION,
            urllib.parse.quote(user_agent.get_provisioning_user_agent(), safe=""),
        )
        assert client._username == expected


@pytest.mark.describe("ProvisioningMQTTClient - .start()")
class TestStart(object):
    @pytest.mark.it("Sets the username without password if there is no SasToken, and connects")
    async def test_no_sastoken(self, mocker, client, mock_mqtt_client):
        await client.start()
        assert mock_mqtt_client.set_credentials.call_args == mocker.call(client._username, None)
        assert mock_mqtt_client.connect.await_count == 1

    @pytest.mark.it("Starts the background task that processes DPS responses")
    async def test_background_task(self, client):
        await client.start()
        assert client._process_dps_responses_task is not None
        assert not client._process_dps_responses_task.done()

    @pytest.mark.it("Allows connection failures to propagate")
    async def test_connect_failure(self, client, mock_mqtt_client):
        mock_mqtt_client.connect.side_effect = MQTTConnectionFailedError(rc=5)
        with pytest.raises(MQTTConnectionFailedError):
            await client.start()


@pytest.mark.describe("ProvisioningMQTTClient - .stop()")
class TestStop(object):
    @pytest.mark.it("Cancels the background task and disconnects")
    async def test_stop(self, started_client, mock_mqtt_client):
        task = started_client._process_dps_responses_task
        await started_client.stop()
        assert task.cancelled()
        assert started_client._process_dps_responses_task is None
        assert mock_mqtt_client.disconnect.await_count == 1


@pytest.mark.describe("ProvisioningMQTTClient - .update_sastoken()")
class TestUpdateSasToken(object):
    @pytest.mark.it("Reconnects using the SasToken as password")
    async def test_reconnects(self, mocker, started_client, mock_mqtt_client):
        sastoken = mocker.MagicMock()
        sastoken.__str__.return_value = FAKE_SASTOKEN
        await started_client.update_sastoken(sastoken)
        assert mock_mqtt_client.set_credentials.call_args == mocker.call(
            started_client._username, FAKE_SASTOKEN
        )
        assert mock_mqtt_client.disconnect.await_count == 1
        assert mock_mqtt_client.connect.await_count == 2

    @pytest.mark.it("Subscribes again before the next request")
    async def test_resubscribes(self, mocker, started_client, mock_mqtt_client):
        mock_mqtt_client.responses.append((401, {"authenticationKey": "a2V5"}, {}))
        await started_client.send_tpm_nonce_request(FAKE_TPM)
        assert mock_mqtt_client.subscribe.await_count == 1

        await started_client.update_sastoken(mocker.MagicMock())
        mock_mqtt_client.responses.append((200, assigned_body(), {}))
        await started_client.send_register(FAKE_TPM)
        assert mock_mqtt_client.subscribe.await_count == 2


@pytest.mark.describe("ProvisioningMQTTClient - Requests")
class TestRequests(object):
    @pytest.mark.it("Subscribes to DPS responses before the first request only")
    async def test_subscribes_once(self, mocker, started_client, mock_mqtt_client):
        mock_mqtt_client.responses.append((401, {"authenticationKey": "a2V5"}, {}))
        mock_mqtt_client.responses.append((401, {"authenticationKey": "a2V5"}, {}))
        await started_client.send_tpm_nonce_request(FAKE_TPM)
        await started_client.send_tpm_nonce_request(FAKE_TPM)
        assert mock_mqtt_client.subscribe.await_count == 1
        assert mock_mqtt_client.subscribe.call_args == mocker.call(RESPONSE_TOPIC)

    @pytest.mark.it("Publishes registrations on the register topic, and matches the response")
    async def test_register_topic(self, started_client, mock_mqtt_client):
        mock_mqtt_client.responses.append((401, {"authenticationKey": "a2V5"}, {}))
        key = await started_client.send_tpm_nonce_request(FAKE_TPM)
        assert key == "a2V5"
        topic, payload = mock_mqtt_client.publish.call_args[0]
        assert topic.startswith("$dps/registrations/PUT/iotdps-register/?$rid=")
        assert json.loads(payload)["registrationId"] == FAKE_REGISTRATION_ID
        assert len(started_client._request_ledger) == 0

    @pytest.mark.it("Publishes status queries on the operation status topic with a blank payload")
    async def test_polling_topic(self, started_client, mock_mqtt_client):
        mock_mqtt_client.responses.append(
            (202, {"operationId": FAKE_OPERATION_ID, "status": "assigning"}, {"retry-after": "0"})
        )
        mock_mqtt_client.responses.append((200, assigned_body(), {}))
        result = await started_client.send_register(FAKE_TPM)
        assert result["status"] == "assigned"
        assert result["registrationState"]["deviceId"] == "MY-DEVICE"
        topic, payload = mock_mqtt_client.publish.call_args[0]
        assert topic.startswith("$dps/registrations/GET/iotdps-get-operationstatus/?$rid=")
        assert topic.endswith("&operationId=" + FAKE_OPERATION_ID)
        assert payload == " "

    @pytest.mark.it("Raises a ProvisioningServiceError if no response arrives in time")
    async def test_timeout(self, mocker, started_client, mock_mqtt_client):
        mocker.patch.object(pmc, "DEFAULT_TIMEOUT_INTERVAL", 0.1)
        with pytest.raises(ProvisioningServiceError):
            await started_client.send_tpm_nonce_request(FAKE_TPM)
        assert len(started_client._request_ledger) == 0

    @pytest.mark.it("Drops responses that do not match a pending request")
    async def test_unmatched_response(self, started_client, mock_mqtt_client):
        message = mqtt.MQTTMessage(topic=b"$dps/registrations/res/200/?$rid=unknown")
        message.payload = b"{}"
        mock_mqtt_client.incoming.put_nowait(message)
        await asyncio.sleep(0.1)
        assert not started_client._process_dps_responses_task.done()

    @pytest.mark.it("Drops responses on malformed topics")
    async def test_malformed_response(self, started_client, mock_mqtt_client):
        message = mqtt.MQTTMessage(topic=b"$dps/registrations/res/notanumber")
        message.payload = b"{}"
        mock_mqtt_client.incoming.put_nowait(message)
        await asyncio.sleep(0.1)
        assert not started_client._process_dps_responses_task.done()
