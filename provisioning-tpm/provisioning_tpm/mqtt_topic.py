# --------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Topic strings for Device Provisioning Service registration and IoTHub telemetry"""

import urllib.parse
from typing import Dict

# Always quote with safe="" so that "/" is encoded too. Never use quote_plus() or
# unquote_plus(): they translate between ' ' and '+', which is invalid for MQTT.

_DPS_RESPONSE_PREFIX = "$dps/registrations/res/"


# Device Provisioning Service


def get_response_topic_for_subscribe() -> str:
    """
    :return: The topic string used to subscribe for registration responses from DPS.
    It is of the format "$dps/registrations/res/#"
    """
    return _DPS_RESPONSE_PREFIX + "#"


def get_register_topic_for_publish(request_id: str) -> str:
    """
    :return: The topic string used to send a registration. It is of the format
    "$dps/registrations/PUT/iotdps-register/?$rid=<request_id>"
    """
    return "$dps/registrations/PUT/iotdps-register/?$rid={request_id}".format(
        request_id=urllib.parse.quote(str(request_id), safe="")
    )


def get_status_query_topic_for_publish(request_id: str, operation_id: str) -> str:
    """
    :return: The topic string used to query an operation status. It is of the format
    "$dps/registrations/GET/iotdps-get-operationstatus/?$rid=<request_id>&operationId=<operation_id>"
    """
    return "$dps/registrations/GET/iotdps-get-operationstatus/?$rid={request_id}&operationId={operation_id}".format(
        request_id=urllib.parse.quote(str(request_id), safe=""),
        operation_id=urllib.parse.quote(str(operation_id), safe=""),
    )


def extract_properties_from_response_topic(topic: str) -> Dict[str, str]:
    """Extract key/value pairs from a DPS response topic of the format
    $dps/registrations/res/<statuscode>/?$<key1>=<value1>&...&<keyN>=<valueN>

    A key without a value maps to the empty string.

    :raises: ValueError if the topic is not a DPS response topic
    """
    parts = topic.split("/")
    if topic.startswith(_DPS_RESPONSE_PREFIX) and len(parts) == 5 and "?" in parts[4]:
        return _extract_properties(parts[4].split("?", 1)[1])
    else:
        raise ValueError("topic has incorrect format")


def extract_status_code_from_response_topic(topic: str) -> int:
    """Extract the status code from a DPS response topic

    :raises: ValueError if the topic is not a DPS response topic
    """
    parts = topic.split("/")
    if topic.startswith(_DPS_RESPONSE_PREFIX) and len(parts) >= 4:
        return int(urllib.parse.unquote(parts[3]))
    else:
        raise ValueError("topic has incorrect format")


def _extract_properties(properties_str: str) -> Dict[str, str]:
    d: Dict[str, str] = {}
    if not properties_str:
        return d
    for entry in properties_str.split("&"):
        key, _, value = entry.partition("=")
        d[urllib.parse.unquote(key)] = urllib.parse.unquote(value)
    return d


# IoTHub


def get_telemetry_topic_for_publish(device_id: str) -> str:
    """
    :return: The topic for device-to-cloud telemetry. It is of the format
    "devices/<deviceid>/messages/events/"
    """
    # Device ID is never URL encoded in IoTHub topics
    return "devices/" + str(device_id) + "/messages/events/"
