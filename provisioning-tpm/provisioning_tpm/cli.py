# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Command line tool that provisions a TPM backed device into an IoT Hub via DPS.

Usage: provision-tpm <IDScope> <RegistrationID> <DeviceID> <SkipTest:Y|N>
"""

import argparse
import asyncio
import base64
import logging
import re
import sys
from typing import List, Optional, Tuple
from . import constant
from .exceptions import ConfigurationError
from .iothub_mqtt_client import send_test_message
from .provisioning_device_client import ProvisioningDeviceClient
from .service import (
    AttestationMechanism,
    DeviceCapabilities,
    IndividualEnrollment,
    ProvisioningServiceClient,
)
from .settings import load_settings
from .transport import create_transport_handler

logger = logging.getLogger(__name__)

DPS_CONNECTION_STRING_NAME = "Dps"
TCTI_SETTING = "Tpm:Tcti"
MAX_REGISTRATION_ID_LENGTH = 128
TRANSPORT_NAMES = ("mqtt", "http")

USAGE = "ProvisionTpm <IDScope> <RegistrationID> <DeviceID> <SkipTest:Y|N>"

_registration_id_regex = re.compile(r"^[a-z0-9-]+$")


def is_valid_registration_id(value: Optional[str]) -> bool:
    """Registration IDs are lowercase alphanumeric, and may contain hyphens"""
    if not value or len(value) > MAX_REGISTRATION_ID_LENGTH:
        return False
    return _registration_id_regex.fullmatch(value) is not None


class _ArgumentParserError(Exception):
    pass


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        # Reported by main() after the connection string check, as a parameter error
        raise _ArgumentParserError(message)


def _build_parser() -> argparse.ArgumentParser:
    # Options are long-only and never abbreviated, so registration ids such as "-dev01"
    # are left to the positionals
    parser = _ArgumentParser(
        prog="provision-tpm",
        usage="%(prog)s <IDScope> <RegistrationID> <DeviceID> <SkipTest:Y|N> [options]",
        description="Enroll a TPM device in the Device Provisioning Service and register it.",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit.")
    parser.add_argument(
        "--transport",
        default="mqtt",
        help="Transport used for the device registration, mqtt or http. Default is mqtt.",
    )
    parser.add_argument(
        "--settings-dir",
        default=None,
        help="Directory holding appSettings.json. Default is the current directory.",
    )
    parser.add_argument(
        "--tcti",
        default=None,
        help="TPM TCTI configuration, e.g. 'device:/dev/tpmrm0'. Overrides the Tpm:Tcti setting.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Write debug logging to stderr."
    )
    return parser


def _parse_args(argv: Optional[List[str]]) -> Tuple[argparse.Namespace, List[str], Optional[str]]:
    """Split the command line into options and positionals.

    :returns: The options, the positionals (anything that is not a known option, in order)
        and the parse error, if any
    """
    parser = _build_parser()
    try:
        args, positionals = parser.parse_known_args(argv)
    except _ArgumentParserError as e:
        return parser.parse_known_args([])[0], [], str(e)
    return args, positionals, None


def _create_security_provider(registration_id: str, tcti: Optional[str]):
    # Deferred so that argument and settings errors are reported without loading the TSS
    from .security import SecurityProviderTpm

    return SecurityProviderTpm(registration_id, tcti=tcti)


def _wait_for_enter() -> None:
    input()


def main(argv: Optional[List[str]] = None) -> int:
    args, positionals, parse_error = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.settings_dir)
    except ConfigurationError as e:
        print(str(e))
        return -1
    dps_connection = settings.get_connection_string(DPS_CONNECTION_STRING_NAME)

    if not (dps_connection and dps_connection.strip()):
        print("The connectionstring of the DPS service is not provided")
        print(
            "Make sure that the appsettings.json file contains an entry for the "
            "ConnectionStrings:Dps setting"
        )
        return -1

    print("Provision your TPM")
    print("------------------")
    print("Usage: " + USAGE)
    print("Run this 'As Adminsitrator' or 'SU'")

    if parse_error:
        logger.debug("Invalid command line: {}".format(parse_error))

    # Positionals after the fourth are ignored
    id_scope, registration_id, device_id, skip_test = (positionals + [""] * 4)[:4]
    device_id = device_id.upper()
    skip_test = skip_test.upper()

    if (
        parse_error
        or args.transport.lower() not in TRANSPORT_NAMES
        or not all(value.strip() for value in (id_scope, registration_id, device_id, skip_test))
    ):
        print("Check if the parameters are corrent: " + USAGE)
        return 1

    if not is_valid_registration_id(registration_id):
        print(
            "Invalid registrationId: The registration ID is alphanumeric, lowercase, and may "
            "contain hyphens"
        )
        return 1

    tcti = args.tcti or settings.get(TCTI_SETTING)
    asyncio.run(
        provision(
            dps_connection=dps_connection,
            id_scope=id_scope,
            registration_id=registration_id,
            device_id=device_id,
            skip_test=skip_test == "Y",
            transport_name=args.transport.lower(),
            tcti=tcti,
        )
    )
    return 0


async def provision(
    *,
    dps_connection: str,
    id_scope: str,
    registration_id: str,
    device_id: str,
    skip_test: bool,
    transport_name: str = "mqtt",
    tcti: Optional[str] = None,
) -> None:
    """Enroll the TPM in DPS, then register the device and optionally test the connection"""
    with _create_security_provider(registration_id, tcti) as security:
        async with create_transport_handler(transport_name) as transport:
            # A TPM simulator keeps this state in its NVChip file
            print("Extracting endorsement key.")
            base64_ek = base64.b64encode(security.get_endorsement_key()).decode("ascii")

            print(
                "In your Azure Device Provisioning Service please go to 'Manage enrollments' and "
                "select 'Individual Enrollments'. Select 'Add individual enrollment' then fill in "
                "the following:"
            )
            print("\tMechanism: TPM")
            print("\tEndorsement key: {}".format(base64_ek))
            print("\tRegistration ID: {}".format(registration_id))
            print("\tSwitch over to the IoT Edge device enrollemnt is needed")
            print("\tIoT Hub Device ID: {} (or any other valid DeviceID)".format(registration_id))

            print("Press enter to enroll this device in DPS")
            _wait_for_enter()

            enroll_device(dps_connection, registration_id, base64_ek, device_id)

            print("")
            print("The device is enrolled in DPS")
            print("\tCheck if the correct IoT Hub is selected")
            print("\tFinally, Save this individual enrollment")
            print()
            print(
                "Press ENTER when ready. This will start finalizing the registration on your TPM"
            )
            _wait_for_enter()

            provisioning_client = ProvisioningDeviceClient.create(
                constant.PROVISIONING_GLOBAL_ENDPOINT, id_scope, security, transport
            )
            tested = await register_device(provisioning_client, security, skip_test)
            print("The registration is finalized on the TPM")

            if tested:
                print("The connection is tested by sending a test message")


def enroll_device(
    dps_connection: str, registration_id: str, endorsement_key: str, device_id: str
) -> IndividualEnrollment:
    """Create or update the individual enrollment of the device

    :raises: ProvisioningServiceErrorDetailsException if DPS rejects the enrollment
    """
    with ProvisioningServiceClient.from_connection_string(dps_connection) as service_client:
        print("\nCreating a new individualEnrollment...")
        attestation = AttestationMechanism.create_with_tpm(endorsement_key)
        enrollment = IndividualEnrollment.create(
            registration_id=registration_id.lower(),
            attestation=attestation,
            device_id=device_id,
            capabilities=DeviceCapabilities(iot_edge=True),
            provisioning_status="enabled",
        )

        print("\nAdding new individualEnrollment...")
        result = service_client.create_or_update_individual_enrollment(enrollment)

        print("\nIndividualEnrollment created with success.")
        print(result)
        return result


async def register_device(
    provisioning_client: ProvisioningDeviceClient, security, skip_test: bool
) -> bool:
    """Register the device, then send a test message unless told to skip it

    :returns: True if a test message was sent
    """
    print("RegistrationID = {}".format(security.registration_id))
    print("ProvisioningClient RegisterAsync . . . ", end="")
    result = await provisioning_client.register()
    status = result["status"]
    state = result["registrationState"]
    print(status)
    print(
        "ProvisioningClient AssignedHub: {}; DeviceID: {}".format(
            state["assignedHub"], state["deviceId"]
        )
    )

    if status != "assigned":
        logger.warning("Registration ended with status '{}'".format(status))
        return False
    if skip_test:
        return False

    print("DeviceClient OpenAsync.")
    print("DeviceClient SendEventAsync.")
    await send_test_message(state["assignedHub"], state["deviceId"], security)
    print("DeviceClient CloseAsync.")
    return True
