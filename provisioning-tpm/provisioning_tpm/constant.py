# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""This module defines constants for use across the provisioning-tpm package
"""

VERSION = "1.0.0"
PROVISIONING_IDENTIFIER = "provisioning-tpm-py"
IOTHUB_IDENTIFIER = "provisioning-tpm-iothub-py"
PROVISIONING_API_VERSION = "2019-03-31"
PROVISIONING_SERVICE_API_VERSION = "2021-10-01"
IOTHUB_API_VERSION = "2020-09-30"
PROVISIONING_GLOBAL_ENDPOINT = "global.azure-devices-provisioning.net"

# Persistent TPM handles shared with the Azure IoT C SDK, so that a TPM provisioned by
# either tool can be used by the other
EK_PERSISTENT_HANDLE = 0x81010001
SRK_PERSISTENT_HANDLE = 0x81000001
DPS_ID_KEY_PERSISTENT_HANDLE = 0x81000100

TEST_MESSAGE_PAYLOAD = "TestMessage"
