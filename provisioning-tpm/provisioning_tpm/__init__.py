# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Provision a TPM backed device into Azure IoT Hub through the Device Provisioning Service

This package provides the ``provision-tpm`` command line tool, along with the clients it
is built on.
"""

from .constant import VERSION as __version__  # noqa: F401
from .provisioning_device_client import ProvisioningDeviceClient  # noqa: F401
from .transport import (  # noqa: F401
    ProvisioningTransportHandlerMqtt,
    ProvisioningTransportHandlerHttp,
)
from .config import ProxyOptions  # noqa: F401
from . import exceptions  # noqa: F401
