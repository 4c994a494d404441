# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Define provisioning-tpm user-facing exceptions to be shared across package"""
from .mqtt_client import (  # noqa: F401 (Importing directly to re-export)
    MQTTError,
    MQTTConnectionFailedError,
)


class ConfigurationError(Exception):
    """Represents a failure reading the local settings"""

    pass


class CredentialError(Exception):
    """Represents a failure from an invalid auth credential"""

    pass


class TpmError(Exception):
    """Represents a failure reported by the TPM or its software stack"""

    pass


# Service Exceptions
class ProvisioningServiceError(Exception):
    """Represents a failure reported by Provisioning Service"""

    pass
