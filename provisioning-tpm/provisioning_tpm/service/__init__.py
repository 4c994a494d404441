"""Azure Device Provisioning Service - service side

This package provides a client for managing enrollments in a Device Provisioning Service
"""

from .provisioning_service_client import ProvisioningServiceClient  # noqa: F401
from .models import (  # noqa: F401
    IndividualEnrollment,
    AttestationMechanism,
    TpmAttestation,
    DeviceCapabilities,
    DeviceRegistrationState,
    ProvisioningServiceErrorDetails,
    ProvisioningServiceErrorDetailsException,
)
