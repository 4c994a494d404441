"""Azure IoT Security Providers

This package provides access to the hardware security modules used to attest a device
"""

from .tpm_provider import SecurityProviderTpm  # noqa: F401
