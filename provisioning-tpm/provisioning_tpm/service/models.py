# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

"""msrest models for the Device Provisioning Service enrollment API"""

import json
from msrest.serialization import Model
from msrest.exceptions import HttpOperationError


class TpmAttestation(Model):
    """Attestation via TPM.

    All required parameters must be populated in order to send to Azure.

    :param endorsement_key: Required. Base64 encoded TPM2B_PUBLIC of the endorsement key
    :type endorsement_key: str
    :param storage_root_key: Base64 encoded TPM2B_PUBLIC of the storage root key
    :type storage_root_key: str
    """

    _validation = {"endorsement_key": {"required": True}}

    _attribute_map = {
        "endorsement_key": {"key": "endorsementKey", "type": "str"},
        "storage_root_key": {"key": "storageRootKey", "type": "str"},
    }

    def __init__(self, **kwargs):
        super(TpmAttestation, self).__init__(**kwargs)
        self.endorsement_key = kwargs.get("endorsement_key", None)
        self.storage_root_key = kwargs.get("storage_root_key", None)


class AttestationMechanism(Model):
    """Attestation mechanism for individualEnrollment as well as enrollmentGroup.

    Please instantiate using one of the 'create_with...' class methods

    :param type: Required. Attestation Type. Only 'tpm' is supported here
    :type type: str
    :param tpm: TPM attestation method.
    :type tpm: ~provisioning_tpm.service.models.TpmAttestation
    """

    _validation = {"type": {"required": True}}

    _attribute_map = {
        "type": {"key": "type", "type": "str"},
        "tpm": {"key": "tpm", "type": "TpmAttestation"},
    }

    def __init__(self, **kwargs):
        super(AttestationMechanism, self).__init__(**kwargs)
        self.type = kwargs.get("type", None)
        self.tpm = kwargs.get("tpm", None)

    @classmethod
    def create_with_tpm(cls, endorsement_key, storage_root_key=None):
        """Create an AttestationMechanism using a TPM

        :param str endorsement_key: TPM endorsement key (base64)
        :param str storage_root_key: TPM storage root key (base64) (optional)
        :returns: TPM Attestation Mechanism
        :rtype: :class:`AttestationMechanism`
        """
        tpm = TpmAttestation(endorsement_key=endorsement_key, storage_root_key=storage_root_key)
        return cls(type="tpm", tpm=tpm)


class DeviceCapabilities(Model):
    """Device capabilities.

    :param iot_edge: Required. If set to true, this device is an IoTEdge device.
    :type iot_edge: bool
    """

    _validation = {"iot_edge": {"required": True}}

    _attribute_map = {"iot_edge": {"key": "iotEdge", "type": "bool"}}

    def __init__(self, **kwargs):
        super(DeviceCapabilities, self).__init__(**kwargs)
        self.iot_edge = kwargs.get("iot_edge", False)


class DeviceRegistrationState(Model):
    """Device registration state.

    Variables are only populated by the server, and will be ignored when sending a request.

    :ivar registration_id: This id is used to uniquely identify a device registration of an
     enrollment.
    :vartype registration_id: str
    :ivar created_date_time_utc: Registration create date time (in UTC).
    :vartype created_date_time_utc: datetime
    :ivar assigned_hub: Assigned Azure IoT Hub.
    :vartype assigned_hub: str
    :ivar device_id: Device ID.
    :vartype device_id: str
    :ivar status: Enrollment status. Possible values include: 'unassigned', 'assigning',
     'assigned', 'failed', 'disabled'
    :vartype status: str
    :ivar substatus: Substatus for 'Assigned' devices.
    :vartype substatus: str
    :ivar error_code: Error code.
    :vartype error_code: int
    :ivar error_message: Error message.
    :vartype error_message: str
    :ivar last_updated_date_time_utc: Last updated date time (in UTC).
    :vartype last_updated_date_time_utc: datetime
    :ivar etag: The entity tag associated with the resource.
    :vartype etag: str
    """

    _validation = {
        "registration_id": {"readonly": True},
        "created_date_time_utc": {"readonly": True},
        "assigned_hub": {"readonly": True},
        "device_id": {"readonly": True},
        "status": {"readonly": True},
        "substatus": {"readonly": True},
        "error_code": {"readonly": True},
        "error_message": {"readonly": True},
        "last_updated_date_time_utc": {"readonly": True},
        "etag": {"readonly": True},
    }

    _attribute_map = {
        "registration_id": {"key": "registrationId", "type": "str"},
        "created_date_time_utc": {"key": "createdDateTimeUtc", "type": "iso-8601"},
        "assigned_hub": {"key": "assignedHub", "type": "str"},
        "device_id": {"key": "deviceId", "type": "str"},
        "status": {"key": "status", "type": "str"},
        "substatus": {"key": "substatus", "type": "str"},
        "error_code": {"key": "errorCode", "type": "int"},
        "error_message": {"key": "errorMessage", "type": "str"},
        "last_updated_date_time_utc": {"key": "lastUpdatedDateTimeUtc", "type": "iso-8601"},
        "etag": {"key": "etag", "type": "str"},
    }

    def __init__(self, **kwargs):
        super(DeviceRegistrationState, self).__init__(**kwargs)
        self.registration_id = None
        self.created_date_time_utc = None
        self.assigned_hub = None
        self.device_id = None
        self.status = None
        self.substatus = None
        self.error_code = None
        self.error_message = None
        self.last_updated_date_time_utc = None
        self.etag = None


class IndividualEnrollment(Model):
    """The device enrollment record.

    To instantiate please use the "create" class method

    :param registration_id: Required. This id is used to uniquely identify a device
     registration of an enrollment. A case-insensitive string (up to 128 characters long) of
     alphanumeric characters plus certain special characters : . _ -.
    :type registration_id: str
    :param device_id: Desired IoT Hub device ID (optional).
    :type device_id: str
    :ivar registration_state: Current registration status.
    :vartype registration_state: ~provisioning_tpm.service.models.DeviceRegistrationState
    :param attestation: Required. Attestation method used by the device.
    :type attestation: ~provisioning_tpm.service.models.AttestationMechanism
    :param capabilities: Capabilities of the device.
    :type capabilities: ~provisioning_tpm.service.models.DeviceCapabilities
    :param iot_hub_host_name: The Iot Hub host name.
    :type iot_hub_host_name: str
    :param etag: The entity tag associated with the resource.
    :type etag: str
    :param provisioning_status: The provisioning status. Possible values include: 'enabled',
     'disabled'. Default value: "enabled" .
    :type provisioning_status: str
    :ivar created_date_time_utc: The DateTime this resource was created.
    :vartype created_date_time_utc: datetime
    :ivar last_updated_date_time_utc: The DateTime this resource was last updated.
    :vartype last_updated_date_time_utc: datetime
    """

    _validation = {
        "registration_id": {"required": True},
        "registration_state": {"readonly": True},
        "attestation": {"required": True},
        "created_date_time_utc": {"readonly": True},
        "last_updated_date_time_utc": {"readonly": True},
    }

    _attribute_map = {
        "registration_id": {"key": "registrationId", "type": "str"},
        "device_id": {"key": "deviceId", "type": "str"},
        "registration_state": {"key": "registrationState", "type": "DeviceRegistrationState"},
        "attestation": {"key": "attestation", "type": "AttestationMechanism"},
        "capabilities": {"key": "capabilities", "type": "DeviceCapabilities"},
        "iot_hub_host_name": {"key": "iotHubHostName", "type": "str"},
        "etag": {"key": "etag", "type": "str"},
        "provisioning_status": {"key": "provisioningStatus", "type": "str"},
        "created_date_time_utc": {"key": "createdDateTimeUtc", "type": "iso-8601"},
        "last_updated_date_time_utc": {"key": "lastUpdatedDateTimeUtc", "type": "iso-8601"},
    }

    def __init__(self, **kwargs):
        super(IndividualEnrollment, self).__init__(**kwargs)
        self.registration_id = kwargs.get("registration_id", None)
        self.device_id = kwargs.get("device_id", None)
        self.registration_state = None
        self.attestation = kwargs.get("attestation", None)
        self.capabilities = kwargs.get("capabilities", None)
        self.iot_hub_host_name = kwargs.get("iot_hub_host_name", None)
        self.etag = kwargs.get("etag", None)
        self.provisioning_status = kwargs.get("provisioning_status", "enabled")
        self.created_date_time_utc = None
        self.last_updated_date_time_utc = None

    @classmethod
    def create(
        cls,
        registration_id,
        attestation,
        device_id=None,
        iot_hub_host_name=None,
        provisioning_status="enabled",
        capabilities=None,
    ):
        """
        Create a new Individual Enrollment instance

        :param str registration_id: Registration ID of the device
        :param attestation: Attestation Mechanism used by the device
        :type attestation: :class:`AttestationMechanism`
        :param str device_id: Desired IoT Hub device ID (optional)
        :param str iot_hub_host_name: The IoT Hub host name (optional)
        :param str provisioning_status: The provisioning status. 'enabled' or 'disabled'
        :param capabilities: Capabilities of the device (optional)
        :type capabilities: :class:`DeviceCapabilities`
        :returns: New instance of :class:`IndividualEnrollment`
        """
        return cls(
            registration_id=registration_id,
            attestation=attestation,
            device_id=device_id,
            iot_hub_host_name=iot_hub_host_name,
            provisioning_status=provisioning_status,
            capabilities=capabilities,
        )

    def __str__(self):
        return json.dumps(self.serialize(keep_readonly=True), indent=2)


class ProvisioningServiceErrorDetails(Model):
    """Contract for DPS error details.

    :param error_code:
    :type error_code: int
    :param tracking_id:
    :type tracking_id: str
    :param message:
    :type message: str
    :param info:
    :type info: dict[str, str]
    :param timestamp_utc:
    :type timestamp_utc: datetime
    """

    _attribute_map = {
        "error_code": {"key": "errorCode", "type": "int"},
        "tracking_id": {"key": "trackingId", "type": "str"},
        "message": {"key": "message", "type": "str"},
        "info": {"key": "info", "type": "{str}"},
        "timestamp_utc": {"key": "timestampUtc", "type": "iso-8601"},
    }

    def __init__(self, **kwargs):
        super(ProvisioningServiceErrorDetails, self).__init__(**kwargs)
        self.error_code = kwargs.get("error_code", None)
        self.tracking_id = kwargs.get("tracking_id", None)
        self.message = kwargs.get("message", None)
        self.info = kwargs.get("info", None)
        self.timestamp_utc = kwargs.get("timestamp_utc", None)


class ProvisioningServiceErrorDetailsException(HttpOperationError):
    """Server responded with exception of type: 'ProvisioningServiceErrorDetails'.

    :param deserialize: A deserializer
    :param response: Server response to be deserialized.
    """

    def __init__(self, deserialize, response, *args):

        super(ProvisioningServiceErrorDetailsException, self).__init__(
            deserialize, response, "ProvisioningServiceErrorDetails", *args
        )
