# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

import logging
from msrest.service_client import SDKClient
from msrest import Configuration, Serializer, Deserializer
from msrest.pipeline import ClientRawResponse
from .auth import ConnectionStringAuthentication
from ..connection_string import HOST_NAME
from .. import constant
from . import models

logger = logging.getLogger(__name__)

ENROLLMENTS_URL = "/enrollments/{id}"


class ProvisioningServiceClientConfiguration(Configuration):
    """Configuration for ProvisioningServiceClient
    Note that all parameters used to create this instance are saved as instance
    attributes.

    :param credentials: Subscription credentials which uniquely identify
     client subscription.
    :type credentials: :class:`ConnectionStringAuthentication`
    :param str base_url: Service URL
    """

    def __init__(self, credentials, base_url=None):

        if credentials is None:
            raise ValueError("Parameter 'credentials' must not be None.")
        if not base_url:
            base_url = "https://localhost"

        super(ProvisioningServiceClientConfiguration, self).__init__(base_url)

        self.add_user_agent("provisioningserviceclient/{}".format(constant.VERSION))

        self.credentials = credentials


class ProvisioningServiceClient(SDKClient):
    """
    API for managing individual enrollments on a Device Provisioning Service

    :param credentials: Credentials used to sign every request
    :type credentials: :class:`ConnectionStringAuthentication`
    :param str base_url: Service URL
    """

    def __init__(self, credentials, base_url=None):

        self.config = ProvisioningServiceClientConfiguration(credentials, base_url)
        super(ProvisioningServiceClient, self).__init__(self.config.credentials, self.config)

        client_models = {k: v for k, v in models.__dict__.items() if isinstance(v, type)}
        self.api_version = constant.PROVISIONING_SERVICE_API_VERSION
        self._serialize = Serializer(client_models)
        self._deserialize = Deserializer(client_models)

    @classmethod
    def from_connection_string(cls, connection_string):
        """
        Create a Provisioning Service Client from a connection string

        :param str connection_string: The connection string for the Device Provisioning Service
        :return: A new instance of :class:`ProvisioningServiceClient`
        :raises: CredentialError if connection string is invalid
        """
        credentials = ConnectionStringAuthentication(connection_string)
        base_url = "https://" + credentials[HOST_NAME]
        return cls(credentials, base_url)

    def _format_enrollment_url(self, registration_id):
        path_format_arguments = {"id": self._serialize.url("id", registration_id, "str")}
        return self._client.format_url(ENROLLMENTS_URL, **path_format_arguments)

    def _api_version_query(self):
        return {"api-version": self._serialize.query("self.api_version", self.api_version, "str")}

    def create_or_update_individual_enrollment(
        self, enrollment, custom_headers=None, raw=False, **operation_config
    ):
        """Create or update a device enrollment record.

        The enrollment's etag, when set, is sent as If-Match so that a stale record is
        not overwritten.

        :param enrollment: The device enrollment record.
        :type enrollment: ~provisioning_tpm.service.models.IndividualEnrollment
        :param dict custom_headers: headers that will be added to the request
        :param bool raw: returns the direct response alongside the
         deserialized response
        :param operation_config: :ref:`Operation configuration
         overrides<msrest:optionsforoperations>`.
        :return: IndividualEnrollment or ClientRawResponse if raw=true
        :rtype: ~provisioning_tpm.service.models.IndividualEnrollment or
         ~msrest.pipeline.ClientRawResponse
        :raises:
         :class:`ProvisioningServiceErrorDetailsException<provisioning_tpm.service.models.ProvisioningServiceErrorDetailsException>`
        """
        result = None
        url = self._format_enrollment_url(enrollment.registration_id)
        query_parameters = self._api_version_query()

        # Construct headers
        header_parameters = {}
        header_parameters["Accept"] = "application/json"
        header_parameters["Content-Type"] = "application/json; charset=utf-8"
        if custom_headers:
            header_parameters.update(custom_headers)
        if enrollment.etag is not None:
            header_parameters["If-Match"] = self._serialize.header(
                "if_match", enrollment.etag, "str"
            )

        # Construct body
        body_content = self._serialize.body(enrollment, "IndividualEnrollment")

        # Construct and send request
        logger.debug(
            "Creating or updating individual enrollment '{}'".format(enrollment.registration_id)
        )
        request = self._client.put(url, query_parameters, header_parameters, body_content)
        response = self._client.send(request, stream=False, **operation_config)

        if response.status_code not in [200]:
            raise models.ProvisioningServiceErrorDetailsException(self._deserialize, response)

        if response.status_code == 200:
            result = self._deserialize("IndividualEnrollment", response)

        if raw:
            client_raw_response = ClientRawResponse(result, response)
            return client_raw_response

        return result

    def get_individual_enrollment(
        self, registration_id, custom_headers=None, raw=False, **operation_config
    ):
        """Get a device enrollment record.

        :param str registration_id: Registration ID of the enrollment
        :param dict custom_headers: headers that will be added to the request
        :param bool raw: returns the direct response alongside the
         deserialized response
        :return: IndividualEnrollment or ClientRawResponse if raw=true
        :raises:
         :class:`ProvisioningServiceErrorDetailsException<provisioning_tpm.service.models.ProvisioningServiceErrorDetailsException>`
        """
        result = None
        url = self._format_enrollment_url(registration_id)
        query_parameters = self._api_version_query()

        header_parameters = {}
        header_parameters["Accept"] = "application/json"
        if custom_headers:
            header_parameters.update(custom_headers)

        request = self._client.get(url, query_parameters, header_parameters)
        response = self._client.send(request, stream=False, **operation_config)

        if response.status_code not in [200]:
            raise models.ProvisioningServiceErrorDetailsException(self._deserialize, response)

        if response.status_code == 200:
            result = self._deserialize("IndividualEnrollment", response)

        if raw:
            client_raw_response = ClientRawResponse(result, response)
            return client_raw_response

        return result

    def delete_individual_enrollment(
        self, registration_id, etag=None, custom_headers=None, raw=False, **operation_config
    ):
        """
        Delete an Individual Enrollment on the Provisioning Service

        :param str registration_id: The registration id of the Individual Enrollment to be deleted
        :param str etag: The etag of the Individual Enrollment to be deleted (optional)
        :param dict custom_headers: headers that will be added to the request
        :param bool raw: returns the direct response alongside the
         deserialized response
        :return: None or ClientRawResponse if raw=true
        :rtype: None or ~msrest.pipeline.ClientRawResponse
        :raises:
         :class:`ProvisioningServiceErrorDetailsException<provisioning_tpm.service.models.ProvisioningServiceErrorDetailsException>`
        """
        url = self._format_enrollment_url(registration_id)
        query_parameters = self._api_version_query()

        header_parameters = {}
        if custom_headers:
            header_parameters.update(custom_headers)
        if etag is not None:
            header_parameters["If-Match"] = self._serialize.header("if_match", etag, "str")

        request = self._client.delete(url, query_parameters, header_parameters)
        response = self._client.send(request, stream=False, **operation_config)

        if response.status_code not in [204]:
            raise models.ProvisioningServiceErrorDetailsException(self._deserialize, response)

        if raw:
            client_raw_response = ClientRawResponse(None, response)
            return client_raw_response
