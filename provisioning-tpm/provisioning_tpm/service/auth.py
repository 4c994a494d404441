# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------

"""Provides authentication classes for use with the msrest library
"""

from msrest.authentication import Authentication
from ..connection_string import ConnectionString
from ..connection_string import HOST_NAME, SHARED_ACCESS_KEY_NAME, SHARED_ACCESS_KEY
from ..exceptions import CredentialError
from ..sastoken import RenewableSasToken
from ..signing_mechanism import SymmetricKeySigningMechanism

__all__ = ["ConnectionStringAuthentication"]


class ConnectionStringAuthentication(ConnectionString, Authentication):
    """ConnectionString class that can be used with msrest to provide SasToken authentication

    :param connection_string: The connection string to generate SasToken with
    """

    def __init__(self, connection_string):
        """
        :raises: CredentialError if the connection string or its shared access key is invalid
        """
        try:
            super(ConnectionStringAuthentication, self).__init__(
                connection_string
            )  # ConnectionString __init__
            self._signing_mechanism = SymmetricKeySigningMechanism(self[SHARED_ACCESS_KEY])
        except (ValueError, TypeError) as e:
            raise CredentialError("Invalid service connection string") from e

    def signed_session(self, session=None):
        """Create requests session with any required auth headers applied.

        If a session object is provided, configure it directly. Otherwise,
        create a new session and return it.

        :param session: The session to configure for authentication
        :type session: requests.Session
        :rtype: requests.Session
        """
        session = super(ConnectionStringAuthentication, self).signed_session(session)

        # Authorization header
        sastoken = RenewableSasToken(
            uri=self[HOST_NAME],
            signing_mechanism=self._signing_mechanism,
            key_name=self[SHARED_ACCESS_KEY_NAME],
        )
        session.headers[self.header] = str(sastoken)
        return session
