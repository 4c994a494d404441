# --------------------------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
from typing import Union, Dict, List, Tuple, Optional
from typing_extensions import TypedDict


# typing does not support recursion, so we must use forward references here (PEP484)
JSONSerializable = Union[
    Dict[str, "JSONSerializable"],
    List["JSONSerializable"],
    Tuple["JSONSerializable", ...],
    str,
    int,
    float,
    bool,
    None,
]


class TpmAttestation(TypedDict):
    endorsementKey: str
    storageRootKey: str


class DeviceRegistrationRequest(TypedDict, total=False):
    registrationId: str
    tpm: TpmAttestation
    payload: JSONSerializable


class RegistrationState(TypedDict):
    deviceId: Optional[str]
    assignedHub: Optional[str]
    subStatus: Optional[str]
    errorCode: Optional[int]
    errorMessage: Optional[str]
    createdDateTimeUtc: Optional[str]
    lastUpdatedDateTimeUtc: Optional[str]
    etag: Optional[str]
    payload: JSONSerializable


class RegistrationResult(TypedDict):
    operationId: Optional[str]
    status: Optional[str]
    registrationState: RegistrationState
