# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""Matching of asynchronous DPS responses to the requests that caused them"""
import asyncio
import uuid
from typing import Dict, Optional


class Response:
    def __init__(
        self, request_id: str, status: int, body: str, properties: Optional[dict] = None
    ) -> None:
        self.request_id = request_id
        self.status = status
        self.body = body
        self.properties = properties


class Request:
    def __init__(self, request_id: Optional[str] = None) -> None:
        self.request_id = request_id or str(uuid.uuid4())
        self.response_future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()

    async def get_response(self) -> Response:
        return await self.response_future


class RequestLedger:
    """Pending requests, keyed on request id"""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.pending: Dict[str, asyncio.Future[Response]] = {}

    def __len__(self) -> int:
        return len(self.pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self.pending

    async def create_request(self, request_id: Optional[str] = None) -> Request:
        request = Request(request_id=request_id)
        async with self.lock:
            if request.request_id in self.pending:
                raise ValueError("Provided request_id is a duplicate")
            self.pending[request.request_id] = request.response_future
        return request

    async def delete_request(self, request_id: str) -> None:
        async with self.lock:
            del self.pending[request_id]

    async def match_response(self, response: Response) -> None:
        """Resolve the pending request with the same id as the response

        :raises: KeyError if no request is pending for the response
        """
        async with self.lock:
            self.pending.pop(response.request_id).set_result(response)
