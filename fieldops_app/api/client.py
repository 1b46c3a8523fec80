# fieldops_app/api/client.py
#
#
# Imports
import json
from typing import Optional, Dict, Any
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from fieldops_app.Constants import DEFAULT_API_TIMEOUT
from .schemas import SyncEnvelope, UploadAck, DownloadParams, SingleRecordParams
from .exceptions import (
    APIConnectionError, APIRequestError, APIResponseError, AuthenticationError, ServerStatusError
)
#
########################################################################################################################
#
# Functions:

class FieldOpsAPIClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_API_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url + '/',
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> 'FieldOpsAPIClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = await client.request(method, endpoint.lstrip('/'), params=params, json=json_body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            error_detail = str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict) and response_data.get("message"):
                    error_detail = str(response_data["message"])
            except ValueError:
                pass

            if e.response.status_code == 401:
                raise AuthenticationError(f"Authentication failed: {error_detail}")
            elif e.response.status_code == 422:
                raise APIRequestError(f"Validation Error: {error_detail}", response_data=response_data)
            raise APIResponseError(e.response.status_code, error_detail, response_data=response_data)
        except httpx.RequestError as e:  # ConnectError, TimeoutException, ...
            raise APIConnectionError(f"Connection error to {url}: {type(e).__name__} {e}")
        except json.JSONDecodeError:
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text})

    @staticmethod
    def _parse_envelope(endpoint: str, payload: Any) -> SyncEnvelope:
        if not isinstance(payload, dict):
            raise APIResponseError(200, f"Unexpected response shape from {endpoint}", response_data={"raw": payload})
        try:
            envelope = SyncEnvelope(**payload)
        except ValidationError as e:
            raise APIResponseError(200, f"Malformed envelope from {endpoint}: {e}", response_data=payload)
        if not envelope.ok:
            raise ServerStatusError(envelope.status, envelope.message or "no message", response_data=payload)
        return envelope

    async def download(self, endpoint: str, params: DownloadParams) -> SyncEnvelope:
        """Fetches one page of a table."""
        logger.debug(f"GET {endpoint} part_no={params.part_no} limit={params.limit} since={params.update_date}")
        payload = await self._request("GET", endpoint, params=params.to_query())
        return self._parse_envelope(endpoint, payload)

    async def download_single(self, endpoint: str, record_id: int) -> SyncEnvelope:
        """Fetches a single record with the `?id=` form of a download endpoint."""
        logger.debug(f"GET {endpoint} id={record_id}")
        payload = await self._request("GET", endpoint, params=SingleRecordParams(id=record_id).to_query())
        return self._parse_envelope(endpoint, payload)

    async def upload(self, endpoint: str, record: Dict[str, Any]) -> UploadAck:
        """Posts one record; the acknowledgement carries the record with its server id."""
        logger.debug(f"POST {endpoint} id={record.get('id')}")
        payload = await self._request("POST", endpoint, json_body=record)
        return UploadAck.from_envelope(self._parse_envelope(endpoint, payload))

#
# End of fieldops_app/api/client.py
########################################################################################################################
