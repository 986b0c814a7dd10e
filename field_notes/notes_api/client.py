# field_notes/notes_api/client.py
#
#
# Imports
import json
from typing import Optional, Dict, Any, List
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from .schemas import CreateNoteRequest, RemoteNote, UpdateNoteRequest
from .exceptions import (
    APIConnectionError, APIRequestError, APIResponseError, AuthenticationError,
    NoteConflictError, NoteNotFoundError,
)
#
########################################################################################################################
#
# Functions:

DEFAULT_TIMEOUT_SECONDS = 10.0


def _error_detail(response_data: Any, fallback: str) -> str:
    if isinstance(response_data, dict):
        for key in ("message", "error", "detail"):
            detail = response_data.get(key)
            if isinstance(detail, str) and detail:
                return detail
            if isinstance(detail, list) and detail and isinstance(detail[0], dict):
                # Pydantic validation error format
                loc = '.'.join(map(str, detail[0].get('loc', [])))
                return f"Validation Error: {detail[0].get('msg', '')} for field '{loc}'"
    return fallback


class NotesAPIClient:
    """HTTP implementation of NotesRemotePort."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
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

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Dict[str, Any]] = None,
        note_id: Optional[str] = None,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"{method} {url}")

        try:
            response = await client.request(method, endpoint, json=json_body)
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise APIConnectionError(f"Connection error to {url}: {e}") from e

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                       response_data={"raw_text": response.text}) from e

        try:
            response_data = response.json()
        except json.JSONDecodeError:
            response_data = None
        status = response.status_code
        error_detail = _error_detail(response_data, response.reason_phrase or f"HTTP {status}")
        logger.warning(f"{method} {url} failed with {status}: {error_detail}")

        if status == 401:
            raise AuthenticationError(f"Authentication failed: {error_detail}")
        if status in (400, 422):
            raise APIRequestError(f"Invalid request: {error_detail}", response_data=response_data)
        if status == 404:
            raise NoteNotFoundError(note_id or endpoint, response_data=response_data)
        if status == 409:
            try:
                server_version = RemoteNote.model_validate(response_data)
            except ValidationError as e:
                raise APIResponseError(409, "Conflict response did not carry the server version",
                                       response_data=response_data if isinstance(response_data, dict) else None) from e
            raise NoteConflictError(server_version, response_data=response_data)
        raise APIResponseError(status, error_detail,
                               response_data=response_data if isinstance(response_data, dict) else None)

    @staticmethod
    def _parse_note(data: Any) -> RemoteNote:
        try:
            return RemoteNote.model_validate(data)
        except ValidationError as e:
            raise APIResponseError(200, f"Unexpected note payload: {e.errors()[0].get('msg', '')}",
                                   response_data=data if isinstance(data, dict) else None) from e

    async def list_notes(self) -> List[RemoteNote]:
        data = await self._request("GET", "/notes")
        if not isinstance(data, list):
            raise APIResponseError(200, "Expected a list of notes", response_data={"raw": data})
        return [self._parse_note(item) for item in data]

    async def get_note(self, note_id: str) -> Optional[RemoteNote]:
        try:
            data = await self._request("GET", f"/notes/{note_id}", note_id=note_id)
        except NoteNotFoundError:
            return None
        return self._parse_note(data)

    async def create_note(self, request: CreateNoteRequest) -> RemoteNote:
        data = await self._request("POST", "/notes", json_body=request.model_dump())
        return self._parse_note(data)

    async def update_note(self, note_id: str, request: UpdateNoteRequest) -> Optional[RemoteNote]:
        data = await self._request("PATCH", f"/notes/{note_id}", json_body=request.to_wire(), note_id=note_id)
        return self._parse_note(data) if data is not None else None

    async def delete_note(self, note_id: str) -> None:
        await self._request("DELETE", f"/notes/{note_id}", note_id=note_id)

#
# End of field_notes/notes_api/client.py
########################################################################################################################
