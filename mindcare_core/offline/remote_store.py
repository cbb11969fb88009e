# =============================================================================
# mindcare_core/offline/remote_store.py
# Google Drive Document Store
# =============================================================================
"""
DriveRemoteStore - authoritative persistence for the practice documents.

Each collection is one JSON file inside a private folder that lives in the
Drive ``appDataFolder`` space (invisible to the user's Drive UI). The folder
is found or created on first use.

The store never gates on the credential itself: callers decide whether to
retry (RemoteUnavailable) or require login (AuthRequired).
"""

from __future__ import annotations
import json
from typing import Any, Dict, List, Optional
import logging

import httpx

from mindcare_core.errors import AuthRequired, DocumentNotFound, RemoteUnavailable

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    """Escape a literal for a Drive search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveRemoteStore:
    """
    Load/save named JSON documents in a private Drive application folder.

    Usage:
        store = DriveRemoteStore(gate)
        await store.save_document("patients.json", patients)
        patients = await store.load_document("patients.json")
    """

    FILES_URL = "https://www.googleapis.com/drive/v3/files"
    UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
    APP_DATA_SPACE = "appDataFolder"
    FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
    MULTIPART_BOUNDARY = "-------314159265358979323846"

    def __init__(
        self,
        gate,
        folder_name: str = "MindCare",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            gate: CredentialGate providing the bearer token
            folder_name: Private folder inside the app data space
            http_client: Shared client (tests pass one with a mock transport)
            timeout: Request timeout in seconds; None waits indefinitely
        """
        self._gate = gate
        self.folder_name = folder_name
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._folder_id: Optional[str] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _request(
        self,
        method: str,
        url: str,
        document: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Make an authorized Drive request with error mapping.

        Raises:
            AuthRequired: no token, or the token was rejected (401)
            RemoteUnavailable: transport failure or any other HTTP error
        """
        token = self._gate.access_token
        if not token:
            raise AuthRequired("No access token for the remote store")

        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._get_client().request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"Drive request failed: {e}", document=document) from e

        if response.status_code == 401:
            raise AuthRequired(
                "Drive rejected the access token",
                details={"document": document} if document else None,
            )
        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Drive returned HTTP {response.status_code}",
                document=document,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(response: httpx.Response, document: Optional[str] = None) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailable(
                "Drive returned a body that is not valid JSON",
                document=document,
                status_code=response.status_code,
            ) from e

    def _files(self, response: httpx.Response, document: Optional[str] = None) -> List[Dict[str, Any]]:
        """The `files` list of a search response; every entry must carry an id."""
        payload = self._decode(response, document)
        files = (payload.get("files") or []) if isinstance(payload, dict) else None
        if not isinstance(files, list) or not all(isinstance(f, dict) and "id" in f for f in files):
            raise RemoteUnavailable(
                "Drive returned an unexpected file listing",
                document=document,
                status_code=response.status_code,
            )
        return files

    # =========================================================================
    # FOLDER / FILE LOOKUP
    # =========================================================================

    async def _resolve_folder(self) -> str:
        """Find or create the private folder, caching its id."""
        if self._folder_id:
            return self._folder_id

        query = (
            f"name='{_quote(self.folder_name)}' and mimeType='{self.FOLDER_MIME_TYPE}' "
            f"and '{self.APP_DATA_SPACE}' in parents and trashed=false"
        )
        response = await self._request(
            "GET",
            self.FILES_URL,
            params={"q": query, "spaces": self.APP_DATA_SPACE, "fields": "files(id, name)"},
        )
        files = self._files(response)

        if files:
            self._folder_id = files[0]["id"]
            logger.debug(f"Drive folder '{self.folder_name}' found: {self._folder_id}")
        else:
            response = await self._request(
                "POST",
                self.FILES_URL,
                params={"fields": "id"},
                json={
                    "name": self.folder_name,
                    "mimeType": self.FOLDER_MIME_TYPE,
                    "parents": [self.APP_DATA_SPACE],
                },
            )
            created = self._decode(response)
            if not isinstance(created, dict) or "id" not in created:
                raise RemoteUnavailable("Drive did not return the new folder id", status_code=response.status_code)
            self._folder_id = created["id"]
            logger.info(f"Drive folder '{self.folder_name}' created: {self._folder_id}")

        return self._folder_id

    async def _find_file(self, name: str) -> Optional[Dict[str, Any]]:
        folder_id = await self._resolve_folder()
        query = f"name='{_quote(name)}' and '{folder_id}' in parents and trashed=false"
        response = await self._request(
            "GET",
            self.FILES_URL,
            document=name,
            params={
                "q": query,
                "spaces": self.APP_DATA_SPACE,
                "fields": "files(id, name, modifiedTime)",
            },
        )
        files = self._files(response, name)
        return files[0] if files else None

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    async def load_document(self, name: str) -> Any:
        """
        Load and decode a JSON document.

        Raises:
            DocumentNotFound: the folder holds no document with this name
        """
        file = await self._find_file(name)
        if file is None:
            raise DocumentNotFound(name)

        response = await self._request(
            "GET",
            f"{self.FILES_URL}/{file['id']}",
            document=name,
            params={"alt": "media"},
        )
        data = self._decode(response, name)

        logger.debug(f"Loaded '{name}' from Drive")
        return data

    async def save_document(self, name: str, data: Any) -> None:
        """Overwrite the document if it exists, create it otherwise."""
        content = json.dumps(data, indent=2, ensure_ascii=False)
        file = await self._find_file(name)

        if file:
            await self._request(
                "PATCH",
                f"{self.UPLOAD_URL}/{file['id']}",
                document=name,
                params={"uploadType": "media", "fields": "id"},
                headers={"Content-Type": "application/json; charset=UTF-8"},
                content=content.encode("utf-8"),
            )
            logger.info(f"Drive document '{name}' updated")
        else:
            await self._create_file(name, content)
            logger.info(f"Drive document '{name}' created")

    async def _create_file(self, name: str, content: str) -> None:
        metadata = {
            "name": name,
            "mimeType": "application/json",
            "parents": [await self._resolve_folder()],
        }
        delimiter = f"\r\n--{self.MULTIPART_BOUNDARY}\r\n"
        close_delim = f"\r\n--{self.MULTIPART_BOUNDARY}--"
        body = (
            delimiter
            + "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            + json.dumps(metadata)
            + delimiter
            + "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            + content
            + close_delim
        )

        await self._request(
            "POST",
            self.UPLOAD_URL,
            document=name,
            params={"uploadType": "multipart", "fields": "id"},
            headers={"Content-Type": f'multipart/related; boundary="{self.MULTIPART_BOUNDARY}"'},
            content=body.encode("utf-8"),
        )

    async def list_documents(self) -> List[Dict[str, Any]]:
        """List the documents in the private folder."""
        folder_id = await self._resolve_folder()
        response = await self._request(
            "GET",
            self.FILES_URL,
            params={
                "q": f"'{folder_id}' in parents and trashed=false",
                "spaces": self.APP_DATA_SPACE,
                "fields": "files(id, name, modifiedTime, size)",
                "orderBy": "name",
            },
        )
        return self._files(response)

    async def delete_document(self, name: str) -> bool:
        """Delete a document. Returns False if it did not exist."""
        file = await self._find_file(name)
        if file is None:
            return False
        await self._request("DELETE", f"{self.FILES_URL}/{file['id']}", document=name)
        logger.info(f"Drive document '{name}' deleted")
        return True

    async def aclose(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
