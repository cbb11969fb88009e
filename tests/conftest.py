# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import copy
import json
import pytest
from collections import Counter
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import httpx


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_patient():
    """A new patient as submitted by the patient form"""
    return {
        "firstname": "Ana",
        "lastname": "Diaz",
        "email": "ana.diaz@example.com",
        "phone": "3001234567",
        "startDate": "2024-01-15",
        "preferredType": "presencial",
        "origin": "referido",
        "connectionLocation": "",
    }


@pytest.fixture
def sample_patients():
    """Stored patients"""
    return [
        {
            "id": "p1", "firstname": "Ana", "lastname": "Diaz", "phone": "3001234567",
            "startDate": "2024-01-15", "preferredType": "presencial",
            "createdAt": "2024-01-15T10:00:00.000Z",
        },
        {
            "id": "p2", "firstname": "Luis", "lastname": "Rojas", "phone": "3109876543",
            "startDate": "2024-02-01", "preferredType": "virtual",
            "createdAt": "2024-02-01T09:00:00.000Z",
        },
    ]


@pytest.fixture
def sample_appointments():
    """Stored appointments for the sample patients"""
    return [
        {
            "id": "a1", "patientId": "p1", "date": "2024-03-01", "time": "09:00",
            "type": "presencial", "amount": 120000, "paymentStatus": "efectivo",
            "createdAt": "2024-02-20T10:00:00.000Z",
        },
        {
            "id": "a2", "patientId": "p1", "date": "2024-03-08", "time": "09:00",
            "type": "presencial", "amount": 120000, "paymentStatus": "pendiente",
            "createdAt": "2024-02-20T10:05:00.000Z",
        },
        {
            "id": "a3", "patientId": "p2", "date": "2024-03-05", "time": "16:30",
            "type": "virtual", "amount": 100000, "paymentStatus": "transferencia",
            "createdAt": "2024-02-21T08:00:00.000Z",
        },
    ]


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeCredentialProvider:
    """
    In-memory credential provider.

    ``status`` is what check_stored() reports; ``renewal_token`` is what a
    silent renewal returns (None means renewal fails).
    """

    def __init__(self, status: str = "valid", renewal_token: Optional[str] = "renewed-token"):
        from mindcare_core.offline.credential_gate import CredentialStatus

        self.status = CredentialStatus(status)
        self.token: Optional[str] = "token" if status != "absent" else None
        self.expires_at: Optional[float] = 1_700_000_000.0
        self.renewal_token = renewal_token
        self.renew_calls = 0
        self.sign_out_calls = 0

    @property
    def access_token(self) -> Optional[str]:
        return self.token

    def check_stored(self):
        return self.status

    async def renew_silently(self) -> Optional[str]:
        from mindcare_core.offline.credential_gate import CredentialStatus

        self.renew_calls += 1
        await asyncio.sleep(0)
        if self.renewal_token:
            self.token = self.renewal_token
            self.status = CredentialStatus.VALID
        return self.renewal_token

    def store(self, access_token, expires_in=None, refresh_token=None) -> None:
        from mindcare_core.offline.credential_gate import CredentialStatus

        self.token = access_token
        self.status = CredentialStatus.VALID

    def sign_out(self) -> None:
        from mindcare_core.offline.credential_gate import CredentialStatus

        self.sign_out_calls += 1
        self.token = None
        self.status = CredentialStatus.ABSENT


class FakeRemoteStore:
    """
    In-memory document store with failure injection.

    ``fail_loads`` / ``fail_saves`` hold an exception to raise; ``saves_to_fail``
    limits how many saves fail before the store recovers.
    """

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        self.documents: Dict[str, Any] = copy.deepcopy(documents or {})
        self.load_counts: Counter = Counter()
        self.saved: List[str] = []
        self.fail_loads: Optional[Exception] = None
        self.fail_saves: Optional[Exception] = None
        self.saves_to_fail: Optional[int] = None

    async def load_document(self, name: str) -> Any:
        from mindcare_core.errors import DocumentNotFound

        self.load_counts[name] += 1
        await asyncio.sleep(0)
        if self.fail_loads is not None:
            raise self.fail_loads
        if name not in self.documents:
            raise DocumentNotFound(name)
        return copy.deepcopy(self.documents[name])

    async def save_document(self, name: str, data: Any) -> None:
        await asyncio.sleep(0)
        if self.fail_saves is not None:
            if self.saves_to_fail is None or self.saves_to_fail > 0:
                if self.saves_to_fail is not None:
                    self.saves_to_fail -= 1
                raise self.fail_saves
        self.documents[name] = copy.deepcopy(data)
        self.saved.append(name)


@pytest.fixture
def provider():
    """Provider holding a valid credential"""
    return FakeCredentialProvider()


@pytest.fixture
def remote_store():
    """Empty remote store"""
    return FakeRemoteStore()


@pytest.fixture
def local_db():
    """In-memory SQLite fallback store"""
    from mindcare_core.offline.local_database import LocalDatabase

    db = LocalDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def make_facade(mock_streamlit, local_db):
    """Build a StorageFacade over fake collaborators"""
    def _make(provider=None, remote_store=None):
        from mindcare_core.offline.credential_gate import CredentialGate
        from mindcare_core.offline.storage_facade import StorageFacade

        gate = CredentialGate(provider or FakeCredentialProvider())
        return StorageFacade(gate, remote_store or FakeRemoteStore(), local_db)

    return _make


# =============================================================================
# FAKE GOOGLE APIS
# =============================================================================

class FakeDrive:
    """
    httpx.MockTransport handler emulating the Drive v3 endpoints we use.

    Files are kept in ``files`` keyed by id; ``requests`` records every call.
    """

    def __init__(self, status_override: Optional[int] = None):
        self.files: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.status_override = status_override
        self._next_id = 0

    def _new_id(self) -> str:
        self._next_id += 1
        return f"file{self._next_id}"

    def add_file(self, name: str, parent: str, content: Any = None, mime_type: str = "application/json") -> str:
        file_id = self._new_id()
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "parent": parent,
            "mimeType": mime_type,
            "content": json.dumps(content) if content is not None else "",
        }
        return file_id

    def find(self, name: str) -> Optional[Dict[str, Any]]:
        for file in self.files.values():
            if file["name"] == name:
                return file
        return None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"error": "override"})

        path = request.url.path
        if request.method == "GET" and path == "/drive/v3/files":
            return self._search(request.url.params.get("q", ""))
        if request.method == "POST" and path == "/drive/v3/files":
            body = json.loads(request.content)
            file_id = self.add_file(body["name"], body["parents"][0], mime_type=body["mimeType"])
            return httpx.Response(200, json={"id": file_id})
        if request.method == "GET" and path.startswith("/drive/v3/files/"):
            file = self.files.get(path.rsplit("/", 1)[-1])
            if file is None:
                return httpx.Response(404)
            return httpx.Response(200, content=file["content"].encode("utf-8"))
        if request.method == "DELETE" and path.startswith("/drive/v3/files/"):
            self.files.pop(path.rsplit("/", 1)[-1], None)
            return httpx.Response(204)
        if request.method == "PATCH" and path.startswith("/upload/drive/v3/files/"):
            file = self.files[path.rsplit("/", 1)[-1]]
            file["content"] = request.content.decode("utf-8")
            return httpx.Response(200, json={"id": file["id"]})
        if request.method == "POST" and path == "/upload/drive/v3/files":
            return self._multipart_create(request)
        return httpx.Response(400)

    def _search(self, query: str) -> httpx.Response:
        matches = []
        for file in self.files.values():
            if "name='" in query and f"name='{file['name']}'" not in query:
                continue
            if f"'{file['parent']}' in parents" not in query:
                continue
            matches.append({"id": file["id"], "name": file["name"]})
        return httpx.Response(200, json={"files": matches})

    def _multipart_create(self, request: httpx.Request) -> httpx.Response:
        boundary = request.headers["Content-Type"].split("boundary=")[1].strip('"')
        parts = [
            p for p in request.content.decode("utf-8").split(f"--{boundary}")
            if p.strip() and p.strip() != "--"
        ]
        metadata = json.loads(parts[0].split("\r\n\r\n", 1)[1])
        content = parts[1].split("\r\n\r\n", 1)[1].rstrip("\r\n")
        file_id = self._new_id()
        self.files[file_id] = {
            "id": file_id,
            "name": metadata["name"],
            "parent": metadata["parents"][0],
            "mimeType": metadata["mimeType"],
            "content": content,
        }
        return httpx.Response(200, json={"id": file_id})


@pytest.fixture
def fake_drive():
    return FakeDrive()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    import sys

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.secrets = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    # Store original and replace
    original_st = sys.modules.get('streamlit')
    sys.modules['streamlit'] = mock_st

    # Modules imported by an earlier test still hold the previous mock
    for name in ("mindcare_core.errors.handlers", "mindcare_core.offline.config"):
        if name in sys.modules:
            monkeypatch.setattr(sys.modules[name], "st", mock_st)

    yield mock_st

    # Restore original
    if original_st:
        sys.modules['streamlit'] = original_st
