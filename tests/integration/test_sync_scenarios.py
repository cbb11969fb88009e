# =============================================================================
# tests/integration/test_sync_scenarios.py
# Integration Tests - Storage Tiers Under Outages and Expiring Credentials
# =============================================================================

import asyncio
import json

import httpx

from tests.conftest import FakeCredentialProvider, FakeRemoteStore


class TestReadYourWrites:
    """Reads after a write see the written snapshot"""

    def test_read_after_write_while_offline(self, make_facade, sample_patient):
        from mindcare_core.errors import RemoteUnavailable

        remote = FakeRemoteStore()
        remote.fail_loads = RemoteUnavailable("offline")
        remote.fail_saves = RemoteUnavailable("offline")
        facade = make_facade(remote_store=remote)

        async def scenario():
            result = await facade.add_patient(sample_patient)
            return result, await facade.get_patients()

        result, patients = asyncio.run(scenario())

        assert result.success
        assert patients == [result.data]

    def test_fresh_session_after_failed_flush_reads_local(self, make_facade, local_db, sample_patient):
        """A snapshot that never reached the remote is still served"""
        from mindcare_core.errors import RemoteUnavailable

        remote = FakeRemoteStore({"patients.json": []})
        remote.fail_saves = RemoteUnavailable("offline")
        facade = make_facade(remote_store=remote)

        async def scenario():
            await facade.add_patient(sample_patient)
            await facade.wait_for_sync()
            facade.invalidate()
            return await facade.get_patients()

        patients = asyncio.run(scenario())

        assert len(patients) == 1
        assert remote.documents["patients.json"] == []


class TestQueueRecovery:
    """Failed flushes are retried before newer snapshots"""

    def test_stalled_snapshot_flushes_before_newer_one(self, make_facade, sample_patient, sample_patients):
        from mindcare_core.errors import RemoteUnavailable

        remote = FakeRemoteStore()
        remote.fail_saves = RemoteUnavailable("offline")
        remote.saves_to_fail = 1
        facade = make_facade(remote_store=remote)

        async def scenario():
            added = await facade.add_patient(sample_patient)
            await facade.wait_for_sync()
            assert facade.pending_sync_count == 1

            await facade.update_patient(added.data["id"], {"phone": "3000000000"})
            synced = await facade.wait_for_sync()
            return added, synced

        added, synced = asyncio.run(scenario())

        assert synced
        assert remote.saved == ["patients.json", "patients.json"]
        assert remote.documents["patients.json"][0]["phone"] == "3000000000"

    def test_status_sequence_for_failed_then_recovered_flush(
        self, make_facade, sample_patients, sample_appointments
    ):
        """syncing -> pending, then syncing -> synced once the remote is back"""
        from mindcare_core.errors import RemoteUnavailable
        from mindcare_core.offline.sync_engine import SyncStatus

        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(remote_store=remote)
        statuses = []
        facade.subscribe_to_sync_status(statuses.append)

        async def scenario():
            await facade.get_patients()
            remote.fail_saves = RemoteUnavailable("offline")

            added = await facade.add_appointment({
                "patientId": "p1", "date": "2024-04-01", "time": "10:00",
                "type": "virtual", "amount": 90000, "paymentStatus": "pendiente",
            })
            await facade.wait_for_sync()
            visible = await facade.get_appointment_by_id(added.data["id"])
            pending_statuses = list(statuses)

            remote.fail_saves = None
            await facade.update_appointment(added.data["id"], {"paymentStatus": "efectivo"})
            await facade.wait_for_sync()
            return visible, pending_statuses

        visible, pending_statuses = asyncio.run(scenario())

        assert visible is not None
        assert pending_statuses == [SyncStatus.SYNCING, SyncStatus.PENDING]
        assert statuses == [
            SyncStatus.SYNCING, SyncStatus.PENDING,
            SyncStatus.SYNCING, SyncStatus.SYNCED,
        ]
        assert remote.documents["appointments.json"][0]["paymentStatus"] == "efectivo"


class TestExpiredCredential:
    """Writes with a dead credential touch nothing"""

    def test_non_renewable_credential_leaves_every_tier_unchanged(
        self, make_facade, local_db, sample_patients, sample_patient
    ):
        from mindcare_core.offline.credential_gate import AuthOutcome

        provider = FakeCredentialProvider("expired", renewal_token=None)
        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(provider=provider, remote_store=remote)
        outcomes = []
        facade.subscribe_to_auth_outcome(outcomes.append)

        new_patient = dict(sample_patient, phone="3110000000")

        async def scenario():
            result = await facade.add_patient(new_patient)
            await facade.wait_for_sync()
            return result, await facade.get_patients()

        result, patients = asyncio.run(scenario())

        assert result.error_type == "AuthExpired"
        assert patients == sample_patients
        assert local_db.read("mindcare_patients") == sample_patients
        assert remote.documents["patients.json"] == sample_patients
        assert remote.saved == []
        assert outcomes == [AuthOutcome.FAILURE, AuthOutcome.LOGIN_REQUIRED]
        assert provider.sign_out_calls == 1

    def test_renewable_credential_writes_normally(self, make_facade, sample_patient):
        provider = FakeCredentialProvider("expired", renewal_token="fresh")
        remote = FakeRemoteStore()
        facade = make_facade(provider=provider, remote_store=remote)

        async def scenario():
            result = await facade.add_patient(sample_patient)
            await facade.wait_for_sync()
            return result

        assert asyncio.run(scenario()).success
        assert provider.renew_calls == 1
        assert len(remote.documents["patients.json"]) == 1


class TestCacheBehaviour:
    """Remote loads happen once per warm-up"""

    def test_second_read_is_served_from_memory(self, make_facade, sample_patients):
        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(remote_store=remote)

        async def scenario():
            await facade.get_patients()
            await facade.get_patients()

        asyncio.run(scenario())

        assert remote.load_counts["patients.json"] == 1

    def test_invalidate_forces_one_fresh_load(self, make_facade, sample_patients):
        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(remote_store=remote)

        async def scenario():
            await facade.get_patients()
            remote.documents["patients.json"] = sample_patients[:1]
            facade.invalidate()
            first = await facade.get_patients()
            await facade.get_patients()
            return first

        patients = asyncio.run(scenario())

        assert len(patients) == 1
        assert remote.load_counts["patients.json"] == 2


class TestCascadeAndDuplicates:
    """Integrity rules across collections"""

    def test_cascade_delete_in_memory_and_fallback(
        self, make_facade, local_db, sample_patients, sample_appointments
    ):
        remote = FakeRemoteStore({
            "patients.json": sample_patients,
            "appointments.json": sample_appointments,
        })
        facade = make_facade(remote_store=remote)

        async def scenario():
            await facade.delete_patient("p1")
            return await facade.get_patients(), await facade.get_appointments_by_patient("p1")

        patients, orphans = asyncio.run(scenario())

        assert [p["id"] for p in patients] == ["p2"]
        assert orphans == []
        assert all(a["patientId"] != "p1" for a in local_db.read("mindcare_appointments"))

    def test_duplicate_leaves_length_unchanged(self, make_facade, sample_patients):
        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(remote_store=remote)
        duplicate = {
            "firstname": "Ana", "lastname": "Diaz",
            "phone": "3001234567", "startDate": "2024-01-15",
        }

        async def scenario():
            result = await facade.add_patient(duplicate)
            return result, await facade.get_patients()

        result, patients = asyncio.run(scenario())

        assert result.error_type == "DuplicateEntity"
        assert result.metadata["existing_id"] == "p1"
        assert len(patients) == 2


class TestDriveEndToEnd:
    """Full stack against an emulated Drive and token endpoint"""

    def test_sign_in_add_and_flush(self, mock_streamlit, local_db, fake_drive, sample_patient):
        """Sign in, add Ana Diaz, drain, and find her in patients.json"""
        from mindcare_core.offline.credential_gate import CredentialGate, GoogleOAuthProvider
        from mindcare_core.offline.remote_store import DriveRemoteStore
        from mindcare_core.offline.storage_facade import StorageFacade

        client = httpx.AsyncClient(transport=httpx.MockTransport(fake_drive))
        gate = CredentialGate(GoogleOAuthProvider(local_db, client_id="id", http_client=client))
        facade = StorageFacade(gate, DriveRemoteStore(gate, http_client=client), local_db)

        async def scenario():
            assert await facade.restore_session() is False
            gate.sign_in("drive-token", expires_in=3600, refresh_token="refresh")

            result = await facade.add_patient(sample_patient)
            patients = await facade.get_patients()
            synced = await facade.wait_for_sync()
            return result, patients, synced

        result, patients, synced = asyncio.run(scenario())

        assert result.success
        assert result.data["id"] and result.data["createdAt"]
        assert len(patients) == 1
        assert synced

        stored = json.loads(fake_drive.find("patients.json")["content"])
        assert stored == [result.data]
        assert fake_drive.find("MindCare")["parent"] == "appDataFolder"

    def test_expired_token_renewed_through_google(self, mock_streamlit, local_db, fake_drive, sample_patient):
        """A stale token is refreshed against the token endpoint before writing"""
        from mindcare_core.offline.credential_gate import CredentialGate, GoogleOAuthProvider
        from mindcare_core.offline.remote_store import DriveRemoteStore
        from mindcare_core.offline.storage_facade import StorageFacade

        def google(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "renewed", "expires_in": 3600})
            return fake_drive(request)

        clock = {"now": 0.0}
        client = httpx.AsyncClient(transport=httpx.MockTransport(google))
        provider = GoogleOAuthProvider(
            local_db, client_id="id", http_client=client, clock=lambda: clock["now"]
        )
        gate = CredentialGate(provider)
        facade = StorageFacade(gate, DriveRemoteStore(gate, http_client=client), local_db)

        async def scenario():
            gate.sign_in("old-token", expires_in=60, refresh_token="refresh")
            clock["now"] = 120.0
            result = await facade.add_patient(sample_patient)
            await facade.wait_for_sync()
            return result

        assert asyncio.run(scenario()).success
        assert provider.access_token == "renewed"
        assert all(r.headers["Authorization"] == "Bearer renewed" for r in fake_drive.requests[-2:])


class TestMalformedGoogleResponses:
    """Non-JSON 200 answers (captive portals) degrade like any other outage"""

    @staticmethod
    def _portal(request):
        return httpx.Response(200, content=b"<html>login to wifi</html>")

    def test_portal_page_on_read_serves_local_copy(self, mock_streamlit, local_db, sample_patients):
        from mindcare_core.models import PATIENTS
        from mindcare_core.offline.credential_gate import CredentialGate
        from mindcare_core.offline.remote_store import DriveRemoteStore
        from mindcare_core.offline.storage_facade import StorageFacade

        local_db.write(PATIENTS.local_key, sample_patients)
        gate = CredentialGate(FakeCredentialProvider())
        client = httpx.AsyncClient(transport=httpx.MockTransport(self._portal))
        facade = StorageFacade(gate, DriveRemoteStore(gate, http_client=client), local_db)

        patients = asyncio.run(facade.get_patients())

        assert patients == sample_patients

    def test_portal_page_on_renewal_fails_the_write(self, mock_streamlit, local_db, sample_patient):
        """The write is rejected as an expired session, nothing is stored"""
        from mindcare_core.models import PATIENTS
        from mindcare_core.offline.credential_gate import (
            AuthOutcome, CredentialGate, GoogleOAuthProvider, SessionStatus,
        )
        from mindcare_core.offline.remote_store import DriveRemoteStore
        from mindcare_core.offline.storage_facade import StorageFacade

        clock = {"now": 0.0}
        client = httpx.AsyncClient(transport=httpx.MockTransport(self._portal))
        provider = GoogleOAuthProvider(
            local_db, client_id="id", http_client=client, clock=lambda: clock["now"]
        )
        gate = CredentialGate(provider)
        facade = StorageFacade(gate, DriveRemoteStore(gate, http_client=client), local_db)
        outcomes = []
        facade.subscribe_to_auth_outcome(outcomes.append)

        async def scenario():
            gate.sign_in("old-token", expires_in=60, refresh_token="refresh")
            clock["now"] = 120.0
            return await facade.add_patient(sample_patient)

        result = asyncio.run(scenario())

        assert not result.success
        assert result.error_type == "AuthExpired"
        assert gate.state.status == SessionStatus.SIGNED_OUT
        assert outcomes[-1] == AuthOutcome.LOGIN_REQUIRED
        assert local_db.read(PATIENTS.local_key) is None


class TestReadWriteInterleaving:
    """Writes and reads sharing the event loop"""

    def test_write_during_remote_load_wins(self, make_facade, local_db, sample_patients):
        from mindcare_core.models import PATIENTS

        remote = FakeRemoteStore({"patients.json": sample_patients})
        facade = make_facade(remote_store=remote)

        async def scenario():
            pending_read = asyncio.ensure_future(facade.get_patients())
            await asyncio.sleep(0)
            assert remote.load_counts["patients.json"] == 1

            await facade.save_collection(PATIENTS, [{"id": "new"}])
            first = await pending_read
            second = await facade.get_patients()
            await facade.wait_for_sync()
            return first, second

        first, second = asyncio.run(scenario())

        assert first == [{"id": "new"}]
        assert second == [{"id": "new"}]
        assert local_db.read(PATIENTS.local_key) == [{"id": "new"}]
        assert remote.documents["patients.json"] == [{"id": "new"}]

    def test_successful_flush_reports_synced(self, make_facade, sample_patient):
        from mindcare_core.offline.sync_engine import SyncStatus

        remote = FakeRemoteStore()
        facade = make_facade(remote_store=remote)
        statuses = []
        facade.subscribe_to_sync_status(statuses.append)

        async def scenario():
            await facade.add_patient(sample_patient)
            return await facade.wait_for_sync()

        assert asyncio.run(scenario()) is True
        assert statuses == [SyncStatus.SYNCING, SyncStatus.SYNCED]
        assert remote.saved == ["patients.json"]
