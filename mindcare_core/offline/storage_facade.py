# =============================================================================
# mindcare_core/offline/storage_facade.py
# Storage Facade - Single API for Patients, Appointments and Settings
# =============================================================================
"""
StorageFacade - the only storage API the rest of the app talks to.

Read path:
    EntityCache -> DriveRemoteStore -> LocalDatabase -> built-in default
    (reads never fail for network or auth reasons)

Write path:
    CredentialGate.require_valid() -> LocalDatabase + EntityCache (synchronous)
    -> SyncQueue.enqueue() (remote flush happens in the background)

Usage:
------
facade = create_storage_facade()
await facade.restore_session()

result = await facade.add_patient({"firstname": "Ana", "lastname": "Diaz", ...})
if not result:
    print(result.error_type, result.error)

patients = await facade.get_patients()
"""

from __future__ import annotations
import copy
import sqlite3
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union

from mindcare_core.errors import (
    AuthExpired,
    AuthRequired,
    DocumentNotFound,
    DuplicateEntity,
    EntityNotFound,
    RemoteUnavailable,
)
from mindcare_core.models import (
    APPOINTMENTS,
    DEFAULT_SETTINGS,
    PATIENT_IDENTITY_FIELDS,
    PATIENTS,
    SETTINGS,
    Collection,
    generate_id,
    utc_now_iso,
)
from mindcare_core.offline.backfill import backfill_remote_from_fallback
from mindcare_core.offline.cache_manager import EntityCache
from mindcare_core.offline.config import StorageConfig, load_storage_config
from mindcare_core.offline.credential_gate import (
    AuthOutcome,
    CredentialGate,
    GoogleOAuthProvider,
)
from mindcare_core.offline.local_database import LocalDatabase
from mindcare_core.offline.remote_store import DriveRemoteStore
from mindcare_core.offline.sync_engine import SyncQueue, SyncStatus
from mindcare_core.services.base_service import BaseService, ServiceResult

Record = Dict[str, Any]
DateLike = Union[date, str]


def _as_date(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class StorageFacade(BaseService):
    """
    Three-tier storage for the practice data.

    The EntityCache is the read source of truth once warm; the remote store
    is eventually consistent with it.
    """

    def __init__(
        self,
        gate: CredentialGate,
        remote_store,
        local_db: LocalDatabase,
        cache: Optional[EntityCache] = None,
        sync_queue: Optional[SyncQueue] = None,
    ):
        super().__init__()
        self._gate = gate
        self._remote_store = remote_store
        self._local_db = local_db
        self._cache = cache or EntityCache()
        self._sync_queue = sync_queue or SyncQueue(remote_store)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def gate(self) -> CredentialGate:
        return self._gate

    @property
    def sync_queue(self) -> SyncQueue:
        return self._sync_queue

    @property
    def cache(self) -> EntityCache:
        return self._cache

    @property
    def pending_sync_count(self) -> int:
        return self._sync_queue.pending_count

    # =========================================================================
    # COLLECTION PRIMITIVES
    # =========================================================================

    async def load_collection(self, collection: Collection) -> Any:
        """
        Read a whole collection through the tiers.

        Returns:
            A private copy of the collection (list, or dict for settings)
        """
        cached = self._cache.get(collection.name)
        if cached is not None:
            return cached

        data = None
        if self._sync_queue.has_pending(collection.document_name):
            # The remote copy is older than the local one until the flush lands
            self.logger.debug(f"'{collection.name}' has an unflushed snapshot, reading local copy")
        else:
            try:
                data = await self._remote_store.load_document(collection.document_name)
            except DocumentNotFound:
                self.logger.info(f"No remote '{collection.document_name}' yet, using local copy")
            except (AuthRequired, RemoteUnavailable) as e:
                self.logger.warning(f"Remote load of '{collection.name}' failed, using local copy: {e}")

            if data is not None and not self._has_expected_shape(collection, data):
                self.logger.warning(f"Remote '{collection.document_name}' has an unexpected shape, ignoring it")
                data = None

        # A write during the remote load already holds newer data
        if self._cache.has(collection.name):
            return self._cache.get(collection.name)

        if data is not None:
            self._local_db.write(collection.local_key, data)
            source = "remote"
        else:
            data = self._local_db.read(collection.local_key)
            source = "local"
            if data is None or not self._has_expected_shape(collection, data):
                data = collection.empty()
                source = "default"

        self._cache.set(collection.name, data)
        self.logger.debug(f"Loaded '{collection.name}' from {source}")
        return copy.deepcopy(data)

    async def save_collection(self, collection: Collection, data: Any) -> ServiceResult:
        """
        Replace a whole collection.

        The credential is checked first; on failure nothing is touched. On
        success the local tiers are updated before returning and the remote
        flush is queued.
        """
        try:
            await self._gate.require_valid()
        except (AuthRequired, AuthExpired) as e:
            return self.fail_from(e)

        snapshot = copy.deepcopy(data)
        try:
            self._local_db.write(collection.local_key, snapshot)
        except sqlite3.Error as e:
            self.logger.error(f"Local write of '{collection.name}' failed: {e}", exc_info=True)
            return ServiceResult.from_exception(e)

        self._cache.set(collection.name, snapshot)
        self._sync_queue.enqueue(collection.document_name, snapshot)
        return ServiceResult.ok(copy.deepcopy(snapshot))

    @staticmethod
    def _has_expected_shape(collection: Collection, data: Any) -> bool:
        return isinstance(data, list) if collection.is_list else isinstance(data, dict)

    # =========================================================================
    # PATIENTS
    # =========================================================================

    async def get_patients(self) -> List[Record]:
        return await self.load_collection(PATIENTS)

    async def get_patient_by_id(self, patient_id: str) -> Optional[Record]:
        for patient in await self.get_patients():
            if patient.get("id") == patient_id:
                return patient
        return None

    async def add_patient(self, patient: Record) -> ServiceResult:
        """
        Create a patient.

        Rejected with DuplicateEntity when another patient has the same
        first name, last name, phone and start date.
        """
        patients = await self.get_patients()

        for existing in patients:
            if all(existing.get(f) == patient.get(f) for f in PATIENT_IDENTITY_FIELDS):
                return self.fail_from(DuplicateEntity(
                    f"Patient {patient.get('firstname')} {patient.get('lastname')} already exists",
                    collection=PATIENTS.name,
                    existing_id=existing.get("id"),
                ))

        record = dict(patient)
        record["id"] = generate_id()
        record["createdAt"] = utc_now_iso()

        result = await self.save_collection(PATIENTS, patients + [record])
        if not result:
            return result
        self.logger.info(f"Patient added: {record['id']}")
        return ServiceResult.ok(record)

    async def update_patient(self, patient_id: str, changes: Record) -> ServiceResult:
        """Shallow-merge changes into a patient. Data is None if the id is unknown."""
        return await self._update_record(PATIENTS, patient_id, changes)

    async def delete_patient(self, patient_id: str) -> ServiceResult:
        """
        Delete a patient and every appointment that references it.

        The two collections are written one after the other. If the second
        write is rejected the patient is already gone; the result then fails
        with metadata describing the orphaned appointments.
        """
        patients = await self.get_patients()
        remaining = [p for p in patients if p.get("id") != patient_id]
        if len(remaining) == len(patients):
            return ServiceResult.ok(False)

        result = await self.save_collection(PATIENTS, remaining)
        if not result:
            return result

        appointments = await self.get_appointments()
        kept = [a for a in appointments if a.get("patientId") != patient_id]
        removed = len(appointments) - len(kept)

        if removed:
            cascade = await self.save_collection(APPOINTMENTS, kept)
            if not cascade:
                self.logger.error(
                    f"Patient {patient_id} deleted but {removed} appointments could not be removed"
                )
                cascade.metadata = {
                    **(cascade.metadata or {}),
                    "patient_deleted": True,
                    "orphaned_appointments": removed,
                }
                return cascade

        self.logger.info(f"Patient deleted: {patient_id} ({removed} appointments removed)")
        return ServiceResult.ok(True, metadata={"appointments_removed": removed})

    # =========================================================================
    # APPOINTMENTS
    # =========================================================================

    async def get_appointments(self) -> List[Record]:
        return await self.load_collection(APPOINTMENTS)

    async def get_appointment_by_id(self, appointment_id: str) -> Optional[Record]:
        for appointment in await self.get_appointments():
            if appointment.get("id") == appointment_id:
                return appointment
        return None

    async def get_appointments_by_patient(self, patient_id: str) -> List[Record]:
        return [a for a in await self.get_appointments() if a.get("patientId") == patient_id]

    async def get_appointments_by_date_range(
        self,
        start_date: DateLike,
        end_date: DateLike,
    ) -> List[Record]:
        """Appointments whose date falls within [start_date, end_date]."""
        start, end = _as_date(start_date), _as_date(end_date)
        selected = []
        for appointment in await self.get_appointments():
            try:
                day = _as_date(appointment.get("date", ""))
            except ValueError:
                self.logger.debug(f"Skipping appointment with bad date: {appointment.get('id')}")
                continue
            if start <= day <= end:
                selected.append(appointment)
        return selected

    async def add_appointment(self, appointment: Record) -> ServiceResult:
        """Create an appointment for an existing patient."""
        patient_id = appointment.get("patientId")
        if not patient_id or await self.get_patient_by_id(patient_id) is None:
            return self.fail_from(EntityNotFound(
                f"Unknown patient: {patient_id}",
                collection=PATIENTS.name,
                entity_id=patient_id,
            ))

        appointments = await self.get_appointments()
        record = dict(appointment)
        record["id"] = generate_id()
        record["createdAt"] = utc_now_iso()

        result = await self.save_collection(APPOINTMENTS, appointments + [record])
        if not result:
            return result
        self.logger.info(f"Appointment added: {record['id']} ({record.get('date')} {record.get('time')})")
        return ServiceResult.ok(record)

    async def update_appointment(self, appointment_id: str, changes: Record) -> ServiceResult:
        """Shallow-merge changes into an appointment. Data is None if the id is unknown."""
        return await self._update_record(APPOINTMENTS, appointment_id, changes)

    async def delete_appointment(self, appointment_id: str) -> ServiceResult:
        appointments = await self.get_appointments()
        remaining = [a for a in appointments if a.get("id") != appointment_id]
        if len(remaining) == len(appointments):
            return ServiceResult.ok(False)

        result = await self.save_collection(APPOINTMENTS, remaining)
        if not result:
            return result
        return ServiceResult.ok(True)

    async def _update_record(self, collection: Collection, record_id: str, changes: Record) -> ServiceResult:
        records = await self.load_collection(collection)
        for index, record in enumerate(records):
            if record.get("id") == record_id:
                break
        else:
            self.logger.debug(f"Update skipped, {collection.name} id not found: {record_id}")
            return ServiceResult.ok(None)

        updated = {**record, **changes, "id": record_id, "updatedAt": utc_now_iso()}
        records[index] = updated

        result = await self.save_collection(collection, records)
        if not result:
            return result
        return ServiceResult.ok(updated)

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def get_settings(self) -> Record:
        """Practice settings with missing keys filled from the defaults."""
        stored = await self.load_collection(SETTINGS)
        return {**DEFAULT_SETTINGS, **stored}

    async def save_settings(self, settings: Record) -> ServiceResult:
        return await self.save_collection(SETTINGS, {**DEFAULT_SETTINGS, **settings})

    # =========================================================================
    # BACKUP & RESTORE
    # =========================================================================

    async def export_all_data(self) -> Dict[str, Any]:
        return {
            "patients": await self.get_patients(),
            "appointments": await self.get_appointments(),
            "settings": await self.get_settings(),
            "exportDate": utc_now_iso(),
        }

    async def import_all_data(self, data: Dict[str, Any]) -> ServiceResult:
        """
        Replace collections with those present in an export.

        Collections missing from ``data`` are left alone. Stops at the first
        rejected write.
        """
        imported = {}
        for collection in (PATIENTS, APPOINTMENTS, SETTINGS):
            if collection.name not in data:
                continue
            value = data[collection.name]
            if not self._has_expected_shape(collection, value):
                return ServiceResult.fail(
                    f"'{collection.name}' has the wrong type in the import",
                    error_code="IMPORT_INVALID",
                    metadata={"imported": imported},
                )

            result = await self.save_collection(collection, value)
            if not result:
                result.metadata = {**(result.metadata or {}), "imported": imported}
                return result
            imported[collection.name] = len(value) if collection.is_list else 1

        self.logger.info(f"Import complete: {imported}")
        return ServiceResult.ok(imported)

    def clear_all_data(self) -> None:
        """Forget local patients and appointments (the remote store is untouched)."""
        for collection in (PATIENTS, APPOINTMENTS):
            self._local_db.remove(collection.local_key)
            self._cache.invalidate(collection.name)
        self.logger.info("Local patient and appointment data cleared")

    # =========================================================================
    # SESSION, SYNC AND STATUS
    # =========================================================================

    def invalidate(self, collection: Optional[str] = None) -> None:
        """Drop cached collections so the next read goes back to the stores."""
        self._cache.invalidate(collection)

    async def restore_session(self) -> bool:
        return await self._gate.restore_session()

    async def backfill_remote(self) -> bool:
        return await backfill_remote_from_fallback(self._gate, self._remote_store, self._local_db)

    def subscribe_to_sync_status(self, callback: Callable[[SyncStatus], None]) -> Callable[[], None]:
        """Register a sync status observer. Returns a function that removes it."""
        self._sync_queue.subscribe(callback)
        return lambda: self._sync_queue.unsubscribe(callback)

    def subscribe_to_auth_outcome(self, callback: Callable[[AuthOutcome], None]) -> Callable[[], None]:
        """Register an auth outcome observer. Returns a function that removes it."""
        self._gate.subscribe(callback)
        return lambda: self._gate.unsubscribe(callback)

    async def wait_for_sync(self) -> bool:
        """
        Wait for the running flush to finish.

        Returns:
            True if nothing is left to flush
        """
        await self._sync_queue.wait_until_idle()
        return self._sync_queue.pending_count == 0 and self._sync_queue.in_flight is None

    def get_status(self) -> Dict[str, Any]:
        """Get comprehensive status for UI display."""
        return {
            "session": self._gate.state.status.value,
            "sync": self._sync_queue.get_status_display(),
            "cache": self._cache.get_info(),
        }

    async def aclose(self) -> None:
        """Release the HTTP client and the database connection."""
        close = getattr(self._remote_store, "aclose", None)
        if close is not None:
            await close()
        self._local_db.close()


def create_storage_facade(config: Optional[StorageConfig] = None) -> StorageFacade:
    """
    Wire the production storage graph.

    Args:
        config: Storage settings; loaded from secrets/environment when None
    """
    config = config or load_storage_config()

    local_db = LocalDatabase(config.db_path)
    provider = GoogleOAuthProvider(
        local_db,
        client_id=config.client_id,
        client_secret=config.client_secret,
        token_lifetime=config.token_lifetime_seconds,
        timeout=config.request_timeout,
    )
    gate = CredentialGate(provider)
    remote_store = DriveRemoteStore(
        gate,
        folder_name=config.folder_name,
        timeout=config.request_timeout,
    )
    return StorageFacade(gate, remote_store, local_db)
