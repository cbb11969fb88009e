# =============================================================================
# mindcare_core/offline/backfill.py
# One-off Upload of Pre-existing Local Data
# =============================================================================
"""
Installs that kept their records only on this machine get them uploaded to
the remote store once, the first time the user is signed in.

Best-effort: a failure is logged and the flag stays unset, so the next
startup tries again.
"""

from __future__ import annotations
import logging

from mindcare_core.errors import ErrorContext
from mindcare_core.logging import LogContext
from mindcare_core.models import APPOINTMENTS, PATIENTS

logger = logging.getLogger(__name__)

MIGRATED_FLAG = "drive_migrated"


async def backfill_remote_from_fallback(gate, remote_store, local_db) -> bool:
    """
    Upload non-empty local patients/appointments documents.

    Args:
        gate: CredentialGate; nothing happens unless its credential is valid
        remote_store: Store receiving the documents
        local_db: LocalDatabase holding the local copies and the flag

    Returns:
        True if the backfill ran to completion (now or previously)
    """
    if local_db.get_setting(MIGRATED_FLAG):
        return True

    if not gate.is_valid():
        logger.debug("Backfill skipped: not signed in")
        return False

    uploaded = 0
    with LogContext(logger, "Backfilling remote store from local data"):
        with ErrorContext("Uploading local data", show_user_message=False) as ctx:
            for collection in (PATIENTS, APPOINTMENTS):
                data = local_db.read(collection.local_key)
                if data:
                    await remote_store.save_document(collection.document_name, data)
                    uploaded += 1
                    logger.info(f"Uploaded {len(data)} {collection.name} from local data")

    if ctx.failed:
        return False

    local_db.set_setting(MIGRATED_FLAG, True)
    logger.info(f"Backfill complete ({uploaded} documents uploaded)")
    return True
