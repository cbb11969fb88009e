# =============================================================================
# mindcare_core/offline/__init__.py
# Offline-Tolerant Storage for MindCare
# =============================================================================
"""
Offline-Tolerant Storage Module

Patient, appointment and settings data live in the user's Google Drive app
data folder. Reads keep working offline and writes never wait for the network.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                        STORAGE TIERS                             │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                    StorageFacade                          │  │
│   │           (Single API - pages use this only)              │  │
│   └──────────────────────────────────────────────────────────┘  │
│        │              │                │               │         │
│        ▼              ▼                ▼               ▼         │
│ ┌────────────┐ ┌─────────────┐ ┌──────────────┐ ┌───────────┐   │
│ │ Credential │ │ EntityCache │ │LocalDatabase │ │ SyncQueue │   │
│ │    Gate    │ │  (Memory)   │ │  (SQLite)    │ │  (Flush)  │   │
│ └────────────┘ └─────────────┘ └──────────────┘ └───────────┘   │
│        │                                               │         │
│        ▼                                               ▼         │
│ ┌────────────┐                              ┌─────────────────┐ │
│ │Google OAuth│                              │ DriveRemoteStore│ │
│ │  (Token)   │                              │ (appDataFolder) │ │
│ └────────────┘                              └─────────────────┘ │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from mindcare_core.offline import create_storage_facade

facade = create_storage_facade()
await facade.restore_session()

patients = await facade.get_patients()
result = await facade.add_patient(patient)

print(facade.get_status()["sync"]["pending_count"])
"""

from mindcare_core.offline.credential_gate import (
    CredentialGate,
    CredentialProvider,
    CredentialStatus,
    GoogleOAuthProvider,
    AuthOutcome,
    SessionStatus,
)

from mindcare_core.offline.remote_store import DriveRemoteStore

from mindcare_core.offline.local_database import LocalDatabase

from mindcare_core.offline.cache_manager import EntityCache

from mindcare_core.offline.sync_engine import (
    SyncQueue,
    SyncItem,
    SyncStatus,
)

from mindcare_core.offline.config import (
    StorageConfig,
    load_storage_config,
)

from mindcare_core.offline.backfill import backfill_remote_from_fallback

from mindcare_core.offline.storage_facade import (
    StorageFacade,
    create_storage_facade,
)

__all__ = [
    # Credentials
    "CredentialGate",
    "CredentialProvider",
    "CredentialStatus",
    "GoogleOAuthProvider",
    "AuthOutcome",
    "SessionStatus",
    # Stores
    "DriveRemoteStore",
    "LocalDatabase",
    "EntityCache",
    # Sync
    "SyncQueue",
    "SyncItem",
    "SyncStatus",
    # Configuration
    "StorageConfig",
    "load_storage_config",
    "backfill_remote_from_fallback",
    # Facade (Main API)
    "StorageFacade",
    "create_storage_facade",
]
