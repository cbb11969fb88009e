# =============================================================================
# mindcare_core/models.py
# Collections, Enums and Record Helpers
# =============================================================================
"""
Records are stored as plain JSON objects (dicts with camelCase keys) so that
shallow-merge updates and the persisted documents stay identical. This module
holds the vocabulary shared by the storage layers.
"""

from __future__ import annotations
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


@dataclass(frozen=True)
class Collection:
    """A named document persisted remotely and mirrored locally."""
    name: str
    document_name: str   # Remote file name
    local_key: str       # DurableFallbackStore key
    is_list: bool = True

    def empty(self) -> Any:
        """Value served when no tier holds the document."""
        return [] if self.is_list else dict(DEFAULT_SETTINGS)


PATIENTS = Collection("patients", "patients.json", "mindcare_patients")
APPOINTMENTS = Collection("appointments", "appointments.json", "mindcare_appointments")
SETTINGS = Collection("settings", "settings.json", "mindcare_settings", is_list=False)


class PaymentStatus(Enum):
    """Payment state of an appointment; any value but PENDING counts as paid."""
    PENDING = "pendiente"
    CASH = "efectivo"
    TRANSFER = "transferencia"


DEFAULT_SETTINGS: Dict[str, Any] = {
    "officeAddress": "Cra 46 #70s-34, interior 201, Sabaneta",
    "officeMapLink": "https://maps.app.goo.gl/CWmNzMLhkRPvP5vh6",
}

# Fields compared by the patient duplicate guard
PATIENT_IDENTITY_FIELDS = ("firstname", "lastname", "phone", "startDate")

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Millisecond timestamp in base 36 plus a random base-36 suffix."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=11))
    return _to_base36(millis) + suffix


def utc_now_iso() -> str:
    """UTC timestamp in the persisted format, e.g. 2024-01-01T09:30:00.000Z."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def is_paid(appointment: Dict[str, Any]) -> bool:
    return appointment.get("paymentStatus") != PaymentStatus.PENDING.value
