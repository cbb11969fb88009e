# =============================================================================
# mindcare_core/services/payment_report_service.py
# Payment Reports - Revenue and Debt Summaries
# =============================================================================

from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from .base_service import BaseService, ServiceResult
from mindcare_core.models import PaymentStatus, is_paid

DateLike = Union[date, str]

APPOINTMENT_COLUMNS = [
    "id", "patientId", "date", "time", "type", "amount", "paymentStatus",
]


class PaymentReportService(BaseService):
    """
    Service for payment tracking over appointment records.

    Handles:
    - Appointment tables with patient names joined
    - Paid / pending filtering
    - Revenue and debt totals for a date range

    Usage:
        service = PaymentReportService()
        result = service.summarize_payments(appointments, "2024-01-01", "2024-01-31")
        if result.success:
            print(result.data["totalPending"])
    """

    def __init__(self):
        super().__init__()

    def appointments_frame(
        self,
        appointments: List[Dict[str, Any]],
        patients: Optional[List[Dict[str, Any]]] = None,
    ) -> pd.DataFrame:
        """
        Build a DataFrame of appointments.

        Adds ``when`` (date + time), a numeric ``amount``, ``paid`` and, when
        patients are given, ``patientName``.
        """
        df = pd.DataFrame(appointments)
        for column in APPOINTMENT_COLUMNS:
            if column not in df.columns:
                df[column] = None

        df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0)
        df["paid"] = [is_paid(a) for a in appointments]
        df["when"] = pd.to_datetime(
            df["date"].astype(str) + " " + df["time"].fillna("00:00").astype(str),
            errors="coerce",
        )

        if patients is not None:
            names = {
                p.get("id"): f"{p.get('firstname', '')} {p.get('lastname', '')}".strip()
                for p in patients
            }
            df["patientName"] = df["patientId"].map(names)

        return df

    def filter_payments(
        self,
        appointments: List[Dict[str, Any]],
        status: str = "all",
        method: str = "all",
    ) -> ServiceResult:
        """
        Filter appointments by payment state, most recent first.

        Args:
            status: "all", "paid" or "pending"
            method: "all" or a payment status value ("efectivo", "transferencia", ...)
        """
        def _filter():
            df = self.appointments_frame(appointments)
            if status == "paid":
                df = df[df["paid"]]
            elif status == "pending":
                df = df[~df["paid"]]
            if method != "all":
                df = df[df["paymentStatus"] == method]

            df = df.sort_values("when", ascending=False, na_position="last")
            return df.drop(columns=["paid", "when"]).to_dict(orient="records")

        return self.safe_execute("Filtering payments", _filter)

    def summarize_payments(
        self,
        appointments: List[Dict[str, Any]],
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
    ) -> ServiceResult:
        """
        Revenue and debt totals for appointments dated within [start_date, end_date].

        Returns:
            ServiceResult with totalRevenue, totalPending, totalCash,
            totalTransfer, paidCount, pendingCount and totalAppointments
        """
        def _summarize():
            df = self.appointments_frame(appointments)
            if not df.empty:
                days = pd.to_datetime(df["date"], errors="coerce").dt.normalize()
                mask = pd.Series(True, index=df.index)
                if start_date is not None:
                    mask &= days >= pd.Timestamp(start_date)
                if end_date is not None:
                    mask &= days <= pd.Timestamp(end_date)
                df = df[mask]

            paid = df[df["paid"]]
            pending = df[~df["paid"]]
            return {
                "totalRevenue": float(paid["amount"].sum()),
                "totalPending": float(pending["amount"].sum()),
                "totalCash": float(paid.loc[paid["paymentStatus"] == PaymentStatus.CASH.value, "amount"].sum()),
                "totalTransfer": float(
                    paid.loc[paid["paymentStatus"] == PaymentStatus.TRANSFER.value, "amount"].sum()
                ),
                "paidCount": int(len(paid)),
                "pendingCount": int(len(pending)),
                "totalAppointments": int(len(df)),
            }

        return self.safe_execute("Summarizing payments", _summarize)
