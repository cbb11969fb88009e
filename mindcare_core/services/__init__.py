# =============================================================================
# mindcare_core/services/__init__.py
# Service Layer for MindCare
# =============================================================================
"""
Service Layer for MindCare

Services return ``ServiceResult`` values instead of raising, so pages can
branch on ``result.success`` and show ``result.error``.

Usage Example:
-------------
    from mindcare_core.services import PaymentReportService

    reports = PaymentReportService()
    result = reports.summarize_payments(appointments, "2024-01-01", "2024-01-31")
    if result.success:
        print(f"Pending: {result.data['totalPending']}")
"""

from .base_service import BaseService, ServiceResult
from .payment_report_service import PaymentReportService

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # Reports
    "PaymentReportService",
]
