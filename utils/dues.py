"""Monthly fee-due generation.

Every active student should have exactly one "Student Fee" transaction in
the current calendar month. Missing ones are created as pending income.
"""
from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Iterable

from models import (
    FinanceTransaction,
    Student,
    STUDENT_FEE_CATEGORY,
    TransactionInput,
)
from utils.timezone_helpers import format_month_label, month_key

logger = logging.getLogger(__name__)

AUTO_DUE_NOTE = "Auto-generated monthly due"


def find_students_missing_due(
    students: Iterable[Student],
    finances: Iterable[FinanceTransaction],
    month: str,
) -> list[Student]:
    billed = {
        item.student_id
        for item in finances
        if item.category == STUDENT_FEE_CATEGORY
        and item.student_id is not None
        and month_key(item.transaction_date) == month
    }
    return [s for s in students if s.status == "active" and s.id not in billed]


def build_monthly_due(student: Student, today: date) -> TransactionInput:
    key = month_key(today)
    return TransactionInput(
        transaction_date=today.isoformat(),
        category=STUDENT_FEE_CATEGORY,
        type="income",
        amount=student.monthly_fee,
        status="pending",
        description=f"{format_month_label(key)} fee due",
        note=AUTO_DUE_NOTE,
        student_id=student.id,
    )


class MonthlyDuesReconciler:
    """Creates the current month's missing dues in one all-or-nothing batch.

    A pass that starts while another is running returns immediately; the
    trigger is dropped, not queued.
    """

    def __init__(self, service, clock: Callable[[], date]):
        self.service = service
        self.clock = clock
        self._guard = threading.Lock()

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def run(self, students: Iterable[Student], finances: Iterable[FinanceTransaction]) -> list[FinanceTransaction]:
        if not self._guard.acquire(blocking=False):
            logger.debug("Monthly dues pass already running; trigger dropped")
            return []
        try:
            today = self.clock()
            month = month_key(today)
            # Zero fees never produce a due; amounts must be positive
            missing = [
                s for s in find_students_missing_due(students, finances, month)
                if s.monthly_fee > 0
            ]
            if not missing:
                return []
            created = self.service.add_transactions([build_monthly_due(s, today) for s in missing])
            logger.info("Created %d monthly dues for %s", len(created), month)
            return created
        finally:
            self._guard.release()
