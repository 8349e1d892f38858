# students/services.py
"""
Business logic services for student management.
Handles admission and the checkout settlement that spans the ledger,
billing and room apps.
"""

from dataclasses import dataclass, field
from datetime import date
from django.db import transaction
from django.utils import timezone
from typing import List, Optional
import logging

from boarding.services import RoomService
from core.config import resolve_profile
from core.exceptions import InvalidAmountError, SettlementFailedError, StudentNotBillableError
from fees.invoice_generators import CheckoutInvoiceGenerator
from fees.services import InvoiceService
from ledger.models import LedgerEntry
from ledger.services import LedgerService, locked_student
from utils.audit import log_financial_activity

from .models import Student

logger = logging.getLogger(__name__)


# =============================================================================
# STUDENT ADMISSION SERVICES
# =============================================================================

class StudentAdmissionService:
    """Service for handling new student admissions."""

    @staticmethod
    @transaction.atomic
    def admit_student(student_data, room=None):
        """
        Create an ACTIVE student and optionally give them a bed.

        Args:
            student_data (dict): Student fields (name, fees in minor units, ...)
            room (Room): Room to assign

        Returns:
            Student instance
        """
        for fee in ('base_monthly_fee', 'laundry_fee', 'food_fee'):
            value = student_data.get(fee, 0)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidAmountError(f"{fee} must be a non-negative integer of minor units, got {value!r}")

        student = Student.objects.create(**{**student_data, 'status': Student.STATUS_ACTIVE})
        if room is not None:
            RoomService.assign_student(student, room)
            student.refresh_from_db()

        logger.info(f"Student admission completed: {student.name}")
        return student


# =============================================================================
# CHECKOUT SETTLEMENT SERVICES
# =============================================================================

@dataclass
class CheckoutRequest:
    """
    What to settle when a student leaves.

    refund_amount and deduction_amount are minor units; both are posted as
    debits (money returned to the student, charges for damages and such).
    """
    checkout_date: Optional[date] = None
    reason: str = ''
    refund_amount: int = 0
    deduction_amount: int = 0
    clear_room: bool = False
    bill_final_month: bool = False
    notes: str = ''


@dataclass
class CheckoutResult:
    student: Student
    checkout_date: date
    balance_before: int
    balance_after: int
    final_invoice: Optional[object] = None
    entries: List[LedgerEntry] = field(default_factory=list)
    released_room: Optional[object] = None
    messages: List[str] = field(default_factory=list)


class CheckoutService:
    """
    Checkout state machine: ACTIVE -> SETTLING -> CHECKED_OUT.

    A failed settlement moves SETTLING back to ACTIVE. The room is released
    only once every settlement entry has been posted.
    """

    @staticmethod
    def _validate(request):
        for label in ('refund_amount', 'deduction_amount'):
            value = getattr(request, label)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidAmountError(f"{label} must be a non-negative integer of minor units, got {value!r}")

    @staticmethod
    def _begin_settlement(student):
        """Lock the student and commit ACTIVE -> SETTLING."""
        with locked_student(student) as locked:
            if locked.status != Student.STATUS_ACTIVE:
                raise StudentNotBillableError(
                    f"{locked.name} cannot check out while {locked.get_status_display()}"
                )
            locked.status = Student.STATUS_SETTLING
            locked.save(update_fields=['status'])
        logger.info(f"Checkout of {student.name}: ACTIVE -> SETTLING")

    @staticmethod
    def _abort_settlement(student):
        """Return a SETTLING student to ACTIVE."""
        with locked_student(student) as locked:
            if locked.status == Student.STATUS_SETTLING:
                locked.status = Student.STATUS_ACTIVE
                locked.save(update_fields=['status'])
        logger.warning(f"Checkout of {student.name} aborted: SETTLING -> ACTIVE")

    @staticmethod
    def _settle(student, request, checkout_date, profile, invoice_reference=None):
        """Post every settlement entry, release the room and finish the checkout."""
        with locked_student(student) as locked:
            if locked.status != Student.STATUS_SETTLING:
                raise StudentNotBillableError(f"{locked.name} is not settling")

            balance_before = LedgerService.get_student_balance(locked, profile=profile).current_balance
            result = CheckoutResult(
                student=locked,
                checkout_date=checkout_date,
                balance_before=balance_before,
                balance_after=balance_before,
            )

            # Final prorated invoice
            if request.bill_final_month:
                invoice = CheckoutInvoiceGenerator.generate(
                    locked, checkout_date, profile=profile, reference_id=invoice_reference
                )
                if invoice is not None:
                    result.final_invoice = invoice
                    result.entries.append(invoice.ledger_entry)
                    result.messages.append(f"Final invoice {invoice.reference_id} for {invoice.total}")
                else:
                    result.messages.append("No final invoice needed")

            # Deduction and refund
            if request.deduction_amount:
                result.entries.append(LedgerService.append_entry(
                    locked, LedgerEntry.DEBIT, request.deduction_amount, LedgerEntry.SOURCE_DEDUCTION,
                    f"Checkout deduction{': ' + request.reason if request.reason else ''}",
                    notes=request.notes, profile=profile,
                ))
                result.messages.append(f"Deduction of {request.deduction_amount} posted")

            if request.refund_amount:
                result.entries.append(LedgerService.append_entry(
                    locked, LedgerEntry.DEBIT, request.refund_amount, LedgerEntry.SOURCE_REFUND,
                    "Refund paid at checkout", notes=request.notes, profile=profile,
                ))
                result.messages.append(f"Refund of {request.refund_amount} posted")

            # Settle what remains when the room is cleared
            balances = LedgerService.verify_student_ledger(locked, profile=profile)
            balance = balances[-1] if balances else 0

            if request.clear_room and balance != 0:
                entry_type = LedgerEntry.CREDIT if balance > 0 else LedgerEntry.DEBIT
                settlement = LedgerService.append_entry(
                    locked, entry_type, abs(balance), LedgerEntry.SOURCE_SETTLEMENT,
                    f"Checkout settlement of {'outstanding' if balance > 0 else 'credit'} balance",
                    notes=request.notes, profile=profile,
                )
                result.entries.append(settlement)
                balance = settlement.balance_after
                result.messages.append(f"Settled remaining balance, now {balance}")
            elif balance:
                result.messages.append(f"Outstanding balance of {balance} left for collection")

            result.balance_after = balance
            InvoiceService.refresh_invoice_statuses(locked, balance=balance)

            # Release the room, then close the account
            result.released_room = RoomService.release_student(locked)
            if result.released_room:
                result.messages.append(f"Released room {result.released_room.room_number}")

            locked.status = Student.STATUS_CHECKED_OUT
            locked.checkout_date = checkout_date
            locked.checkout_reason = request.reason or ''
            locked.save(update_fields=['status', 'checkout_date', 'checkout_reason'])

        return result

    @staticmethod
    def process_checkout(student, request=None, profile=None):
        """
        Check a student out.

        Args:
            student: ACTIVE Student instance
            request (CheckoutRequest): What to settle; defaults to nothing
            profile: HostelProfile

        Returns:
            CheckoutResult

        Raises:
            InvalidAmountError: If refund/deduction amounts are invalid
                (nothing changes)
            StudentNotBillableError: If the student is not ACTIVE
            SettlementFailedError: If settlement failed; every entry is
                rolled back and the student is ACTIVE again

        Example:
            result = CheckoutService.process_checkout(
                student, CheckoutRequest(refund_amount=500000, clear_room=True)
            )
        """
        request = request or CheckoutRequest()
        CheckoutService._validate(request)
        profile = resolve_profile(profile)
        checkout_date = request.checkout_date or timezone.localdate()

        CheckoutService._begin_settlement(student)

        try:
            # Reserved outside the settlement transaction so a rollback leaves a gap
            invoice_reference = None
            if request.bill_final_month:
                invoice_reference = CheckoutInvoiceGenerator.reserve_reference(student, checkout_date, profile=profile)
            result = CheckoutService._settle(student, request, checkout_date, profile, invoice_reference)
        except Exception as e:
            logger.error(f"Checkout settlement failed for {student.name}: {e}", exc_info=True)
            try:
                CheckoutService._abort_settlement(student)
            except Exception as revert_error:
                logger.error(
                    f"Could not return {student.name} to ACTIVE after failed checkout: {revert_error}",
                    exc_info=True,
                )
            raise SettlementFailedError(f"Checkout of {student.name} failed: {e}") from e

        log_financial_activity(
            'CHECKOUT_COMPLETED',
            student=result.student,
            amount=result.balance_after,
            target_object=result.student,
            notes='; '.join(result.messages),
            risk_level='MEDIUM' if result.balance_after else 'LOW',
            additional_data={
                'balance_before': result.balance_before,
                'refund_amount': request.refund_amount,
                'deduction_amount': request.deduction_amount,
                'clear_room': request.clear_room,
            },
        )
        logger.info(
            f"Checked out {student.name} on {checkout_date}: "
            f"balance {result.balance_before} -> {result.balance_after}"
        )
        return result
