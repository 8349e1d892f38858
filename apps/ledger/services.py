# ledger/services.py

"""
Ledger Posting Operations

All writes to a student's ledger go through LedgerService. Each posting:
1. locks the student row (select_for_update) inside transaction.atomic
2. audits the existing entries (halts on InconsistentLedgerError)
3. writes the new entry together with its balance_after

Postings for one student are therefore serialized, while postings for
different students proceed independently.
"""

from contextlib import contextmanager
from django.db import transaction, OperationalError
from django.utils import timezone
import logging

from core.config import resolve_profile
from core.exceptions import (
    BackdatedEntryError, DuplicateReversalError, InconsistentLedgerError,
    InvalidAmountError, LedgerTimeoutError,
)
from ledger.balance import audit_entries, summarize
from ledger.models import LedgerEntry
from students.models import Student
from utils.audit import log_financial_activity
from utils.context import get_current_actor_id

logger = logging.getLogger(__name__)


@contextmanager
def locked_student(student):
    """
    Open a transaction holding the row lock of the student.

    Yields the freshly read, locked Student. Lock waits that exceed the
    database timeout surface as LedgerTimeoutError.
    """
    try:
        with transaction.atomic():
            locked = Student.objects.select_for_update().get(pk=student.pk)
            yield locked
    except OperationalError as e:
        logger.error(f"Database timeout while posting for student {student.pk}: {e}")
        raise LedgerTimeoutError(f"Timed out waiting for the ledger of student {student.pk}") from e


class LedgerService:
    """Append-only posting and verified reads of student ledgers"""

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    @staticmethod
    def get_student_ledger(student):
        """Entries of a student in ledger order (entry_date, sequence)."""
        return list(LedgerEntry.objects.for_student(student))

    @staticmethod
    def verify_student_ledger(student, profile=None):
        """
        Audit every balance_after of the student's ledger.

        Returns:
            list[int]: Running balances

        Raises:
            InconsistentLedgerError: If any recorded balance is wrong
        """
        profile = resolve_profile(profile)
        return audit_entries(
            LedgerService.get_student_ledger(student),
            tolerance=profile.balance_tolerance,
        )

    @staticmethod
    def get_student_balance(student, profile=None):
        """
        Audited balance summary of a student.

        Raises:
            InconsistentLedgerError: Balances must not be shown for a
                ledger that fails verification
        """
        profile = resolve_profile(profile)
        entries = LedgerService.get_student_ledger(student)
        audit_entries(entries, tolerance=profile.balance_tolerance)
        return summarize(entries)

    # -------------------------------------------------------------------------
    # POSTING
    # -------------------------------------------------------------------------

    @staticmethod
    def append_entry(student, entry_type, amount, source, description,
                     reference_id='', entry_date=None, notes='', reverses=None, profile=None):
        """
        Append one entry for a student whose row lock the caller already holds.

        Callers that write related rows in the same transaction (invoices,
        payments, discounts, checkout) use this inside locked_student();
        everyone else calls post_entry().

        Args:
            student: Locked Student instance
            entry_type: LedgerEntry.DEBIT or LedgerEntry.CREDIT
            amount (int): Positive amount in minor units
            source: One of LedgerEntry.SOURCES
            description (str): Human readable description
            reference_id (str): Invoice/payment reference
            entry_date (date): Defaults to today; may not precede the latest entry
            notes (str): Optional notes
            reverses: LedgerEntry this entry reverses

        Returns:
            LedgerEntry: The created entry

        Raises:
            InvalidAmountError: If amount is not a positive integer
            BackdatedEntryError: If entry_date precedes the latest entry
            InconsistentLedgerError: If the existing ledger fails verification
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Ledger amount must be a positive integer of minor units, got {amount!r}")
        if entry_type not in (LedgerEntry.DEBIT, LedgerEntry.CREDIT):
            raise ValueError(f"Invalid entry_type: {entry_type}")
        if source not in dict(LedgerEntry.SOURCES):
            raise ValueError(f"Invalid source: {source}")

        profile = resolve_profile(profile)
        entry_date = entry_date or timezone.localdate()

        entries = LedgerService.get_student_ledger(student)
        balances = audit_entries(entries, tolerance=profile.balance_tolerance)
        previous_balance = balances[-1] if balances else 0
        last_entry = entries[-1] if entries else None

        if last_entry and entry_date < last_entry.entry_date:
            raise BackdatedEntryError(
                f"Entry dated {entry_date} precedes the latest entry ({last_entry.entry_date}) "
                f"of student {student.pk}"
            )

        signed = amount if entry_type == LedgerEntry.DEBIT else -amount
        sequence = (max(e.sequence for e in entries) + 1) if entries else 1

        entry = LedgerEntry.objects.create(
            student=student,
            entry_date=entry_date,
            sequence=sequence,
            entry_type=entry_type,
            source=source,
            amount=amount,
            balance_after=previous_balance + signed,
            description=description,
            reference_id=reference_id or '',
            notes=notes or '',
            reverses=reverses,
            created_by_id=get_current_actor_id(),
        )

        logger.info(
            f"Posted {source} {entry_type.lower()} of {amount} for {student.name}: "
            f"balance {previous_balance} -> {entry.balance_after}"
        )
        log_financial_activity(
            f"LEDGER_{source}",
            student=student,
            amount=signed,
            reference=reference_id,
            target_object=entry,
            notes=description,
            additional_data={'balance_after': entry.balance_after, 'sequence': sequence},
        )

        return entry

    @staticmethod
    def post_entry(student, entry_type, amount, source, description, **kwargs):
        """
        Lock the student and append one entry in its own transaction.

        Accepts the same keyword arguments as append_entry().
        """
        with locked_student(student) as locked:
            return LedgerService.append_entry(locked, entry_type, amount, source, description, **kwargs)

    @staticmethod
    def post_adjustment(student, amount, entry_type, description, entry_date=None, notes='', profile=None):
        """
        Manual correction posted by staff.

        Example:
            LedgerService.post_adjustment(student, 25000, LedgerEntry.CREDIT,
                                          'Overcharged laundry in March')
        """
        if not description or not description.strip():
            raise ValueError("Adjustments need a description")
        return LedgerService.post_entry(
            student, entry_type, amount, LedgerEntry.SOURCE_ADJUSTMENT, description.strip(),
            entry_date=entry_date, notes=notes, profile=profile,
        )

    @staticmethod
    def reverse_entry(entry, reason, profile=None):
        """
        Cancel the effect of an entry by posting its opposite.

        The original entry stays untouched; the reversal points at it.

        Raises:
            DuplicateReversalError: If the entry was already reversed or is
                itself a reversal
        """
        if not reason or not reason.strip():
            raise ValueError("A reversal needs a reason")

        with locked_student(entry.student) as student:
            if entry.source == LedgerEntry.SOURCE_REVERSAL:
                raise DuplicateReversalError(f"Entry {entry.pk} is a reversal and cannot be reversed")
            if LedgerEntry.objects.filter(reverses=entry).exists():
                raise DuplicateReversalError(f"Entry {entry.pk} has already been reversed")

            opposite = LedgerEntry.CREDIT if entry.is_debit else LedgerEntry.DEBIT
            reversal = LedgerService.append_entry(
                student,
                opposite,
                entry.amount,
                LedgerEntry.SOURCE_REVERSAL,
                f"Reversal of {entry.get_source_display().lower()} {entry.reference_id or entry.pk}",
                reference_id=entry.reference_id,
                notes=reason.strip(),
                reverses=entry,
                profile=profile,
            )

        logger.warning(f"Entry {entry.pk} of {entry.student.name} reversed by {reversal.pk}: {reason}")
        return reversal

    @staticmethod
    def find_inconsistent_ledgers(profile=None):
        """
        Audit every student's ledger.

        Returns:
            list[tuple[Student, InconsistentLedgerError]]
        """
        profile = resolve_profile(profile)
        failures = []
        for student in Student.objects.order_by('name').iterator():
            try:
                LedgerService.verify_student_ledger(student, profile=profile)
            except InconsistentLedgerError as e:
                logger.error(f"Ledger of {student.name} ({student.pk}) is inconsistent: {e}")
                failures.append((student, e))
        return failures
