# fees/invoice_generators.py

"""
Invoice generation for monthly billing and checkout.

Each generator posts exactly one ledger debit per invoice inside the
student's locked transaction. The batch entry point isolates failures per
student: one student's error never stops the others.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from django.db import connection
from django.utils import timezone
from typing import List, Optional
import logging

from core.config import resolve_profile
from core.exceptions import DuplicateInvoiceError, HostelError, InvalidAmountError, StudentNotBillableError
from fees.models import Invoice, InvoiceItem
from fees.services import InvoiceService
from fees.utils import (
    allocate_invoice_sequence, billing_period, checkout_billable_days, checkout_due_date,
    enrollment_billable_days, month_name, monthly_due_date, prorate, validate_billing_month,
)
from ledger.models import LedgerEntry
from ledger.services import LedgerService, locked_student
from ledger.utils import days_in_month
from students.models import Student
from utils.audit import log_financial_activity
from utils.context import acting_as, get_request_context

logger = logging.getLogger(__name__)


# =============================================================================
# BATCH RESULTS
# =============================================================================

@dataclass
class StudentInvoiceResult:
    student_id: str
    student_name: str
    status: str  # created | skipped | failed
    reference_id: Optional[str] = None
    total: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class InvoiceBatchResult:
    year: int
    month: int
    results: List[StudentInvoiceResult] = field(default_factory=list)

    CREATED = 'created'
    SKIPPED = 'skipped'
    FAILED = 'failed'

    def _count(self, status):
        return sum(1 for r in self.results if r.status == status)

    @property
    def created(self):
        return self._count(self.CREATED)

    @property
    def skipped(self):
        return self._count(self.SKIPPED)

    @property
    def failed(self):
        return self._count(self.FAILED)

    @property
    def total_billed(self):
        return sum(r.total or 0 for r in self.results if r.status == self.CREATED)

    def to_dict(self):
        return {
            'year': self.year,
            'month': self.month,
            'created': self.created,
            'skipped': self.skipped,
            'failed': self.failed,
            'total_billed': self.total_billed,
            'results': [vars(r) for r in self.results],
        }


# =============================================================================
# SHARED HELPERS
# =============================================================================

def fee_items(student):
    """(item_type, description, amount) for each non-zero monthly fee"""
    items = [
        (InvoiceItem.ITEM_BASE, 'Room rent', student.base_monthly_fee),
        (InvoiceItem.ITEM_LAUNDRY, 'Laundry', student.laundry_fee),
        (InvoiceItem.ITEM_FOOD, 'Food', student.food_fee),
    ]
    return [item for item in items if item[2] > 0]


def find_monthly_invoice(student, year, month):
    """The live MONTHLY invoice of a month; a cancelled one frees the month."""
    return Invoice.objects.filter(
        student=student,
        billing_year=year,
        billing_month=month,
        invoice_type=Invoice.TYPE_MONTHLY,
    ).exclude(status=Invoice.STATUS_CANCELLED).first()


def create_invoice(student, reference_id, invoice_type, year, month, items, total,
                   issue_date, due_date, period_start, period_end, notes, profile):
    """
    Write the invoice, its items and its ledger debit.

    Must run inside locked_student() for the student.
    """
    invoice = Invoice.objects.create(
        reference_id=reference_id,
        student=student,
        invoice_type=invoice_type,
        billing_year=year,
        billing_month=month,
        period_start=period_start,
        period_end=period_end,
        issue_date=issue_date,
        due_date=due_date,
        total=total,
        notes=notes,
    )
    for item_type, description, amount in items:
        InvoiceItem.objects.create(invoice=invoice, item_type=item_type, description=description, amount=amount)

    entry = LedgerService.append_entry(
        student,
        LedgerEntry.DEBIT,
        total,
        LedgerEntry.SOURCE_INVOICE,
        notes,
        reference_id=reference_id,
        profile=profile,
    )
    invoice.ledger_entry = entry
    invoice.save(update_fields=['ledger_entry'])

    InvoiceService.refresh_invoice_statuses(student, balance=entry.balance_after)
    invoice.refresh_from_db(fields=['status'])
    return invoice


# =============================================================================
# MONTHLY INVOICE GENERATOR
# =============================================================================

class MonthlyInvoiceGenerator:
    """Generate the monthly invoice of one student"""

    @staticmethod
    def generate(student, year, month, profile=None):
        """
        Generate and post the monthly invoice.

        total = base_monthly_fee + laundry_fee + food_fee, prorated over the
        days remaining when the student enrolled during the billing month.

        Args:
            student: Student instance
            year (int): Billing year
            month (int): Billing month (1-12)
            profile: HostelProfile

        Returns:
            Invoice instance

        Raises:
            DuplicateInvoiceError: If the month is already invoiced
            StudentNotBillableError: If the student is not ACTIVE or enrolled after the month
            InvalidAmountError: If the student has no fees configured
        """
        validate_billing_month(year, month)
        profile = resolve_profile(profile)

        # Cheap pre-check; the authoritative one runs under the student lock
        existing = find_monthly_invoice(student, year, month)
        if existing:
            raise DuplicateInvoiceError(student, year, month, reference_id=existing.reference_id)

        if not student.is_active:
            raise StudentNotBillableError(f"{student.name} is {student.get_status_display()}, not billable")

        items = fee_items(student)
        full_total = sum(amount for _, _, amount in items)
        if full_total <= 0:
            raise InvalidAmountError(f"{student.name} has no monthly fees configured")

        month_days = days_in_month(year, month)
        days = enrollment_billable_days(student.enrollment_date, year, month)
        if days == 0:
            raise StudentNotBillableError(
                f"{student.name} enrolled on {student.enrollment_date}, after {month_name(year, month)}"
            )

        total = full_total
        if days < month_days and profile.prorate_partial_months:
            total = prorate(full_total, days, month_days)
            items.append((
                InvoiceItem.ITEM_PRORATION,
                f"Proration: {days}/{month_days} days from {student.enrollment_date}",
                total - full_total,
            ))
            if total <= 0:
                raise InvalidAmountError(f"Prorated total for {student.name} is {total}")

        reference_id = allocate_invoice_sequence(year, month, prefix=profile.invoice_prefix)

        with locked_student(student) as locked:
            if not locked.is_active:
                raise StudentNotBillableError(f"{locked.name} is {locked.get_status_display()}, not billable")
            existing = find_monthly_invoice(locked, year, month)
            if existing:
                logger.warning(f"Reference {reference_id} left unused: {locked.name} was invoiced concurrently")
                raise DuplicateInvoiceError(locked, year, month, reference_id=existing.reference_id)

            issue_date = timezone.localdate()
            period_start, period_end = billing_period(year, month)
            invoice = create_invoice(
                locked,
                reference_id,
                Invoice.TYPE_MONTHLY,
                year,
                month,
                items,
                total,
                issue_date=issue_date,
                due_date=monthly_due_date(year, month, issue_date, profile.invoice_due_day),
                period_start=max(period_start, student.enrollment_date or period_start),
                period_end=period_end,
                notes=f"Monthly invoice for {month_name(year, month)}",
                profile=profile,
            )

        logger.info(f"Generated monthly invoice {invoice.reference_id} for {student.name}: {total}")
        return invoice


# =============================================================================
# CHECKOUT INVOICE GENERATOR
# =============================================================================

class CheckoutInvoiceGenerator:
    """Final prorated invoice for the days stayed in the checkout month"""

    @staticmethod
    def reserve_reference(student, checkout_date, profile=None):
        """
        Allocate the checkout invoice reference before settlement starts.

        Called outside any transaction, so the counter increment commits
        even when the settlement later rolls back and the number becomes a
        gap instead of being handed out again.

        Returns:
            str, or None when the month needs no checkout invoice
        """
        profile = resolve_profile(profile)
        year, month = checkout_date.year, checkout_date.month
        if find_monthly_invoice(student, year, month):
            return None
        if not fee_items(student) or checkout_billable_days(checkout_date, student.enrollment_date) <= 0:
            return None
        return allocate_invoice_sequence(year, month, prefix=profile.invoice_prefix)

    @staticmethod
    def generate(student, checkout_date, profile=None, reference_id=None):
        """
        Generate the checkout invoice.

        Covers day 1 (or the enrollment day) through the checkout day and is
        due on the checkout date plus profile.checkout_due_days. Must run
        inside locked_student() for the student; CheckoutService calls it
        while the student is SETTLING, with a reference_id taken from
        reserve_reference() beforehand.

        Returns:
            Invoice instance, or None when there is nothing to bill (the
            month already has a MONTHLY invoice, or no fees)
        """
        profile = resolve_profile(profile)
        year, month = checkout_date.year, checkout_date.month

        monthly = find_monthly_invoice(student, year, month)
        if monthly:
            logger.info(
                f"Checkout month {year}-{month:02d} of {student.name} already billed by {monthly.reference_id}"
            )
            if reference_id:
                logger.warning(f"Reference {reference_id} left unused")
            return None

        items = fee_items(student)
        full_total = sum(amount for _, _, amount in items)
        days = checkout_billable_days(checkout_date, student.enrollment_date)
        if full_total <= 0 or days <= 0:
            if reference_id:
                logger.warning(f"Reference {reference_id} left unused")
            return None

        month_days = days_in_month(year, month)
        total = prorate(full_total, days, month_days)
        if total < full_total:
            items.append((
                InvoiceItem.ITEM_PRORATION,
                f"Proration: {days}/{month_days} days to checkout on {checkout_date}",
                total - full_total,
            ))
        if total <= 0:
            return None

        period_start, _ = billing_period(year, month)
        enrollment_date = student.enrollment_date
        if enrollment_date and period_start < enrollment_date <= checkout_date:
            period_start = enrollment_date

        invoice = create_invoice(
            student,
            reference_id or allocate_invoice_sequence(year, month, prefix=profile.invoice_prefix),
            Invoice.TYPE_CHECKOUT,
            year,
            month,
            items,
            total,
            issue_date=timezone.localdate(),
            due_date=checkout_due_date(checkout_date, profile.checkout_due_days),
            period_start=period_start,
            period_end=checkout_date,
            notes=f"Checkout invoice for {days} day(s) of {month_name(year, month)}",
            profile=profile,
        )

        logger.info(f"Generated checkout invoice {invoice.reference_id} for {student.name}: {total}")
        return invoice


# =============================================================================
# BATCH ENTRY POINT
# =============================================================================

def _generate_for_student(student, year, month, profile, context):
    """Run one student's generation and turn the outcome into a result row."""
    result = StudentInvoiceResult(student_id=str(student.pk), student_name=student.name, status='')
    try:
        with acting_as(context=context):
            invoice = MonthlyInvoiceGenerator.generate(student, year, month, profile=profile)
        result.status = InvoiceBatchResult.CREATED
        result.reference_id = invoice.reference_id
        result.total = invoice.total
    except DuplicateInvoiceError as e:
        logger.warning(f"Skipped {student.name}: {e}")
        result.status = InvoiceBatchResult.SKIPPED
        result.reference_id = e.reference_id
        result.error = str(e)
        result.error_code = e.code
    except HostelError as e:
        logger.warning(f"Could not invoice {student.name} for {year}-{month:02d}: {e}")
        result.status = InvoiceBatchResult.FAILED
        result.error = str(e)
        result.error_code = e.code
    except Exception as e:
        logger.error(f"Unexpected error invoicing {student.name} for {year}-{month:02d}: {e}", exc_info=True)
        result.status = InvoiceBatchResult.FAILED
        result.error = str(e)
        result.error_code = 'unexpected_error'
    return result


def _generate_in_worker(student, year, month, profile, context):
    try:
        return _generate_for_student(student, year, month, profile, context)
    finally:
        connection.close()


def generate_monthly_invoices(year, month, student_ids=None, profile=None, posted_by=None, workers=1):
    """
    Generate monthly invoices for every ACTIVE student.

    Args:
        year (int): Billing year
        month (int): Billing month (1-12)
        student_ids (list): Restrict the run to these students
        profile: HostelProfile
        posted_by (str): Actor label for the audit trail (e.g. 'system:cron')
        workers (int): Threads to spread students over; each uses its own
            database connection

    Returns:
        InvoiceBatchResult

    Example:
        result = generate_monthly_invoices(2024, 1)
        print(result.created, result.skipped, result.failed)
    """
    validate_billing_month(year, month)
    profile = resolve_profile(profile)
    if workers < 1:
        raise ValueError("workers must be at least 1")

    students = Student.objects.filter(status=Student.STATUS_ACTIVE).order_by('name')
    if student_ids is not None:
        students = students.filter(pk__in=list(student_ids))
    students = list(students)

    context = dict(get_request_context() or {})
    if posted_by:
        context['actor'] = posted_by

    batch = InvoiceBatchResult(year=year, month=month)
    logger.info(f"Generating {month_name(year, month)} invoices for {len(students)} student(s), workers={workers}")

    if workers == 1 or len(students) <= 1:
        batch.results = [_generate_for_student(s, year, month, profile, context) for s in students]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='invoicing') as executor:
            batch.results = list(executor.map(
                lambda s: _generate_in_worker(s, year, month, profile, context), students
            ))

    logger.info(
        f"{month_name(year, month)} invoicing done: {batch.created} created, "
        f"{batch.skipped} skipped, {batch.failed} failed"
    )
    with acting_as(context=context):
        log_financial_activity(
            'INVOICE_BATCH',
            amount=batch.total_billed,
            reference=f"{year}-{month:02d}",
            notes=f"{batch.created} created, {batch.skipped} skipped, {batch.failed} failed",
            risk_level='MEDIUM' if batch.failed else 'LOW',
            is_automated=True,
        )
    return batch
