# fees/utils.py

"""
Billing Utility Functions

Contains:
- Reference number generation (invoice references, payment receipts)
- Billing period and due date helpers
- Proration calculations
- Invoice status allocation
"""

from django.db import transaction
from datetime import date, timedelta
import logging

from ledger.utils import days_in_month, divide_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# REFERENCE NUMBER GENERATION
# =============================================================================

def allocate_sequence(series, year, month):
    """
    Take the next number of a (series, year, month) counter.

    The counter row is created on first use and locked with
    select_for_update while it is incremented. Called outside any other
    transaction the increment commits immediately, so a number is never
    handed out twice; numbers of invoices that fail later become gaps.

    Returns:
        int: The allocated number (1, 2, 3, ...)
    """
    from fees.models import InvoiceSequence

    with transaction.atomic():
        InvoiceSequence.objects.get_or_create(series=series, year=year, month=month)
        counter = InvoiceSequence.objects.select_for_update().get(series=series, year=year, month=month)
        counter.last_value += 1
        counter.save(update_fields=['last_value'])

    logger.debug(f"Allocated {series} number {counter.last_value} for {year}-{month:02d}")
    return counter.last_value


def format_invoice_reference(year, month, sequence, prefix='BL'):
    """
    Build an invoice reference.

    Example:
        >>> format_invoice_reference(2024, 1, 1)
        'BL-2024-01-000001'
    """
    return f"{prefix}-{year}-{month:02d}-{sequence:06d}"


def allocate_invoice_sequence(year, month, prefix='BL'):
    """Allocate the next invoice reference of a billing month."""
    from fees.models import InvoiceSequence

    sequence = allocate_sequence(InvoiceSequence.SERIES_INVOICE, year, month)
    return format_invoice_reference(year, month, sequence, prefix=prefix)


def generate_receipt_number(payment_date):
    """
    Allocate the next payment receipt number.
    Format: RCP-202401-000001
    """
    from fees.models import InvoiceSequence

    sequence = allocate_sequence(InvoiceSequence.SERIES_RECEIPT, payment_date.year, payment_date.month)
    return f"RCP-{payment_date.year}{payment_date.month:02d}-{sequence:06d}"


# =============================================================================
# BILLING PERIOD HELPERS
# =============================================================================

def validate_billing_month(year, month):
    if not isinstance(year, int) or not 2000 <= year <= 9999:
        raise ValueError(f"Invalid billing year: {year!r}")
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValueError(f"Invalid billing month: {month!r}")


def billing_period(year, month):
    """First and last day of a billing month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def monthly_due_date(year, month, issue_date, due_day=15):
    """Due day of the billing month, never earlier than the issue date."""
    return max(date(year, month, due_day), issue_date)


def checkout_due_date(checkout_date, due_days=0):
    return checkout_date + timedelta(days=due_days)


def month_name(year, month):
    return date(year, month, 1).strftime('%B %Y')


# =============================================================================
# PRORATION
# =============================================================================

def prorate(total, days, month_days):
    """
    Share of a monthly total for `days` days, rounded half-up.

    Example:
        >>> prorate(6000, 16, 31)
        3097
    """
    if days >= month_days:
        return total
    return divide_half_up(total * days, month_days)


def enrollment_billable_days(enrollment_date, year, month):
    """
    Days of the billing month the student is billed for.

    Returns the full month when the student enrolled before it, the days
    remaining including the enrollment day when they enrolled during it,
    and 0 when they enrolled after it.
    """
    start, end = billing_period(year, month)
    month_days = end.day
    if enrollment_date is None or enrollment_date <= start:
        return month_days
    if enrollment_date > end:
        return 0
    return month_days - enrollment_date.day + 1


def checkout_billable_days(checkout_date, enrollment_date=None):
    """
    Days of the checkout month the student stayed: day 1 (or the
    enrollment day when they enrolled that month) through the checkout day.
    """
    first_day = 1
    if (enrollment_date and enrollment_date.year == checkout_date.year
            and enrollment_date.month == checkout_date.month):
        first_day = enrollment_date.day
    return max(checkout_date.day - first_day + 1, 0)


# =============================================================================
# INVOICE STATUS ALLOCATION
# =============================================================================

def allocate_outstanding(invoices, balance):
    """
    Decide invoice statuses from the student's ledger balance.

    The outstanding balance is attributed to the newest invoices first, so
    the oldest invoices are the first to be considered paid.

    Args:
        invoices: Non-cancelled invoices, newest first
        balance (int): Current ledger balance (positive = owed)

    Returns:
        dict: {invoice: status}
    """
    from fees.models import Invoice

    statuses = {}
    outstanding = max(balance, 0)
    for invoice in invoices:
        if outstanding >= invoice.total:
            statuses[invoice] = Invoice.STATUS_PENDING
            outstanding -= invoice.total
        elif outstanding > 0:
            statuses[invoice] = Invoice.STATUS_PARTIALLY_PAID
            outstanding = 0
        else:
            statuses[invoice] = Invoice.STATUS_PAID
    return statuses
