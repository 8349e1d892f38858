# fees/services.py

"""
Core Billing Operations

Posts payments and discounts to the ledger as credits, and keeps invoice
statuses in line with the ledger balance.

Every operation that moves money takes the student's row lock through
ledger.services.locked_student(), writes its own record, and appends the
matching ledger entry in the same transaction.

For invoice generation, see fees/invoice_generators.py
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import transaction
from django.utils import timezone
from typing import List, Optional
import logging

from core.config import resolve_profile
from core.exceptions import ExpiredDiscountError, HostelError, InvalidAmountError, StudentNotBillableError
from fees.models import Invoice, Payment, Discount
from fees.utils import allocate_outstanding, generate_receipt_number
from ledger.balance import calculate_balance
from ledger.models import LedgerEntry
from ledger.services import LedgerService, locked_student
from students.models import Student
from utils.audit import log_financial_activity
from utils.context import acting_as

logger = logging.getLogger(__name__)


def validate_positive_amount(amount, label='Amount'):
    """Amounts are positive ints of minor units; anything else is rejected."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"{label} must be an integer of minor units, got {amount!r}")
    if amount <= 0:
        raise InvalidAmountError(f"{label} must be greater than zero, got {amount}")
    return amount


# =============================================================================
# INVOICE SERVICE - STATUS & LIFECYCLE
# =============================================================================

class InvoiceService:
    """Invoice status management and cancellation"""

    @staticmethod
    def refresh_invoice_statuses(student, balance=None):
        """
        Recompute PENDING / PARTIALLY_PAID / PAID for the student's invoices.

        The outstanding ledger balance is attributed to the newest invoices,
        so credits settle the oldest invoices first.

        Args:
            student: Student instance
            balance (int): Current balance if the caller already knows it

        Returns:
            int: Number of invoices whose status changed
        """
        if balance is None:
            balance = calculate_balance(LedgerService.get_student_ledger(student))

        invoices = list(
            Invoice.objects.filter(student=student)
            .exclude(status=Invoice.STATUS_CANCELLED)
            .order_by('-issue_date', '-billing_year', '-billing_month', '-created_at')
        )

        changed = 0
        for invoice, status in allocate_outstanding(invoices, balance).items():
            if invoice.status != status:
                logger.info(f"Invoice {invoice.reference_id}: {invoice.status} -> {status}")
                invoice.status = status
                invoice.save(update_fields=['status'])
                changed += 1
        return changed

    @staticmethod
    def cancel_invoice(invoice, reason, profile=None):
        """
        Cancel an invoice by reversing its ledger debit.

        Returns:
            LedgerEntry: The reversal entry

        Raises:
            ValueError: If the invoice is already cancelled or no reason is given
        """
        if not reason or not reason.strip():
            raise ValueError("Cancelling an invoice needs a reason")

        with locked_student(invoice.student) as student:
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            if invoice.status == Invoice.STATUS_CANCELLED:
                raise ValueError(f"Invoice {invoice.reference_id} is already cancelled")

            reversal = LedgerService.reverse_entry(invoice.ledger_entry, reason, profile=profile)

            invoice.status = Invoice.STATUS_CANCELLED
            invoice.set_change_reason(reason.strip())
            invoice.save(update_fields=['status', 'change_reason'])

            InvoiceService.refresh_invoice_statuses(student, balance=reversal.balance_after)

        logger.warning(f"Cancelled invoice {invoice.reference_id}: {reason}")
        return reversal


# =============================================================================
# PAYMENT SERVICE
# =============================================================================

@dataclass
class BulkPaymentItemResult:
    index: int
    status: str  # recorded | failed
    student_id: str = ''
    receipt_number: Optional[str] = None
    amount: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class BulkPaymentResult:
    results: List[BulkPaymentItemResult] = field(default_factory=list)

    RECORDED = 'recorded'
    FAILED = 'failed'

    @property
    def successful(self):
        return sum(1 for r in self.results if r.status == self.RECORDED)

    @property
    def failed(self):
        return sum(1 for r in self.results if r.status == self.FAILED)

    @property
    def total_amount(self):
        return sum(r.amount or 0 for r in self.results if r.status == self.RECORDED)

    def to_dict(self):
        return {
            'successful': self.successful,
            'failed': self.failed,
            'total_amount': self.total_amount,
            'results': [vars(r) for r in self.results],
        }


class PaymentService:
    """Record payments and post them to the ledger"""

    @staticmethod
    def record_payment(student, amount, method, payment_date=None, reference='', notes='',
                       posted_by=None, profile=None, **details):
        """
        Record a payment and post its credit entry.

        Args:
            student: Student instance
            amount (int): Positive amount in minor units
            method: One of Payment.METHOD_CHOICES
            payment_date (date): Defaults to today
            reference (str): External reference (bank slip, transaction code)
            notes (str): Optional notes
            posted_by (str): Label recorded as the actor of the posting
            **details: transaction_id, bank_name, cheque_number

        Returns:
            Payment instance (with ledger_entry set)

        Raises:
            InvalidAmountError: If amount is not positive

        Example:
            payment = PaymentService.record_payment(student, 600000, Payment.METHOD_CASH)
        """
        validate_positive_amount(amount)
        if method not in dict(Payment.METHOD_CHOICES):
            raise ValueError(f"Invalid payment method: {method}")
        unknown = set(details) - {'transaction_id', 'bank_name', 'cheque_number'}
        if unknown:
            raise TypeError(f"Unexpected payment details: {', '.join(sorted(unknown))}")

        profile = resolve_profile(profile)
        payment_date = payment_date or timezone.localdate()

        with acting_as(posted_by):
            receipt_number = generate_receipt_number(payment_date)

            with locked_student(student) as locked:
                payment = Payment.objects.create(
                    receipt_number=receipt_number,
                    student=locked,
                    amount=amount,
                    method=method,
                    payment_date=payment_date,
                    reference=reference or '',
                    notes=notes or '',
                    **details,
                )

                entry = LedgerService.append_entry(
                    locked,
                    LedgerEntry.CREDIT,
                    amount,
                    LedgerEntry.SOURCE_PAYMENT,
                    f"Payment received ({payment.get_method_display()})"
                    + (f" ref {reference}" if reference else ""),
                    reference_id=receipt_number,
                    notes=notes,
                    profile=profile,
                )

                payment.ledger_entry = entry
                payment.save(update_fields=['ledger_entry'])

                InvoiceService.refresh_invoice_statuses(locked, balance=entry.balance_after)

        logger.info(f"Recorded payment {receipt_number} of {amount} from {student.name}")
        return payment

    @staticmethod
    def record_bulk_payments(payments, posted_by=None, profile=None, prepare=None):
        """
        Record many payments, each in its own transaction.

        A failing payment is reported in its result row and never stops the
        others; payments already recorded stay recorded.

        Args:
            payments: Iterable of dicts with a 'student' (Student or pk) plus
                the keyword arguments of record_payment()
            posted_by (str): Actor label used when an item names none
            prepare: Optional callable turning each raw item into such a
                dict; its errors count against that item only

        Returns:
            BulkPaymentResult
        """
        profile = resolve_profile(profile)
        batch = BulkPaymentResult()

        for index, raw in enumerate(payments):
            result = BulkPaymentItemResult(index=index, status='')
            try:
                data = dict(prepare(raw) if prepare else raw)
                student = data.pop('student', None)
                result.student_id = str(getattr(student, 'pk', student) or '')
                if not isinstance(student, Student):
                    student = Student.objects.get(pk=student)

                payment = PaymentService.record_payment(
                    student, posted_by=data.pop('posted_by', None) or posted_by, profile=profile, **data
                )
                result.status = BulkPaymentResult.RECORDED
                result.receipt_number = payment.receipt_number
                result.amount = payment.amount
            except HostelError as e:
                result.status = BulkPaymentResult.FAILED
                result.error, result.error_code = str(e), e.code
            except (ObjectDoesNotExist, ValidationError):
                result.status = BulkPaymentResult.FAILED
                result.error, result.error_code = f"Unknown student {result.student_id!r}", 'not_found'
            except (TypeError, ValueError) as e:
                result.status = BulkPaymentResult.FAILED
                result.error, result.error_code = str(e), 'invalid_request'
            except Exception as e:
                logger.error(f"Unexpected error recording bulk payment #{index}: {e}", exc_info=True)
                result.status = BulkPaymentResult.FAILED
                result.error, result.error_code = str(e), 'unexpected_error'

            if result.status == BulkPaymentResult.FAILED:
                logger.warning(f"Bulk payment #{index} failed with {result.error_code}: {result.error}")
            batch.results.append(result)

        logger.info(f"Bulk payments done: {batch.successful} recorded, {batch.failed} failed")
        with acting_as(posted_by):
            log_financial_activity(
                'PAYMENT_BATCH',
                amount=batch.total_amount,
                notes=f"{batch.successful} recorded, {batch.failed} failed",
                risk_level='MEDIUM' if batch.failed else 'LOW',
            )
        return batch


# =============================================================================
# DISCOUNT SERVICE
# =============================================================================

class DiscountService:
    """Create discounts and apply them as ledger credits"""

    @staticmethod
    def create_discount(student, reason, valid_from=None, valid_to=None, amount=None,
                        percentage_value=None, base_amount=None, max_amount=None,
                        applied_by='', notes=''):
        """
        Create an ACTIVE discount for a student.

        Exactly one of amount (fixed, minor units) or percentage_value
        (0-100) is given. base_amount and max_amount only apply to
        percentage discounts.

        Returns:
            Discount instance

        Raises:
            InvalidAmountError: On any invalid amount, percentage or date range
            StudentNotBillableError: If the student has checked out
        """
        if not reason or not str(reason).strip():
            raise ValueError("A discount needs a reason")
        if (amount is None) == (percentage_value is None):
            raise InvalidAmountError("Give either a fixed amount or a percentage, not both")

        if amount is not None:
            validate_positive_amount(amount, 'Discount amount')
        else:
            try:
                percentage_value = Decimal(str(percentage_value))
            except (InvalidOperation, ValueError):
                raise InvalidAmountError(f"Invalid percentage: {percentage_value!r}")
            if not percentage_value.is_finite() or not Decimal('0') <= percentage_value <= Decimal('100'):
                raise InvalidAmountError(f"Percentage must be between 0 and 100, got {percentage_value}")

        for label, value in (('base_amount', base_amount), ('max_amount', max_amount)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidAmountError(f"{label} must be a non-negative integer of minor units, got {value!r}")

        valid_from = valid_from or timezone.localdate()
        if valid_to is not None and valid_from > valid_to:
            raise InvalidAmountError(f"valid_from ({valid_from}) is after valid_to ({valid_to})")

        if student.status == Student.STATUS_CHECKED_OUT:
            raise StudentNotBillableError(f"{student.name} has checked out")

        discount = Discount.objects.create(
            student=student,
            amount=amount,
            percentage_value=percentage_value,
            base_amount=base_amount,
            max_amount=max_amount,
            reason=str(reason).strip(),
            valid_from=valid_from,
            valid_to=valid_to,
            applied_by=applied_by or '',
            notes=notes or '',
        )

        logger.info(f"Created discount {discount.pk} for {student.name}: {discount}")
        return discount

    @staticmethod
    def calculate_discount_amount(discount, student=None):
        """
        Amount a discount credits, in minor units.

        Percentages apply to base_amount (or the monthly fee), are rounded
        half-up and capped at max_amount.
        """
        if not discount.is_percentage:
            return discount.amount

        student = student or discount.student
        base = discount.base_amount if discount.base_amount is not None else student.monthly_fee
        value = (Decimal(base) * Decimal(discount.percentage_value) / Decimal('100')).quantize(
            Decimal('1'), rounding=ROUND_HALF_UP
        )
        value = int(value)
        if discount.max_amount is not None:
            value = min(value, discount.max_amount)
        return value

    @staticmethod
    def apply_discount(discount, posted_by=None, profile=None):
        """
        Post the discount as one credit entry dated today.

        Validity is checked against today, the date of the credit entry.

        Args:
            discount: ACTIVE Discount instance
            posted_by (str): Label recorded as the actor of the posting

        Returns:
            Discount instance (APPLIED, with ledger_entry and applied_amount)

        Raises:
            ExpiredDiscountError: If today is after valid_to; the discount
                is marked EXPIRED and nothing is posted
            StudentNotBillableError: If the student is not ACTIVE
            InvalidAmountError: If the discount is not yet valid, not ACTIVE,
                or its computed amount is not positive
        """
        profile = resolve_profile(profile)
        on_date = timezone.localdate()
        expired = False

        with acting_as(posted_by), locked_student(discount.student) as student:
            if student.status != Student.STATUS_ACTIVE:
                raise StudentNotBillableError(
                    f"{student.name} is {student.get_status_display()}, discounts cannot be applied"
                )
            discount = Discount.objects.select_for_update().get(pk=discount.pk)

            if discount.status == Discount.STATUS_EXPIRED:
                raise ExpiredDiscountError(f"Discount {discount.pk} expired on {discount.valid_to}")
            if discount.status != Discount.STATUS_ACTIVE:
                raise InvalidAmountError(
                    f"Discount {discount.pk} cannot be applied, status {discount.get_status_display()}"
                )
            if on_date < discount.valid_from:
                raise InvalidAmountError(f"Discount {discount.pk} is not valid before {discount.valid_from}")

            if discount.valid_to is not None and on_date > discount.valid_to:
                discount.status = Discount.STATUS_EXPIRED
                discount.save(update_fields=['status'])
                expired = True
            else:
                amount = DiscountService.calculate_discount_amount(discount, student)
                if amount <= 0:
                    raise InvalidAmountError(f"Discount {discount.pk} computes to {amount}; nothing to apply")

                entry = LedgerService.append_entry(
                    student,
                    LedgerEntry.CREDIT,
                    amount,
                    LedgerEntry.SOURCE_DISCOUNT,
                    f"Discount: {discount.reason}",
                    reference_id=str(discount.pk),
                    notes=discount.notes,
                    profile=profile,
                )

                discount.status = Discount.STATUS_APPLIED
                discount.applied_amount = amount
                discount.applied_on = on_date
                discount.ledger_entry = entry
                if posted_by and not discount.applied_by:
                    discount.applied_by = posted_by
                discount.save(update_fields=['status', 'applied_amount', 'applied_on', 'ledger_entry', 'applied_by'])

                InvoiceService.refresh_invoice_statuses(student, balance=entry.balance_after)

        if expired:
            logger.warning(f"Discount {discount.pk} for {student.name} expired on {discount.valid_to}")
            raise ExpiredDiscountError(f"Discount {discount.pk} expired on {discount.valid_to}")

        logger.info(f"Applied discount {discount.pk} of {discount.applied_amount} to {student.name}")
        return discount

    @staticmethod
    @transaction.atomic
    def apply_new_discount(student, reason, posted_by=None, profile=None, **discount_data):
        """
        Create a discount and apply it in one transaction.

        Accepts the keyword arguments of create_discount(); nothing is kept
        when applying fails.
        """
        discount = DiscountService.create_discount(student, reason, **discount_data)
        return DiscountService.apply_discount(discount, posted_by=posted_by, profile=profile)

    @staticmethod
    def cancel_discount(discount, reason, profile=None):
        """
        Cancel a discount. An applied discount has its credit reversed.

        Raises:
            InvalidAmountError: If the discount is already cancelled or expired
        """
        if not reason or not reason.strip():
            raise ValueError("Cancelling a discount needs a reason")

        with locked_student(discount.student) as student:
            discount = Discount.objects.select_for_update().get(pk=discount.pk)
            if discount.status not in (Discount.STATUS_ACTIVE, Discount.STATUS_APPLIED):
                raise InvalidAmountError(
                    f"Discount {discount.pk} cannot be cancelled, status {discount.get_status_display()}"
                )

            if discount.status == Discount.STATUS_APPLIED:
                reversal = LedgerService.reverse_entry(discount.ledger_entry, reason, profile=profile)
                InvoiceService.refresh_invoice_statuses(student, balance=reversal.balance_after)

            discount.status = Discount.STATUS_CANCELLED
            discount.set_change_reason(reason.strip())
            discount.save(update_fields=['status', 'change_reason'])

        logger.warning(f"Cancelled discount {discount.pk} of {student.name}: {reason}")
        return discount

    @staticmethod
    def expire_discounts(on_date=None):
        """
        Mark ACTIVE discounts whose valid_to has passed as EXPIRED.

        Returns:
            int: Number of discounts expired
        """
        on_date = on_date or timezone.localdate()
        expired = 0
        for discount in Discount.objects.filter(status=Discount.STATUS_ACTIVE, valid_to__lt=on_date):
            discount.status = Discount.STATUS_EXPIRED
            discount.save(update_fields=['status'])
            expired += 1
        if expired:
            logger.info(f"Expired {expired} discount(s) as of {on_date}")
        return expired
