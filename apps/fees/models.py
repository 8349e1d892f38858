# fees/models.py

"""
Hostel Billing Models

- Number sequences (per-month counters for invoice and receipt numbers)
- Invoices and their line items
- Payments
- Discounts

Every money movement here is mirrored by exactly one LedgerEntry; the ledger
is the source of truth for balances. Amounts are int minor units.

All user tracking handled automatically by BaseModel
"""

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from decimal import Decimal
import logging

from utils.models import BaseModel
from students.models import Student

logger = logging.getLogger(__name__)


# =============================================================================
# NUMBER SEQUENCES
# =============================================================================

class InvoiceSequence(models.Model):
    """
    Counter row per (series, year, month).

    Incremented under select_for_update; a number handed out is never
    handed out again, even when the invoice using it is rolled back.
    """

    SERIES_INVOICE = 'INVOICE'
    SERIES_RECEIPT = 'RECEIPT'

    SERIES_CHOICES = [
        (SERIES_INVOICE, 'Invoice'),
        (SERIES_RECEIPT, 'Receipt'),
    ]

    series = models.CharField("Series", max_length=10, choices=SERIES_CHOICES, default=SERIES_INVOICE)
    year = models.PositiveIntegerField("Year")
    month = models.PositiveSmallIntegerField(
        "Month",
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    last_value = models.PositiveIntegerField("Last Value", default=0)

    class Meta:
        verbose_name = "Invoice Sequence"
        verbose_name_plural = "Invoice Sequences"
        constraints = [
            models.UniqueConstraint(fields=['series', 'year', 'month'], name='sequence_unique_series_month'),
        ]

    def __str__(self):
        return f"{self.series} {self.year}-{self.month:02d}: {self.last_value}"


# =============================================================================
# INVOICE MODELS
# =============================================================================

class Invoice(BaseModel):
    """Monthly or checkout invoice; posted to the ledger as one debit"""

    TYPE_MONTHLY = 'MONTHLY'
    TYPE_CHECKOUT = 'CHECKOUT'

    INVOICE_TYPES = [
        (TYPE_MONTHLY, 'Monthly'),
        (TYPE_CHECKOUT, 'Checkout'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_PARTIALLY_PAID = 'PARTIALLY_PAID'
    STATUS_PAID = 'PAID'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending Payment'),
        (STATUS_PARTIALLY_PAID, 'Partially Paid'),
        (STATUS_PAID, 'Paid in Full'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    reference_id = models.CharField("Reference ID", max_length=50, unique=True, db_index=True)
    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='invoices'
    )
    invoice_type = models.CharField("Invoice Type", max_length=10, choices=INVOICE_TYPES, default=TYPE_MONTHLY)

    # -------------------------------------------------------------------------
    # BILLING PERIOD & DATES
    # -------------------------------------------------------------------------

    billing_year = models.PositiveIntegerField("Billing Year")
    billing_month = models.PositiveSmallIntegerField(
        "Billing Month",
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    period_start = models.DateField("Period Start")
    period_end = models.DateField("Period End")
    issue_date = models.DateField("Issue Date", db_index=True)
    due_date = models.DateField("Due Date", db_index=True)

    # -------------------------------------------------------------------------
    # AMOUNTS & STATUS
    # -------------------------------------------------------------------------

    total = models.BigIntegerField("Total", validators=[MinValueValidator(1)], help_text="In minor units")
    status = models.CharField("Status", max_length=15, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    notes = models.TextField("Notes", blank=True)

    # -------------------------------------------------------------------------
    # LEDGER INTEGRATION
    # -------------------------------------------------------------------------

    ledger_entry = models.OneToOneField(
        'ledger.LedgerEntry',
        verbose_name="Ledger Entry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoice',
        help_text="Debit posted for this invoice"
    )

    class Meta:
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        ordering = ['-billing_year', '-billing_month', 'reference_id']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'billing_year', 'billing_month'],
                condition=models.Q(invoice_type='MONTHLY') & ~models.Q(status='CANCELLED'),
                name='invoice_one_monthly_per_student_month',
            ),
            models.CheckConstraint(condition=models.Q(total__gt=0), name='invoice_total_positive'),
        ]
        indexes = [
            models.Index(fields=['student', 'status']),
            models.Index(fields=['billing_year', 'billing_month']),
        ]

    def __str__(self):
        return f"{self.reference_id} - {self.student.name}"

    @property
    def is_open(self):
        return self.status in (self.STATUS_PENDING, self.STATUS_PARTIALLY_PAID)


class InvoiceItem(BaseModel):
    """Line item of an invoice"""

    ITEM_BASE = 'BASE'
    ITEM_LAUNDRY = 'LAUNDRY'
    ITEM_FOOD = 'FOOD'
    ITEM_PRORATION = 'PRORATION'
    ITEM_ADDITIONAL = 'ADDITIONAL'

    ITEM_TYPES = [
        (ITEM_BASE, 'Room Rent'),
        (ITEM_LAUNDRY, 'Laundry'),
        (ITEM_FOOD, 'Food'),
        (ITEM_PRORATION, 'Proration Adjustment'),
        (ITEM_ADDITIONAL, 'Additional Charge'),
    ]

    invoice = models.ForeignKey(
        Invoice,
        verbose_name="Invoice",
        on_delete=models.CASCADE,
        related_name='items'
    )
    item_type = models.CharField("Item Type", max_length=12, choices=ITEM_TYPES)
    description = models.CharField("Description", max_length=255)
    amount = models.BigIntegerField(
        "Amount",
        help_text="In minor units; proration items are negative"
    )

    class Meta:
        verbose_name = "Invoice Item"
        verbose_name_plural = "Invoice Items"
        ordering = ['created_at']

    def __str__(self):
        return f"{self.invoice.reference_id}: {self.description} ({self.amount})"


# =============================================================================
# PAYMENT MODEL
# =============================================================================

class Payment(BaseModel):
    """Money received from a student; posted to the ledger as one credit"""

    METHOD_CASH = 'CASH'
    METHOD_BANK_TRANSFER = 'BANK_TRANSFER'
    METHOD_CARD = 'CARD'
    METHOD_ONLINE = 'ONLINE'
    METHOD_CHEQUE = 'CHEQUE'
    METHOD_UPI = 'UPI'
    METHOD_MOBILE_WALLET = 'MOBILE_WALLET'

    METHOD_CHOICES = [
        (METHOD_CASH, 'Cash'),
        (METHOD_BANK_TRANSFER, 'Bank Transfer'),
        (METHOD_CARD, 'Card'),
        (METHOD_ONLINE, 'Online'),
        (METHOD_CHEQUE, 'Cheque'),
        (METHOD_UPI, 'UPI'),
        (METHOD_MOBILE_WALLET, 'Mobile Wallet'),
    ]

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    receipt_number = models.CharField("Receipt Number", max_length=50, unique=True, db_index=True)
    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='payments'
    )

    # -------------------------------------------------------------------------
    # PAYMENT DETAILS
    # -------------------------------------------------------------------------

    amount = models.BigIntegerField("Amount", validators=[MinValueValidator(1)], help_text="In minor units")
    method = models.CharField("Payment Method", max_length=15, choices=METHOD_CHOICES)
    payment_date = models.DateField("Payment Date", db_index=True)
    reference = models.CharField("Reference", max_length=255, blank=True, db_index=True)
    transaction_id = models.CharField("Transaction ID", max_length=255, blank=True)
    bank_name = models.CharField("Bank Name", max_length=100, blank=True)
    cheque_number = models.CharField("Cheque Number", max_length=50, blank=True)
    notes = models.TextField("Notes", blank=True)

    # -------------------------------------------------------------------------
    # LEDGER INTEGRATION
    # -------------------------------------------------------------------------

    ledger_entry = models.OneToOneField(
        'ledger.LedgerEntry',
        verbose_name="Ledger Entry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payment'
    )

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ['-payment_date', '-created_at']
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name='payment_amount_positive'),
        ]
        indexes = [
            models.Index(fields=['student', 'payment_date']),
            models.Index(fields=['method']),
        ]

    def __str__(self):
        return f"{self.receipt_number} - {self.student.name} ({self.amount})"


# =============================================================================
# DISCOUNT MODEL
# =============================================================================

class Discount(BaseModel):
    """
    Fixed or percentage discount for one student.

    Percentage discounts are computed on base_amount (or the student's
    monthly fee when empty), rounded half-up and capped at max_amount.
    Applying a discount posts one credit and freezes applied_amount.
    """

    STATUS_ACTIVE = 'ACTIVE'
    STATUS_APPLIED = 'APPLIED'
    STATUS_EXPIRED = 'EXPIRED'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_APPLIED, 'Applied'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    student = models.ForeignKey(
        Student,
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='discounts'
    )

    # -------------------------------------------------------------------------
    # AMOUNT
    # -------------------------------------------------------------------------

    amount = models.BigIntegerField(
        "Fixed Amount",
        null=True,
        blank=True,
        help_text="In minor units; leave empty for a percentage discount"
    )
    percentage_value = models.DecimalField(
        "Percentage",
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    base_amount = models.BigIntegerField(
        "Base Amount",
        null=True,
        blank=True,
        help_text="Amount the percentage applies to; defaults to the monthly fee"
    )
    max_amount = models.BigIntegerField(
        "Maximum Amount",
        null=True,
        blank=True,
        help_text="Cap for percentage discounts, in minor units"
    )

    # -------------------------------------------------------------------------
    # VALIDITY & APPROVAL
    # -------------------------------------------------------------------------

    reason = models.CharField("Reason", max_length=255)
    valid_from = models.DateField("Valid From")
    valid_to = models.DateField("Valid To", null=True, blank=True)
    applied_by = models.CharField("Applied By", max_length=100, blank=True)
    notes = models.TextField("Notes", blank=True)

    # -------------------------------------------------------------------------
    # APPLICATION
    # -------------------------------------------------------------------------

    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    applied_amount = models.BigIntegerField("Applied Amount", null=True, blank=True)
    applied_on = models.DateField("Applied On", null=True, blank=True)
    ledger_entry = models.OneToOneField(
        'ledger.LedgerEntry',
        verbose_name="Ledger Entry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='discount'
    )

    class Meta:
        verbose_name = "Discount"
        verbose_name_plural = "Discounts"
        ordering = ['-valid_from', '-created_at']
        indexes = [
            models.Index(fields=['student', 'status']),
        ]

    def __str__(self):
        if self.is_percentage:
            return f"{self.percentage_value}% - {self.student.name} ({self.reason})"
        return f"{self.amount} - {self.student.name} ({self.reason})"

    @property
    def is_percentage(self):
        return self.percentage_value is not None
