# ledger/models.py

"""
Student Ledger

Append-only journal of debit/credit postings per student. An entry is never
updated or deleted once written; corrections are posted as reversal or
adjustment entries. Each entry stores the running balance through itself
(balance_after), so a ledger can be verified forward from its first entry.

Amounts are int minor units; debits increase what the student owes,
credits decrease it.
"""

from django.db import models
import logging

from utils.models import BaseModel
from core.exceptions import ImmutableEntryError

logger = logging.getLogger(__name__)


class LedgerEntryQuerySet(models.QuerySet):
    """Queryset that refuses bulk mutation of posted entries"""

    def update(self, **kwargs):
        raise ImmutableEntryError("Ledger entries cannot be updated")

    def delete(self):
        raise ImmutableEntryError("Ledger entries cannot be deleted")

    def for_student(self, student):
        return self.filter(student=student).order_by('entry_date', 'sequence')


class LedgerEntry(BaseModel):
    """One immutable debit or credit posting against a student's account"""

    DEBIT = 'DEBIT'
    CREDIT = 'CREDIT'

    ENTRY_TYPES = [
        (DEBIT, 'Debit'),
        (CREDIT, 'Credit'),
    ]

    SOURCE_INVOICE = 'INVOICE'
    SOURCE_PAYMENT = 'PAYMENT'
    SOURCE_DISCOUNT = 'DISCOUNT'
    SOURCE_ADJUSTMENT = 'ADJUSTMENT'
    SOURCE_REFUND = 'REFUND'
    SOURCE_DEDUCTION = 'DEDUCTION'
    SOURCE_SETTLEMENT = 'SETTLEMENT'
    SOURCE_REVERSAL = 'REVERSAL'

    SOURCES = [
        (SOURCE_INVOICE, 'Invoice'),
        (SOURCE_PAYMENT, 'Payment'),
        (SOURCE_DISCOUNT, 'Discount'),
        (SOURCE_ADJUSTMENT, 'Adjustment'),
        (SOURCE_REFUND, 'Refund'),
        (SOURCE_DEDUCTION, 'Checkout Deduction'),
        (SOURCE_SETTLEMENT, 'Checkout Settlement'),
        (SOURCE_REVERSAL, 'Reversal'),
    ]

    # -------------------------------------------------------------------------
    # CORE FIELDS
    # -------------------------------------------------------------------------

    student = models.ForeignKey(
        'students.Student',
        verbose_name="Student",
        on_delete=models.PROTECT,
        related_name='ledger_entries'
    )
    entry_date = models.DateField("Entry Date", db_index=True)
    sequence = models.PositiveIntegerField(
        "Sequence",
        help_text="Per-student insertion order; breaks ties between same-date entries"
    )
    entry_type = models.CharField("Entry Type", max_length=6, choices=ENTRY_TYPES)
    source = models.CharField("Source", max_length=12, choices=SOURCES, db_index=True)
    amount = models.BigIntegerField("Amount", help_text="Always positive, in minor units")
    balance_after = models.BigIntegerField(
        "Balance After",
        help_text="Running balance through this entry; positive = owed"
    )

    # -------------------------------------------------------------------------
    # DESCRIPTION & REFERENCES
    # -------------------------------------------------------------------------

    description = models.TextField("Description")
    reference_id = models.CharField("Reference ID", max_length=50, blank=True, db_index=True)
    notes = models.TextField("Notes", blank=True)
    reverses = models.OneToOneField(
        'self',
        verbose_name="Reverses Entry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reversal'
    )

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"
        ordering = ['entry_date', 'sequence']
        constraints = [
            models.UniqueConstraint(fields=['student', 'sequence'], name='ledger_unique_student_sequence'),
            models.CheckConstraint(condition=models.Q(amount__gt=0), name='ledger_amount_positive'),
        ]
        indexes = [
            models.Index(fields=['student', 'entry_date', 'sequence']),
        ]

    def __str__(self):
        return f"{self.get_source_display()} {self.get_entry_type_display()} {self.amount} ({self.reference_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableEntryError(f"Ledger entry {self.pk} is immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError(f"Ledger entry {self.pk} cannot be deleted")

    @property
    def is_debit(self):
        return self.entry_type == self.DEBIT

    @property
    def signed_amount(self):
        """Effect on the balance: +amount for debits, -amount for credits"""
        return self.amount if self.is_debit else -self.amount
