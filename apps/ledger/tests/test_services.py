"""
Tests for ledger posting, immutability, reversals, statistics, exports and
the verify_ledgers command.
"""

from datetime import date, timedelta
from io import BytesIO, StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone
from openpyxl import load_workbook

from core.exceptions import (
    BackdatedEntryError, DuplicateReversalError, ImmutableEntryError,
    InconsistentLedgerError, InvalidAmountError,
)
from ledger.exports import build_statement_workbook, statement_bytes
from ledger.models import LedgerEntry
from ledger.services import LedgerService
from ledger.stats import get_ledger_statistics
from students.models import Student


def make_student(name='Asha Rai', **kwargs):
    defaults = {
        'base_monthly_fee': 500000,
        'laundry_fee': 30000,
        'food_fee': 70000,
        'enrollment_date': date(2023, 12, 1),
    }
    defaults.update(kwargs)
    return Student.objects.create(name=name, **defaults)


class LedgerPostingTests(TestCase):
    def setUp(self):
        self.student = make_student()

    def test_entries_carry_sequence_and_running_balance(self):
        first = LedgerService.post_entry(
            self.student, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice'
        )
        second = LedgerService.post_entry(
            self.student, LedgerEntry.CREDIT, 500, LedgerEntry.SOURCE_PAYMENT, 'Payment'
        )
        third = LedgerService.post_entry(
            self.student, LedgerEntry.DEBIT, 200, LedgerEntry.SOURCE_ADJUSTMENT, 'Adjustment'
        )
        fourth = LedgerService.post_entry(
            self.student, LedgerEntry.CREDIT, 800, LedgerEntry.SOURCE_PAYMENT, 'Payment'
        )

        self.assertEqual([e.sequence for e in (first, second, third, fourth)], [1, 2, 3, 4])
        self.assertEqual(
            [e.balance_after for e in (first, second, third, fourth)], [1000, 500, 700, -100]
        )
        self.assertEqual(first.entry_date, timezone.localdate())

        summary = LedgerService.get_student_balance(self.student)
        self.assertEqual(summary.current_balance, -100)
        self.assertEqual(summary.balance_type, 'Cr')
        self.assertEqual(LedgerService.verify_student_ledger(self.student), [1000, 500, 700, -100])

    def test_ledgers_are_per_student(self):
        other = make_student(name='Bikash Thapa')
        LedgerService.post_entry(self.student, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice')
        entry = LedgerService.post_entry(other, LedgerEntry.DEBIT, 300, LedgerEntry.SOURCE_INVOICE, 'Invoice')

        self.assertEqual(entry.sequence, 1)
        self.assertEqual(entry.balance_after, 300)

    def test_invalid_amounts_are_rejected(self):
        for amount in (0, -100, 10.5, '100', True):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmountError):
                    LedgerService.post_entry(
                        self.student, LedgerEntry.DEBIT, amount, LedgerEntry.SOURCE_INVOICE, 'Invoice'
                    )
        self.assertFalse(LedgerEntry.objects.exists())

    def test_invalid_type_or_source(self):
        with self.assertRaises(ValueError):
            LedgerService.post_entry(self.student, 'SIDEWAYS', 100, LedgerEntry.SOURCE_INVOICE, 'x')
        with self.assertRaises(ValueError):
            LedgerService.post_entry(self.student, LedgerEntry.DEBIT, 100, 'GIFT', 'x')

    def test_backdated_entries_are_rejected(self):
        today = timezone.localdate()
        LedgerService.post_entry(
            self.student, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice', entry_date=today
        )
        with self.assertRaises(BackdatedEntryError):
            LedgerService.post_entry(
                self.student, LedgerEntry.CREDIT, 100, LedgerEntry.SOURCE_PAYMENT, 'Payment',
                entry_date=today - timedelta(days=1),
            )
        self.assertEqual(LedgerEntry.objects.count(), 1)

    def test_inconsistent_ledger_halts_posting(self):
        LedgerEntry.objects.create(
            student=self.student,
            entry_date=timezone.localdate(),
            sequence=1,
            entry_type=LedgerEntry.DEBIT,
            source=LedgerEntry.SOURCE_INVOICE,
            amount=1000,
            balance_after=999,
            description='Corrupted',
        )

        with self.assertRaises(InconsistentLedgerError):
            LedgerService.post_entry(self.student, LedgerEntry.CREDIT, 100, LedgerEntry.SOURCE_PAYMENT, 'x')
        with self.assertRaises(InconsistentLedgerError):
            LedgerService.get_student_balance(self.student)

        failures = LedgerService.find_inconsistent_ledgers()
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0][0], self.student)


class ImmutabilityTests(TestCase):
    def setUp(self):
        self.student = make_student()
        self.entry = LedgerService.post_entry(
            self.student, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice'
        )

    def test_entry_cannot_be_saved_again(self):
        self.entry.amount = 1
        with self.assertRaises(ImmutableEntryError):
            self.entry.save()

    def test_entry_cannot_be_deleted(self):
        with self.assertRaises(ImmutableEntryError):
            self.entry.delete()

    def test_bulk_update_and_delete_are_refused(self):
        with self.assertRaises(ImmutableEntryError):
            LedgerEntry.objects.filter(pk=self.entry.pk).update(amount=1)
        with self.assertRaises(ImmutableEntryError):
            LedgerEntry.objects.all().delete()
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.amount, 1000)


class AdjustmentAndReversalTests(TestCase):
    def setUp(self):
        self.student = make_student()
        self.invoice_entry = LedgerService.post_entry(
            self.student, LedgerEntry.DEBIT, 600000, LedgerEntry.SOURCE_INVOICE, 'Invoice',
            reference_id='BL-2024-01-000001',
        )

    def test_adjustment(self):
        entry = LedgerService.post_adjustment(
            self.student, 25000, LedgerEntry.CREDIT, 'Overcharged laundry'
        )
        self.assertEqual(entry.source, LedgerEntry.SOURCE_ADJUSTMENT)
        self.assertEqual(entry.balance_after, 575000)

    def test_adjustment_needs_description(self):
        with self.assertRaises(ValueError):
            LedgerService.post_adjustment(self.student, 100, LedgerEntry.CREDIT, '   ')

    def test_reversal_posts_opposite_entry(self):
        reversal = LedgerService.reverse_entry(self.invoice_entry, 'Billed by mistake')

        self.assertEqual(reversal.entry_type, LedgerEntry.CREDIT)
        self.assertEqual(reversal.amount, 600000)
        self.assertEqual(reversal.source, LedgerEntry.SOURCE_REVERSAL)
        self.assertEqual(reversal.reverses, self.invoice_entry)
        self.assertEqual(reversal.reference_id, 'BL-2024-01-000001')
        self.assertEqual(reversal.balance_after, 0)

    def test_entry_can_only_be_reversed_once(self):
        reversal = LedgerService.reverse_entry(self.invoice_entry, 'Mistake')

        with self.assertRaises(DuplicateReversalError):
            LedgerService.reverse_entry(self.invoice_entry, 'Again')
        with self.assertRaises(DuplicateReversalError):
            LedgerService.reverse_entry(reversal, 'Undo the undo')
        self.assertEqual(LedgerEntry.objects.count(), 2)

    def test_reversal_needs_reason(self):
        with self.assertRaises(ValueError):
            LedgerService.reverse_entry(self.invoice_entry, '')


class StatisticsTests(TestCase):
    def test_statistics(self):
        debtor = make_student(name='Debtor')
        creditor = make_student(name='Creditor')
        settled = make_student(name='Settled')

        LedgerService.post_entry(debtor, LedgerEntry.DEBIT, 6000, LedgerEntry.SOURCE_INVOICE, 'Invoice')
        LedgerService.post_entry(creditor, LedgerEntry.CREDIT, 2000, LedgerEntry.SOURCE_PAYMENT, 'Advance')
        LedgerService.post_entry(settled, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice')
        LedgerService.post_entry(settled, LedgerEntry.CREDIT, 1000, LedgerEntry.SOURCE_PAYMENT, 'Payment')

        stats = get_ledger_statistics()

        self.assertEqual(stats['total_entries'], 4)
        self.assertEqual(stats['total_debits'], 7000)
        self.assertEqual(stats['total_credits'], 3000)
        self.assertEqual(stats['entry_sources'], {'INVOICE': 2, 'PAYMENT': 2})
        self.assertEqual(stats['students_with_debit'], 1)
        self.assertEqual(stats['students_with_credit'], 1)
        self.assertEqual(stats['students_settled'], 1)
        self.assertEqual(stats['outstanding_amount'], 6000)
        self.assertEqual(stats['advance_amount'], 2000)

        month = timezone.localdate().strftime('%Y-%m')
        self.assertEqual(stats['monthly_trends'][month], {'debits': 7000, 'credits': 3000, 'count': 4})


class StatementExportTests(TestCase):
    def setUp(self):
        self.student = make_student()
        LedgerService.post_entry(self.student, LedgerEntry.DEBIT, 600000, LedgerEntry.SOURCE_INVOICE, 'Invoice')
        LedgerService.post_entry(self.student, LedgerEntry.CREDIT, 100050, LedgerEntry.SOURCE_PAYMENT, 'Payment')

    def test_workbook_lists_entries_and_closing_balance(self):
        ws = build_statement_workbook(self.student).active

        self.assertEqual(ws['A4'].value, 'Date')
        self.assertEqual(ws['C5'].value, 'Invoice')
        self.assertEqual(float(ws['F5'].value), 6000.00)
        self.assertEqual(float(ws['G6'].value), 1000.50)
        self.assertEqual(float(ws['H6'].value), 4999.50)
        self.assertEqual(ws['I6'].value, 'Dr')

    def test_statement_bytes_is_a_valid_workbook(self):
        workbook = load_workbook(BytesIO(statement_bytes(self.student)))
        self.assertEqual(workbook.active.title, 'Ledger Statement')


class VerifyLedgersCommandTests(TestCase):
    def test_consistent_ledgers(self):
        student = make_student()
        LedgerService.post_entry(student, LedgerEntry.DEBIT, 1000, LedgerEntry.SOURCE_INVOICE, 'Invoice')
        out = StringIO()

        call_command('verify_ledgers', stdout=out)

        self.assertIn('consistent', out.getvalue())

    def test_inconsistent_ledger_fails(self):
        student = make_student()
        LedgerEntry.objects.create(
            student=student,
            entry_date=timezone.localdate(),
            sequence=1,
            entry_type=LedgerEntry.DEBIT,
            source=LedgerEntry.SOURCE_INVOICE,
            amount=1000,
            balance_after=0,
            description='Corrupted',
        )

        with self.assertRaises(CommandError):
            call_command('verify_ledgers', stdout=StringIO(), stderr=StringIO())
