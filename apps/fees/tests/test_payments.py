"""
Tests for payments and discounts.
"""

from datetime import date, timedelta
from decimal import Decimal
import uuid

from django.test import TestCase
from django.utils import timezone

from core.exceptions import ExpiredDiscountError, InvalidAmountError, StudentNotBillableError
from fees.models import Discount, Invoice, Payment
from fees.invoice_generators import MonthlyInvoiceGenerator
from fees.services import DiscountService, PaymentService
from fees.stats import get_payment_statistics
from ledger.models import LedgerEntry
from ledger.services import LedgerService
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


class PaymentTests(TestCase):
    def setUp(self):
        self.student = make_student()
        self.invoice = MonthlyInvoiceGenerator.generate(self.student, 2024, 1)

    def test_payment_posts_a_credit(self):
        payment = PaymentService.record_payment(
            self.student, 600000, Payment.METHOD_BANK_TRANSFER,
            payment_date=date(2024, 1, 20), reference='NIBL-778', bank_name='NIBL',
        )

        self.assertEqual(payment.receipt_number, 'RCP-202401-000001')
        self.assertEqual(payment.bank_name, 'NIBL')
        entry = payment.ledger_entry
        self.assertEqual(entry.entry_type, LedgerEntry.CREDIT)
        self.assertEqual(entry.source, LedgerEntry.SOURCE_PAYMENT)
        self.assertEqual(entry.reference_id, 'RCP-202401-000001')
        self.assertEqual(entry.balance_after, 0)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.STATUS_PAID)

    def test_partial_payment_and_advance(self):
        PaymentService.record_payment(self.student, 200000, Payment.METHOD_CASH, payment_date=date(2024, 1, 5))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.STATUS_PARTIALLY_PAID)

        second = PaymentService.record_payment(
            self.student, 500000, Payment.METHOD_CASH, payment_date=date(2024, 1, 25)
        )
        self.assertEqual(second.receipt_number, 'RCP-202401-000002')
        summary = LedgerService.get_student_balance(self.student)
        self.assertEqual(summary.current_balance, -100000)
        self.assertEqual(summary.balance_type, 'Cr')

    def test_invalid_amounts_post_nothing(self):
        for amount in (0, -500, 10.5, '100'):
            with self.subTest(amount=amount):
                with self.assertRaises(InvalidAmountError):
                    PaymentService.record_payment(self.student, amount, Payment.METHOD_CASH)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(LedgerEntry.objects.count(), 1)

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            PaymentService.record_payment(self.student, 1000, 'BARTER')

    def test_posted_by_is_recorded(self):
        payment = PaymentService.record_payment(self.student, 1000, Payment.METHOD_CASH, posted_by='cashier:desk-1')
        self.assertEqual(payment.created_by_id, 'cashier:desk-1')
        self.assertEqual(payment.ledger_entry.created_by_id, 'cashier:desk-1')


class DiscountTests(TestCase):
    def setUp(self):
        self.student = make_student()

    def test_fixed_discount(self):
        discount = DiscountService.create_discount(
            self.student, 'Sibling discount', valid_from=date(2024, 1, 1), amount=50000
        )
        discount = DiscountService.apply_discount(discount, posted_by='warden')

        self.assertEqual(discount.status, Discount.STATUS_APPLIED)
        self.assertEqual(discount.applied_amount, 50000)
        self.assertEqual(discount.applied_by, 'warden')
        self.assertEqual(discount.ledger_entry.entry_type, LedgerEntry.CREDIT)
        self.assertEqual(discount.ledger_entry.source, LedgerEntry.SOURCE_DISCOUNT)
        self.assertEqual(LedgerService.get_student_balance(self.student).current_balance, -50000)

    def test_expired_discount_is_marked_and_posts_nothing(self):
        discount = DiscountService.create_discount(
            self.student, 'January promo', valid_from=date(2024, 1, 1), valid_to=date(2024, 1, 31), amount=50000
        )

        with self.assertRaises(ExpiredDiscountError):
            DiscountService.apply_discount(discount)

        discount.refresh_from_db()
        self.assertEqual(discount.status, Discount.STATUS_EXPIRED)
        self.assertIsNone(discount.ledger_entry)
        self.assertFalse(LedgerEntry.objects.exists())

        with self.assertRaises(ExpiredDiscountError):
            DiscountService.apply_discount(discount)

    def test_discount_cannot_be_applied_twice(self):
        discount = DiscountService.create_discount(self.student, 'Once', valid_from=date(2024, 1, 1), amount=100)
        DiscountService.apply_discount(discount)
        with self.assertRaises(InvalidAmountError):
            DiscountService.apply_discount(discount)
        self.assertEqual(LedgerEntry.objects.count(), 1)

    def test_not_yet_valid(self):
        starts = timezone.localdate() + timedelta(days=1)
        discount = DiscountService.create_discount(self.student, 'Future', valid_from=starts, amount=100)
        with self.assertRaises(InvalidAmountError):
            DiscountService.apply_discount(discount)
        self.assertFalse(LedgerEntry.objects.exists())

    def test_percentage_of_monthly_fee(self):
        discount = Discount(student=self.student, percentage_value=Decimal('10'))
        self.assertEqual(DiscountService.calculate_discount_amount(discount), 60000)

    def test_percentage_is_capped(self):
        discount = Discount(student=self.student, percentage_value=Decimal('10'), max_amount=50000)
        self.assertEqual(DiscountService.calculate_discount_amount(discount), 50000)

    def test_percentage_rounds_half_up(self):
        discount = Discount(student=self.student, percentage_value=Decimal('10'), base_amount=12345)
        self.assertEqual(DiscountService.calculate_discount_amount(discount), 1235)

    def test_invalid_discounts(self):
        cases = [
            {'amount': 0},
            {'amount': -100},
            {'amount': 100, 'percentage_value': '10'},
            {},
            {'percentage_value': '120'},
            {'percentage_value': 'ten'},
            {'amount': 100, 'valid_from': date(2024, 2, 1), 'valid_to': date(2024, 1, 1)},
        ]
        for kwargs in cases:
            with self.subTest(**{k: str(v) for k, v in kwargs.items()}):
                with self.assertRaises(InvalidAmountError):
                    DiscountService.create_discount(self.student, 'Bad', **kwargs)
        self.assertFalse(Discount.objects.exists())

    def test_checked_out_student_gets_no_discount(self):
        self.student.status = Student.STATUS_CHECKED_OUT
        self.student.save()
        with self.assertRaises(StudentNotBillableError):
            DiscountService.create_discount(self.student, 'Too late', amount=100)

    def test_discount_is_not_applied_once_the_student_leaves(self):
        discount = DiscountService.create_discount(self.student, 'Loyalty', valid_from=date(2024, 1, 1), amount=100)

        for status in (Student.STATUS_SETTLING, Student.STATUS_CHECKED_OUT):
            with self.subTest(status=status):
                Student.objects.filter(pk=self.student.pk).update(status=status)
                with self.assertRaises(StudentNotBillableError):
                    DiscountService.apply_discount(discount)

        discount.refresh_from_db()
        self.assertEqual(discount.status, Discount.STATUS_ACTIVE)
        self.assertFalse(LedgerEntry.objects.exists())

    def test_apply_new_discount_keeps_nothing_on_failure(self):
        with self.assertRaises(ExpiredDiscountError):
            DiscountService.apply_new_discount(
                self.student, 'Old promo',
                valid_from=date(2024, 1, 1), valid_to=date(2024, 1, 31), amount=100,
            )
        self.assertFalse(Discount.objects.exists())

    def test_cancel_applied_discount_reverses_credit(self):
        discount = DiscountService.apply_new_discount(
            self.student, 'Mistake', valid_from=date(2024, 1, 1), amount=25000
        )

        discount = DiscountService.cancel_discount(discount, 'Granted in error')

        self.assertEqual(discount.status, Discount.STATUS_CANCELLED)
        self.assertEqual(LedgerService.get_student_balance(self.student).current_balance, 0)
        self.assertEqual(LedgerEntry.objects.filter(source=LedgerEntry.SOURCE_REVERSAL).count(), 1)

        with self.assertRaises(InvalidAmountError):
            DiscountService.cancel_discount(discount, 'Again')

    def test_expire_discounts(self):
        DiscountService.create_discount(
            self.student, 'Old', valid_from=date(2024, 1, 1), valid_to=date(2024, 1, 31), amount=100
        )
        DiscountService.create_discount(self.student, 'Open ended', valid_from=date(2024, 1, 1), amount=100)

        self.assertEqual(DiscountService.expire_discounts(on_date=date(2024, 2, 1)), 1)
        self.assertEqual(Discount.objects.filter(status=Discount.STATUS_ACTIVE).count(), 1)


class BulkPaymentTests(TestCase):
    def setUp(self):
        self.asha = make_student()
        self.bikash = make_student(name='Bikash Thapa')

    def test_each_payment_succeeds_or_fails_on_its_own(self):
        batch = PaymentService.record_bulk_payments([
            {'student': self.asha, 'amount': 300000, 'method': Payment.METHOD_CASH, 'payment_date': date(2024, 1, 5)},
            {'student': self.bikash.pk, 'amount': -5, 'method': Payment.METHOD_CASH},
            {'student': uuid.uuid4(), 'amount': 1000, 'method': Payment.METHOD_CASH},
            {'student': self.bikash, 'amount': 1000, 'method': 'BARTER'},
            {'student': self.bikash, 'amount': 200000, 'method': Payment.METHOD_UPI, 'payment_date': date(2024, 1, 6)},
        ], posted_by='cashier:desk-1')

        self.assertEqual(batch.successful, 2)
        self.assertEqual(batch.failed, 3)
        self.assertEqual(batch.total_amount, 500000)
        self.assertEqual(
            [r.error_code for r in batch.results],
            [None, 'invalid_amount', 'not_found', 'invalid_request', None],
        )
        self.assertEqual(batch.results[0].receipt_number, 'RCP-202401-000001')
        self.assertEqual(batch.results[4].receipt_number, 'RCP-202401-000002')

        self.assertEqual(Payment.objects.count(), 2)
        self.assertEqual(LedgerService.get_student_balance(self.asha).current_balance, -300000)
        self.assertEqual(Payment.objects.get(student=self.asha).created_by_id, 'cashier:desk-1')

    def test_item_actor_overrides_batch_actor(self):
        PaymentService.record_bulk_payments(
            [{'student': self.asha, 'amount': 1000, 'method': Payment.METHOD_CASH, 'posted_by': 'warden'}],
            posted_by='cashier:desk-1',
        )
        self.assertEqual(LedgerEntry.objects.get().created_by_id, 'warden')


class PaymentStatisticsTests(TestCase):
    def setUp(self):
        self.asha = make_student()
        self.bikash = make_student(name='Bikash Thapa')
        PaymentService.record_payment(self.asha, 300000, Payment.METHOD_CASH, payment_date=date(2024, 1, 5))
        PaymentService.record_payment(self.asha, 200001, Payment.METHOD_CASH, payment_date=date(2024, 2, 3))
        PaymentService.record_payment(self.asha, 100000, Payment.METHOD_UPI, payment_date=date(2024, 2, 10))
        PaymentService.record_payment(self.bikash, 50000, Payment.METHOD_CARD, payment_date=date(2024, 3, 1))

    def test_totals_and_breakdowns(self):
        stats = get_payment_statistics()

        self.assertEqual(stats['total_payments'], 4)
        self.assertEqual(stats['total_amount'], 650001)
        self.assertEqual(stats['average_amount'], 162500)
        self.assertEqual(stats['students_paying'], 2)
        self.assertEqual(stats['payment_methods'], {
            'CASH': {'count': 2, 'amount': 500001},
            'UPI': {'count': 1, 'amount': 100000},
            'CARD': {'count': 1, 'amount': 50000},
        })
        self.assertEqual(stats['monthly_trends']['2024-02'], {'count': 2, 'amount': 300001})

    def test_date_range_and_student_filters(self):
        february = get_payment_statistics(start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))
        self.assertEqual(february['total_payments'], 2)
        self.assertEqual(february['total_amount'], 300001)

        self.assertEqual(get_payment_statistics(student=self.bikash)['total_amount'], 50000)

    def test_no_payments(self):
        stats = get_payment_statistics(start_date=date(2030, 1, 1))
        self.assertEqual(stats['total_payments'], 0)
        self.assertEqual(stats['average_amount'], 0)
        self.assertEqual(stats['payment_methods'], {})
