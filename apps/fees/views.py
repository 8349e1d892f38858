# fees/views.py

"""
JSON endpoints for billing: monthly invoice batches, invoices, payments
and discounts. Amounts arrive and leave as decimal strings in major units.
"""

from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST
import logging

from core.config import resolve_profile
from fees.invoice_generators import generate_monthly_invoices
from fees.models import Invoice, Payment, Discount
from fees.services import DiscountService, InvoiceService, PaymentService
from fees.stats import get_payment_statistics
from ledger.utils import from_minor_units, to_minor_units
from students.models import Student
from utils.utils import (
    api_view, json_success, paginate_queryset, parse_date, parse_filters, parse_json_body, require_fields,
)

logger = logging.getLogger(__name__)


def money(minor, profile):
    if minor is None:
        return None
    return str(from_minor_units(minor, profile.minor_units_per_major))


def optional_amount(payload, key, profile):
    value = payload.get(key)
    if value in (None, ''):
        return None
    return to_minor_units(value, profile.minor_units_per_major)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def serialize_invoice(invoice, profile, with_items=False):
    data = {
        'id': str(invoice.id),
        'reference_id': invoice.reference_id,
        'student_id': str(invoice.student_id),
        'invoice_type': invoice.invoice_type,
        'billing_year': invoice.billing_year,
        'billing_month': invoice.billing_month,
        'period_start': invoice.period_start.isoformat(),
        'period_end': invoice.period_end.isoformat(),
        'issue_date': invoice.issue_date.isoformat(),
        'due_date': invoice.due_date.isoformat(),
        'total': money(invoice.total, profile),
        'status': invoice.status,
    }
    if with_items:
        data['items'] = [{
            'item_type': item.item_type,
            'description': item.description,
            'amount': money(item.amount, profile),
        } for item in invoice.items.all()]
    return data


def serialize_payment(payment, profile):
    return {
        'id': str(payment.id),
        'receipt_number': payment.receipt_number,
        'student_id': str(payment.student_id),
        'amount': money(payment.amount, profile),
        'method': payment.method,
        'payment_date': payment.payment_date.isoformat(),
        'reference': payment.reference,
        'ledger_entry_id': str(payment.ledger_entry_id) if payment.ledger_entry_id else None,
    }


def serialize_discount(discount, profile):
    return {
        'id': str(discount.id),
        'student_id': str(discount.student_id),
        'amount': money(discount.amount, profile),
        'percentage_value': str(discount.percentage_value) if discount.percentage_value is not None else None,
        'base_amount': money(discount.base_amount, profile),
        'max_amount': money(discount.max_amount, profile),
        'reason': discount.reason,
        'valid_from': discount.valid_from.isoformat(),
        'valid_to': discount.valid_to.isoformat() if discount.valid_to else None,
        'status': discount.status,
        'applied_amount': money(discount.applied_amount, profile),
        'applied_by': discount.applied_by,
        'ledger_entry_id': str(discount.ledger_entry_id) if discount.ledger_entry_id else None,
    }


# =============================================================================
# INVOICES
# =============================================================================

@require_POST
@api_view
def generate_invoices(request):
    """
    Body: {"year": 2024, "month": 1, "student_ids": [...], "workers": 1}
    """
    payload = parse_json_body(request)
    require_fields(payload, 'year', 'month')
    try:
        year, month = int(payload['year']), int(payload['month'])
        workers = int(payload.get('workers') or 1)
    except (TypeError, ValueError):
        raise ValueError("year, month and workers must be integers")

    batch = generate_monthly_invoices(
        year,
        month,
        student_ids=payload.get('student_ids'),
        posted_by=payload.get('posted_by'),
        workers=workers,
    )
    return json_success(batch.to_dict(), status=201 if batch.created else 200)


@require_GET
@api_view
def invoice_list(request):
    profile = resolve_profile()
    filters = parse_filters(request, ['student', 'status', 'year', 'month', 'page'])

    invoices = Invoice.objects.all()
    if filters['student']:
        invoices = invoices.filter(student_id=filters['student'])
    if filters['status']:
        invoices = invoices.filter(status=filters['status'].upper())
    if filters['year']:
        invoices = invoices.filter(billing_year=filters['year'])
    if filters['month']:
        invoices = invoices.filter(billing_month=filters['month'])

    page, paginator = paginate_queryset(request, invoices, per_page=50)
    return json_success({
        'invoices': [serialize_invoice(i, profile) for i in page],
        'total_count': paginator.count,
        'page': page.number,
        'num_pages': paginator.num_pages,
    })


@require_GET
@api_view
def invoice_detail(request, reference_id):
    profile = resolve_profile()
    invoice = get_object_or_404(Invoice, reference_id=reference_id)
    return json_success(serialize_invoice(invoice, profile, with_items=True))


@require_POST
@api_view
def invoice_cancel(request, reference_id):
    """Body: {"reason": "..."}"""
    profile = resolve_profile()
    invoice = get_object_or_404(Invoice, reference_id=reference_id)
    payload = parse_json_body(request)
    require_fields(payload, 'reason')

    InvoiceService.cancel_invoice(invoice, payload['reason'], profile=profile)
    invoice.refresh_from_db()
    return json_success(serialize_invoice(invoice, profile))


# =============================================================================
# PAYMENTS
# =============================================================================

@require_POST
@api_view
def payment_create(request):
    """
    Body: {"student_id": "...", "amount": "6000.00", "method": "CASH",
           "payment_date": "2024-01-20", "reference": "...", "notes": "..."}
    """
    profile = resolve_profile()
    payload = parse_json_body(request)
    require_fields(payload, 'student_id', 'amount', 'method')
    student = get_object_or_404(Student, pk=payload['student_id'])

    details = {key: payload[key] for key in ('transaction_id', 'bank_name', 'cheque_number') if payload.get(key)}
    payment = PaymentService.record_payment(
        student,
        to_minor_units(payload['amount'], profile.minor_units_per_major),
        str(payload['method']).upper(),
        payment_date=parse_date(payload.get('payment_date'), 'payment_date'),
        reference=payload.get('reference', ''),
        notes=payload.get('notes', ''),
        posted_by=payload.get('posted_by'),
        profile=profile,
        **details,
    )
    return json_success(serialize_payment(payment, profile), status=201)


@require_GET
@api_view
def payment_list(request):
    profile = resolve_profile()
    filters = parse_filters(request, ['student', 'method', 'page'])

    payments = Payment.objects.all()
    if filters['student']:
        payments = payments.filter(student_id=filters['student'])
    if filters['method']:
        payments = payments.filter(method=filters['method'].upper())

    page, paginator = paginate_queryset(request, payments, per_page=50)
    return json_success({
        'payments': [serialize_payment(p, profile) for p in page],
        'total_count': paginator.count,
        'page': page.number,
        'num_pages': paginator.num_pages,
    })


def _bulk_payment_arguments(profile):
    """Turn one raw bulk item into record_payment() arguments."""
    def prepare(item):
        if not isinstance(item, dict):
            raise ValueError(f"Each payment must be an object, got {item!r}")
        require_fields(item, 'student_id', 'amount', 'method')
        details = {key: item[key] for key in ('transaction_id', 'bank_name', 'cheque_number') if item.get(key)}
        return {
            'student': item['student_id'],
            'amount': to_minor_units(item['amount'], profile.minor_units_per_major),
            'method': str(item['method']).upper(),
            'payment_date': parse_date(item.get('payment_date'), 'payment_date'),
            'reference': item.get('reference', ''),
            'notes': item.get('notes', ''),
            'posted_by': item.get('posted_by'),
            **details,
        }
    return prepare


@require_POST
@api_view
def payment_bulk(request):
    """
    Record several payments; each one succeeds or fails on its own.

    Body: {"payments": [{"student_id": "...", "amount": "6000.00", "method": "CASH"}, ...],
           "posted_by": "..."}
    """
    profile = resolve_profile()
    payload = parse_json_body(request)
    payments = payload.get('payments')
    if not isinstance(payments, list) or not payments:
        raise ValueError("payments must be a non-empty list")

    batch = PaymentService.record_bulk_payments(
        payments,
        posted_by=payload.get('posted_by'),
        profile=profile,
        prepare=_bulk_payment_arguments(profile),
    )

    data = batch.to_dict()
    data['total_amount'] = money(data['total_amount'], profile)
    for row in data['results']:
        row['amount'] = money(row['amount'], profile)
    return json_success(data, status=201 if batch.successful else 200)


@require_GET
@api_view
def payment_statistics(request):
    profile = resolve_profile()
    filters = parse_filters(request, ['student', 'start_date', 'end_date'])
    student = get_object_or_404(Student, pk=filters['student']) if filters['student'] else None

    stats = get_payment_statistics(
        start_date=parse_date(filters['start_date'], 'start_date'),
        end_date=parse_date(filters['end_date'], 'end_date'),
        student=student,
    )

    for key in ('total_amount', 'average_amount'):
        stats[key] = money(stats[key], profile)
    for row in list(stats['payment_methods'].values()) + list(stats['monthly_trends'].values()):
        row['amount'] = money(row['amount'], profile)
    return json_success(stats)


# =============================================================================
# DISCOUNTS
# =============================================================================

def reject_other_day(payload):
    """Discounts post as of today; a client-chosen on_date is refused."""
    on_date = parse_date(payload.get('on_date'), 'on_date')
    if on_date is not None and on_date != timezone.localdate():
        raise ValueError(f"Discounts are applied as of today, not {on_date}")


def _discount_arguments(payload, profile):
    percentage = payload.get('percentage_value')
    return {
        'valid_from': parse_date(payload.get('valid_from'), 'valid_from'),
        'valid_to': parse_date(payload.get('valid_to'), 'valid_to'),
        'amount': optional_amount(payload, 'amount', profile),
        'percentage_value': None if percentage in (None, '') else str(percentage),
        'base_amount': optional_amount(payload, 'base_amount', profile),
        'max_amount': optional_amount(payload, 'max_amount', profile),
        'applied_by': payload.get('applied_by', ''),
        'notes': payload.get('notes', ''),
    }


@require_POST
@api_view
def discount_create(request):
    """
    Create a discount; with "apply": true it is applied in the same transaction.

    Body: {"student_id": "...", "reason": "...", "amount": "500.00"}
       or {"student_id": "...", "reason": "...", "percentage_value": "10",
           "max_amount": "1000.00", "valid_to": "2024-12-31", "apply": true}
    """
    profile = resolve_profile()
    payload = parse_json_body(request)
    require_fields(payload, 'student_id', 'reason')
    student = get_object_or_404(Student, pk=payload['student_id'])
    arguments = _discount_arguments(payload, profile)

    if payload.get('apply'):
        reject_other_day(payload)
        discount = DiscountService.apply_new_discount(
            student,
            payload['reason'],
            posted_by=payload.get('posted_by'),
            profile=profile,
            **arguments,
        )
    else:
        discount = DiscountService.create_discount(student, payload['reason'], **arguments)
    return json_success(serialize_discount(discount, profile), status=201)


@require_POST
@api_view
def discount_apply(request, discount_id):
    """Body: {"posted_by": "..."} (optional)"""
    profile = resolve_profile()
    discount = get_object_or_404(Discount, pk=discount_id)
    payload = parse_json_body(request)
    reject_other_day(payload)

    discount = DiscountService.apply_discount(
        discount,
        posted_by=payload.get('posted_by'),
        profile=profile,
    )
    return json_success(serialize_discount(discount, profile))


@require_POST
@api_view
def discount_cancel(request, discount_id):
    """Body: {"reason": "..."}"""
    profile = resolve_profile()
    discount = get_object_or_404(Discount, pk=discount_id)
    payload = parse_json_body(request)
    require_fields(payload, 'reason')

    discount = DiscountService.cancel_discount(discount, payload['reason'], profile=profile)
    return json_success(serialize_discount(discount, profile))
