# students/views.py

"""
JSON endpoints for students: admission, listing, detail and checkout.
"""

from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST
from django.db.models import Q
import logging

from boarding.models import Room
from core.config import resolve_profile
from ledger.services import LedgerService
from ledger.utils import from_minor_units, to_minor_units
from utils.utils import (
    api_view, json_success, paginate_queryset, parse_date, parse_filters, parse_json_body, require_fields,
)

from .models import Student
from .services import CheckoutRequest, CheckoutService, StudentAdmissionService

logger = logging.getLogger(__name__)

FEE_FIELDS = ('base_monthly_fee', 'laundry_fee', 'food_fee')


def money(minor, profile):
    return str(from_minor_units(minor, profile.minor_units_per_major))


def serialize_student(student, profile):
    return {
        'id': str(student.id),
        'name': student.name,
        'phone': student.phone,
        'email': student.email,
        'status': student.status,
        'room': student.room.room_number if student.room else None,
        'base_monthly_fee': money(student.base_monthly_fee, profile),
        'laundry_fee': money(student.laundry_fee, profile),
        'food_fee': money(student.food_fee, profile),
        'monthly_fee': money(student.monthly_fee, profile),
        'enrollment_date': student.enrollment_date.isoformat(),
        'checkout_date': student.checkout_date.isoformat() if student.checkout_date else None,
    }


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {'1', 'true', 'yes'}


# =============================================================================
# STUDENTS
# =============================================================================

@require_GET
@api_view
def student_list(request):
    profile = resolve_profile()
    filters = parse_filters(request, ['q', 'status', 'room', 'page'])

    students = Student.objects.select_related('room')
    if filters['q']:
        students = students.filter(Q(name__icontains=filters['q']) | Q(phone__icontains=filters['q']))
    if filters['status']:
        students = students.filter(status=filters['status'].upper())
    if filters['room']:
        students = students.filter(room__room_number=filters['room'])

    page, paginator = paginate_queryset(request, students, per_page=50)
    return json_success({
        'students': [serialize_student(s, profile) for s in page],
        'total_count': paginator.count,
        'page': page.number,
        'num_pages': paginator.num_pages,
    })


@require_POST
@api_view
def student_create(request):
    """
    Body: {"name": "...", "base_monthly_fee": "5000.00", "laundry_fee": "300.00",
           "food_fee": "700.00", "enrollment_date": "2024-01-01", "room_id": "..."}
    """
    profile = resolve_profile()
    payload = parse_json_body(request)
    require_fields(payload, 'name')

    student_data = {
        'name': payload['name'],
        'phone': payload.get('phone', ''),
        'email': payload.get('email', ''),
    }
    for fee in FEE_FIELDS:
        student_data[fee] = to_minor_units(payload.get(fee) or 0, profile.minor_units_per_major)
    enrollment_date = parse_date(payload.get('enrollment_date'), 'enrollment_date')
    if enrollment_date:
        student_data['enrollment_date'] = enrollment_date

    room = get_object_or_404(Room, pk=payload['room_id']) if payload.get('room_id') else None
    student = StudentAdmissionService.admit_student(student_data, room=room)
    return json_success(serialize_student(student, profile), status=201)


@require_GET
@api_view
def student_detail(request, student_id):
    profile = resolve_profile()
    student = get_object_or_404(Student.objects.select_related('room'), pk=student_id)
    summary = LedgerService.get_student_balance(student, profile=profile)

    data = serialize_student(student, profile)
    data['balance'] = money(summary.current_balance, profile)
    data['balance_type'] = summary.balance_type
    return json_success(data)


# =============================================================================
# CHECKOUT
# =============================================================================

@require_POST
@api_view
def student_checkout(request, student_id):
    """
    Body: {"checkout_date": "2024-03-15", "reason": "...", "refund_amount": "1000.00",
           "deduction_amount": "250.00", "clear_room": true, "bill_final_month": true}
    """
    profile = resolve_profile()
    student = get_object_or_404(Student, pk=student_id)
    payload = parse_json_body(request)

    checkout_request = CheckoutRequest(
        checkout_date=parse_date(payload.get('checkout_date'), 'checkout_date'),
        reason=payload.get('reason', ''),
        refund_amount=to_minor_units(payload.get('refund_amount') or 0, profile.minor_units_per_major),
        deduction_amount=to_minor_units(payload.get('deduction_amount') or 0, profile.minor_units_per_major),
        clear_room=parse_bool(payload.get('clear_room', False)),
        bill_final_month=parse_bool(payload.get('bill_final_month', False)),
        notes=payload.get('notes', ''),
    )

    result = CheckoutService.process_checkout(student, checkout_request, profile=profile)
    return json_success({
        'student': serialize_student(result.student, profile),
        'checkout_date': result.checkout_date.isoformat(),
        'balance_before': money(result.balance_before, profile),
        'balance_after': money(result.balance_after, profile),
        'final_invoice': result.final_invoice.reference_id if result.final_invoice else None,
        'entries': [str(e.id) for e in result.entries],
        'released_room': result.released_room.room_number if result.released_room else None,
        'messages': result.messages,
    })
