# ledger/views.py

"""
JSON endpoints for ledgers: entries, audited balances, statistics,
adjustments, reversals and the Excel statement download.

Amounts leave as decimal strings in major units and arrive the same way.
"""

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST
import logging

from core.config import resolve_profile
from ledger.exports import statement_bytes
from ledger.models import LedgerEntry
from ledger.services import LedgerService
from ledger.stats import get_ledger_statistics
from ledger.utils import from_minor_units, to_minor_units
from students.models import Student
from utils.utils import api_view, json_success, parse_date, parse_json_body, require_fields

logger = logging.getLogger(__name__)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def money(minor, profile):
    return str(from_minor_units(minor, profile.minor_units_per_major))


def serialize_entry(entry, profile):
    return {
        'id': str(entry.id),
        'entry_date': entry.entry_date.isoformat(),
        'sequence': entry.sequence,
        'entry_type': entry.entry_type,
        'source': entry.source,
        'amount': money(entry.amount, profile),
        'balance_after': money(entry.balance_after, profile),
        'description': entry.description,
        'reference_id': entry.reference_id,
        'reverses': str(entry.reverses_id) if entry.reverses_id else None,
    }


def serialize_summary(summary, profile):
    return {
        'total_debits': money(summary.total_debits, profile),
        'total_credits': money(summary.total_credits, profile),
        'current_balance': money(summary.current_balance, profile),
        'balance_type': summary.balance_type,
        'entry_count': summary.entry_count,
        'last_entry_date': summary.last_entry_date.isoformat() if summary.last_entry_date else None,
        'currency': profile.currency,
    }


# =============================================================================
# READS
# =============================================================================

@require_GET
@api_view
def student_ledger(request, student_id):
    """Entries of one student in ledger order, with the audited summary."""
    profile = resolve_profile()
    student = get_object_or_404(Student, pk=student_id)

    summary = LedgerService.get_student_balance(student, profile=profile)
    entries = LedgerService.get_student_ledger(student)

    return json_success({
        'student': {'id': str(student.id), 'name': student.name, 'status': student.status},
        'entries': [serialize_entry(e, profile) for e in entries],
        'summary': serialize_summary(summary, profile),
    })


@require_GET
@api_view
def student_balance(request, student_id):
    profile = resolve_profile()
    student = get_object_or_404(Student, pk=student_id)
    summary = LedgerService.get_student_balance(student, profile=profile)
    return json_success(serialize_summary(summary, profile))


@require_GET
@api_view
def ledger_statistics(request):
    profile = resolve_profile()
    stats = get_ledger_statistics()

    for key in ('total_debits', 'total_credits', 'outstanding_amount', 'advance_amount'):
        stats[key] = money(stats[key], profile)
    for month in stats['monthly_trends'].values():
        month['debits'] = money(month['debits'], profile)
        month['credits'] = money(month['credits'], profile)

    return json_success(stats)


@require_GET
@api_view
def student_statement_excel(request, student_id):
    """Download the ledger statement of one student as .xlsx"""
    profile = resolve_profile()
    student = get_object_or_404(Student.objects.select_related('room'), pk=student_id)

    content = statement_bytes(student, profile=profile)

    response = HttpResponse(
        content,
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    filename = f"ledger_{student.name.replace(' ', '_')}.xlsx"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


# =============================================================================
# WRITES
# =============================================================================

@require_POST
@api_view
def post_adjustment(request, student_id):
    """
    Manual debit/credit.

    Body: {"amount": "250.00", "entry_type": "CREDIT", "description": "...",
           "entry_date": "2024-03-31", "notes": "..."}
    """
    profile = resolve_profile()
    student = get_object_or_404(Student, pk=student_id)
    payload = parse_json_body(request)
    require_fields(payload, 'amount', 'entry_type', 'description')

    entry = LedgerService.post_adjustment(
        student,
        to_minor_units(payload['amount'], profile.minor_units_per_major),
        str(payload['entry_type']).upper(),
        payload['description'],
        entry_date=parse_date(payload.get('entry_date'), 'entry_date'),
        notes=payload.get('notes', ''),
        profile=profile,
    )
    return json_success(serialize_entry(entry, profile), status=201)


@require_POST
@api_view
def reverse_entry(request, entry_id):
    """Body: {"reason": "..."}"""
    profile = resolve_profile()
    entry = get_object_or_404(LedgerEntry.objects.select_related('student'), pk=entry_id)
    payload = parse_json_body(request)
    require_fields(payload, 'reason')

    reversal = LedgerService.reverse_entry(entry, payload['reason'], profile=profile)
    return json_success(serialize_entry(reversal, profile), status=201)
