# ledger/stats.py

"""
Ledger statistics for the dashboard: totals, per-source counts, how many
students are in debit/credit, and monthly debit/credit trends.
"""

from django.db.models import Sum, Count, Q, Value
from django.db.models.functions import Coalesce, TruncMonth
import logging

from ledger.models import LedgerEntry

logger = logging.getLogger(__name__)


def get_ledger_statistics():
    """
    Aggregate statistics across all ledgers.

    Returns:
        dict: totals (minor units), counts and monthly trends
    """
    entries = LedgerEntry.objects.all()

    totals = entries.aggregate(
        total_debits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.DEBIT)), Value(0)),
        total_credits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.CREDIT)), Value(0)),
        total_entries=Count('id'),
    )

    # Entry counts by source
    entry_sources = {
        row['source']: row['count']
        for row in entries.order_by().values('source').annotate(count=Count('id'))
    }

    # Per-student balances
    student_balances = entries.order_by().values('student').annotate(
        debits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.DEBIT)), Value(0)),
        credits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.CREDIT)), Value(0)),
    )
    balances = [row['debits'] - row['credits'] for row in student_balances]

    # Monthly trends (YYYY-MM)
    monthly_trends = {}
    monthly_rows = entries.order_by().annotate(month=TruncMonth('entry_date')).values('month').annotate(
        debits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.DEBIT)), Value(0)),
        credits=Coalesce(Sum('amount', filter=Q(entry_type=LedgerEntry.CREDIT)), Value(0)),
        count=Count('id'),
    ).order_by('month')
    for row in monthly_rows:
        monthly_trends[row['month'].strftime('%Y-%m')] = {
            'debits': row['debits'],
            'credits': row['credits'],
            'count': row['count'],
        }

    return {
        'total_entries': totals['total_entries'],
        'total_debits': totals['total_debits'],
        'total_credits': totals['total_credits'],
        'entry_sources': entry_sources,
        'students_with_debit': sum(1 for b in balances if b > 0),
        'students_with_credit': sum(1 for b in balances if b < 0),
        'students_settled': sum(1 for b in balances if b == 0),
        'outstanding_amount': sum(b for b in balances if b > 0),
        'advance_amount': -sum(b for b in balances if b < 0),
        'monthly_trends': monthly_trends,
    }
