# fees/stats.py

"""
Payment statistics: totals, the per-method breakdown and monthly
collection trends.
"""

from django.db.models import Sum, Count, Value
from django.db.models.functions import Coalesce, TruncMonth
import logging

from fees.models import Payment
from ledger.utils import divide_half_up

logger = logging.getLogger(__name__)


def get_payment_statistics(start_date=None, end_date=None, student=None):
    """
    Aggregate payments, optionally within a payment_date range.

    Args:
        start_date (date): First payment date included
        end_date (date): Last payment date included
        student: Restrict to one student

    Returns:
        dict: counts and amounts in minor units; average_amount is rounded
        half-up to a whole minor unit
    """
    payments = Payment.objects.all()
    if start_date:
        payments = payments.filter(payment_date__gte=start_date)
    if end_date:
        payments = payments.filter(payment_date__lte=end_date)
    if student is not None:
        payments = payments.filter(student=student)

    totals = payments.aggregate(
        total_payments=Count('id'),
        total_amount=Coalesce(Sum('amount'), Value(0)),
        students_paying=Count('student', distinct=True),
    )

    # Breakdown by method
    payment_methods = {}
    for row in payments.order_by().values('method').annotate(count=Count('id'), amount=Sum('amount')):
        payment_methods[row['method']] = {'count': row['count'], 'amount': row['amount']}

    # Monthly trends (YYYY-MM)
    monthly_trends = {}
    monthly_rows = payments.order_by().annotate(month=TruncMonth('payment_date')).values('month').annotate(
        count=Count('id'),
        amount=Sum('amount'),
    ).order_by('month')
    for row in monthly_rows:
        monthly_trends[row['month'].strftime('%Y-%m')] = {'count': row['count'], 'amount': row['amount']}

    count = totals['total_payments']
    return {
        'total_payments': count,
        'total_amount': totals['total_amount'],
        'average_amount': divide_half_up(totals['total_amount'], count) if count else 0,
        'students_paying': totals['students_paying'],
        'payment_methods': payment_methods,
        'monthly_trends': monthly_trends,
    }
