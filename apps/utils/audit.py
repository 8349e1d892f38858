# utils/audit.py

import logging

from utils.context import get_request_context

audit_logger = logging.getLogger("financial_audit")


def log_financial_activity(
    action,
    student=None,
    amount=None,
    reference=None,
    target_object=None,
    notes=None,
    risk_level='LOW',
    additional_data=None,
    is_automated=False,
):
    """
    Log a money movement to the financial audit trail.

    Args:
        action (str): Type of financial action (e.g. INVOICE_POST, PAYMENT_POST).
        student (Student, optional): Related student.
        amount (int, optional): Amount involved, in minor units.
        reference (str, optional): Invoice reference or ledger reference.
        target_object (Model instance, optional): Object affected.
        notes (str, optional): Free-form comment.
        risk_level (str, optional): 'LOW', 'MEDIUM', 'HIGH' or 'CRITICAL'.
        additional_data (dict, optional): Extra context-specific data.
        is_automated (bool, optional): Whether the action came from a batch job.
    """
    context = get_request_context() or {}
    user = context.get('user')

    record = {
        'action': action,
        'student_id': str(student.pk) if student is not None else None,
        'amount': amount,
        'reference': reference,
        'target': (
            f"{target_object._meta.label}:{target_object.pk}" if target_object is not None else None
        ),
        'risk_level': risk_level,
        'is_automated': is_automated,
        'user_id': str(user.pk) if user is not None else None,
        'actor': context.get('actor') or None,
        'ip_address': context.get('ip_address'),
        'request_path': context.get('request_path') or None,
        'notes': notes,
        'data': additional_data or {},
    }

    level = logging.WARNING if risk_level in ('HIGH', 'CRITICAL') else logging.INFO
    audit_logger.log(level, f"{action} student={record['student_id']} amount={amount} ref={reference}",
                     extra={'audit': record})
