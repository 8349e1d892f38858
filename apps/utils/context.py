# utils/context.py

"""
Thread-local request context for the audit trail.

The middleware stores who is acting and from where; BaseModel.save() and
utils.audit.log_financial_activity() read it back. Background jobs such as
management commands set it with RequestContext.
"""

from threading import local
import logging

logger = logging.getLogger(__name__)

_thread_locals = local()


def set_request_context(user=None, ip_address=None, request_path=None, actor=None):
    """
    Set the current request context for this thread.

    Args:
        user: The authenticated user (or None)
        ip_address: Client IP address
        request_path: The request path/URL
        actor: Free-form label for non-HTTP callers (e.g. 'system:billing')
    """
    _thread_locals.request_context = {
        'user': user if user is not None and getattr(user, 'is_authenticated', False) else None,
        'ip_address': ip_address,
        'request_path': request_path or '',
        'actor': actor or '',
    }
    logger.debug(f"Set request context: user={user}, ip={ip_address}, actor={actor}")


def get_request_context():
    """Return the context dict for this thread, or None when unset."""
    return getattr(_thread_locals, 'request_context', None)


def clear_request_context():
    """Clear the request context for this thread."""
    if hasattr(_thread_locals, 'request_context'):
        delattr(_thread_locals, 'request_context')


def get_client_ip(request):
    """
    Extract the client's real IP address from the request.

    Honours X-Forwarded-For for proxied requests.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def get_current_actor_id():
    """
    Identifier of whoever is acting on this thread.

    Prefers the authenticated user's pk, then the actor label, then None.
    """
    context = get_request_context()
    if not context:
        return None
    user = context.get('user')
    if user is not None:
        return str(user.pk)
    return context.get('actor') or None


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class RequestContext:
    """
    Temporarily set the request context.

    Example:
        with RequestContext(actor='system:monthly-billing'):
            generate_monthly_invoices(2024, 1)
    """

    def __init__(self, user=None, ip_address=None, request_path=None, actor=None):
        self.context = {
            'user': user,
            'ip_address': ip_address,
            'request_path': request_path or '',
            'actor': actor or '',
        }
        self.previous_context = None

    def __enter__(self):
        self.previous_context = get_request_context()
        _thread_locals.request_context = self.context
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context:
            _thread_locals.request_context = self.previous_context
        else:
            clear_request_context()


def acting_as(actor=None, context=None):
    """
    RequestContext that carries over `context` (default: this thread's)
    with the actor label replaced when one is given.

    Used to hand the caller's context to worker threads and to record a
    posted_by label on service calls.
    """
    values = dict(context if context is not None else (get_request_context() or {}))
    if actor:
        values['actor'] = actor
    return RequestContext(
        user=values.get('user'),
        ip_address=values.get('ip_address'),
        request_path=values.get('request_path'),
        actor=values.get('actor'),
    )
