import logging
from utils.context import set_request_context, clear_request_context, get_client_ip

logger = logging.getLogger(__name__)

ACTOR_HEADER = 'HTTP_X_HOSTEL_ACTOR'


class AuditContextMiddleware:
    """
    Capture who is calling the API so postings carry an audit trail.

    Service accounts without a Django login (cashier desks, the billing
    cron) identify themselves with an `X-Hostel-Actor` header; an
    authenticated user always takes precedence over it.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        actor = request.META.get(ACTOR_HEADER, '').strip()[:50]
        set_request_context(
            user=getattr(request, 'user', None),
            ip_address=get_client_ip(request),
            request_path=request.path,
            actor=actor,
        )
        if actor:
            logger.debug(f"{request.method} {request.path} acting as {actor}")

        try:
            return self.get_response(request)
        finally:
            clear_request_context()
