# utils/utils.py

from datetime import date
from functools import wraps
import json
import logging

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.core.paginator import Paginator, EmptyPage, PageNotAnInteger
from django.http import Http404, JsonResponse

from core.exceptions import (
    BillingError, HostelError, LedgerTimeoutError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CORE UTILITY HELPER FUNCTIONS
# =============================================================================

def paginate_queryset(request, queryset, per_page=20):
    paginator = Paginator(queryset, per_page)
    page = request.GET.get('page', 1)
    try:
        page_obj = paginator.page(page)
    except PageNotAnInteger:
        page_obj = paginator.page(1)
    except EmptyPage:
        page_obj = paginator.page(paginator.num_pages)
    return page_obj, paginator

def parse_filters(request, filter_keys):
    """
    Extract filter values from request.GET.
    filter_keys: list of filter names to extract
    Returns dict: {key: value or None}
    """
    filters = {}
    for key in filter_keys:
        value = request.GET.get(key, '').strip()
        filters[key] = value if value else None
    return filters


# =============================================================================
# JSON REQUEST PARSING
# =============================================================================

def parse_json_body(request):
    """
    Decode a JSON object request body.

    Raises:
        ValueError: If the body is not a JSON object
    """
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Request body is not valid JSON: {e}")
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def parse_date(value, field_name='date'):
    """ISO date string (YYYY-MM-DD) to date; None/empty stays None."""
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValueError(f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}")


def require_fields(payload, *fields):
    """Raise ValueError naming every missing field."""
    missing = [field for field in fields if payload.get(field) in (None, '')]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")


# =============================================================================
# JSON RESPONSES
# =============================================================================

def json_success(data=None, status=200):
    return JsonResponse({'ok': True, 'data': data if data is not None else {}}, status=status)


def json_error(code, message, status=400):
    return JsonResponse({'ok': False, 'error': {'code': code, 'message': message}}, status=status)


def error_status(exc):
    """HTTP status for a domain exception."""
    if isinstance(exc, BillingError):
        return 400
    if isinstance(exc, LedgerTimeoutError):
        return 503
    return 409


def api_view(view_func):
    """
    Translate domain exceptions raised by a JSON view into error bodies.

    BillingError -> 400, LedgerTimeoutError -> 503, other ledger errors and
    SettlementFailedError -> 409, missing objects -> 404, bad input -> 400.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except HostelError as e:
            status = error_status(e)
            log = logger.error if status >= 500 else logger.warning
            log(f"{request.method} {request.path} failed with {e.code}: {e}")
            return json_error(e.code, str(e), status=status)
        except (ObjectDoesNotExist, Http404) as e:
            return json_error('not_found', str(e) or 'Not found', status=404)
        except ValidationError as e:
            return json_error('invalid_request', '; '.join(e.messages), status=400)
        except ValueError as e:
            return json_error('invalid_request', str(e), status=400)
    return wrapper
