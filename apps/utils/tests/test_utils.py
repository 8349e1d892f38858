"""
Tests for the request context, the JSON view decorator and request parsing.
"""

import json
from datetime import date
from types import SimpleNamespace

from django.core.exceptions import ObjectDoesNotExist
from django.test import RequestFactory, SimpleTestCase

from boarding.services import RoomUnavailableError
from core.exceptions import (
    DuplicateInvoiceError, InconsistentLedgerError, LedgerTimeoutError, SettlementFailedError,
)
from utils.context import (
    RequestContext, acting_as, clear_request_context, get_client_ip, get_current_actor_id,
    get_request_context, set_request_context,
)
from utils.utils import api_view, parse_date, parse_json_body, require_fields


class RequestContextTests(SimpleTestCase):
    def tearDown(self):
        clear_request_context()

    def test_actor_prefers_authenticated_user(self):
        user = SimpleNamespace(pk=7, is_authenticated=True)
        set_request_context(user=user, ip_address='10.0.0.1', actor='system:cron')
        self.assertEqual(get_current_actor_id(), '7')

    def test_anonymous_user_is_ignored(self):
        set_request_context(user=SimpleNamespace(pk=None, is_authenticated=False), actor='kiosk')
        self.assertEqual(get_current_actor_id(), 'kiosk')

    def test_no_context(self):
        self.assertIsNone(get_current_actor_id())

    def test_context_manager_restores_previous(self):
        set_request_context(actor='outer', ip_address='10.0.0.1')
        with RequestContext(actor='inner'):
            self.assertEqual(get_current_actor_id(), 'inner')
        self.assertEqual(get_current_actor_id(), 'outer')

    def test_acting_as_keeps_ip_and_replaces_actor(self):
        set_request_context(actor='outer', ip_address='10.0.0.1')
        with acting_as('cashier'):
            self.assertEqual(get_current_actor_id(), 'cashier')
            self.assertEqual(get_request_context()['ip_address'], '10.0.0.1')
        with acting_as(None):
            self.assertEqual(get_current_actor_id(), 'outer')

    def test_client_ip(self):
        factory = RequestFactory()
        request = factory.get('/', HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.5')
        self.assertEqual(get_client_ip(factory.get('/')), '127.0.0.1')


class ApiViewTests(SimpleTestCase):
    def call(self, exc):
        @api_view
        def view(request):
            raise exc

        response = view(RequestFactory().post('/'))
        return response.status_code, json.loads(response.content)

    def test_error_statuses(self):
        cases = [
            (DuplicateInvoiceError('s1', 2024, 1), 400, 'duplicate_invoice'),
            (InconsistentLedgerError('e1', 10, 11), 409, 'inconsistent_ledger'),
            (LedgerTimeoutError('slow'), 503, 'ledger_timeout'),
            (SettlementFailedError('failed'), 409, 'settlement_failed'),
            (RoomUnavailableError('full'), 409, 'room_unavailable'),
            (ObjectDoesNotExist('gone'), 404, 'not_found'),
            (ValueError('bad'), 400, 'invalid_request'),
        ]
        for exc, status, code in cases:
            with self.subTest(code=code):
                actual_status, body = self.call(exc)
                self.assertEqual(actual_status, status)
                self.assertFalse(body['ok'])
                self.assertEqual(body['error']['code'], code)

    def test_other_errors_propagate(self):
        with self.assertRaises(KeyError):
            self.call(KeyError('boom'))


class ParsingTests(SimpleTestCase):
    def test_parse_json_body(self):
        factory = RequestFactory()
        request = factory.post('/', data='{"a": 1}', content_type='application/json')
        self.assertEqual(parse_json_body(request), {'a': 1})
        self.assertEqual(parse_json_body(factory.post('/', data='', content_type='application/json')), {})
        with self.assertRaises(ValueError):
            parse_json_body(factory.post('/', data='[1, 2]', content_type='application/json'))

    def test_parse_date(self):
        self.assertEqual(parse_date('2024-01-31'), date(2024, 1, 31))
        self.assertIsNone(parse_date(''))
        with self.assertRaises(ValueError):
            parse_date('31/01/2024')

    def test_require_fields(self):
        require_fields({'a': 1, 'b': 0}, 'a', 'b')
        with self.assertRaisesMessage(ValueError, 'b, c'):
            require_fields({'a': 1, 'b': ''}, 'a', 'b', 'c')
