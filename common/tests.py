"""
Tests for the lab backend plumbing: money parsing, the API client, the
exception handler and bearer token handling.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import requests
from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase, TestCase
from rest_framework import serializers
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from common.api_client import LabBackendClient
from common.exceptions import (
    BillFinalized,
    LabAPIError,
    LabAuthError,
    LabPayloadError,
    LabTimeoutError,
    SubmissionInProgress,
    lab_exception_handler,
)
from common.middleware import LabTokenMiddleware, token_key
from common.money import MAX_AMOUNT, MoneyParseError, format_money, parse_money
from common.serializers import BackendPayloadSerializer, MoneyField, parse_payload, to_camel


class MoneyTest(SimpleTestCase):
    """Test parsing of amounts coming from the lab backend."""

    def test_numbers_and_numeric_strings(self):
        self.assertEqual(parse_money('350.00'), Decimal('350.00'))
        self.assertEqual(parse_money(350), Decimal('350.00'))
        self.assertEqual(parse_money(' 99.5 '), Decimal('99.50'))
        self.assertEqual(parse_money(0.1), Decimal('0.10'))

    def test_rounds_half_up(self):
        self.assertEqual(parse_money('2.675'), Decimal('2.68'))
        self.assertEqual(parse_money('2.674'), Decimal('2.67'))
        self.assertEqual(format_money(Decimal('10')), '10.00')

    def test_rejects_non_amounts(self):
        for value in (None, True, '', '   ', 'abc', 'NaN', 'Infinity', '1e40', [1]):
            with self.subTest(value=value):
                with self.assertRaises(MoneyParseError):
                    parse_money(value)


class SamplePayloadSerializer(BackendPayloadSerializer):
    wire_names = {'doctor_code': 'doctorID'}

    first_name = serializers.CharField()
    doctor_code = serializers.CharField(required=False)
    amount_due = MoneyField()
    paid = MoneyField(as_number=True, required=False)


class BackendPayloadSerializerTest(SimpleTestCase):
    """Test the camelCase wire mapping."""

    def test_to_camel(self):
        self.assertEqual(to_camel('amount_due'), 'amountDue')
        self.assertEqual(to_camel('name'), 'name')

    def test_reads_camel_case_into_snake_case(self):
        data = parse_payload(SamplePayloadSerializer, {
            'firstName': 'Anya', 'doctorID': 'DOC01', 'amountDue': '10.5'
        })
        self.assertEqual(data['first_name'], 'Anya')
        self.assertEqual(data['doctor_code'], 'DOC01')
        self.assertEqual(data['amount_due'], Decimal('10.50'))

    def test_renders_camel_case(self):
        data = SamplePayloadSerializer({
            'first_name': 'Anya', 'doctor_code': 'DOC01',
            'amount_due': Decimal('10.5'), 'paid': Decimal('20')
        }).data
        self.assertEqual(data['firstName'], 'Anya')
        self.assertEqual(data['doctorID'], 'DOC01')
        self.assertEqual(data['amountDue'], '10.50')
        self.assertEqual(data['paid'], 20.0)

    def test_money_field_bounds(self):
        field = MoneyField(min_value=Decimal('0.00'))
        self.assertEqual(field.run_validation('99999999.99'), MAX_AMOUNT)
        for value in ('100000000', '1e12', '-0.01'):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    field.run_validation(value)

    def test_malformed_payload_raises(self):
        with self.assertRaises(LabPayloadError):
            parse_payload(SamplePayloadSerializer, {'firstName': 'Anya', 'amountDue': 'lots'})


class LabBackendClientTest(SimpleTestCase):
    """Test envelope handling and error mapping of the backend client."""

    def setUp(self):
        self.session = MagicMock()
        self.lab = LabBackendClient(
            token_provider=lambda: 'tok-1',
            base_url='http://lab.test/api/',
            timeout=10,
            session=self.session,
        )

    def respond(self, status_code=200, body=None, invalid_json=False):
        response = MagicMock(status_code=status_code)
        if invalid_json:
            response.json.side_effect = ValueError('no json')
        else:
            response.json.return_value = body
        self.session.request.return_value = response
        return response

    def test_sends_bearer_token_and_unwraps_data(self):
        self.respond(body={'success': True, 'data': [{'id': 1}]})

        patients = self.lab.search_patients('Anya', limit=10)

        self.assertEqual(patients, [{'id': 1}])
        self.session.request.assert_called_once_with(
            'GET', 'http://lab.test/api/patients',
            headers={
                'Content-Type': 'application/json',
                'Accept': 'application/json',
                'Authorization': 'Bearer tok-1',
            },
            timeout=10,
            params={'search': 'Anya', 'limit': 10},
        )

    def test_missing_data_is_an_empty_list(self):
        self.respond(body={'success': True})
        self.assertEqual(self.lab.get_tests(), [])

    def test_non_list_data_is_a_payload_error(self):
        self.respond(body={'success': True, 'data': {'id': 1}})
        with self.assertRaises(LabPayloadError):
            self.lab.get_tests()

    def test_no_token_never_calls_backend(self):
        client = LabBackendClient(token_provider=lambda: None, base_url='http://lab.test/api', session=self.session)
        with self.assertRaises(LabAuthError):
            client.get_tests()
        self.session.request.assert_not_called()

    def test_unauthorized(self):
        self.respond(status_code=401, body={'success': False, 'message': 'jwt expired'})
        with self.assertRaises(LabAuthError) as ctx:
            self.lab.get_bill(1)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_success_false_uses_backend_message(self):
        self.respond(status_code=200, body={'success': False, 'message': 'Bill not found'})
        with self.assertRaises(LabAPIError) as ctx:
            self.lab.get_bill(1)
        self.assertEqual(ctx.exception.message, 'Bill not found')

    def test_error_status(self):
        self.respond(status_code=404, body={'success': False, 'error': 'Not found'})
        with self.assertRaises(LabAPIError) as ctx:
            self.lab.get_bill(1)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.message, 'Not found')

    def test_invalid_json(self):
        self.respond(status_code=502, invalid_json=True)
        with self.assertRaises(LabAPIError) as ctx:
            self.lab.get_tests()
        self.assertEqual(ctx.exception.message, 'The lab server returned an invalid response.')

    def test_timeout(self):
        self.session.request.side_effect = requests.Timeout('read timed out')
        with self.assertRaises(LabTimeoutError):
            self.lab.get_tests()

    def test_connection_error(self):
        self.session.request.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(LabAPIError) as ctx:
            self.lab.get_tests()
        self.assertEqual(ctx.exception.message, 'Could not connect to the lab server.')

    def test_update_bill_puts_json(self):
        self.respond(body={'success': True, 'data': {'id': 5}})
        self.lab.update_bill(5, {'discountAmount': 10.0})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('PUT', 'http://lab.test/api/bills/5'))
        self.assertEqual(kwargs['json'], {'discountAmount': 10.0})

    def test_get_test_package(self):
        self.respond(body={'success': True, 'data': {'id': 3, 'tests': []}})
        self.assertEqual(self.lab.get_test_package(3), {'id': 3, 'tests': []})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('GET', 'http://lab.test/api/test-packages/3'))

    def test_update_test_package_puts_json(self):
        self.respond(body={'success': True, 'data': {'id': 3}})
        self.lab.update_test_package(3, {'name': 'Liver Panel', 'selectedTests': [1, 2], 'status': 'Archived'})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('PUT', 'http://lab.test/api/test-packages/3'))
        self.assertEqual(kwargs['json'], {'name': 'Liver Panel', 'selectedTests': [1, 2], 'status': 'Archived'})


class ExceptionHandlerTest(SimpleTestCase):
    """Test the response shape for backend and request errors."""

    def handle(self, exc):
        return lab_exception_handler(exc, {})

    def test_unauthorized(self):
        response = self.handle(LabAuthError(status_code=401))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'unauthorized')
        self.assertFalse(response.data['success'])

    def test_timeout(self):
        response = self.handle(LabTimeoutError())
        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.data['code'], 'backend_timeout')

    def test_client_errors_pass_through(self):
        response = self.handle(LabAPIError('Bill not found', status_code=404))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'success': False, 'error': 'Bill not found', 'code': 'not_found'})

    def test_server_errors_become_bad_gateway(self):
        response = self.handle(LabAPIError('boom', status_code=500))
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data['code'], 'backend_error')

    def test_validation_errors(self):
        response = self.handle(ValidationError({'discount_amount': ['Discount cannot be negative.']}))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid')
        self.assertIn('discount_amount', response.data['errors'])

    def test_finalized_bill(self):
        response = self.handle(BillFinalized())
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'bill_finalized')

    def test_submission_in_progress(self):
        response = self.handle(SubmissionInProgress())
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'submission_in_progress')


class LabTokenMiddlewareTest(SimpleTestCase):
    """Test bearer token extraction."""

    def setUp(self):
        self.factory = RequestFactory()
        self.middleware = LabTokenMiddleware(lambda request: HttpResponse())

    def test_bearer_token(self):
        request = self.factory.get('/', HTTP_AUTHORIZATION='Bearer tok-1')
        self.assertIsNone(self.middleware.process_request(request))
        self.assertEqual(request.lab_token, 'tok-1')
        self.assertEqual(request.lab_token_key, token_key('tok-1'))

    def test_missing_or_other_scheme(self):
        for header in (None, 'Basic abc', 'Bearer '):
            with self.subTest(header=header):
                extra = {'HTTP_AUTHORIZATION': header} if header else {}
                request = self.factory.get('/', **extra)
                self.assertIsNone(self.middleware.process_request(request))
                self.assertIsNone(request.lab_token)
                self.assertIsNone(request.lab_token_key)

    def test_token_key_is_stable_and_opaque(self):
        self.assertEqual(token_key('tok-1'), token_key('tok-1'))
        self.assertNotEqual(token_key('tok-1'), token_key('tok-2'))
        self.assertNotIn('tok-1', token_key('tok-1'))


class ApiAuthenticationTest(TestCase):
    """Test that API endpoints require a bearer token."""

    def test_missing_token_is_unauthorized(self):
        response = APIClient().get('/api/bill-drafts/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'unauthorized')

    def test_health_needs_no_token(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')
