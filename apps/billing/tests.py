"""
Tests for bill arithmetic, the test selection and the billing wizard API.
"""

from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.api_client import LabBackendClient
from common.exceptions import DraftAlreadySubmitted, LabAPIError, LabAuthError, SubmissionInProgress
from common.middleware import token_key
from common.mixins import LabClientMixin
from . import services
from .calculator import AmountError, LineItem, compute_totals, derive_status, validate_amount
from .choices import BillStatus, ItemType
from .models import BillDraft
from .selection import TestOption, TestSelection

TOKEN = 'tok-1'

TESTS = [
    {'id': 1, 'name': 'Complete Blood Count', 'price': '350.00'},
    {'id': 2, 'name': 'Lipid Profile', 'price': 600},
    {'id': 3, 'name': 'Blood Sugar', 'price': 150.5},
]
PACKAGES = [
    {'id': 1, 'name': 'Basic Health Checkup', 'price': '999.00'},
]
PATIENT = {
    'id': 7, 'patientId': 'PAT007', 'title': 'Ms', 'firstName': 'Anya', 'lastName': 'Sharma',
    'phone': '9876543210', 'email': None, 'age': 34, 'gender': 'Female',
}
DOCTOR = {
    'id': 3, 'doctorID': 'DOC003', 'title': 'Dr', 'firstName': 'Rahul', 'lastName': 'Mehta',
    'specialty': 'Pathology',
}


def bill_payload(**overrides):
    """Bill as the lab backend returns it (camelCase, string amounts)."""
    bill = {
        'id': 42,
        'billNumber': 'BILL-0042',
        'patient': {'id': 7, 'patientId': 'PAT007', 'firstName': 'Anya', 'lastName': 'Sharma'},
        'doctor': None,
        'items': [
            {'id': 1, 'itemName': 'Complete Blood Count', 'itemType': 'Test', 'itemPrice': '350.00'},
            {'id': 2, 'itemName': 'Basic Health Checkup', 'itemType': 'Package', 'itemPrice': '999.00'},
        ],
        'subTotal': '1349.00',
        'discountAmount': '49.00',
        'grandTotal': '1300.00',
        'amountReceived': '1000.00',
        'amountDue': '300.00',
        'paymentMode': 'Cash',
        'notes': None,
        'status': 'Partial',
        'billDate': '2026-10-17T10:00:00.000Z',
    }
    bill.update(overrides)
    return bill


def option(backend_id, price, item_type=ItemType.TEST, name=None):
    return TestOption.from_backend(backend_id, name or f'Item {backend_id}', Decimal(price), item_type)


# ==================== Calculator ====================

class CalculatorTest(SimpleTestCase):
    """Test bill totals."""

    def items(self, *prices):
        return [LineItem(f'Test {i}', ItemType.TEST, Decimal(p)) for i, p in enumerate(prices)]

    def test_totals_from_items(self):
        totals = compute_totals(self.items('350.00', '600.00'), Decimal('50'), Decimal('500'))
        self.assertEqual(totals.sub_total, Decimal('950.00'))
        self.assertEqual(totals.grand_total, Decimal('900.00'))
        self.assertEqual(totals.amount_due, Decimal('400.00'))
        self.assertEqual(totals.balance_state, 'due')

    def test_grand_total_is_subtotal_minus_discount(self):
        for discount in ('0', '10.10', '949.99'):
            with self.subTest(discount=discount):
                totals = compute_totals(self.items('350.00', '600.00'), Decimal(discount))
                self.assertEqual(totals.grand_total, totals.sub_total - totals.discount_amount)
                self.assertEqual(totals.amount_due, totals.grand_total)

    def test_empty_bill(self):
        totals = compute_totals([])
        self.assertEqual(totals.sub_total, Decimal('0.00'))
        self.assertEqual(totals.amount_due, Decimal('0.00'))
        self.assertEqual(totals.balance_state, 'settled')

    def test_overpayment_is_not_clamped(self):
        totals = compute_totals(self.items('350.00'), amount_received=Decimal('400'))
        self.assertEqual(totals.amount_due, Decimal('-50.00'))
        self.assertTrue(totals.is_overpaid)
        self.assertEqual(totals.balance_state, 'overpaid')

    def test_discount_above_subtotal_is_not_clamped(self):
        totals = compute_totals(self.items('100.00'), Decimal('150'))
        self.assertEqual(totals.grand_total, Decimal('-50.00'))

    def test_string_prices_are_not_concatenated(self):
        totals = compute_totals([
            LineItem('CBC', ItemType.TEST, '350.00'),
            LineItem('Lipid', ItemType.TEST, '600'),
        ])
        self.assertEqual(totals.sub_total, Decimal('950.00'))

    def test_rounding(self):
        totals = compute_totals(self.items('0.105', '0.105'))
        self.assertEqual(totals.sub_total, Decimal('0.22'))

    def test_validate_amount(self):
        self.assertEqual(validate_amount('12.5', 'discount_amount'), Decimal('12.50'))
        with self.assertRaises(AmountError) as ctx:
            validate_amount('-1', 'discount_amount')
        self.assertEqual(ctx.exception.field, 'discount_amount')
        with self.assertRaises(AmountError):
            validate_amount('ten', 'amount_received')

    def test_cbc_and_lft_with_discount(self):
        totals = compute_totals(self.items('350', '700'), Decimal('50'), Decimal('500'))
        self.assertEqual(totals.sub_total, Decimal('1050.00'))
        self.assertEqual(totals.grand_total, Decimal('1000.00'))
        self.assertEqual(totals.amount_due, Decimal('500.00'))
        self.assertFalse(totals.is_overpaid)

    def test_cbc_and_lft_overpaid(self):
        totals = compute_totals(self.items('350', '700'), Decimal('0'), Decimal('2000'))
        self.assertEqual(totals.grand_total, Decimal('1050.00'))
        self.assertEqual(totals.amount_due, Decimal('-950.00'))
        self.assertTrue(totals.is_overpaid)
        self.assertEqual(totals.balance_state, 'overpaid')

    def test_validate_amount_upper_bound(self):
        self.assertEqual(validate_amount('99999999.99', 'amount_received'), Decimal('99999999.99'))
        with self.assertRaises(AmountError) as ctx:
            validate_amount('100000000', 'amount_received')
        self.assertEqual(ctx.exception.field, 'amount_received')

    def test_unknown_item_type(self):
        with self.assertRaises(ValueError):
            LineItem('CBC', 'Scan', Decimal('1'))

    def test_derive_status(self):
        self.assertEqual(derive_status(compute_totals(self.items('100'))), BillStatus.PENDING)
        self.assertEqual(derive_status(compute_totals(self.items('100'), amount_received=Decimal('40'))), BillStatus.PARTIAL)
        self.assertEqual(derive_status(compute_totals(self.items('100'), amount_received=Decimal('100'))), BillStatus.DONE)


# ==================== Selection ====================

class TestSelectionTest(SimpleTestCase):
    """Test the ordered, duplicate-free selection."""

    def test_add_is_idempotent(self):
        selection = TestSelection()
        self.assertTrue(selection.add(option(1, '350')))
        self.assertFalse(selection.add(option(1, '350')))
        self.assertEqual(len(selection), 1)

    def test_tests_and_packages_with_same_id_are_distinct(self):
        selection = TestSelection([option(1, '350'), option(1, '999', ItemType.PACKAGE)])
        self.assertEqual([o.display_id for o in selection], ['test_1', 'package_1'])

    def test_remove_then_add_moves_to_end(self):
        selection = TestSelection([option(1, '350'), option(2, '600'), option(3, '150')])
        self.assertTrue(selection.remove('test_1'))
        self.assertFalse(selection.remove('test_1'))
        selection.add(option(1, '350'))
        self.assertEqual([o.display_id for o in selection], ['test_2', 'test_3', 'test_1'])

    def test_subtotal_and_ids(self):
        selection = TestSelection([option(2, '600'), option(1, '350.50')])
        self.assertEqual(selection.subtotal, Decimal('950.50'))
        self.assertEqual(selection.backend_ids(), [2, 1])

    def test_available_excludes_selected(self):
        catalog = [option(1, '350'), option(2, '600'), option(3, '150')]
        selection = TestSelection([option(2, '600')])
        self.assertEqual([o.display_id for o in selection.available(catalog)], ['test_1', 'test_3'])
        self.assertIn('test_2', selection)


# ==================== Wizard API ====================

class LabApiTestCase(TestCase):
    """Base class: API client with a bearer token and a mocked lab backend."""

    def setUp(self):
        cache.clear()
        self.api = APIClient()
        self.api.credentials(HTTP_AUTHORIZATION=f'Bearer {TOKEN}')

        self.lab = MagicMock(spec=LabBackendClient)
        self.lab.get_tests.return_value = TESTS
        self.lab.get_test_packages.return_value = PACKAGES
        patcher = patch.object(LabClientMixin, 'get_lab_client', return_value=self.lab)
        patcher.start()
        self.addCleanup(patcher.stop)


class BillDraftWizardTest(LabApiTestCase):
    """Test the bill creation wizard end to end."""

    def create_draft(self):
        response = self.api.post('/api/bill-drafts/', {}, format='json')
        self.assertEqual(response.status_code, 201)
        return response.data['data']['id']

    def url(self, draft_id, action=''):
        return f'/api/bill-drafts/{draft_id}/{action + "/" if action else ""}'

    def select_patient(self, draft_id):
        self.lab.search_patients.return_value = [PATIENT]
        return self.api.post(self.url(draft_id, 'search_patient'), {'query': '9876543210'}, format='json')

    def test_create_draft(self):
        response = self.api.post('/api/bill-drafts/', {}, format='json')

        self.assertEqual(response.status_code, 201)
        data = response.data['data']
        self.assertTrue(response.data['success'])
        self.assertEqual(data['status'], BillStatus.INITIAL)
        self.assertEqual(data['items'], [])
        self.assertEqual(data['patient_search']['state'], 'idle')
        self.assertEqual(data['totals']['amount_due'], '0.00')
        self.assertEqual(BillDraft.objects.get().owner_key, token_key(TOKEN))

    def test_drafts_are_scoped_to_the_token(self):
        draft_id = self.create_draft()

        other = APIClient()
        other.credentials(HTTP_AUTHORIZATION='Bearer tok-2')
        self.assertEqual(other.get(self.url(draft_id)).status_code, 404)
        self.assertEqual(other.get('/api/bill-drafts/').data['count'], 0)
        self.assertEqual(self.api.get('/api/bill-drafts/').data['count'], 1)

    def test_patient_search_selects_single_match(self):
        draft_id = self.create_draft()

        response = self.select_patient(draft_id)

        self.assertEqual(response.status_code, 200)
        search = response.data['data']['patient_search']
        self.assertEqual(search['state'], 'selected')
        self.assertEqual(search['selected']['full_name'], 'Ms Anya Sharma')
        self.lab.search_patients.assert_called_once_with('9876543210', limit=10)

    def test_doctor_selection(self):
        draft_id = self.create_draft()
        self.lab.search_doctors.return_value = [DOCTOR]

        response = self.api.post(self.url(draft_id, 'select_doctor'), {'query': 'Mehta'}, format='json')

        self.assertEqual(response.status_code, 200)
        doctor = response.data['data']['doctor']
        self.assertEqual(doctor['doctor_code'], 'DOC003')
        self.assertEqual(doctor['full_name'], 'Dr Rahul Mehta')

        self.lab.search_doctors.return_value = []
        response = self.api.post(self.url(draft_id, 'select_doctor'), {'query': 'Nobody'}, format='json')
        self.assertIsNone(response.data['data']['doctor'])
        self.assertEqual(response.data['message'], 'No doctor found matching "Nobody".')

    def test_items_and_totals(self):
        draft_id = self.create_draft()

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')
        self.assertTrue(response.data['added'])
        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'package_1'}, format='json')
        self.assertEqual(response.data['data']['totals']['sub_total'], '1349.00')

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['added'])
        self.assertEqual(len(response.data['data']['items']), 2)

        response = self.api.get(self.url(draft_id, 'catalog'))
        self.assertEqual([o['display_id'] for o in response.data['data']], ['test_2', 'test_3'])

        response = self.api.post(self.url(draft_id, 'remove_item'), {'display_id': 'test_1'}, format='json')
        self.assertTrue(response.data['removed'])
        self.assertEqual(response.data['data']['totals']['sub_total'], '999.00')

        # catalog is cached per token
        self.assertEqual(self.lab.get_tests.call_count, 1)

    def test_unknown_item(self):
        draft_id = self.create_draft()
        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_99'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('display_id', response.data['errors'])

    def test_payment_validation(self):
        draft_id = self.create_draft()
        self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_2'}, format='json')

        response = self.api.post(self.url(draft_id, 'payment'), {'discount_amount': '-5'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors']['discount_amount'], ['Discount cannot be negative.'])

        response = self.api.post(self.url(draft_id, 'payment'), {
            'discount_amount': '100', 'amount_received': '600', 'payment_mode': 'UPI'
        }, format='json')
        totals = response.data['data']['totals']
        self.assertEqual(totals['grand_total'], '500.00')
        self.assertEqual(totals['amount_due'], '-100.00')
        self.assertTrue(totals['is_overpaid'])
        self.assertEqual(response.data['data']['payment_mode'], 'UPI')

    def test_amounts_too_large_to_store_are_refused(self):
        draft_id = self.create_draft()

        response = self.api.post(self.url(draft_id, 'payment'), {'discount_amount': '100000000000'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors']['discount_amount'], ['Discount cannot exceed 99999999.99.'])

        response = self.api.post(self.url(draft_id, 'payment'), {'amount_received': '1e40'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('amount_received', response.data['errors'])

        response = self.api.get(self.url(draft_id))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['discount_amount'], '0.00')

    def test_catalog_price_too_large_is_a_backend_error(self):
        draft_id = self.create_draft()
        self.lab.get_tests.return_value = [{'id': 1, 'name': 'Complete Blood Count', 'price': '100000000.00'}]

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data['code'], 'backend_error')
        self.assertEqual(self.api.get(self.url(draft_id)).data['data']['items'], [])

    def test_expected_status_follows_payment(self):
        draft_id = self.create_draft()
        self.assertEqual(self.api.get(self.url(draft_id)).data['data']['expected_status'], BillStatus.INITIAL)

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_2'}, format='json')
        self.assertEqual(response.data['data']['expected_status'], BillStatus.PENDING)

        response = self.api.post(self.url(draft_id, 'payment'), {'amount_received': '100'}, format='json')
        self.assertEqual(response.data['data']['expected_status'], BillStatus.PARTIAL)

        response = self.api.post(self.url(draft_id, 'payment'), {'amount_received': '600'}, format='json')
        self.assertEqual(response.data['data']['expected_status'], BillStatus.DONE)
        # stays a draft until the backend generates the bill
        self.assertEqual(response.data['data']['status'], BillStatus.INITIAL)

    def test_submit_requires_patient_and_items(self):
        draft_id = self.create_draft()
        response = self.api.post(self.url(draft_id, 'submit'), {}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('patient', response.data['errors'])
        self.assertIn('items', response.data['errors'])
        self.lab.create_bill.assert_not_called()

    def test_submit(self):
        draft_id = self.create_draft()
        self.select_patient(draft_id)
        self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')
        self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'package_1'}, format='json')
        self.api.post(self.url(draft_id, 'payment'), {
            'discount_amount': '49', 'amount_received': '1000'
        }, format='json')
        self.lab.create_bill.return_value = bill_payload()

        response = self.api.post(self.url(draft_id, 'submit'), {}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['message'], 'Bill BILL-0042 generated')
        self.assertEqual(response.data['data']['bill_id'], 42)
        self.assertEqual(response.data['data']['status'], BillStatus.PARTIAL)

        payload = self.lab.create_bill.call_args[0][0]
        self.assertEqual(payload['patientId'], 7)
        self.assertIsNone(payload['doctorId'])
        self.assertEqual(payload['subTotal'], 1349.0)
        self.assertEqual(payload['grandTotal'], 1300.0)
        self.assertEqual(payload['amountDue'], 300.0)
        self.assertEqual(payload['paymentMode'], 'Cash')
        self.assertEqual(dict(payload['selectedTests'][0]), {
            'id': 'test_1', 'dbId': 1, 'name': 'Complete Blood Count', 'price': 350.0, 'isPackage': False
        })
        self.assertTrue(payload['selectedTests'][1]['isPackage'])

    def test_submitted_draft_only_accepts_payment(self):
        draft_id = self.create_draft()
        self.select_patient(draft_id)
        self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')
        self.lab.create_bill.return_value = bill_payload()
        self.api.post(self.url(draft_id, 'submit'), {}, format='json')

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_2'}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'draft_submitted')

        response = self.api.post(self.url(draft_id, 'submit'), {}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.lab.create_bill.call_count, 1)

        self.lab.get_bill.return_value = bill_payload()
        self.lab.update_bill.return_value = bill_payload(amountReceived='1300.00', amountDue='0.00', status='Done')
        response = self.api.post(self.url(draft_id, 'payment'), {'amount_received': '1300'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], BillStatus.DONE)
        self.assertTrue(response.data['data']['is_finalized'])
        self.lab.update_bill.assert_called_once()

    def prepare_submit(self):
        draft_id = self.create_draft()
        self.select_patient(draft_id)
        self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')
        return draft_id

    def test_double_submit_creates_one_bill(self):
        draft_id = self.prepare_submit()

        def create_bill(payload):
            # a second request for the same draft arrives while the first waits on the backend
            with self.assertRaises(SubmissionInProgress):
                services.submit_draft(self.lab, BillDraft.objects.get(pk=draft_id))
            return bill_payload()

        self.lab.create_bill.side_effect = create_bill

        draft = services.submit_draft(self.lab, BillDraft.objects.get(pk=draft_id))

        self.assertEqual(draft.bill_id, 42)
        self.assertFalse(draft.submitting)
        self.assertEqual(self.lab.create_bill.call_count, 1)
        with self.assertRaises(DraftAlreadySubmitted):
            services.submit_draft(self.lab, BillDraft.objects.get(pk=draft_id))
        self.assertEqual(self.lab.create_bill.call_count, 1)

    def test_failed_submit_can_be_retried(self):
        draft_id = self.prepare_submit()
        self.lab.create_bill.side_effect = LabAPIError('Database unavailable', status_code=500)

        response = self.api.post(self.url(draft_id, 'submit'), {}, format='json')
        self.assertEqual(response.status_code, 502)
        draft = BillDraft.objects.get(pk=draft_id)
        self.assertFalse(draft.submitting)
        self.assertFalse(draft.is_submitted)

        self.lab.create_bill.side_effect = None
        self.lab.create_bill.return_value = bill_payload()
        response = self.api.post(self.url(draft_id, 'submit'), {}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.lab.create_bill.call_count, 2)

    def test_draft_being_submitted_refuses_changes(self):
        draft_id = self.prepare_submit()
        BillDraft.objects.filter(pk=draft_id).update(submitting=True)

        attempts = [
            ('add_item', {'display_id': 'test_2'}),
            ('payment', {'discount_amount': '10'}),
            ('submit', {}),
        ]
        for action, data in attempts:
            with self.subTest(action=action):
                response = self.api.post(self.url(draft_id, action), data, format='json')
                self.assertEqual(response.status_code, 409)
                self.assertEqual(response.data['code'], 'submission_in_progress')
        self.lab.create_bill.assert_not_called()
        self.assertEqual(BillDraft.objects.get(pk=draft_id).discount_amount, Decimal('0.00'))

    def test_finalized_draft_is_read_only(self):
        draft = BillDraft.objects.create(owner_key=token_key(TOKEN), status=BillStatus.DONE, bill_id=42)

        response = self.api.post(self.url(draft.pk, 'payment'), {'discount_amount': '10'}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'bill_finalized')

        response = self.api.post(self.url(draft.pk, 'add_item'), {'display_id': 'test_1'}, format='json')
        self.assertEqual(response.status_code, 403)

        self.assertTrue(self.api.get(self.url(draft.pk)).data['data']['is_finalized'])

    def test_backend_session_expired(self):
        draft_id = self.create_draft()
        self.lab.get_tests.side_effect = LabAuthError(status_code=401)

        response = self.api.post(self.url(draft_id, 'add_item'), {'display_id': 'test_1'}, format='json')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'unauthorized')


class BillEditTest(LabApiTestCase):
    """Test editing bills that already exist on the lab server."""

    def test_get_bill_recomputes_totals(self):
        self.lab.get_bill.return_value = bill_payload()

        response = self.api.get('/api/bills/42/')

        self.assertEqual(response.status_code, 200)
        data = response.data['data']
        self.assertEqual(data['bill_number'], 'BILL-0042')
        self.assertEqual(data['totals']['sub_total'], '1349.00')
        self.assertEqual(data['totals']['amount_due'], '300.00')
        self.assertFalse(data['is_finalized'])
        self.assertEqual(data['patient']['full_name'], 'Anya Sharma')
        self.lab.get_bill.assert_called_once_with(42)

    def test_update_merges_current_values(self):
        self.lab.get_bill.return_value = bill_payload()
        self.lab.update_bill.return_value = bill_payload(discountAmount='100.00', grandTotal='1249.00', amountDue='249.00')

        response = self.api.put('/api/bills/42/', {'discount_amount': '100'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['message'], 'Bill BILL-0042 has been successfully updated.')
        self.assertEqual(response.data['data']['totals']['amount_due'], '249.00')
        self.lab.update_bill.assert_called_once_with(42, {
            'discountAmount': 100.0,
            'amountReceived': 1000.0,
            'paymentMode': 'Cash',
            'notes': None,
        })

    def test_finalized_bill_is_refused(self):
        self.lab.get_bill.return_value = bill_payload(amountReceived='1300.00', amountDue='0.00', status='Done')

        response = self.api.patch('/api/bills/42/', {'notes': 'late edit'}, format='json')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'bill_finalized')
        self.lab.update_bill.assert_not_called()

    def test_negative_amount_is_refused(self):
        response = self.api.put('/api/bills/42/', {'amount_received': '-1'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors']['amount_received'], ['Amount received cannot be negative.'])
        self.lab.get_bill.assert_not_called()

    def test_backend_not_found(self):
        self.lab.get_bill.side_effect = LabAPIError('Bill not found', status_code=404)

        response = self.api.get('/api/bills/99/')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'Bill not found')


class PurgeBillDraftsCommandTest(TestCase):
    """Test the draft housekeeping command."""

    def setUp(self):
        self.old = BillDraft.objects.create(owner_key=token_key(TOKEN))
        self.recent = BillDraft.objects.create(owner_key=token_key(TOKEN))
        BillDraft.objects.filter(pk=self.old.pk).update(updated_at=timezone.now() - timedelta(days=45))

    def test_dry_run_keeps_drafts(self):
        out = StringIO()
        call_command('purge_bill_drafts', '--dry-run', stdout=out)
        self.assertIn('1 draft(s)', out.getvalue())
        self.assertEqual(BillDraft.objects.count(), 2)

    def test_purge(self):
        call_command('purge_bill_drafts', '--days', '30', stdout=StringIO())
        self.assertEqual(list(BillDraft.objects.values_list('pk', flat=True)), [self.recent.pk])

    def test_days_must_be_positive(self):
        with self.assertRaises(CommandError):
            call_command('purge_bill_drafts', '--days', '0', stdout=StringIO())
