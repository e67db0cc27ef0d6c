"""
Tests for the patient search-to-selection flow.
"""

from unittest.mock import MagicMock

from django.test import SimpleTestCase

from common.exceptions import LabAPIError, LabAuthError
from apps.billing import services as billing_services
from apps.billing.models import BillDraft
from apps.billing.tests import LabApiTestCase, PATIENT
from .resolver import PatientNotInResults, PatientResolver, PatientSearch, SearchState

ANYAS = [
    {'id': 7, 'full_name': 'Anya Sharma', 'phone': '9876543210'},
    {'id': 8, 'full_name': 'Anya Rao', 'phone': '9123456780'},
    {'id': 9, 'full_name': 'Anya Iyer', 'phone': '9988776655'},
]


class PatientResolverTest(SimpleTestCase):
    """Test the resolver state machine without a backend."""

    def resolver(self, patients=None, side_effect=None):
        lookup = MagicMock(return_value=patients or [], side_effect=side_effect)
        return PatientResolver(lookup=lookup, limit=10, autoselect_min_length=5), lookup

    def test_specific_query_with_single_match_is_selected(self):
        resolver, lookup = self.resolver([ANYAS[0]])

        search = resolver.search('9876543210')

        self.assertEqual(search.state, SearchState.SELECTED)
        self.assertEqual(search.selected['id'], 7)
        self.assertEqual(search.results, [])
        lookup.assert_called_once_with('9876543210', 10)

    def test_short_query_with_single_match_needs_a_pick(self):
        resolver, _ = self.resolver([ANYAS[0]])

        search = resolver.search('Anya')

        self.assertEqual(search.state, SearchState.MULTIPLE)
        self.assertIsNone(search.selected)

    def test_multiple_matches_then_pick(self):
        resolver, _ = self.resolver(ANYAS)

        search = resolver.search('Anya')
        self.assertEqual(search.state, SearchState.MULTIPLE)
        self.assertEqual(len(search.results), 3)

        picked = resolver.pick(8)
        self.assertEqual(picked['full_name'], 'Anya Rao')
        self.assertEqual(resolver.state, SearchState.SELECTED)
        self.assertEqual(resolver.search_state.results, [])

    def test_pick_outside_results(self):
        resolver, _ = self.resolver(ANYAS)
        resolver.search('Anya')
        with self.assertRaises(PatientNotInResults):
            resolver.pick(99)
        self.assertEqual(resolver.state, SearchState.MULTIPLE)

    def test_no_results(self):
        resolver, _ = self.resolver([])
        search = resolver.search('Zed')
        self.assertEqual(search.state, SearchState.NO_RESULTS)
        self.assertEqual(search.message, 'No patient found matching "Zed".')

    def test_empty_query_resets_without_lookup(self):
        resolver, lookup = self.resolver([ANYAS[0]])
        resolver.search('9876543210')

        search = resolver.search('   ')

        self.assertEqual(search.state, SearchState.IDLE)
        self.assertIsNone(search.selected)
        lookup.assert_called_once()

    def test_clear_returns_to_idle(self):
        resolver, _ = self.resolver([ANYAS[0]])
        resolver.search('9876543210')
        generation = resolver.search_state.generation

        resolver.clear()

        self.assertEqual(resolver.state, SearchState.IDLE)
        self.assertIsNone(resolver.selected)
        self.assertEqual(resolver.search_state.query, '')
        self.assertGreater(resolver.search_state.generation, generation)

    def test_stale_outcome_is_dropped(self):
        resolver, _ = self.resolver()
        first = resolver.begin('Anya')
        second = resolver.begin('Anya Sharma')

        self.assertFalse(resolver.resolve(first, ANYAS))
        self.assertEqual(resolver.state, SearchState.SEARCHING)
        self.assertTrue(resolver.resolve(second, [ANYAS[0]]))
        self.assertEqual(resolver.selected['id'], 7)

    def test_outcome_after_clear_is_dropped(self):
        resolver, _ = self.resolver()
        ticket = resolver.begin('9876543210')
        resolver.clear()

        self.assertFalse(resolver.resolve(ticket, [ANYAS[0]]))
        self.assertFalse(resolver.fail(ticket, 'late failure'))
        self.assertEqual(resolver.state, SearchState.IDLE)

    def test_backend_failure_ends_in_no_results(self):
        resolver, _ = self.resolver(side_effect=LabAPIError('boom', status_code=500))

        search = resolver.search('Anya')

        self.assertEqual(search.state, SearchState.NO_RESULTS)
        self.assertEqual(search.error, 'Could not search patients. Please try again.')

    def test_unauthorized_is_recorded_and_raised(self):
        resolver, _ = self.resolver(side_effect=LabAuthError(status_code=401))

        with self.assertRaises(LabAuthError):
            resolver.search('Anya')

        self.assertEqual(resolver.state, SearchState.NO_RESULTS)
        self.assertEqual(resolver.search_state.error, LabAuthError.default_message)

    def test_state_round_trip(self):
        resolver, _ = self.resolver(ANYAS)
        resolver.search('Anya')

        restored = PatientSearch.from_dict(resolver.search_state.as_dict())

        self.assertEqual(restored, resolver.search_state)
        self.assertEqual(PatientSearch.from_dict(None).state, SearchState.IDLE)


class PatientStepApiTest(LabApiTestCase):
    """Test the patient step of the bill wizard."""

    def setUp(self):
        super().setUp()
        response = self.api.post('/api/bill-drafts/', {}, format='json')
        self.draft_id = response.data['data']['id']

    def url(self, action):
        return f'/api/bill-drafts/{self.draft_id}/{action}/'

    def test_multiple_matches_then_pick(self):
        others = [
            dict(PATIENT, id=8, patientId='PAT008', lastName='Rao', phone='9123456780'),
            dict(PATIENT, id=9, patientId='PAT009', lastName='Iyer', phone='9988776655'),
        ]
        self.lab.search_patients.return_value = [PATIENT] + others

        response = self.api.post(self.url('search_patient'), {'query': 'Anya'}, format='json')
        search = response.data['data']['patient_search']
        self.assertEqual(search['state'], 'multiple')
        self.assertEqual([p['id'] for p in search['results']], [7, 8, 9])

        response = self.api.post(self.url('pick_patient'), {'patient_id': 99}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('patient_id', response.data['errors'])

        response = self.api.post(self.url('pick_patient'), {'patient_id': 8}, format='json')
        search = response.data['data']['patient_search']
        self.assertEqual(search['state'], 'selected')
        self.assertEqual(search['selected']['full_name'], 'Ms Anya Rao')
        self.assertEqual(search['results'], [])

    def test_no_match_message(self):
        self.lab.search_patients.return_value = []
        response = self.api.post(self.url('search_patient'), {'query': 'Zed'}, format='json')
        self.assertEqual(response.data['data']['patient_search']['state'], 'no_results')
        self.assertEqual(response.data['message'], 'No patient found matching "Zed".')

    def test_clear_patient(self):
        self.lab.search_patients.return_value = [PATIENT]
        self.api.post(self.url('search_patient'), {'query': '9876543210'}, format='json')

        response = self.api.post(self.url('clear_patient'), {}, format='json')

        search = response.data['data']['patient_search']
        self.assertEqual(search['state'], 'idle')
        self.assertIsNone(search['selected'])

    def test_clear_during_search_discards_the_outcome(self):
        def lookup(query, limit):
            billing_services.clear_patient(self.lab, BillDraft.objects.get(pk=self.draft_id))
            return [PATIENT]

        self.lab.search_patients.side_effect = lookup

        response = self.api.post(self.url('search_patient'), {'query': '9876543210'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['patient_search']['state'], 'idle')
        self.assertIsNone(BillDraft.objects.get(pk=self.draft_id).patient)

    def test_backend_failure(self):
        self.lab.search_patients.side_effect = LabAPIError('boom', status_code=500)

        response = self.api.post(self.url('search_patient'), {'query': 'Anya'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['patient_search']['state'], 'no_results')
        self.assertEqual(response.data['message'], 'Could not search patients. Please try again.')

    def test_expired_session(self):
        self.lab.search_patients.side_effect = LabAuthError(status_code=401)

        response = self.api.post(self.url('search_patient'), {'query': 'Anya'}, format='json')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'unauthorized')
        search = BillDraft.objects.get(pk=self.draft_id).get_patient_search()
        self.assertEqual(search.state, SearchState.NO_RESULTS)
