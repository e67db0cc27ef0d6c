"""
Tests for the test package builder.
"""

from django.core.cache import cache

from common.exceptions import LabAPIError
from common.middleware import token_key
from apps.billing.tests import LabApiTestCase, TOKEN

URL = '/api/test-packages/'


class PackageOptionsApiTest(LabApiTestCase):
    """Test the selection preview used while building a package."""

    def test_selection_subtotal_and_remaining_tests(self):
        response = self.api.get(f'{URL}options/', {'selected': 'test_2,test_1,test_2'})

        self.assertEqual(response.status_code, 200)
        data = response.data['data']
        self.assertEqual([o['display_id'] for o in data['selected']], ['test_2', 'test_1'])
        self.assertEqual(data['sub_total'], '950.00')
        self.assertEqual([o['display_id'] for o in data['available']], ['test_3'])
        self.lab.get_test_packages.assert_not_called()

    def test_empty_selection(self):
        response = self.api.get(f'{URL}options/')

        data = response.data['data']
        self.assertEqual(data['selected'], [])
        self.assertEqual(data['sub_total'], '0.00')
        self.assertEqual(len(data['available']), 3)

    def test_packages_cannot_contain_packages(self):
        response = self.api.get(f'{URL}options/', {'selected': 'package_1'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('selected_tests', response.data['errors'])


class CreatePackageApiTest(LabApiTestCase):
    """Test package creation."""

    def valid_data(self, **overrides):
        data = {
            'name': 'Basic Health Checkup',
            'package_code': 'BHC01',
            'price': '999.00',
            'description': 'CBC and lipid profile',
            'image_seed': 'basic-health',
            'selected_tests': ['test_1', 'test_2'],
        }
        data.update(overrides)
        return data

    def test_create(self):
        self.lab.create_test_package.return_value = {'id': 5, 'name': 'Basic Health Checkup'}

        response = self.api.post(URL, self.valid_data(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['id'], 5)
        payload = self.lab.create_test_package.call_args[0][0]
        self.assertEqual(dict(payload), {
            'name': 'Basic Health Checkup',
            'packageCode': 'BHC01',
            'price': 999.0,
            'description': 'CBC and lipid profile',
            'selectedTests': [1, 2],
            'imageSeed': 'basic-health',
        })

    def test_optional_fields_default_to_blank(self):
        self.lab.create_test_package.return_value = {'id': 6}
        data = self.valid_data()
        for field in ('package_code', 'description', 'image_seed'):
            data.pop(field)

        response = self.api.post(URL, data, format='json')

        self.assertEqual(response.status_code, 201)
        payload = self.lab.create_test_package.call_args[0][0]
        self.assertEqual(payload['packageCode'], '')
        self.assertEqual(payload['imageSeed'], '')

    def test_duplicates_are_sent_once(self):
        self.lab.create_test_package.return_value = {'id': 7}
        self.api.post(URL, self.valid_data(selected_tests=['test_3', 'test_3', 'test_1']), format='json')
        payload = self.lab.create_test_package.call_args[0][0]
        self.assertEqual(payload['selectedTests'], [3, 1])

    def test_invalid_forms(self):
        cases = {
            'name': self.valid_data(name='ab'),
            'price': self.valid_data(price='-1'),
            'selected_tests': self.valid_data(selected_tests=[]),
        }
        for field, data in cases.items():
            with self.subTest(field=field):
                response = self.api.post(URL, data, format='json')
                self.assertEqual(response.status_code, 400)
                self.assertIn(field, response.data['errors'])
        self.lab.create_test_package.assert_not_called()

    def test_unknown_test(self):
        response = self.api.post(URL, self.valid_data(selected_tests=['test_1', 'test_99']), format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors']['selected_tests'], ['Unknown test: test_99.'])
        self.lab.create_test_package.assert_not_called()

    def test_new_package_refreshes_bill_catalog(self):
        self.lab.create_test_package.return_value = {'id': 5}
        cache.set(f"lab-catalog:{token_key(TOKEN)}", ['stale'])

        self.api.post(URL, self.valid_data(), format='json')

        self.assertIsNone(cache.get(f"lab-catalog:{token_key(TOKEN)}"))


def package_payload(**overrides):
    """Package as ``GET /test-packages/{id}`` returns it."""
    package = {
        'id': 4,
        'name': 'Liver Function Panel',
        'packageCode': None,
        'price': '899.00',
        'description': None,
        'status': 'Active',
        'imageSeed': 'liver',
        'tests': [
            {'id': 3, 'name': 'Blood Sugar', 'price': '150.50'},
            {'id': 1, 'name': 'Complete Blood Count', 'price': '350.00'},
        ],
    }
    package.update(overrides)
    return package


class EditPackageApiTest(LabApiTestCase):
    """Test loading a package into the edit form and saving it back."""

    def valid_data(self, **overrides):
        data = {
            'name': 'Liver Function Panel',
            'package_code': 'LFP01',
            'price': '950.00',
            'description': 'Sugar, CBC and lipids',
            'image_seed': 'liver',
            'status': 'Archived',
            'selected_tests': ['test_3', 'test_1', 'test_2'],
        }
        data.update(overrides)
        return data

    def test_retrieve_preselects_package_tests(self):
        self.lab.get_test_package.return_value = package_payload()

        response = self.api.get(f'{URL}4/')

        self.assertEqual(response.status_code, 200)
        data = response.data['data']
        self.assertEqual(data['name'], 'Liver Function Panel')
        self.assertEqual(data['package_code'], '')
        self.assertEqual(data['description'], '')
        self.assertEqual(data['status'], 'Active')
        self.assertEqual(data['price'], '899.00')
        self.assertEqual([o['display_id'] for o in data['selected']], ['test_3', 'test_1'])
        self.assertEqual(data['sub_total'], '500.50')
        self.assertEqual([o['display_id'] for o in data['available']], ['test_2'])
        self.lab.get_test_package.assert_called_once_with(4)

    def test_retrieve_without_status_defaults_to_active(self):
        package = package_payload(tests=[])
        del package['status']
        self.lab.get_test_package.return_value = package

        data = self.api.get(f'{URL}4/').data['data']

        self.assertEqual(data['status'], 'Active')
        self.assertEqual(data['selected'], [])
        self.assertEqual(len(data['available']), 3)

    def test_update(self):
        self.lab.update_test_package.return_value = {'id': 4, 'name': 'Liver Function Panel'}

        response = self.api.put(f'{URL}4/', self.valid_data(), format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['message'], 'Test package updated successfully')
        self.assertEqual(response.data['data']['id'], 4)
        package_id, payload = self.lab.update_test_package.call_args[0]
        self.assertEqual(package_id, 4)
        self.assertEqual(dict(payload), {
            'name': 'Liver Function Panel',
            'packageCode': 'LFP01',
            'price': 950.0,
            'description': 'Sugar, CBC and lipids',
            'selectedTests': [3, 1, 2],
            'status': 'Archived',
            'imageSeed': 'liver',
        })

    def test_update_defaults_to_active(self):
        self.lab.update_test_package.return_value = {'id': 4}
        data = self.valid_data()
        data.pop('status')

        self.api.put(f'{URL}4/', data, format='json')

        payload = self.lab.update_test_package.call_args[0][1]
        self.assertEqual(payload['status'], 'Active')

    def test_invalid_updates(self):
        cases = {
            'status': self.valid_data(status='Deleted'),
            'price': self.valid_data(price='100000000'),
            'selected_tests': self.valid_data(selected_tests=['test_1', 'test_99']),
        }
        for field, data in cases.items():
            with self.subTest(field=field):
                response = self.api.put(f'{URL}4/', data, format='json')
                self.assertEqual(response.status_code, 400)
                self.assertIn(field, response.data['errors'])
        self.lab.update_test_package.assert_not_called()

    def test_updated_package_refreshes_bill_catalog(self):
        self.lab.update_test_package.return_value = {'id': 4}
        cache.set(f"lab-catalog:{token_key(TOKEN)}", ['stale'])

        self.api.put(f'{URL}4/', self.valid_data(), format='json')

        self.assertIsNone(cache.get(f"lab-catalog:{token_key(TOKEN)}"))

    def test_backend_not_found(self):
        self.lab.get_test_package.side_effect = LabAPIError('Test package not found.', status_code=404)

        response = self.api.get(f'{URL}99/')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['error'], 'Test package not found.')
