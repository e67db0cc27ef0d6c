"""
Test package builder.

Packages are assembled from tests only; the selection works on display ids
(``test_12``) and the backend receives the numeric test ids. Existing
packages load into the same selection and are saved back with a PUT.
"""

from typing import Dict, Iterable, List
from django.conf import settings
from django.core.cache import cache
from rest_framework.exceptions import ValidationError
import logging

from common.serializers import parse_payload
from apps.billing.choices import ItemType, PackageStatus
from apps.billing.selection import TestOption, TestSelection
from apps.billing.serializers import CatalogItemPayloadSerializer
from apps.billing.services import invalidate_catalog
from .serializers import (
    TestPackageDetailPayloadSerializer,
    TestPackagePayloadSerializer,
    TestPackageUpdatePayloadSerializer,
)

logger = logging.getLogger(__name__)


def load_tests(client, owner_key: str) -> List[TestOption]:
    """Every test offered by the lab, cached per bearer token."""
    cache_key = f"lab-tests:{owner_key}"
    tests = cache.get(cache_key)
    if tests is not None:
        return tests

    raw = parse_payload(CatalogItemPayloadSerializer, client.get_tests(), many=True)
    tests = [TestOption.from_backend(test['id'], test['name'], test['price'], ItemType.TEST) for test in raw]
    cache.set(cache_key, tests, settings.LAB_CATALOG_CACHE_SECONDS)
    return tests


def build_selection(tests: List[TestOption], display_ids: Iterable[str]) -> TestSelection:
    """
    Selection for the given display ids, in the order given.

    Duplicates are ignored.

    Raises:
        ValidationError: when an id is not a known test
    """
    by_id = {test.display_id: test for test in tests}
    unknown = [display_id for display_id in display_ids if display_id not in by_id]
    if unknown:
        raise ValidationError({'selected_tests': [f"Unknown test: {', '.join(unknown)}."]})

    selection = TestSelection()
    for display_id in display_ids:
        selection.add(by_id[display_id])
    return selection


def package_options(client, owner_key: str, display_ids: List[str]) -> Dict:
    """Current selection, its subtotal and the tests still available."""
    tests = load_tests(client, owner_key)
    selection = build_selection(tests, display_ids)
    return {
        'selected': selection.options,
        'sub_total': selection.subtotal,
        'available': selection.available(tests),
    }


def create_package(client, owner_key: str, data: Dict) -> Dict:
    """
    Create a test package on the lab backend.

    Args:
        data: validated TestPackageCreateSerializer data

    Returns:
        The package echoed by the backend
    """
    selection = build_selection(load_tests(client, owner_key), data['selected_tests'])
    payload = TestPackagePayloadSerializer({
        'name': data['name'],
        'package_code': data.get('package_code', ''),
        'price': data['price'],
        'description': data.get('description', ''),
        'selected_tests': selection.backend_ids(),
        'image_seed': data.get('image_seed', ''),
    }).data

    package = client.create_test_package(payload)
    # new package must show up in the bill wizard catalog
    invalidate_catalog(owner_key)
    logger.info(f"Created test package {data['name']!r} with {len(selection)} test(s)")
    return package


def get_package(client, owner_key: str, package_id: int) -> Dict:
    """
    Package loaded for editing.

    Its tests come back preselected (``test_{id}``) in the backend's order,
    with their subtotal and the tests that can still be added.
    """
    package = parse_payload(TestPackageDetailPayloadSerializer, client.get_test_package(package_id))
    selection = TestSelection(
        TestOption.from_backend(test['id'], test['name'], test['price'], ItemType.TEST)
        for test in package['tests']
    )
    return {
        'id': package['id'],
        'name': package['name'],
        'package_code': package['package_code'] or '',
        'price': package['price'],
        'description': package['description'] or '',
        'status': package['status'],
        'image_seed': package['image_seed'] or '',
        'selected': selection.options,
        'sub_total': selection.subtotal,
        'available': selection.available(load_tests(client, owner_key)),
    }


def update_package(client, owner_key: str, package_id: int, data: Dict) -> Dict:
    """
    Replace a package's details and tests on the lab backend.

    Args:
        data: validated TestPackageUpdateSerializer data

    Returns:
        The package echoed by the backend
    """
    selection = build_selection(load_tests(client, owner_key), data['selected_tests'])
    payload = TestPackageUpdatePayloadSerializer({
        'name': data['name'],
        'package_code': data.get('package_code', ''),
        'price': data['price'],
        'description': data.get('description', ''),
        'selected_tests': selection.backend_ids(),
        'status': data.get('status', PackageStatus.ACTIVE),
        'image_seed': data.get('image_seed', ''),
    }).data

    package = client.update_test_package(package_id, payload)
    invalidate_catalog(owner_key)
    logger.info(f"Updated test package {package_id} with {len(selection)} test(s)")
    return package
