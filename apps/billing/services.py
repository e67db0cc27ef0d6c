"""
Billing wizard services.

Functions that move a BillDraft through the wizard steps and talk to the lab
backend for the catalog, doctor lookup, bill creation and bill edits. Views
stay thin; every rule about what may change when lives here.
"""

from typing import Dict, List, Optional, Tuple
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import Max
from django.utils import timezone
from rest_framework.exceptions import ValidationError
import logging

from common.exceptions import BillFinalized, DraftAlreadySubmitted, LabAuthError, SubmissionInProgress
from common.serializers import parse_payload
from apps.patients.resolver import PatientNotInResults, SearchState
from apps.patients.services import build_resolver
from .calculator import AmountError, LineItem, compute_totals, totals_for_subtotal, validate_amount
from .choices import BillStatus, ItemType
from .models import BillDraft, BillDraftItem
from .selection import TestOption
from .serializers import (
    BillPayloadSerializer,
    BillSubmitPayloadSerializer,
    BillUpdatePayloadSerializer,
    CatalogItemPayloadSerializer,
    DoctorPayloadSerializer,
)

logger = logging.getLogger(__name__)

PAYMENT_FIELDS = ('discount_amount', 'amount_received', 'payment_mode', 'notes')


# ==================== Guards ====================

def ensure_not_finalized(draft: BillDraft):
    if draft.is_finalized:
        raise BillFinalized()


def ensure_editable(draft: BillDraft):
    """Patient, doctor and items can only change before the bill is generated."""
    ensure_not_finalized(draft)
    if draft.is_submitted:
        raise DraftAlreadySubmitted()
    if draft.submitting:
        raise SubmissionInProgress()


def _lock(draft: BillDraft) -> BillDraft:
    return BillDraft.objects.select_for_update().get(pk=draft.pk)


# ==================== Catalog ====================

def _catalog_cache_key(owner_key: str) -> str:
    return f"lab-catalog:{owner_key}"


def load_catalog(client, owner_key: str) -> List[TestOption]:
    """
    Tests followed by packages, as selectable options.

    Cached per bearer token for LAB_CATALOG_CACHE_SECONDS.
    """
    cache_key = _catalog_cache_key(owner_key)
    catalog = cache.get(cache_key)
    if catalog is not None:
        return catalog

    tests = parse_payload(CatalogItemPayloadSerializer, client.get_tests(), many=True)
    packages = parse_payload(CatalogItemPayloadSerializer, client.get_test_packages(), many=True)

    catalog = [
        TestOption.from_backend(test['id'], test['name'], test['price'], ItemType.TEST)
        for test in tests
    ] + [
        TestOption.from_backend(package['id'], package['name'], package['price'], ItemType.PACKAGE)
        for package in packages
    ]
    cache.set(cache_key, catalog, settings.LAB_CATALOG_CACHE_SECONDS)
    logger.info(f"Loaded catalog with {len(tests)} test(s) and {len(packages)} package(s)")
    return catalog


def find_option(catalog: List[TestOption], display_id: str) -> TestOption:
    for option in catalog:
        if option.display_id == display_id:
            return option
    raise ValidationError({'display_id': [f'Unknown test or package: {display_id}.']})


def invalidate_catalog(owner_key: str):
    cache.delete(_catalog_cache_key(owner_key))


def available_options(client, draft: BillDraft) -> List[TestOption]:
    return draft.get_selection().available(load_catalog(client, draft.owner_key))


# ==================== Patient step ====================

def search_patient(client, draft: BillDraft, query: str) -> BillDraft:
    """
    Search the patient directory for the draft.

    The search is registered under a row lock, the lookup runs without any
    lock held, and the outcome is written back only if no newer search or
    clear happened in the meantime.
    """
    with transaction.atomic():
        locked = _lock(draft)
        ensure_editable(locked)
        resolver = build_resolver(client, locked.get_patient_search())
        ticket = resolver.begin(query)
        locked.set_patient_search(resolver.search_state)
        locked.save(update_fields=['patient_search', 'patient_search_generation', 'updated_at'])

    if ticket is None:
        return locked

    auth_error = None
    try:
        resolver.run(ticket)
    except LabAuthError as e:
        auth_error = e

    with transaction.atomic():
        locked = _lock(draft)
        if locked.get_patient_search().awaiting(ticket):
            locked.set_patient_search(resolver.search_state)
            locked.save(update_fields=['patient_search', 'patient_search_generation', 'updated_at'])
            logger.info(f"Draft {locked.pk}: patient search #{ticket} -> {resolver.state}")
        else:
            logger.info(f"Draft {locked.pk}: discarded outcome of superseded patient search #{ticket}")

    if auth_error is not None:
        raise auth_error
    return locked


@transaction.atomic
def pick_patient(client, draft: BillDraft, patient_id: int) -> BillDraft:
    locked = _lock(draft)
    ensure_editable(locked)
    resolver = build_resolver(client, locked.get_patient_search())
    try:
        resolver.pick(patient_id)
    except PatientNotInResults:
        raise ValidationError({'patient_id': ['Pick a patient from the current search results.']})
    locked.set_patient_search(resolver.search_state)
    locked.save(update_fields=['patient_search', 'patient_search_generation', 'updated_at'])
    return locked


@transaction.atomic
def clear_patient(client, draft: BillDraft) -> BillDraft:
    locked = _lock(draft)
    ensure_editable(locked)
    resolver = build_resolver(client, locked.get_patient_search())
    resolver.clear()
    locked.set_patient_search(resolver.search_state)
    locked.save(update_fields=['patient_search', 'patient_search_generation', 'updated_at'])
    return locked


# ==================== Doctor step ====================

def select_doctor(client, draft: BillDraft, query: str) -> Tuple[BillDraft, Optional[str]]:
    """
    Attach the first doctor matching ``query`` (name or doctor ID).

    The doctor step is optional: an empty query removes the doctor.

    Returns:
        (draft, message) where message explains an unsuccessful search
    """
    ensure_editable(draft)
    query = (query or '').strip()
    doctor = None
    message = None

    if query:
        raw = client.search_doctors(query, limit=settings.LAB_PATIENT_SEARCH_LIMIT)
        doctors = parse_payload(DoctorPayloadSerializer, raw, many=True)
        if doctors:
            doctor = dict(doctors[0])
        else:
            message = f'No doctor found matching "{query}".'

    with transaction.atomic():
        locked = _lock(draft)
        ensure_editable(locked)
        locked.doctor = doctor
        locked.save(update_fields=['doctor', 'updated_at'])
    return locked, message


# ==================== Items step ====================

@transaction.atomic
def add_item(client, draft: BillDraft, display_id: str) -> Tuple[BillDraft, bool]:
    """
    Append a test or package to the draft.

    Returns:
        (draft, added) where added is False when it was already on the bill
    """
    locked = _lock(draft)
    ensure_editable(locked)
    option = find_option(load_catalog(client, locked.owner_key), display_id)

    selection = locked.get_selection()
    if not selection.add(option):
        return locked, False

    last_position = locked.items.aggregate(last=Max('position'))['last'] or 0
    BillDraftItem.objects.create(
        draft=locked,
        display_id=option.display_id,
        backend_id=option.backend_id,
        item_type=option.item_type,
        name=option.name,
        unit_price=option.price,
        position=last_position + 1,
    )
    logger.info(f"Draft {locked.pk}: added {option.display_id}")
    return locked, True


@transaction.atomic
def remove_item(draft: BillDraft, display_id: str) -> Tuple[BillDraft, bool]:
    locked = _lock(draft)
    ensure_editable(locked)

    selection = locked.get_selection()
    if not selection.remove(display_id):
        return locked, False

    locked.items.filter(display_id=display_id).delete()
    logger.info(f"Draft {locked.pk}: removed {display_id}")
    return locked, True


# ==================== Payment step ====================

def _validated_payment(data: Dict) -> Dict:
    cleaned = {}
    for field in PAYMENT_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ('discount_amount', 'amount_received'):
            try:
                value = validate_amount(value, field)
            except AmountError as e:
                raise ValidationError({e.field: [e.message]})
        cleaned[field] = value
    return cleaned


def update_payment(client, draft: BillDraft, data: Dict) -> BillDraft:
    """
    Set discount, amount received, payment mode and notes.

    Before submission the values are kept on the draft. After submission the
    change is forwarded to the lab backend like any bill edit, and the draft
    follows the status the backend reports.
    """
    ensure_not_finalized(draft)
    if draft.submitting:
        raise SubmissionInProgress()
    cleaned = _validated_payment(data)

    if draft.is_submitted:
        bill = update_bill(client, draft.bill_id, cleaned)
        cleaned = {field: bill[field] for field in PAYMENT_FIELDS}
        cleaned['status'] = bill['status']

    with transaction.atomic():
        locked = _lock(draft)
        ensure_not_finalized(locked)
        if locked.submitting:
            raise SubmissionInProgress()
        for field, value in cleaned.items():
            setattr(locked, field, value)
        locked.save()
    return locked


# ==================== Submission ====================

def build_submit_payload(draft: BillDraft) -> Dict:
    """
    Body for ``POST /bills``.

    Raises:
        ValidationError: when no patient is selected or no item was added
    """
    errors = {}
    patient = draft.patient
    if draft.get_patient_search().state != SearchState.SELECTED or not patient:
        errors['patient'] = ['Select a patient before generating the bill.']
    selection = draft.get_selection()
    if len(selection) < 1:
        errors['items'] = ['Add at least one test or package.']
    if errors:
        raise ValidationError(errors)

    totals = compute_totals(selection.line_items(), draft.discount_amount, draft.amount_received)
    return BillSubmitPayloadSerializer({
        'patient_id': patient['id'],
        'doctor_id': draft.doctor['id'] if draft.doctor else None,
        'selected_tests': selection.options,
        'sub_total': totals.sub_total,
        'discount_amount': totals.discount_amount,
        'grand_total': totals.grand_total,
        'amount_received': totals.amount_received,
        'amount_due': totals.amount_due,
        'payment_mode': draft.payment_mode,
        'notes': draft.notes or None,
    }).data


def submit_draft(client, draft: BillDraft) -> BillDraft:
    """
    Generate the bill on the lab backend from a completed draft.

    The draft is claimed under a row lock before the backend is called, so a
    repeated submit is refused instead of creating a second bill. The claim
    is released when the backend call fails.
    """
    with transaction.atomic():
        locked = _lock(draft)
        ensure_editable(locked)
        payload = build_submit_payload(locked)
        locked.submitting = True
        locked.save(update_fields=['submitting', 'updated_at'])

    try:
        bill = render_bill(parse_payload(BillPayloadSerializer, client.create_bill(payload)))
    except Exception:
        BillDraft.objects.filter(pk=draft.pk).update(submitting=False)
        raise

    with transaction.atomic():
        locked = _lock(draft)
        locked.bill_id = bill['id']
        locked.bill_number = bill['bill_number']
        locked.status = bill['status']
        locked.submitted_at = timezone.now()
        locked.submitting = False
        locked.save()

    logger.info(f"Draft {locked.pk} submitted as bill {locked.bill_number} ({locked.status})")
    return locked


# ==================== Bill edit flow ====================

def render_bill(bill: Dict) -> Dict:
    """
    Snake_case bill with totals recomputed from its items.

    When the backend omits items the echoed subtotal is used instead.
    """
    bill = dict(bill)
    items = [dict(item) for item in bill.get('items') or []]
    bill['items'] = items
    bill['patient'] = dict(bill['patient']) if bill.get('patient') else None
    bill['doctor'] = dict(bill['doctor']) if bill.get('doctor') else None
    bill.setdefault('bill_date', None)

    if items:
        totals = compute_totals(
            [LineItem(item['item_name'], item['item_type'], item['item_price']) for item in items],
            bill['discount_amount'], bill['amount_received'],
        )
    else:
        totals = totals_for_subtotal(bill['sub_total'], bill['discount_amount'], bill['amount_received'])

    if totals.amount_due != bill['amount_due']:
        logger.warning(
            f"Bill {bill['bill_number']}: backend amount due {bill['amount_due']} "
            f"differs from computed {totals.amount_due}"
        )

    bill['totals'] = totals
    bill['is_finalized'] = bill['status'] == BillStatus.DONE
    return bill


def get_bill(client, bill_id: int) -> Dict:
    return render_bill(parse_payload(BillPayloadSerializer, client.get_bill(bill_id)))


def update_bill(client, bill_id: int, data: Dict) -> Dict:
    """
    Edit discount, payment and notes of an existing bill.

    Raises:
        BillFinalized: when the bill is already Done
        ValidationError: for negative amounts
    """
    cleaned = _validated_payment(data)
    current = get_bill(client, bill_id)
    if current['is_finalized']:
        raise BillFinalized()

    merged = {field: current[field] for field in PAYMENT_FIELDS}
    merged.update(cleaned)
    payload = BillUpdatePayloadSerializer(merged).data

    bill = render_bill(parse_payload(BillPayloadSerializer, client.update_bill(bill_id, payload)))
    logger.info(f"Bill {bill['bill_number']} updated ({bill['status']})")
    return bill
