"""
Patient directory lookups against the lab backend.
"""

from typing import Dict, List
from django.conf import settings
import logging

from common.serializers import parse_payload
from .resolver import PatientResolver, PatientSearch
from .serializers import PatientPayloadSerializer

logger = logging.getLogger(__name__)


def search_patients(client, query: str, limit: int = None) -> List[Dict]:
    """
    Search patients by name, phone number or patient ID.

    Args:
        client: LabBackendClient
        query: free text
        limit: maximum number of matches (defaults to LAB_PATIENT_SEARCH_LIMIT)

    Returns:
        List of validated patient dicts (snake_case, with full_name)
    """
    limit = limit or settings.LAB_PATIENT_SEARCH_LIMIT
    raw = client.search_patients(query, limit=limit)
    patients = [dict(patient) for patient in parse_payload(PatientPayloadSerializer, raw, many=True)]
    logger.info(f"Patient search returned {len(patients)} match(es)")
    return patients


def build_resolver(client, search: PatientSearch = None) -> PatientResolver:
    """Resolver wired to the lab backend with the configured limits."""
    return PatientResolver(
        lookup=lambda query, limit: search_patients(client, query, limit),
        search=search,
        limit=settings.LAB_PATIENT_SEARCH_LIMIT,
        autoselect_min_length=settings.LAB_PATIENT_AUTOSELECT_MIN_LENGTH,
    )
