"""
Patient search-to-selection state machine used by the bill wizard.

States: idle -> searching -> (no_results | multiple | selected); any state
returns to idle on clear() or an empty query. Every search and every clear
bumps ``generation``; outcomes carrying an older generation are dropped so a
slow early search can never overwrite a newer one.
"""

from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional
import logging

from django.db import models

from common.exceptions import LabAPIError, LabAuthError

logger = logging.getLogger(__name__)

PatientLookup = Callable[[str, int], List[Dict]]


class SearchState(models.TextChoices):
    IDLE = 'idle', 'Idle'
    SEARCHING = 'searching', 'Searching'
    NO_RESULTS = 'no_results', 'No Results'
    MULTIPLE = 'multiple', 'Multiple Results'
    SELECTED = 'selected', 'Selected'


class PatientNotInResults(LookupError):
    """pick() was called with a patient that is not among the current results"""


@dataclass
class PatientSearch:
    state: str = SearchState.IDLE
    query: str = ''
    results: List[Dict] = field(default_factory=list)
    selected: Optional[Dict] = None
    generation: int = 0
    message: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict:
        data = asdict(self)
        data['state'] = str(self.state)
        return data

    def awaiting(self, ticket: int) -> bool:
        """True while ``ticket`` is the search this state is waiting for."""
        return ticket == self.generation and self.state == SearchState.SEARCHING

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'PatientSearch':
        if not data:
            return cls()
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


class PatientResolver:
    """
    Reconciles a free-text query against the patient directory.

    Args:
        lookup: callable ``(query, limit) -> list of patient dicts``
        search: state to resume from
        limit: maximum number of results requested from the directory
        autoselect_min_length: a single match is selected without a manual
            pick only when the query is longer than this (a full phone number
            rather than a fragment of a name)
    """

    def __init__(self, lookup: PatientLookup = None, search: PatientSearch = None,
                 limit: int = 10, autoselect_min_length: int = 5):
        self.lookup = lookup
        self.search_state = search or PatientSearch()
        self.limit = limit
        self.autoselect_min_length = autoselect_min_length

    @property
    def state(self) -> str:
        return self.search_state.state

    @property
    def selected(self) -> Optional[Dict]:
        return self.search_state.selected

    def _reset(self, state: str, query: str = ''):
        current = self.search_state
        self.search_state = PatientSearch(state=state, query=query, generation=current.generation + 1)

    def begin(self, query: str) -> Optional[int]:
        """
        Start a search.

        Returns:
            The ticket to pass to resolve()/fail(), or None for an empty
            query (which resets to idle without any lookup).
        """
        query = (query or '').strip()
        if not query:
            self._reset(SearchState.IDLE)
            return None

        self._reset(SearchState.SEARCHING, query)
        logger.debug(f"Patient search #{self.search_state.generation} started")
        return self.search_state.generation

    def _is_current(self, ticket: int) -> bool:
        current = self.search_state
        if not current.awaiting(ticket):
            logger.info(f"Dropping stale patient search #{ticket} (current #{current.generation})")
            return False
        return True

    def resolve(self, ticket: int, patients: List[Dict]) -> bool:
        """Apply directory results; returns False when the ticket is stale."""
        if not self._is_current(ticket):
            return False

        search = self.search_state
        if not patients:
            search.state = SearchState.NO_RESULTS
            search.message = f'No patient found matching "{search.query}".'
        elif len(patients) == 1 and len(search.query) > self.autoselect_min_length:
            search.state = SearchState.SELECTED
            search.selected = patients[0]
        else:
            search.state = SearchState.MULTIPLE
            search.results = list(patients)
        return True

    def fail(self, ticket: int, message: str) -> bool:
        """Record a failed lookup; returns False when the ticket is stale."""
        if not self._is_current(ticket):
            return False

        search = self.search_state
        search.state = SearchState.NO_RESULTS
        search.selected = None
        search.results = []
        search.error = message
        return True

    def search(self, query: str) -> PatientSearch:
        """
        Run a complete search against ``lookup``.

        Backend failures end in ``no_results`` with ``error`` set. An
        unauthorized failure is recorded the same way and then re-raised.
        """
        ticket = self.begin(query)
        if ticket is not None:
            self.run(ticket)
        return self.search_state

    def run(self, ticket: int):
        """Look up the current query and apply the outcome under ``ticket``."""
        try:
            patients = self.lookup(self.search_state.query, self.limit)
        except LabAuthError as e:
            self.fail(ticket, e.message)
            raise
        except LabAPIError as e:
            logger.error(f"Patient search failed: {e.message}")
            self.fail(ticket, 'Could not search patients. Please try again.')
            return

        self.resolve(ticket, patients)

    def pick(self, patient_id: int) -> Dict:
        """Select one of the listed results and clear the list."""
        search = self.search_state
        for patient in search.results:
            if patient.get('id') == patient_id:
                search.state = SearchState.SELECTED
                search.selected = patient
                search.results = []
                search.message = None
                return patient
        raise PatientNotInResults(patient_id)

    def clear(self):
        """Back to idle; any search still in flight is discarded."""
        self._reset(SearchState.IDLE)
