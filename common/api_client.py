"""
Lab Backend API Client

This module provides a client for the external lab (LMS) REST backend that
owns patients, doctors, tests, packages and bills. The bearer token is
supplied by an injected token provider, so the client has no global state.
"""

import requests
import logging
from typing import Any, Callable, Dict, List, Optional
from django.conf import settings

from common.exceptions import LabAPIError, LabAuthError, LabPayloadError, LabTimeoutError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class LabBackendClient:
    """
    Client for interacting with the lab backend APIs

    Handles authentication, the ``{success, data, message}`` envelope and
    error mapping for every backend call. Failed requests are reported once;
    nothing is retried automatically.
    """

    def __init__(self, token_provider: TokenProvider = None, base_url: str = None,
                 timeout: int = None, session: requests.Session = None):
        """
        Initialize the API client

        Args:
            token_provider: callable returning the bearer token (or None)
            base_url: backend base URL, defaults to settings.LAB_BACKEND_URL
            timeout: request timeout in seconds, defaults to settings.LAB_BACKEND_TIMEOUT
            session: optional requests session (shared connection pool)
        """
        self.api_url = (base_url or settings.LAB_BACKEND_URL).rstrip('/')
        self.token_provider = token_provider or (lambda: None)
        self.timeout = timeout or settings.LAB_BACKEND_TIMEOUT
        self.session = session or requests.Session()

    @classmethod
    def for_request(cls, request, **kwargs) -> 'LabBackendClient':
        """Build a client that forwards the caller's bearer token"""
        return cls(token_provider=lambda: getattr(request, 'lab_token', None), **kwargs)

    def _get_headers(self) -> Dict[str, str]:
        """
        Get headers for API requests

        Raises:
            LabAuthError: when the token provider has no token
        """
        token = self.token_provider()
        if not token:
            raise LabAuthError('Please log in to continue.')

        return {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Authorization': f'Bearer {token}',
        }

    def _handle_response(self, response: requests.Response) -> Any:
        """
        Handle API response and raise appropriate exceptions

        Args:
            response: requests Response object

        Returns:
            The ``data`` member of the response envelope

        Raises:
            LabAuthError: on HTTP 401
            LabAPIError: on other error statuses, ``success: false`` or invalid JSON
        """
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code == 401:
            raise LabAuthError(status_code=401, response_data=body if isinstance(body, dict) else {})

        if not isinstance(body, dict):
            raise LabAPIError(
                message='The lab server returned an invalid response.',
                status_code=response.status_code
            )

        if response.status_code >= 400 or body.get('success') is False:
            error_message = body.get('message') or body.get('error') or f'API error: {response.status_code}'
            raise LabAPIError(
                message=error_message,
                status_code=response.status_code,
                response_data=body
            )

        return body.get('data')

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_url}/{path.lstrip('/')}"
        headers = self._get_headers()

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.error(f"{method} {url} timed out after {self.timeout}s: {e}")
            raise LabTimeoutError()
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise LabAPIError("Could not connect to the lab server.")

        return self._handle_response(response)

    @staticmethod
    def _as_list(data) -> List[Dict[str, Any]]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise LabPayloadError()
        return data

    # ==================== Patients & Doctors ====================

    def search_patients(self, search: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Search the patient directory

        Args:
            search: free text (name, phone number, patient ID)
            limit: maximum number of matches

        Returns:
            List of raw patient dictionaries
        """
        data = self._request('GET', 'patients', params={'search': search, 'limit': limit})
        return self._as_list(data)

    def search_doctors(self, search: str, limit: int = 10) -> List[Dict[str, Any]]:
        data = self._request('GET', 'doctors', params={'search': search, 'limit': limit})
        return self._as_list(data)

    # ==================== Catalog ====================

    def get_tests(self) -> List[Dict[str, Any]]:
        """Get every test offered by the lab"""
        data = self._request('GET', 'tests')
        return self._as_list(data)

    def get_test_packages(self) -> List[Dict[str, Any]]:
        """Get every test package offered by the lab"""
        data = self._request('GET', 'test-packages')
        return self._as_list(data)

    def create_test_package(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a test package

        Args:
            payload: ``{name, packageCode, price, description, selectedTests, imageSeed}``

        Returns:
            Created package dictionary
        """
        return self._request('POST', 'test-packages', json=payload)

    def get_test_package(self, package_id: int) -> Dict[str, Any]:
        """Get one test package with its tests (``id``, ``name``, ``price``)"""
        return self._request('GET', f'test-packages/{package_id}')

    def update_test_package(self, package_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace a test package's details and tests

        Args:
            package_id: backend package id
            payload: ``{name, packageCode, price, description, selectedTests, status, imageSeed}``

        Returns:
            Updated package dictionary
        """
        return self._request('PUT', f'test-packages/{package_id}', json=payload)

    # ==================== Bills ====================

    def create_bill(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', 'bills', json=payload)

    def get_bill(self, bill_id: int) -> Dict[str, Any]:
        return self._request('GET', f'bills/{bill_id}')

    def update_bill(self, bill_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update discount, payment and notes of an existing bill

        Args:
            bill_id: backend bill id
            payload: ``{discountAmount, amountReceived, paymentMode, notes}``

        Returns:
            Updated bill dictionary echoed by the backend
        """
        return self._request('PUT', f'bills/{bill_id}', json=payload)
