"""
Exceptions raised while talking to the lab backend, and the DRF exception
handler that turns them into short, user-facing responses.
"""

import logging

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, AuthenticationFailed, NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

# backend answers that describe the caller's request rather than a backend fault
PASSTHROUGH_STATUSES = {
    status.HTTP_400_BAD_REQUEST: 'invalid',
    status.HTTP_403_FORBIDDEN: 'forbidden',
    status.HTTP_404_NOT_FOUND: 'not_found',
    status.HTTP_409_CONFLICT: 'conflict',
}


class LabAPIError(Exception):
    """Custom exception for lab backend API errors"""
    default_message = 'The lab server could not complete the request.'

    def __init__(self, message: str = None, status_code: int = None, response_data: dict = None):
        self.message = message or self.default_message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(self.message)


class LabAuthError(LabAPIError):
    """The backend rejected the bearer token (HTTP 401) or no token was supplied"""
    default_message = 'Your session has expired. Please log in again.'


class LabTimeoutError(LabAPIError):
    """The backend did not answer within LAB_BACKEND_TIMEOUT"""
    default_message = 'The lab server took too long to respond.'


class LabPayloadError(LabAPIError):
    """The backend answered with a payload that does not match the expected shape"""
    default_message = 'The lab server returned an unexpected response.'


def lab_exception_handler(exc, context):
    """
    Render lab backend failures as ``{"success": false, "error": ..., "code": ...}``.

    Unauthorized responses keep their own code so the front-end shell can
    discard the token and redirect to login instead of showing a toast.
    """
    if isinstance(exc, LabAPIError):
        view = context.get('view')
        logger.error(
            f"Lab backend failure in {view.__class__.__name__ if view else 'unknown view'}: "
            f"{exc.message} (status={exc.status_code})"
        )

        if isinstance(exc, LabAuthError):
            http_status, code = status.HTTP_401_UNAUTHORIZED, 'unauthorized'
        elif isinstance(exc, LabTimeoutError):
            http_status, code = status.HTTP_504_GATEWAY_TIMEOUT, 'backend_timeout'
        elif exc.status_code in PASSTHROUGH_STATUSES:
            http_status, code = exc.status_code, PASSTHROUGH_STATUSES[exc.status_code]
        else:
            http_status, code = status.HTTP_502_BAD_GATEWAY, 'backend_error'

        return Response(
            {'success': False, 'error': exc.message, 'code': code},
            status=http_status
        )

    response = exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and 'detail' in response.data:
        if isinstance(exc, (NotAuthenticated, AuthenticationFailed)):
            code = 'unauthorized'
        elif isinstance(exc, Http404):
            code = 'not_found'
        else:
            code = getattr(exc, 'default_code', 'error')
        response.data = {'success': False, 'error': response.data['detail'], 'code': code}
    elif response is not None:
        response.data = {'success': False, 'errors': response.data, 'code': 'invalid'}
    return response


class DraftAlreadySubmitted(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This bill has already been generated; only payment details can change.'
    default_code = 'draft_submitted'


class BillFinalized(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'This bill is finalized and cannot be edited.'
    default_code = 'bill_finalized'


class SubmissionInProgress(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This bill is already being generated. Please wait.'
    default_code = 'submission_in_progress'
