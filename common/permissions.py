from rest_framework.permissions import BasePermission
import logging

logger = logging.getLogger(__name__)


class HasLabToken(BasePermission):
    """
    Allow only requests that carry a bearer token for the lab backend.

    Unauthenticated requests are answered with 401 (DRF raises
    NotAuthenticated because LabBearerAuthentication supplies a
    WWW-Authenticate header) so the front-end shell can tell "log in again"
    apart from "not allowed".
    """
    message = 'Missing or invalid Authorization header. Expected format: Bearer <token>'

    def has_permission(self, request, view):
        if request.auth:
            return True
        logger.debug(f"Rejected {request.path}: no bearer token")
        return False
