import hashlib
from django.utils.deprecation import MiddlewareMixin
import logging

logger = logging.getLogger(__name__)


def token_key(token: str) -> str:
    """Stable, non-reversible key for a bearer token (used to scope drafts)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class LabTokenMiddleware(MiddlewareMixin):
    """
    Bearer token middleware for the lab billing service.

    The token is issued and validated by the lab backend; this service only
    forwards it. The middleware exposes it as ``request.lab_token`` together
    with ``request.lab_token_key`` and leaves rejection to the DRF permission
    classes so that non-API paths keep working without a token.
    """

    def process_request(self, request):
        """Extract the bearer token from the Authorization header."""
        request.lab_token = None
        request.lab_token_key = None

        auth_header = request.META.get('HTTP_AUTHORIZATION', '')
        if not auth_header.startswith('Bearer '):
            return None

        token = auth_header.split(' ', 1)[1].strip()
        if not token:
            return None

        request.lab_token = token
        request.lab_token_key = token_key(token)
        logger.debug(f"Bearer token present for {request.path}")
        return None
