"""
DRF authentication for requests that carry a lab backend bearer token.

The token is not validated here; the lab backend does that on every
forwarded call and answers 401 when it is no longer valid.
"""

from rest_framework.authentication import BaseAuthentication


class LabSession:
    """
    Lightweight user object representing the holder of a lab bearer token.
    """

    def __init__(self, token: str, token_key: str):
        self.token = token
        self.token_key = token_key

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    def __str__(self):
        return f"LabSession({self.token_key[:8]})"


class LabBearerAuthentication(BaseAuthentication):
    """Authenticate from ``request.lab_token`` set by LabTokenMiddleware."""
    keyword = 'Bearer'

    def authenticate(self, request):
        token = getattr(request._request, 'lab_token', None)
        if not token:
            return None
        return LabSession(token, request._request.lab_token_key), token

    def authenticate_header(self, request):
        return self.keyword
