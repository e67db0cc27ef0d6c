"""
Mixins for the lab billing service.

Provides common functionality for:
- Token-scoped ownership of locally stored drafts
- Building a backend client from the current request
"""

from django.db import models
import logging

from common.api_client import LabBackendClient

logger = logging.getLogger(__name__)


class TokenOwnedMixin(models.Model):
    """
    Mixin to add an owner_key field to models.

    The key is a hash of the bearer token that created the row, so a draft
    is only visible to the session that started it.
    """
    owner_key = models.CharField(
        max_length=64,
        db_index=True,
        editable=False,
        help_text="SHA-256 of the bearer token that owns this row"
    )

    class Meta:
        abstract = True


class TokenOwnedViewSetMixin:
    """
    ViewSet mixin for automatic owner filtering.

    Automatically filters querysets by the bearer token key of the request.
    """

    def get_queryset(self):
        """Filter queryset by owner_key from request."""
        queryset = super().get_queryset()
        owner_key = getattr(self.request, 'lab_token_key', None)
        queryset = queryset.filter(owner_key=owner_key)
        logger.debug(f"Filtered {queryset.model.__name__} queryset by owner key")
        return queryset

    def perform_create(self, serializer):
        """Automatically set owner_key when creating objects."""
        serializer.save(owner_key=self.request.lab_token_key)


class LabClientMixin:
    """Gives views a backend client that forwards the caller's bearer token."""
    client_class = LabBackendClient

    def get_lab_client(self):
        if not hasattr(self, '_lab_client'):
            self._lab_client = self.client_class.for_request(self.request)
        return self._lab_client
