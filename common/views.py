from django.conf import settings
from django.http import JsonResponse
from django.views import View
import logging

logger = logging.getLogger(__name__)


class HealthView(View):
    """
    Liveness endpoint; does not call the lab backend.
    """

    def get(self, request):
        return JsonResponse({
            'status': 'ok',
            'lab_backend_url': settings.LAB_BACKEND_URL,
        })
