from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import BillDraftViewSet, BillViewSet

# Create router and register viewsets
router = DefaultRouter()
router.register(r'bill-drafts', BillDraftViewSet, basename='bill-draft')
router.register(r'bills', BillViewSet, basename='bill')

urlpatterns = [
    path('', include(router.urls)),
]
