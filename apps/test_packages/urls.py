from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import TestPackageViewSet

# SimpleRouter: an API root view would shadow the empty-prefix create route
router = SimpleRouter()
router.register(r'', TestPackageViewSet, basename='test-package')

urlpatterns = [
    path('', include(router.urls)),
]
