from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, OpenApiExample, OpenApiParameter

from common.mixins import LabClientMixin
from . import services
from .serializers import (
    TestPackageCreateSerializer,
    TestPackageDetailSerializer,
    TestPackageOptionsSerializer,
    TestPackageUpdateSerializer,
)


class TestPackageViewSet(LabClientMixin, viewsets.ViewSet):
    """
    Build test packages out of individual tests.
    """
    lookup_value_regex = r'\d+'

    @extend_schema(
        summary="Package test options",
        description="Selected tests (deduplicated, in order), their subtotal and the tests not selected yet.",
        parameters=[
            OpenApiParameter(
                name='selected', type=str,
                description='Comma separated display ids, e.g. test_1,test_4'
            )
        ],
        responses={200: TestPackageOptionsSerializer},
        tags=['Test Packages']
    )
    @action(detail=False, methods=['get'])
    def options(self, request):
        raw = request.query_params.get('selected', '')
        display_ids = [value.strip() for value in raw.split(',') if value.strip()]
        data = services.package_options(self.get_lab_client(), request.lab_token_key, display_ids)
        return Response({'success': True, 'data': TestPackageOptionsSerializer(data).data})

    @extend_schema(
        summary="Create test package",
        request=TestPackageCreateSerializer,
        examples=[OpenApiExample('Basic health package', value={
            'name': 'Basic Health Checkup',
            'package_code': 'BHC01',
            'price': '999.00',
            'description': 'CBC, lipid profile and blood sugar',
            'image_seed': 'basic-health',
            'selected_tests': ['test_1', 'test_2', 'test_5']
        }, request_only=True)],
        tags=['Test Packages']
    )
    def create(self, request):
        s = TestPackageCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        package = services.create_package(self.get_lab_client(), request.lab_token_key, s.validated_data)
        return Response({
            'success': True,
            'message': 'Test package created successfully',
            'data': package
        }, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Get test package for editing",
        description="Package details with its tests preselected, their subtotal and the tests that can still be added.",
        responses={200: TestPackageDetailSerializer},
        tags=['Test Packages']
    )
    def retrieve(self, request, pk=None):
        data = services.get_package(self.get_lab_client(), request.lab_token_key, int(pk))
        return Response({'success': True, 'data': TestPackageDetailSerializer(data).data})

    @extend_schema(
        summary="Update test package",
        request=TestPackageUpdateSerializer,
        examples=[OpenApiExample('Archive a package', value={
            'name': 'Basic Health Checkup',
            'package_code': 'BHC01',
            'price': '899.00',
            'description': 'CBC and lipid profile',
            'image_seed': 'basic-health',
            'status': 'Archived',
            'selected_tests': ['test_1', 'test_2']
        }, request_only=True)],
        tags=['Test Packages']
    )
    def update(self, request, pk=None):
        s = TestPackageUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        package = services.update_package(self.get_lab_client(), request.lab_token_key, int(pk), s.validated_data)
        return Response({
            'success': True,
            'message': 'Test package updated successfully',
            'data': package
        })
