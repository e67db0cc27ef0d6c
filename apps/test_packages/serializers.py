from rest_framework import serializers

from common.money import ZERO
from common.serializers import BackendPayloadSerializer, MoneyField
from apps.billing.choices import PackageStatus
from apps.billing.serializers import CatalogItemPayloadSerializer, TestOptionSerializer


class TestPackageCreateSerializer(serializers.Serializer):
    """Package form as submitted by the front-end"""
    name = serializers.CharField(
        min_length=3, max_length=200,
        error_messages={'min_length': 'Package name must be at least 3 characters.'}
    )
    package_code = serializers.CharField(max_length=50, allow_blank=True, required=False, default='')
    price = MoneyField(min_value=ZERO, error_messages={'min_value': 'Price cannot be negative.'})
    description = serializers.CharField(allow_blank=True, required=False, default='')
    image_seed = serializers.CharField(max_length=100, allow_blank=True, required=False, default='')
    selected_tests = serializers.ListField(
        child=serializers.CharField(max_length=40),
        allow_empty=False,
        error_messages={'empty': 'Select at least one test.'}
    )


class TestPackageUpdateSerializer(TestPackageCreateSerializer):
    """Edit form: the create form plus the package status"""
    status = serializers.ChoiceField(choices=PackageStatus.choices, required=False, default=PackageStatus.ACTIVE)


class TestPackagePayloadSerializer(BackendPayloadSerializer):
    """Body of ``POST /test-packages``"""
    name = serializers.CharField()
    package_code = serializers.CharField(allow_blank=True)
    price = MoneyField(as_number=True)
    description = serializers.CharField(allow_blank=True)
    selected_tests = serializers.ListField(child=serializers.IntegerField())
    image_seed = serializers.CharField(allow_blank=True)


class TestPackageUpdatePayloadSerializer(TestPackagePayloadSerializer):
    """Body of ``PUT /test-packages/{id}``"""
    status = serializers.CharField()


class TestPackageDetailPayloadSerializer(BackendPayloadSerializer):
    """Package as returned by ``GET /test-packages/{id}``"""
    id = serializers.IntegerField()
    name = serializers.CharField()
    package_code = serializers.CharField(allow_null=True, allow_blank=True, default='')
    price = MoneyField(min_value=ZERO)
    description = serializers.CharField(allow_null=True, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=PackageStatus.choices, default=PackageStatus.ACTIVE)
    image_seed = serializers.CharField(allow_null=True, allow_blank=True, default='')
    tests = CatalogItemPayloadSerializer(many=True, default=list)


class TestPackageOptionsSerializer(serializers.Serializer):
    selected = TestOptionSerializer(many=True)
    sub_total = MoneyField()
    available = TestOptionSerializer(many=True)


class TestPackageDetailSerializer(TestPackageOptionsSerializer):
    """Package loaded into the edit form, its tests preselected"""
    id = serializers.IntegerField()
    name = serializers.CharField()
    package_code = serializers.CharField()
    price = MoneyField()
    description = serializers.CharField()
    status = serializers.CharField()
    image_seed = serializers.CharField()
