from rest_framework import serializers

from common.money import ZERO
from common.serializers import BackendPayloadSerializer, MoneyField
from apps.patients.serializers import PatientSearchSerializer
from .choices import BillStatus, ItemType, PaymentMode
from .models import BillDraft, BillDraftItem


# ==================== Lab backend payloads ====================

class CatalogItemPayloadSerializer(BackendPayloadSerializer):
    """Test or package as returned by ``GET /tests`` and ``GET /test-packages``"""
    id = serializers.IntegerField()
    name = serializers.CharField()
    price = MoneyField(min_value=ZERO)


class DoctorPayloadSerializer(BackendPayloadSerializer):
    wire_names = {'doctor_code': 'doctorID'}

    id = serializers.IntegerField()
    doctor_code = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    title = serializers.CharField(allow_blank=True, default='')
    first_name = serializers.CharField()
    last_name = serializers.CharField(allow_blank=True, default='')
    specialty = serializers.CharField(allow_null=True, allow_blank=True, default=None)

    def validate(self, attrs):
        parts = [attrs.get('title'), attrs['first_name'], attrs.get('last_name')]
        attrs['full_name'] = ' '.join(part for part in parts if part)
        return attrs


class BillPatientPayloadSerializer(BackendPayloadSerializer):
    id = serializers.IntegerField()
    patient_id = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    title = serializers.CharField(allow_blank=True, default='')
    first_name = serializers.CharField()
    last_name = serializers.CharField(allow_blank=True, default='')

    def validate(self, attrs):
        parts = [attrs.get('title'), attrs['first_name'], attrs.get('last_name')]
        attrs['full_name'] = ' '.join(part for part in parts if part)
        return attrs


class BillItemPayloadSerializer(BackendPayloadSerializer):
    id = serializers.IntegerField(required=False)
    item_name = serializers.CharField()
    item_type = serializers.ChoiceField(choices=ItemType.choices)
    item_price = MoneyField(min_value=ZERO)


class BillPayloadSerializer(BackendPayloadSerializer):
    """Bill as returned by ``GET|POST|PUT /bills``"""
    id = serializers.IntegerField()
    bill_number = serializers.CharField()
    patient = BillPatientPayloadSerializer(required=False, allow_null=True)
    doctor = DoctorPayloadSerializer(required=False, allow_null=True)
    items = BillItemPayloadSerializer(many=True, required=False, default=list)
    sub_total = MoneyField()
    discount_amount = MoneyField()
    grand_total = MoneyField()
    amount_received = MoneyField()
    amount_due = MoneyField()
    payment_mode = serializers.ChoiceField(choices=PaymentMode.choices, allow_null=True, default=None)
    notes = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    status = serializers.ChoiceField(choices=BillStatus.choices)
    bill_date = serializers.CharField(required=False, allow_null=True)


class SubmittedItemPayloadSerializer(BackendPayloadSerializer):
    """One entry of ``selectedTests`` in ``POST /bills``"""
    id = serializers.CharField(source='display_id')
    db_id = serializers.IntegerField(source='backend_id')
    name = serializers.CharField()
    price = MoneyField(as_number=True)
    is_package = serializers.SerializerMethodField(method_name='get_is_package')

    def get_is_package(self, option):
        return option.item_type == ItemType.PACKAGE


class BillSubmitPayloadSerializer(BackendPayloadSerializer):
    """Body of ``POST /bills``"""
    patient_id = serializers.IntegerField()
    doctor_id = serializers.IntegerField(allow_null=True)
    selected_tests = SubmittedItemPayloadSerializer(many=True)
    sub_total = MoneyField(as_number=True)
    discount_amount = MoneyField(as_number=True)
    grand_total = MoneyField(as_number=True)
    amount_received = MoneyField(as_number=True)
    amount_due = MoneyField(as_number=True)
    payment_mode = serializers.CharField(allow_null=True)
    notes = serializers.CharField(allow_null=True)


class BillUpdatePayloadSerializer(BackendPayloadSerializer):
    """Body of ``PUT /bills/{id}``"""
    discount_amount = MoneyField(as_number=True)
    amount_received = MoneyField(as_number=True)
    payment_mode = serializers.CharField(allow_null=True)
    notes = serializers.CharField(allow_null=True)


# ==================== Service API ====================

class TestOptionSerializer(serializers.Serializer):
    display_id = serializers.CharField()
    backend_id = serializers.IntegerField()
    name = serializers.CharField()
    price = MoneyField()
    item_type = serializers.ChoiceField(choices=ItemType.choices)


class BillTotalsSerializer(serializers.Serializer):
    sub_total = MoneyField()
    discount_amount = MoneyField()
    grand_total = MoneyField()
    amount_received = MoneyField()
    amount_due = MoneyField()
    is_overpaid = serializers.BooleanField()
    balance_state = serializers.CharField()


class BillDraftItemSerializer(serializers.ModelSerializer):
    unit_price = MoneyField()

    class Meta:
        model = BillDraftItem
        fields = ['display_id', 'backend_id', 'item_type', 'name', 'unit_price', 'position']
        read_only_fields = fields


class BillDraftSerializer(serializers.ModelSerializer):
    """Draft with its wizard state and live totals"""
    patient_search = serializers.SerializerMethodField()
    items = BillDraftItemSerializer(many=True, read_only=True)
    discount_amount = MoneyField(read_only=True)
    amount_received = MoneyField(read_only=True)
    totals = serializers.SerializerMethodField()
    is_finalized = serializers.BooleanField(read_only=True)
    expected_status = serializers.CharField(source='get_expected_status', read_only=True)

    class Meta:
        model = BillDraft
        fields = [
            'id', 'status', 'expected_status', 'patient_search', 'doctor', 'items',
            'discount_amount', 'amount_received', 'payment_mode', 'notes',
            'totals', 'bill_id', 'bill_number', 'is_finalized',
            'submitting', 'submitted_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_patient_search(self, obj):
        return PatientSearchSerializer(obj.get_patient_search().as_dict()).data

    def get_totals(self, obj):
        return BillTotalsSerializer(obj.get_totals()).data


class DraftItemRequestSerializer(serializers.Serializer):
    display_id = serializers.CharField(max_length=40)


class DoctorSelectRequestSerializer(serializers.Serializer):
    query = serializers.CharField(allow_blank=True, trim_whitespace=True, max_length=100)


class PaymentSerializer(serializers.Serializer):
    """Discount, payment and notes for a draft or an existing bill"""
    discount_amount = MoneyField(
        min_value=ZERO, required=False,
        error_messages={
            'min_value': 'Discount cannot be negative.',
            'max_value': 'Discount cannot exceed {max_value}.',
        }
    )
    amount_received = MoneyField(
        min_value=ZERO, required=False,
        error_messages={
            'min_value': 'Amount received cannot be negative.',
            'max_value': 'Amount received cannot exceed {max_value}.',
        }
    )
    payment_mode = serializers.ChoiceField(choices=PaymentMode.choices, allow_null=True, required=False)
    notes = serializers.CharField(allow_null=True, allow_blank=True, required=False)


class BillItemSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False)
    item_name = serializers.CharField()
    item_type = serializers.CharField()
    item_price = MoneyField()


class BillSerializer(serializers.Serializer):
    """Backend bill re-rendered in snake_case with locally computed totals"""
    id = serializers.IntegerField()
    bill_number = serializers.CharField()
    patient = serializers.DictField(allow_null=True)
    doctor = serializers.DictField(allow_null=True)
    items = BillItemSerializer(many=True)
    sub_total = MoneyField()
    discount_amount = MoneyField()
    grand_total = MoneyField()
    amount_received = MoneyField()
    amount_due = MoneyField()
    payment_mode = serializers.CharField(allow_null=True)
    notes = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    bill_date = serializers.CharField(allow_null=True)
    totals = BillTotalsSerializer()
    is_finalized = serializers.BooleanField()
