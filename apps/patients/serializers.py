from rest_framework import serializers

from common.serializers import BackendPayloadSerializer
from .resolver import SearchState


class PatientPayloadSerializer(BackendPayloadSerializer):
    """Patient as returned by ``GET /patients`` on the lab backend"""
    id = serializers.IntegerField()
    patient_id = serializers.CharField(allow_null=True, allow_blank=True, required=False, default=None)
    title = serializers.CharField(allow_blank=True, required=False, default='')
    first_name = serializers.CharField()
    last_name = serializers.CharField(allow_blank=True, required=False, default='')
    phone = serializers.CharField(allow_blank=True)
    email = serializers.CharField(allow_null=True, allow_blank=True, required=False, default=None)
    age = serializers.IntegerField(allow_null=True, required=False, default=None)
    gender = serializers.CharField(allow_null=True, allow_blank=True, required=False, default=None)

    def validate(self, attrs):
        parts = [attrs.get('title'), attrs['first_name'], attrs.get('last_name')]
        attrs['full_name'] = ' '.join(part for part in parts if part)
        return attrs


class PatientSummarySerializer(serializers.Serializer):
    """Patient as shown by this service (snake_case)"""
    id = serializers.IntegerField()
    patient_id = serializers.CharField(allow_null=True)
    full_name = serializers.CharField()
    phone = serializers.CharField()
    email = serializers.CharField(allow_null=True)
    age = serializers.IntegerField(allow_null=True)
    gender = serializers.CharField(allow_null=True)


class PatientSearchSerializer(serializers.Serializer):
    state = serializers.ChoiceField(choices=SearchState.choices)
    query = serializers.CharField(allow_blank=True)
    results = PatientSummarySerializer(many=True)
    selected = PatientSummarySerializer(allow_null=True)
    message = serializers.CharField(allow_null=True)
    error = serializers.CharField(allow_null=True)


class PatientSearchRequestSerializer(serializers.Serializer):
    query = serializers.CharField(allow_blank=True, trim_whitespace=True, max_length=100)


class PatientPickSerializer(serializers.Serializer):
    patient_id = serializers.IntegerField()
