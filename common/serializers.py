"""
Serializer helpers for payloads exchanged with the lab backend.

The backend speaks camelCase JSON while the service works in snake_case.
``BackendPayloadSerializer`` declares fields in snake_case and exposes them
under their camelCase wire names, so validated data and representations are
translated in one place.
"""

import logging

from rest_framework import serializers

from common.exceptions import LabPayloadError
from common.money import MAX_AMOUNT, MoneyParseError, format_money, parse_money

logger = logging.getLogger(__name__)


def to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


class MoneyField(serializers.Field):
    """
    Monetary amount read from numbers or numeric strings.

    Accepts ``350``, ``350.5`` and ``"350.50"`` alike and always yields a
    two-place ``Decimal``; renders as a two-place string, or as a JSON number
    when ``as_number`` is set.

    Amounts above ``max_value`` (by default the largest value the two-place
    Decimal columns can hold) are rejected rather than failing on save.
    """
    default_error_messages = {
        'invalid': 'A valid amount is required.',
        'min_value': 'Ensure this amount is greater than or equal to {min_value}.',
        'max_value': 'Ensure this amount is less than or equal to {max_value}.',
    }

    def __init__(self, min_value=None, max_value=MAX_AMOUNT, as_number=False, **kwargs):
        self.min_value = min_value
        self.max_value = max_value
        self.as_number = as_number
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        try:
            amount = parse_money(data)
        except MoneyParseError:
            self.fail('invalid')
        if self.min_value is not None and amount < self.min_value:
            self.fail('min_value', min_value=self.min_value)
        if self.max_value is not None and amount > self.max_value:
            self.fail('max_value', max_value=self.max_value)
        return amount

    def to_representation(self, value):
        if self.as_number:
            # the lab backend expects JSON numbers
            return float(parse_money(value))
        return format_money(parse_money(value))


class BackendPayloadSerializer(serializers.Serializer):
    """Serializer whose fields travel under camelCase keys"""
    # explicit wire names for keys that do not follow plain camelCase
    wire_names = {}

    def get_fields(self):
        fields = super().get_fields()
        renamed = {}
        for name, field in fields.items():
            wire_name = self.wire_names.get(name) or to_camel(name)
            if field.source is None and wire_name != name:
                field.source = name
            renamed[wire_name] = field
        return renamed


def parse_payload(serializer_class, data, many=False):
    """
    Validate a backend payload and return its snake_case validated data.

    Raises:
        LabPayloadError: when the payload does not match the serializer
    """
    serializer = serializer_class(data=data, many=many)
    if not serializer.is_valid():
        logger.error(f"Malformed {serializer_class.__name__} payload: {serializer.errors}")
        raise LabPayloadError()
    return serializer.validated_data
