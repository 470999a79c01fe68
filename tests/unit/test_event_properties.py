"""Tests for event property validation."""

from lookout.models.event import EventField, FieldType
from lookout.services.event_properties import sanitize_properties

FIELDS = [
    EventField(key="plan", type=FieldType.STRING, required=True, max_length=10),
    EventField(key="seats", type=FieldType.INT),
    EventField(key="amount", type=FieldType.FLOAT),
    EventField(key="trial", type=FieldType.BOOL),
]


class TestSanitizeProperties:
    """Tests for sanitize_properties."""

    def test_valid_json_is_accepted(self):
        """A bag matching the declared fields is returned as-is."""
        props, accepted = sanitize_properties(
            '{"plan": "pro", "seats": 3, "amount": 9.5, "trial": false}', FIELDS
        )
        assert accepted is True
        assert props == {"plan": "pro", "seats": 3, "amount": 9.5, "trial": False}

    def test_dict_input(self):
        """Already-decoded dicts are accepted too."""
        props, accepted = sanitize_properties({"plan": "pro"}, FIELDS)
        assert accepted is True
        assert props == {"plan": "pro"}

    def test_whole_float_for_int_field(self):
        """JSON numbers like 3.0 count as ints."""
        props, accepted = sanitize_properties({"plan": "pro", "seats": 3.0}, FIELDS)
        assert accepted is True
        assert props["seats"] == 3
        assert isinstance(props["seats"], int)

    def test_int_for_float_field(self):
        """Integers are valid floats."""
        props, accepted = sanitize_properties({"plan": "pro", "amount": 10}, FIELDS)
        assert accepted is True
        assert props["amount"] == 10.0

    def test_type_mismatch_rejects(self):
        """Wrong types reject the whole bag."""
        assert sanitize_properties({"plan": 5}, FIELDS) == (None, False)
        assert sanitize_properties({"plan": "pro", "seats": "3"}, FIELDS) == (None, False)
        assert sanitize_properties({"plan": "pro", "seats": 2.5}, FIELDS) == (None, False)
        assert sanitize_properties({"plan": "pro", "trial": "yes"}, FIELDS) == (None, False)

    def test_bool_is_not_a_number(self):
        """True/False never pass as int or float."""
        assert sanitize_properties({"plan": "pro", "seats": True}, FIELDS) == (None, False)
        assert sanitize_properties({"plan": "pro", "amount": False}, FIELDS) == (None, False)

    def test_missing_required_rejects(self):
        """Required fields must be present."""
        assert sanitize_properties({"seats": 1}, FIELDS) == (None, False)

    def test_too_long_string_rejects(self):
        """Strings longer than max_length are rejected, not truncated."""
        assert sanitize_properties({"plan": "enterprise-plus"}, FIELDS) == (None, False)

    def test_undeclared_key_rejects(self):
        """Keys outside the declared fields are rejected."""
        assert sanitize_properties({"plan": "pro", "email": "a@b.c"}, FIELDS) == (None, False)

    def test_nested_values_reject(self):
        """Only flat scalar values are allowed."""
        assert sanitize_properties({"plan": {"name": "pro"}}, FIELDS) == (None, False)

    def test_invalid_json_rejects(self):
        """Malformed JSON and non-object JSON are rejected."""
        assert sanitize_properties("{not json", FIELDS) == (None, False)
        assert sanitize_properties("[1, 2]", FIELDS) == (None, False)

    def test_no_fields_and_no_properties(self):
        """Events without declared fields accept an empty bag."""
        assert sanitize_properties(None, []) == ({}, True)
        assert sanitize_properties("", []) == ({}, True)

    def test_no_fields_rejects_any_property(self):
        """Events without declared fields reject any property."""
        assert sanitize_properties({"x": 1}, []) == (None, False)
