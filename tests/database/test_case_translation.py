"""Key translation tests (underscore <-> camelCase)."""
from database.case import camel_key, to_camel_keys, to_underscore_keys, underscore_key


class TestKeyTranslation:
    """Test single-key and recursive translation."""

    def test_camel_key(self):
        assert camel_key("patient_name") == "patientName"
        assert camel_key("is_digital_measurement") == "isDigitalMeasurement"
        assert camel_key("id") == "id"

    def test_underscore_key(self):
        assert underscore_key("patientName") == "patient_name"
        assert underscore_key("canViewPrices") == "can_view_prices"
        assert underscore_key("id") == "id"

    def test_nested_structures(self):
        payload = {
            "doctor_id": "d1",
            "orders": [{"unit_count": 2, "final_price": None}],
            "meta": {"loaded_at": "2024-01-28"},
        }
        camel = to_camel_keys(payload)
        assert camel == {
            "doctorId": "d1",
            "orders": [{"unitCount": 2, "finalPrice": None}],
            "meta": {"loadedAt": "2024-01-28"},
        }

    def test_round_trip_restores_conventional_names(self):
        payload = {
            "actual_delivery_date": "2024-01-28",
            "items": [{"prosthesis_type_id": "t1"}],
        }
        assert to_underscore_keys(to_camel_keys(payload)) == payload

    def test_values_untouched(self):
        assert to_camel_keys({"notes": "patient_name stays"}) == {"notes": "patient_name stays"}
        assert to_camel_keys(["a_b", 1]) == ["a_b", 1]
