"""Tests des schemas du domaine et des utilitaires d'API."""

import pytest

from app.api.helpers import decode_image, encode_image
from app.errors import ValidationError
from app.schemas.inventory import (
    UNKNOWN,
    InventoryRecord,
    VehicleAnalysis,
    coerce_fuel_type,
    is_valid_vin,
    normalize_vin,
)


class TestVin:
    def test_normalize(self):
        assert normalize_vin(" vf1-rfa00x 12345678 ") == "VF1RFA00X12345678"
        assert normalize_vin(None) == ""

    @pytest.mark.parametrize(
        "vin,expected",
        [
            ("VF1RFA00X12345678", True),
            ("VF1RFA00X1234567", False),
            ("VF1RFA00I12345678", False),
            ("", False),
        ],
    )
    def test_is_valid_vin(self, vin, expected):
        assert is_valid_vin(vin) is expected


class TestVehicleAnalysis:
    def test_defaults(self):
        analysis = VehicleAnalysis()
        assert analysis.brand == UNKNOWN
        assert analysis.model == UNKNOWN
        assert analysis.fuel_type == "N/A"

    def test_fuel_aliases(self):
        assert coerce_fuel_type("gazole") == "Diesel"
        assert coerce_fuel_type("Electric") == "Électrique"
        assert coerce_fuel_type("vapeur") == "N/A"
        assert VehicleAnalysis(fuel_type="hybrid").fuel_type == "Hybride"

    def test_camel_case_json(self):
        data = VehicleAnalysis(year_of_manufacture=2019, brand="  ").to_json()
        assert data["yearOfManufacture"] == "2019"
        assert data["brand"] == UNKNOWN

    def test_record_never_serializes_photo(self):
        record = InventoryRecord(
            id="S-1",
            timestamp=0,
            image_url="data:image/jpeg;base64,AAAA",
            analysis=VehicleAnalysis(),
            user_id="1",
        )
        assert record.to_json()["imageUrl"] == ""


class TestImageHelpers:
    def test_data_url(self):
        data, mime = decode_image("data:image/png;base64,anBlZw==")
        assert (data, mime) == (b"jpeg", "image/png")

    def test_raw_base64_defaults_to_jpeg(self):
        assert decode_image("anBlZw==") == (b"jpeg", "image/jpeg")

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            decode_image("pas-du-base64!")

    def test_encode(self):
        assert encode_image(b"jpeg", "image/jpeg") == "data:image/jpeg;base64,anBlZw=="
