import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from app.models.pass_content import (
    BarcodeFormat,
    CharacterEncoding,
    Pass,
    PassBarcode,
    PassBeacon,
    PassField,
    PassStructure,
    PassStyle,
    TransitType,
)

BASE = {
    "description": "Boarding pass",
    "organizationName": "Example Air",
    "passTypeIdentifier": "pass.com.example.air",
    "serialNumber": "GT-0042",
    "teamIdentifier": "A1B2C3D4E5",
}


def test_serializes_camel_case_and_drops_unset_keys():
    document = Pass(
        **BASE,
        event_ticket=PassStructure(primary_fields=[PassField(key="seat", label="Seat", value=12)]),
        barcodes=[PassBarcode(format=BarcodeFormat.QR, message="GT-0042")],
        relevant_date=datetime(2026, 5, 1, 9, 30, tzinfo=UTC),
        web_service_url="https://passes.example.com",
    )

    payload = json.loads(document.to_json_bytes())

    assert payload["formatVersion"] == 1
    assert payload["eventTicket"]["primaryFields"] == [{"key": "seat", "label": "Seat", "value": 12}]
    assert payload["barcodes"][0] == {
        "format": "PKBarcodeFormatQR",
        "message": "GT-0042",
        "messageEncoding": "iso-8859-1",
    }
    assert payload["webServiceURL"] == "https://passes.example.com"
    assert payload["relevantDate"] == "2026-05-01T09:30:00Z"
    assert b'"value": 12\n' in document.to_json_bytes()
    assert "voided" not in payload
    assert document.style is PassStyle.EVENT_TICKET


def test_parses_wire_format():
    document = Pass.model_validate(
        {
            **BASE,
            "formatVersion": 1,
            "boardingPass": {
                "transitType": "PKTransitTypeAir",
                "headerFields": [{"key": "gate", "value": "B7"}],
            },
            "beacons": [{"proximityUUID": "E2C56DB5-DFFB-48D2-B060-D0F5A71096E0", "major": 1}],
            "barcode": {"format": "PKBarcodeFormatPDF417", "message": "x", "messageEncoding": "utf-8"},
        }
    )
    assert document.structure.transit_type is TransitType.AIR
    assert document.beacons[0].proximity_uuid.startswith("E2C56DB5")
    assert document.barcode.message_encoding is CharacterEncoding.UTF8
    assert json.loads(document.to_json_bytes())["beacons"][0]["proximityUUID"].startswith("E2C56DB5")


@pytest.mark.parametrize(
    "styles",
    [
        {},
        {"generic": {}, "coupon": {}},
    ],
)
def test_exactly_one_style_key(styles):
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, **styles})


def test_boarding_pass_requires_transit_type():
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, "boardingPass": {}})


def test_transit_type_only_on_boarding_pass():
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, "storeCard": {"transitType": "PKTransitTypeBus"}})


def test_format_version_is_fixed():
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, "formatVersion": 2, "generic": {}})


def test_unknown_keys_are_rejected():
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, "generic": {}, "colour": "red"})


def test_beacon_ranges():
    with pytest.raises(ValidationError):
        PassBeacon(proximity_uuid="E2C56DB5-DFFB-48D2-B060-D0F5A71096E0", major=70000)


def test_field_requires_key():
    with pytest.raises(ValidationError):
        PassField(key="", value="x")


def test_integer_values_keep_integer_form():
    field = PassField(key="points", value=12)
    assert isinstance(field.value, int)
    assert field.model_dump_json(by_alias=True, exclude_none=True) == '{"key":"points","value":12}'
    assert PassField(key="balance", value=12.5).value == 12.5
    assert PassField(key="tier", value="Gold").value == "Gold"


def test_dates_must_carry_a_utc_offset():
    with pytest.raises(ValidationError):
        Pass(**BASE, generic=PassStructure(), relevant_date=datetime(2026, 5, 1, 9, 30))
    with pytest.raises(ValidationError):
        Pass.model_validate({**BASE, "generic": {}, "expirationDate": "2026-05-01T09:30:00"})

    document = Pass.model_validate({**BASE, "generic": {}, "expirationDate": "2026-05-01T09:30:00+02:00"})
    assert json.loads(document.to_json_bytes())["expirationDate"] == "2026-05-01T09:30:00+02:00"
