"""Declarative pass content serialized into ``pass.json``.

Field names follow the PassKit package format. Only the rules the wire format
itself imposes are enforced here: one style key per pass, ``formatVersion``
fixed at 1, and ``transitType`` present on boarding passes only. Everything
else (image requirements, web service tokens, colours) is left to the wallet.
"""

from __future__ import annotations

from enum import Enum

from pydantic import AwareDatetime, BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

PassValue = int | float | str


class BarcodeFormat(str, Enum):
    QR = "PKBarcodeFormatQR"
    PDF417 = "PKBarcodeFormatPDF417"
    AZTEC = "PKBarcodeFormatAztec"
    CODE128 = "PKBarcodeFormatCode128"


class DataDetectorType(str, Enum):
    PHONE_NUMBER = "PKDataDetectorTypePhoneNumber"
    LINK = "PKDataDetectorTypeLink"
    ADDRESS = "PKDataDetectorTypeAddress"
    CALENDAR_EVENT = "PKDataDetectorTypeCalendarEvent"


class TextAlignment(str, Enum):
    LEFT = "PKTextAlignmentLeft"
    CENTER = "PKTextAlignmentCenter"
    RIGHT = "PKTextAlignmentRight"
    NATURAL = "PKTextAlignmentNatural"


class TransitType(str, Enum):
    AIR = "PKTransitTypeAir"
    BOAT = "PKTransitTypeBoat"
    BUS = "PKTransitTypeBus"
    GENERIC = "PKTransitTypeGeneric"
    TRAIN = "PKTransitTypeTrain"


class CharacterEncoding(str, Enum):
    """IANA character set names accepted for barcode messages."""

    UTF8 = "utf-8"
    UTF16BE = "utf-16be"
    UTF16LE = "utf-16le"
    ASCII = "ascii"
    ISO_8859_1 = "iso-8859-1"
    ISO_8859_2 = "iso-8859-2"
    ISO_8859_3 = "iso-8859-3"
    ISO_8859_4 = "iso-8859-4"
    ISO_8859_5 = "iso-8859-5"
    ISO_8859_6 = "iso-8859-6"
    ISO_8859_7 = "iso-8859-7"
    ISO_8859_8 = "iso-8859-8"
    ISO_8859_9 = "iso-8859-9"
    ISO_8859_13 = "iso-8859-13"
    ISO_8859_15 = "iso-8859-15"
    WINDOWS_1250 = "windows-1250"
    WINDOWS_1251 = "windows-1251"
    WINDOWS_1252 = "windows-1252"
    WINDOWS_1253 = "windows-1253"
    WINDOWS_1254 = "windows-1254"
    WINDOWS_1255 = "windows-1255"
    WINDOWS_1256 = "windows-1256"
    WINDOWS_1257 = "windows-1257"
    WINDOWS_874 = "windows-874"
    WINDOWS_932 = "windows-932"
    WINDOWS_936 = "windows-936"
    WINDOWS_949 = "windows-949"
    WINDOWS_950 = "windows-950"
    EUC_JP = "euc-jp"
    ISO_2022_JP = "iso2022-jp"
    SHIFT_JIS = "Shift_JIS"
    BIG5 = "big5"
    GB2312 = "gb2312"
    KOI8_R = "koi8-r"
    EUC_KR = "euc-kr"
    IBM_437 = "ibm-437"
    IBM_850 = "ibm-850"
    IBM_852 = "ibm-852"
    IBM_866 = "ibm-866"


class PassStyle(str, Enum):
    BOARDING_PASS = "boardingPass"
    COUPON = "coupon"
    EVENT_TICKET = "eventTicket"
    GENERIC = "generic"
    STORE_CARD = "storeCard"


class _PassModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class PassField(_PassModel):
    """A single label/value pair shown on the front or back of a pass."""

    key: str = Field(..., min_length=1)
    label: str | None = None
    value: PassValue | None = None
    attributed_value: PassValue | None = None
    change_message: str | None = None
    data_detector_types: list[DataDetectorType] | None = None
    text_alignment: TextAlignment | None = None


class PassStructure(_PassModel):
    """Field groups for one pass style."""

    header_fields: list[PassField] | None = None
    primary_fields: list[PassField] | None = None
    secondary_fields: list[PassField] | None = None
    auxiliary_fields: list[PassField] | None = None
    back_fields: list[PassField] | None = None
    transit_type: TransitType | None = None


class PassBarcode(_PassModel):
    format: BarcodeFormat
    message: str
    message_encoding: CharacterEncoding = CharacterEncoding.ISO_8859_1
    alt_text: str | None = None


class PassBeacon(_PassModel):
    proximity_uuid: str = Field(..., alias="proximityUUID")
    major: int | None = Field(default=None, ge=0, le=65535)
    minor: int | None = Field(default=None, ge=0, le=65535)
    relevant_text: str | None = None


class PassLocation(_PassModel):
    latitude: float
    longitude: float
    altitude: float | None = None
    relevant_text: str | None = None


class PassNFC(_PassModel):
    message: str
    encryption_public_key: str | None = None


class Pass(_PassModel):
    """Top-level ``pass.json`` document."""

    # Standard keys
    description: str
    format_version: int = 1
    organization_name: str
    pass_type_identifier: str
    serial_number: str
    team_identifier: str

    # Associated and companion app keys
    app_launch_url: str | None = Field(default=None, alias="appLaunchURL")
    associated_store_identifiers: list[int] | None = None
    user_info: dict[str, str] | None = None

    # Expiration keys
    expiration_date: AwareDatetime | None = None
    voided: bool | None = None

    # Relevance keys
    beacons: list[PassBeacon] | None = None
    locations: list[PassLocation] | None = None
    max_distance: float | None = None
    relevant_date: AwareDatetime | None = None

    # Style keys, exactly one of which is set
    boarding_pass: PassStructure | None = None
    coupon: PassStructure | None = None
    event_ticket: PassStructure | None = None
    generic: PassStructure | None = None
    store_card: PassStructure | None = None

    # Visual appearance keys
    barcode: PassBarcode | None = None
    barcodes: list[PassBarcode] | None = None
    background_color: str | None = None
    foreground_color: str | None = None
    label_color: str | None = None
    grouping_identifier: str | None = None
    logo_text: str | None = None
    suppress_strip_shine: bool | None = None

    # Web service keys
    authentication_token: str | None = None
    web_service_url: str | None = Field(default=None, alias="webServiceURL")

    nfc: PassNFC | None = None

    @model_validator(mode="after")
    def _check_wire_rules(self) -> Pass:
        if self.format_version != 1:
            raise ValueError("formatVersion must be 1.")
        styles = [style for style in PassStyle if self._structure_for(style) is not None]
        if len(styles) != 1:
            found = ", ".join(style.value for style in styles) or "none"
            raise ValueError(f"A pass needs exactly one style key (found: {found}).")
        structure = self._structure_for(styles[0])
        if styles[0] is PassStyle.BOARDING_PASS and structure.transit_type is None:
            raise ValueError("boardingPass requires transitType.")
        if styles[0] is not PassStyle.BOARDING_PASS and structure.transit_type is not None:
            raise ValueError(f"transitType is not allowed on {styles[0].value}.")
        return self

    def _structure_for(self, style: PassStyle) -> PassStructure | None:
        return {
            PassStyle.BOARDING_PASS: self.boarding_pass,
            PassStyle.COUPON: self.coupon,
            PassStyle.EVENT_TICKET: self.event_ticket,
            PassStyle.GENERIC: self.generic,
            PassStyle.STORE_CARD: self.store_card,
        }[style]

    @property
    def style(self) -> PassStyle:
        return next(style for style in PassStyle if self._structure_for(style) is not None)

    @property
    def structure(self) -> PassStructure:
        return self._structure_for(self.style)

    def to_json_bytes(self) -> bytes:
        """Serialize to the UTF-8 JSON bytes written as ``pass.json``."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2).encode("utf-8")
