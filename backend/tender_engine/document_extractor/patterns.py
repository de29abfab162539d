"""
Pattern tables for candidate extraction.

Order matters: when two patterns produce the exact same span, the first one
listed wins. Explicitly-labeled reference patterns come before the generic
digit-run fallback so a labeled number keeps its subtype.
"""

import re
from dataclasses import dataclass

from tender_engine.schemas.candidate import CandidateType, Confidence, ReferenceSubtype

CI = re.IGNORECASE


@dataclass(frozen=True)
class ExtractionPattern:
    regex: re.Pattern
    type: CandidateType
    confidence: Confidence
    subtype: ReferenceSubtype | None = None
    value_group: int | None = None

    @property
    def is_explicitly_labeled(self) -> bool:
        """High-confidence reference pattern that carries its own label."""
        return (
            self.confidence == Confidence.HIGH
            and self.subtype is not None
            and self.subtype != ReferenceSubtype.UNKNOWN
        )


def _p(pattern, type_, confidence, flags=CI, subtype=None, group=None) -> ExtractionPattern:
    return ExtractionPattern(re.compile(pattern, flags), type_, confidence, subtype, group)


_NUM = r"(\d{1,3}(?:,\d{3})*(?:\.\d+)?|\d+)"
_REF = r"([A-Za-z0-9]{4,20})"

T, C, R = CandidateType, Confidence, ReferenceSubtype

EXTRACTION_PATTERNS: list[ExtractionPattern] = [
    # Dates
    _p(r"\b(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})\b", T.DATE, C.HIGH, flags=0),
    _p(
        r"\b((?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+\d{1,2}"
        r"(?:st|nd|rd|th)?,?\s*\d{2,4}?)\b",
        T.DATE, C.MEDIUM,
    ),
    _p(r"\b(today|tomorrow|next\s+(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*)\b", T.DATE, C.MEDIUM),
    # Times
    _p(r"\b(\d{1,2}:\d{2}(?:\s*[ap]\.?m\.?)?)\b", T.TIME, C.HIGH),
    _p(r"\b(\d{4})\s*(?:hrs?|hours?)\b", T.TIME, C.HIGH, group=1),
    _p(r"\bat\s+(noon|midnight|\d{1,2}(?:\s*[ap]\.?m\.?)?)\b", T.TIME, C.MEDIUM, group=1),
    # City, ST 12345 (state must be upper case, so no IGNORECASE)
    _p(r"\b([A-Za-z][A-Za-z\s]{1,25}),?\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)\b",
       T.CITY_STATE_ZIP, C.HIGH, flags=0),
    _p(r"\b([A-Za-z][A-Za-z\s]{1,25}),?\s+([A-Z]{2})\b(?!\s*\d)",
       T.CITY_STATE_ZIP, C.MEDIUM, flags=0),
    # Street address
    _p(
        r"\b(\d{1,6}\s+(?:[NSEW]\.?\s+)?[A-Za-z0-9\s]{2,30}"
        r"(?:st|street|ave|avenue|blvd|boulevard|rd|road|dr|drive|ln|lane|way|ct|court"
        r"|pl|place|hwy|highway|pkwy|parkway)\.?)\b",
        T.ADDRESS, C.MEDIUM,
    ),
    # Weight
    _p(r"\b(\d{1,3}(?:,?\d{3})*(?:\.\d+)?)\s*(lbs?|pounds?|kg|kilos?|kgs?)\b", T.WEIGHT, C.HIGH),
    _p(r"\btotal\s*(?:lbs?|pounds?|weight)\s*[:\s]*\s*" + _NUM + r"\b", T.WEIGHT, C.HIGH, group=1),
    _p(r"\b(?:lbs?|pounds?)\s*[:\s]*\s*" + _NUM + r"\b", T.WEIGHT, C.MEDIUM, group=1),
    _p(r"\bweight\s*[:\s]*\s*(\d{1,3}(?:,\d{3})+|\d{4,})\b", T.WEIGHT, C.MEDIUM, group=1),
    # Pieces
    _p(r"\b(\d{1,4})\s*(pieces?|pcs?|pallets?|plts?|skids?|cases?|cartons?|boxes?|units?)\b",
       T.PIECES, C.HIGH),
    _p(r"\btotal\s*(?:cases?|pallets?|pieces?|pcs?|plts?|skids?)\s*[:\s]*\s*(\d{1,3}(?:,\d{3})*|\d+)\b",
       T.PIECES, C.HIGH, group=1),
    _p(r"\b(cases?|pallets?|pieces?|skids?)\s*[:\s]*\s*(\d{1,3}(?:,\d{3})*|\d{1,5})\b",
       T.PIECES, C.MEDIUM, group=2),
    # Dimensions
    _p(r"\b(\d{1,3})\s*[xX×]\s*(\d{1,3})\s*[xX×]\s*(\d{1,3})(?:\s*(in|inches|cm|ft|feet))?\b",
       T.DIMENSIONS, C.HIGH),
    # Temperature
    _p(r"\b(-?\d{1,3})\s*(?:°|deg(?:rees?)?)?\s*([FC])\b", T.TEMPERATURE, C.HIGH),
    _p(r"\b(frozen|refrigerated|reefer|dry|ambient)\b", T.TEMPERATURE, C.MEDIUM),
    _p(r"\b(?:load\s*)?temp(?:erature)?\s*[:\s]\s*(-?\d{1,3})\b", T.TEMPERATURE, C.HIGH, group=1),
    # Explicitly labeled reference numbers
    _p(r"\bload\s*(?:#\s*:?|:)\s*(\d{4,20})\b", T.REFERENCE_NUMBER, C.HIGH, subtype=R.BOL, group=1),
    _p(r"\b(?:po|p\.o\.)\s*[#:]\s*" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH, subtype=R.PO, group=1),
    _p(r"\brelease\s*[#:]\s*" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH, subtype=R.PO, group=1),
    _p(r"\bconfirmation\s*[#:]\s*" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.CONFIRMATION, group=1),
    _p(r"\border(?:\s+order)?\s*[#:]?\s*:?\s*(\d{4,20})\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.ORDER, group=1),
    _p(r"\breference\s*:\s*" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.REFERENCE, group=1),
    _p(r"\bshipper\s+ref\s*#?\s*:?\s*" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.REFERENCE, group=1),
    _p(r"\bref\s*#\(?s?\)?\s*:?\s*(?:shipments?\s*:?\s*)?(\d{6,20})\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.REFERENCE, group=1),
    _p(r"\bloadID=(\d{6,15})\b", T.REFERENCE_NUMBER, C.HIGH, subtype=R.BOL, group=1),
    _p(r"\breference\s*number\s*:\s*po\s+" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.PO, group=1),
    _p(r"\breference\s*number\s*:\s*pu\s+" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.PICKUP, group=1),
    _p(r"\breference\s*number\s*:\s*ac\s+" + _REF + r"\b", T.REFERENCE_NUMBER, C.HIGH,
       subtype=R.CONFIRMATION, group=1),
    # Generic fallback: any 4-20 digit run
    _p(r"\b(\d{4,20})\b", T.REFERENCE_NUMBER, C.LOW, flags=0, subtype=R.UNKNOWN),
]

# Built-in label -> subtype table used when no customer rule matches
REFERENCE_LABELS: list[tuple[re.Pattern, ReferenceSubtype]] = [
    (re.compile(r"\b(po|purchase\s*order|p\.o\.)\s*[#:]?\s*", CI), R.PO),
    (re.compile(r"\b(bol|bill\s*of\s*lading|b/l)\s*[#:]?\s*", CI), R.BOL),
    (re.compile(r"\b(load)\s*[#:]?\s*", CI), R.BOL),
    (re.compile(r"\b(order|ord)\s*[#:]?\s*", CI), R.ORDER),
    (re.compile(r"\b(pu|pick\s*up|pickup)\s*[#:]?\s*", CI), R.PICKUP),
    (re.compile(r"\b(del|delivery|dlv)\s*[#:]?\s*", CI), R.DELIVERY),
    (re.compile(r"\b(appt|appointment)\s*[#:]?\s*", CI), R.APPOINTMENT),
    (re.compile(r"\b(ref|reference)\s*[#:]?\s*", CI), R.REFERENCE),
    (re.compile(r"\b(conf|confirmation)\s*[#:]?\s*", CI), R.CONFIRMATION),
    (re.compile(r"\b(pro)\s*[#:]?\s*", CI), R.PRO),
    (re.compile(r"\b(release)\s*[#:]?\s*", CI), R.PO),
]

# A customer regex rule only applies when one of these appears near the value
LABEL_CONTEXT_TOKENS = re.compile(r"[#:]")
LABEL_CONTEXT_KEYWORDS = re.compile(r"\b(load|order|po|ref|bol|confirmation|release)\b", CI)

PHONE_PATTERNS = [
    re.compile(r"\(\d{3}\)\s*\d{3}[-.\s]?\d{4}"),
    re.compile(r"\b\d{3}[-.\s]\d{3}[-.\s]\d{4}\b"),
    re.compile(r"\b[2-9]\d{9}\b"),
    re.compile(r"\d{3}[-.\s]\d{3}[-.\s]\d{4}\s*(?:x|ext\.?|extension)\s*\d{1,5}", CI),
    re.compile(r"\b\d{3}[-.\s]\d{4}\b"),
    re.compile(r"\b\d{10}\b"),
    re.compile(r"^\d{3}[-.\s]\d{3}$"),
    re.compile(r"\b8[0-9]{2}[-.\s]?\d{3}[-.\s]?\d{4}\b"),
]

# Phone numbers cut off by a line break or a short extraction window
PARTIAL_PHONE_PATTERNS = [
    re.compile(r"^\d{3}[-.\s]\d{2,3}$"),
    re.compile(r"^\d{3}[-.\s]\d{3}[-.\s]\d{1,3}$"),
    re.compile(r"^\d{7}$"),
]

FULL_PHONE = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")

PHONE_LABELS = [
    re.compile(r"\b(phone|fax|cell|mobile|tel|telephone)\s*[#:]?\s*", CI),
    re.compile(r"\bcall\s+(?:for\s+)?(?:appt|appointment)\.?\s*[#:]?\s*", CI),
    re.compile(r"\bcall\s+for\s+appt\.?\s*#?\s*:?\s*", CI),
    re.compile(r"\b[PF]:\s*\(", CI),
    re.compile(r"\boffice\s*phone", CI),
    re.compile(r"\bcell\s*phone", CI),
    re.compile(r"\bcontact\s*:", CI),
    re.compile(r"\bcontact\s+[A-Za-z]+\s*$", CI),
]

# Quantities, not identifiers
NON_REFERENCE_LABELS = [
    re.compile(r"\btotal\s*(miles?|lbs?|cases?|pallets?|weight)", CI),
    re.compile(r"\bline\s*haul", CI),
    re.compile(r"\btotal\s*:", CI),
    re.compile(r"\$\s*\d", CI),
    re.compile(r"\bload\s*temp", CI),
    re.compile(r"\btrailer\s*type", CI),
    re.compile(r"\bmiles\s*:", CI),
    re.compile(r"\bweight\s*:", CI),
    re.compile(r"\btemp\s*:", CI),
    re.compile(r"\bpieces\s*:", CI),
]
