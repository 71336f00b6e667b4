"""
Canonical labels for noisy free-text fields.

Every rule table is an ordered list of (canonical, patterns): the input is
trimmed, whitespace-collapsed and uppercased, then the first rule with a
matching pattern wins. Unmatched input comes back trimmed but otherwise
untouched, so normalizing a canonical label returns it unchanged.
"""
from __future__ import annotations

import re

UNKNOWN = "Unknown"
NO_STATUS = "No Status"

# placeholders the lead screens write when no status was picked
STATUS_PLACEHOLDERS = {"–", "—", "-"}


def _rules(table):
    return [(canonical, [re.compile(p, re.IGNORECASE) for p in patterns]) for canonical, patterns in table]


BANK_RULES = _rules([
    ("ICICI BANK", [r"ICICI?.*(?:BANK)?", r"ICIC.*(?:BANK)?"]),
    ("AXIS BANK", [r"AXIS.*(?:BANK)?"]),
    ("HDFC BANK", [r"HDFC.*(?:BANK)?"]),
    ("STATE BANK OF INDIA", [r"^(?:STATE.*BANK|SBI)"]),
    # "RBL (BAJAJ)" co-brand must land on RBL before the generic Bajaj rule
    ("RBL BANK", [r"^RBL(?:\s*\(?BAJAJ\)?)?", r"RBL.*(?:BANK)?"]),
    ("IDFC FIRST BANK", [r"IDFC.*(?:FIRST|FIRSTBANK)?"]),
    ("KOTAK MAHINDRA BANK", [r"KOTAK.*(?:MAHINDRA)?.*(?:BANK)?", r"KOTAKMAHINDRA(?:BANK)?"]),
    ("YES BANK", [r"YES.*(?:BANK)?"]),
    ("BANK OF BARODA", [r"^(?:BANK\s*OF\s*BARODA|BOB)(?:\s*(?:BANK|ONE\s*CARD|\(ONE\s*CARD\))?)?"]),
    ("INDUSIND BANK", [r"INDUS(?:I|L)ND.*(?:BANK)?"]),
    ("DBS BANK", [r"DBS.*(?:BANK)?"]),
    ("STANDARD CHARTERED BANK", [r"STANDARD.*(?:CHARTERED).*(?:BANK)?"]),
    ("FEDERAL BANK", [r"FEDERAL.*(?:BANK|\(ONECARD\))?"]),
    ("SOUTH INDIAN BANK", [r"(?:THE\s*)?SOUTH.*INDIAN.*(?:BANK|LTD)?"]),
    ("AU SMALL FINANCE BANK", [r"^AU(?:\b|\s*SMALL)"]),
    ("CATHOLIC SYRIAN BANK", [r"(?:THE\s*)?CATHOLIC.*SYRIAN.*(?:BANK)?"]),
    ("PUNJAB NATIONAL BANK", [r"PUNJAB.*NATIONAL.*(?:BANK)?"]),
    ("UNION BANK", [r"^UNION.*(?:BANK)?"]),
    ("NORTH EAST SMALL FINANCE BANK", [r"NORTH.*EAST.*(?:SMALL|FINANCE|BANK)?"]),
    ("ADITYA BIRLA FINANCE", [r"ADITYA.*(?:BIRLA|SHRIRAM).*(?:FINANCE|CAPITAL|NIRA|LTD|SMFG)?"]),
    ("BAJAJ FINANCE", [r"BAJAJ.*(?:FINANCE|FINSERV|LIMITED)?"]),
    ("HERO FINCORP", [r"HERO.*(?:FINCORP|FINCROP|LTD)?"]),
    ("POONAWALLA FINCORP", [r"POONAWALLA.*(?:FINCORP)?"]),
    ("L&T FINANCE", [r"^L\s*(?:&|AND)\s*T(?:\b|\s*FINANCE)"]),
    ("CHOLAMANDALAM", [r"CHOL(?:A|E)?MANDALAM"]),
    ("PIRAMAL FINANCE", [r"PIRAMAL.*(?:FINANCE|HOUSING)?"]),
    ("TATA CAPITAL", [r"TATA.*(?:CAPITAL)?"]),
    ("MUTHOOT FINANCE", [r"MUTHOOT.*(?:FINANCE)?"]),
    ("NORTHERN ARC CAPITAL", [r"NORTHERN.*(?:ARC|AMERICAN|EARLY|SMART\s*COIN).*(?:CAPITAL|LTD)?"]),
    ("KISETSU SAISON FINANCE", [r"KIS[E]?TSU.*(?:SAISON|CRED|KREDITBEE|MONEY\s*VIEW)?"]),
    ("SMFG INDIA CREDIT", [r"SMFG.*(?:INDIA|HSBC|CREDIT|COMPANY|MONEYVIEW|NBFC)?"]),
    ("ONE CARD", [r"ONE\s*CARD.*(?:BOB)?"]),
    ("EARLY SALARY (FIBE)", [r"(?:EARLY.*SALARY|FIBE).*(?:SERVICES|PVT|FIBE)?"]),
    ("MONEY VIEW", [r"MONEY.*VIEW"]),
    ("PAYU FINANCE", [r"^PAY\s*U(?:\b|\s*(?:FINANCE|INDIA|IIFL|KREDITBE|MONEYVIEW))"]),
    ("KRAZYBEE SERVICES", [r"KRA[Z]?Y.*BEE.*(?:SERVICES|PRIVATE)?"]),
    ("CLIX CAPITAL", [r"CLIX.*(?:CAPITAL|CAPTAIL)?"]),
    ("VIVRITI CAPITAL", [r"VI[VF](?:RITI|IFI).*(?:CAPITAL|INDIA|POONAWALLA|LIMITED)?"]),
    ("INCRED FINANCE", [r"INCRED.*(?:FINANCE|FINALCAL|FINANCIALE)?"]),
    ("NDX P2P", [r"NDX.*(?:P2P|PRIVATE)?"]),
    ("SI CREVA CAPITAL", [r"SI.*CREVA.*(?:CAPITAL|VIVIFI)?"]),
    ("AKARA CAPITAL", [r"AKARA.*(?:CAPITAL)?"]),
    ("CAPFLOAT", [r"CAPFLOAT"]),
    ("ZYPE FINANCE", [r"ZYPE.*(?:FINANCE)?"]),
    ("TRUE CREDITS", [r"TRUE.*(?:CREDITS|BALANCE|PRIVATE)?"]),
    ("UNI FINANCE", [r"UNI(?:CARD|FINZ)?"]),
    ("KREDITBEE", [r"KREDIT.*BEE.*(?:KHATA)?"]),
    ("KISSHT", [r"KISSHT"]),
    ("MOBIKWIK", [r"MOBI(?:KWIK|QUICK)"]),
    ("JUPITER (CSB)", [r"JUPITER.*(?:CSB)?"]),
    ("SMICC", [r"SMICC"]),
    ("WHIZDM FINANCE", [r"WHIZDM.*(?:FINANCE)?"]),
    ("BANDHAN BANK", [r"BANDHAN.*(?:BANK)?"]),
    ("LENDING KARD", [r"LENDING.*KARD"]),
    ("UPMOVE CAPITAL", [r"UPMOVE.*(?:CAPITAL)?"]),
    ("STASHFIN", [r"STASHFIN"]),
    ("NEW TAP", [r"NEW.*TAP"]),
    ("CASHE", [r"CASHE"]),
    ("GROWW", [r"GROW[W]?"]),
    ("RK BANSAL", [r"RK.*BANSAL"]),
    ("FINC FRIENDS", [r"FINC.*FRIENDS.*(?:SAYYAM)?"]),
    ("PAYRUPKIR", [r"PAYRUPKIR"]),
    ("RING", [r"^RING$"]),
    ("FINNABLE", [r"FINNABLE"]),
    ("PHOENIX ARC", [r"PHOENIX.*(?:ARC|HDFC|PRIVATE)?"]),
    ("AXIOM FINANCE", [r"AXIOM.*(?:FINANCE|SERVICES)?"]),
    ("WORTGAGE FINANCE", [r"WORTGAGE.*(?:FINANCE)?"]),
    ("INDIFI", [r"INDIFI"]),
    ("KISTUK", [r"KISTUK"]),
    ("TRUEBALANCE", [r"TRUEBALANCE"]),
    ("SNAPMINT FINANCIAL", [r"SNAPMINT.*(?:FINANCIAL)?"]),
    ("AMICA FINANCE", [r"AMICA.*(?:FINANCE)?"]),
    ("PREFR (HFC)", [r"PREFR.*(?:HFC)?"]),
])

OCCUPATION_RULES = _rules([
    ("Business", [r"^(?:SELF[\s-]?EMPOLYEE|SELF[\s-]?EMPLOYED|BUSINESS|BUSNIESS)$"]),
    ("Job", [r"^JOB$"]),
])

STATUSES = [
    "No Status",
    "Interested",
    "Not Interested",
    "Not Answering",
    "Callback",
    "Future Potential",
    "Converted",
    "Loan Required",
    "Short Loan",
    "Cibil Issue",
    "Language Barrier",
    "Retargeting",
    "Closed Lead",
]

# exact (case-insensitive) match back to the display casing
STATUS_RULES = _rules([(s, [rf"^{re.escape(s.upper())}$"]) for s in STATUSES])


def _collapse(raw) -> str:
    return " ".join(str(raw).split())


def _first_match(rules, key: str) -> str | None:
    for canonical, patterns in rules:
        for pattern in patterns:
            if pattern.search(key):
                return canonical
    return None


def normalize_bank_name(raw) -> str:
    if raw is None:
        return UNKNOWN
    key = _collapse(raw).upper()
    if not key or key == "UNKNOWN":
        return UNKNOWN
    return _first_match(BANK_RULES, key) or str(raw).strip()


def normalize_occupation(raw) -> str:
    if not isinstance(raw, str):
        return UNKNOWN
    key = _collapse(raw).upper()
    if not key:
        return UNKNOWN
    return _first_match(OCCUPATION_RULES, key) or raw.strip()


def normalize_status(raw) -> str:
    if raw is None:
        return NO_STATUS
    text = str(raw).strip()
    if not text or text in STATUS_PLACEHOLDERS:
        return NO_STATUS
    return _first_match(STATUS_RULES, _collapse(text).upper()) or text


def normalize_label(raw) -> str:
    """Generic free-text dimension (city, source, advocate): trimmed, empty -> Unknown."""
    if raw is None:
        return UNKNOWN
    text = _collapse(raw)
    return text or UNKNOWN


_NORMALIZERS = {
    "bank": normalize_bank_name,
    "occupation": normalize_occupation,
    "status": normalize_status,
    "city": normalize_label,
    "label": normalize_label,
}


def normalize(kind: str, raw) -> str:
    try:
        fn = _NORMALIZERS[kind]
    except KeyError:
        raise ValueError(f"Unknown normalizer kind: {kind!r}") from None
    return fn(raw)


# ---------- derived dimensions ----------

# first two digits of a 6-digit PIN -> state
PINCODE_STATE_RANGES = [
    (11, 11, "Delhi"),
    (12, 13, "Haryana"),
    (14, 16, "Punjab"),
    (17, 17, "Himachal Pradesh"),
    (18, 19, "Jammu & Kashmir"),
    (20, 28, "Uttar Pradesh"),
    (30, 34, "Rajasthan"),
    (36, 39, "Gujarat"),
    (40, 44, "Maharashtra"),
    (45, 48, "Madhya Pradesh"),
    (49, 49, "Chhattisgarh"),
    (50, 53, "Andhra Pradesh/Telangana"),
    (56, 59, "Karnataka"),
    (60, 64, "Tamil Nadu"),
    (67, 69, "Kerala"),
    (70, 74, "West Bengal"),
    (75, 77, "Odisha"),
    (78, 78, "Assam"),
    (79, 79, "North Eastern States"),
    (80, 85, "Bihar"),
]

_PINCODE_RE = re.compile(r"\b(\d{6})\b")


def state_from_pincode(text) -> str:
    """State for the first 6-digit PIN found in `text` (a pincode or a full address)."""
    if text is None:
        return UNKNOWN
    m = _PINCODE_RE.search(str(text))
    if not m:
        return UNKNOWN
    prefix = int(m.group(1)[:2])
    for lo, hi, state in PINCODE_STATE_RANGES:
        if lo <= prefix <= hi:
            return state
    return UNKNOWN


INCOME_BRACKETS = [
    (25000, "0-25K"),
    (50000, "25K-50K"),
    (75000, "50K-75K"),
    (100000, "75K-100K"),
    (None, "100K+"),
]


def income_bracket(income: float | None) -> str | None:
    if income is None:
        return None
    for upper, label in INCOME_BRACKETS:
        if upper is None or income <= upper:
            return label
    return None


AGE_BRACKETS = [
    (18, 25, "18-25"),
    (26, 35, "26-35"),
    (36, 45, "36-45"),
    (46, 55, "46-55"),
    (56, None, "56+"),
]


def age_bracket(age: float | None) -> str:
    if age is None:
        return UNKNOWN
    for lo, hi, label in AGE_BRACKETS:
        if age >= lo and (hi is None or age < hi + 1):
            return label
    return UNKNOWN


CONVERSION_TIME_BUCKETS = [
    (0, "Same Day (0-24h)"),
    (3, "2-3 Days"),
    (7, "4-7 Days"),
    (14, "1-2 Weeks"),
    (30, "2-4 Weeks"),
    (60, "1-2 Months"),
    (None, "2+ Months"),
]


def conversion_time_bucket(days: int) -> str:
    for upper, label in CONVERSION_TIME_BUCKETS:
        if upper is None or days <= upper:
            return label
    return CONVERSION_TIME_BUCKETS[-1][1]


DEBT_NOT_SPECIFIED = "Not specified"
_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")


def debt_range_label(raw) -> str:
    if raw is None:
        return DEBT_NOT_SPECIFIED
    text = str(raw).strip()
    return text or DEBT_NOT_SPECIFIED


def _debt_bounds(label: str) -> list[int]:
    bounds = []
    for part in label.split(" - "):
        m = _LEADING_INT_RE.match(part)
        bounds.append(int(m.group(1)) if m else 0)
    return bounds


def debt_range_sort_key(label: str):
    """Ascending by lower bound (in lakhs), "Not specified" last."""
    if label == DEBT_NOT_SPECIFIED:
        return (1, 0)
    return (0, _debt_bounds(label)[0])


def debt_midpoint(raw) -> float | None:
    """Midpoint in rupees of a "min - max" lakh range, None when unusable."""
    label = debt_range_label(raw)
    if label == DEBT_NOT_SPECIFIED:
        return None
    bounds = [b * 100000 for b in _debt_bounds(label)]
    if len(bounds) < 2:
        return None
    mid = (bounds[0] + bounds[1]) / 2
    return mid if mid > 0 else None
