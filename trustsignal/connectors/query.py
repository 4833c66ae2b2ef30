"""
TrustSignal — Query Parsing

Free-text queries are decomposed into structured fields before provider
parameters are built:

    "Wells Fargo mortgage"       → company="Wells Fargo", product="mortgage"
    "2019 Honda Civic brakes"    → make="HONDA", model="CIVIC", year=2019
    "Acme cordless drill recall" → company="Acme", category="tools"
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# category → product phrases, longest phrases are matched first
PRODUCT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "financial_services": (
        "mortgage", "credit card", "bank account", "checking account", "savings account",
        "credit report", "debt collection", "money transfer", "prepaid card",
        "payday loan", "student loan", "vehicle loan", "consumer loan", "loan",
    ),
    "electronics": (
        "phone", "smartphone", "laptop", "tablet", "television", "tv", "headphones",
        "charger", "battery", "camera", "speaker", "monitor",
    ),
    "appliances": (
        "refrigerator", "dishwasher", "washer", "dryer", "oven", "microwave",
        "air conditioner", "heater", "blender", "vacuum",
    ),
    "automotive": ("car", "truck", "suv", "vehicle", "tire", "airbag", "car seat"),
    "pharmaceuticals": ("drug", "tablet", "capsule", "medication", "vaccine", "supplement"),
    "medical_devices": ("pacemaker", "insulin pump", "implant", "catheter", "ventilator"),
    "food": ("food", "formula", "snack", "beverage", "cheese", "meat", "produce"),
    "toys": ("toy", "crib", "stroller", "high chair"),
    "tools": ("drill", "saw", "ladder", "power tool", "generator", "mower"),
}

VEHICLE_MAKES: Tuple[str, ...] = (
    "ACURA", "AUDI", "BMW", "BUICK", "CADILLAC", "CHEVROLET", "CHRYSLER", "DODGE",
    "FIAT", "FORD", "GENESIS", "GMC", "HONDA", "HYUNDAI", "INFINITI", "JAGUAR",
    "JEEP", "KIA", "LAND ROVER", "LEXUS", "LINCOLN", "MAZDA", "MERCEDES-BENZ",
    "MINI", "MITSUBISHI", "NISSAN", "PORSCHE", "RAM", "RIVIAN", "SUBARU",
    "TESLA", "TOYOTA", "VOLKSWAGEN", "VOLVO",
)

_YEAR = re.compile(r"\b(19[5-9]\d|20[0-4]\d)\b")
_STOPWORDS = {"the", "and", "for", "with", "recall", "recalls", "complaint", "complaints"}


@dataclass
class ParsedQuery:
    raw: str
    company: Optional[str] = None
    product: Optional[str] = None
    category: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    terms: List[str] = field(default_factory=list)


def _all_product_phrases() -> List[Tuple[str, str]]:
    pairs = [(phrase, cat) for cat, phrases in PRODUCT_KEYWORDS.items() for phrase in phrases]
    return sorted(pairs, key=lambda p: len(p[0]), reverse=True)


_PRODUCT_PHRASES = _all_product_phrases()
_PRODUCT_WORDS = {w for phrase, _ in _PRODUCT_PHRASES for w in phrase.split()}


def match_product(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Longest product phrase found in `text` as a whole word, with its category."""
    lower = f" {text.lower()} "
    for phrase, category in _PRODUCT_PHRASES:
        if re.search(rf"\b{re.escape(phrase)}\b", lower):
            return phrase, category
    return None, None


def extract_company(text: str) -> Optional[str]:
    """
    Capitalization heuristic: the first run of capitalized words longer than
    two characters that are not product words.
    """
    run: List[str] = []
    for word in text.split():
        token = word.strip(",.;:!?\"'()")
        if (
            len(token) > 2
            and token[0].isupper()
            and token.lower() not in _PRODUCT_WORDS
            and token.lower() not in _STOPWORDS
            and not _YEAR.fullmatch(token)
        ):
            run.append(token)
        elif run:
            break
    return " ".join(run) or None


def extract_vehicle(text: str) -> Tuple[Optional[str], Optional[str], Optional[int]]:
    upper = text.upper()
    year_match = _YEAR.search(text)
    year = int(year_match.group(1)) if year_match else None

    make = None
    for candidate in sorted(VEHICLE_MAKES, key=len, reverse=True):
        if re.search(rf"\b{re.escape(candidate)}\b", upper):
            make = candidate
            break
    if make is None:
        return None, None, year

    model = None
    after = re.split(rf"\b{re.escape(make)}\b", upper, maxsplit=1)[1].split()
    for token in after:
        token = token.strip(",.;:")
        if token and not _YEAR.fullmatch(token) and token.lower() not in _STOPWORDS:
            model = token
            break
    return make, model, year


def parse_query(text: str) -> ParsedQuery:
    text = text.strip()
    product, category = match_product(text)
    make, model, year = extract_vehicle(text)
    terms = [t for t in re.findall(r"[a-z0-9][a-z0-9-]*", text.lower()) if t not in _STOPWORDS]
    return ParsedQuery(
        raw=text,
        company=extract_company(text),
        product=product,
        category=category,
        make=make,
        model=model,
        year=year,
        terms=terms,
    )
