from __future__ import annotations

import re

# Lower-cased merchant name fragments. Matched as whole words, longest first,
# so "amazon india" wins over "amazon".
MERCHANT_CURRENCIES: dict[str, str] = {
    # UK
    "tesco": "GBP",
    "asda": "GBP",
    "sainsbury": "GBP",
    "sainsburys": "GBP",
    "morrisons": "GBP",
    "waitrose": "GBP",
    "marks & spencer": "GBP",
    "m&s": "GBP",
    "boots": "GBP",
    "argos": "GBP",
    "currys": "GBP",
    "john lewis": "GBP",
    "next": "GBP",
    "primark": "GBP",
    "costa coffee": "GBP",
    "greggs": "GBP",
    "pret a manger": "GBP",
    "nandos": "GBP",
    "subway uk": "GBP",
    # Germany
    "rewe": "EUR",
    "edeka": "EUR",
    "aldi": "EUR",
    "lidl": "EUR",
    "kaufland": "EUR",
    "real": "EUR",
    "dm": "EUR",
    "rossmann": "EUR",
    "media markt": "EUR",
    "saturn": "EUR",
    "otto": "EUR",
    "zalando": "EUR",
    "h&m": "EUR",
    "c&a": "EUR",
    "douglas": "EUR",
    # US
    "walmart": "USD",
    "target": "USD",
    "amazon": "USD",
    "costco": "USD",
    "sams club": "USD",
    "kroger": "USD",
    "safeway": "USD",
    "cvs": "USD",
    "walgreens": "USD",
    "home depot": "USD",
    "lowes": "USD",
    "best buy": "USD",
    "macys": "USD",
    "starbucks": "USD",
    "mcdonalds": "USD",
    "burger king": "USD",
    "subway": "USD",
    "chipotle": "USD",
    "shell": "USD",
    "exxon": "USD",
    "chevron": "USD",
    # India
    "reliance": "INR",
    "big bazaar": "INR",
    "spencers": "INR",
    "more": "INR",
    "dmart": "INR",
    "flipkart": "INR",
    "amazon india": "INR",
    "swiggy": "INR",
    "zomato": "INR",
    "ola": "INR",
    "uber india": "INR",
    "paytm": "INR",
    "jio": "INR",
    "airtel": "INR",
    "bsnl": "INR",
    # Canada
    "loblaws": "CAD",
    "metro": "CAD",
    "sobeys": "CAD",
    "shoppers drug mart": "CAD",
    "canadian tire": "CAD",
    "tim hortons": "CAD",
    "tim horton": "CAD",
    "a&w canada": "CAD",
    "harvey": "CAD",
    # Australia
    "woolworths": "AUD",
    "coles": "AUD",
    "iga": "AUD",
    "bunnings": "AUD",
    "jb hi-fi": "AUD",
    "big w": "AUD",
    "kmart australia": "AUD",
    "myer": "AUD",
    "david jones": "AUD",
    # France
    "carrefour": "EUR",
    "leclerc": "EUR",
    "auchan": "EUR",
    "intermarche": "EUR",
    "monoprix": "EUR",
    "franprix": "EUR",
    "casino": "EUR",
    # Spain
    "mercadona": "EUR",
    "corte ingles": "EUR",
    "dia": "EUR",
    "alcampo": "EUR",
    # Italy
    "conad": "EUR",
    "coop italia": "EUR",
    "esselunga": "EUR",
    "eurospin": "EUR",
    "bennet": "EUR",
    # Japan
    "7-eleven japan": "JPY",
    "lawson": "JPY",
    "familymart": "JPY",
    "uniqlo": "JPY",
    "muji": "JPY",
    "don quijote": "JPY",
    "bic camera": "JPY",
    "yodobashi": "JPY",
}

_PLACE_NAMES: tuple[tuple[str, str], ...] = (
    ("GBP", r"\.co\.uk|\bUK\b|\bUnited Kingdom\b|\bEngland\b|\bScotland\b|\bWales\b"),
    ("GBP", r"\bLondon\b|\bManchester\b|\bBirmingham\b|\bEdinburgh\b|\bGlasgow\b"),
    ("EUR", r"\.de\b|\bDeutschland\b|\bGermany\b"),
    ("EUR", r"\bBerlin\b|\bMunich\b|\bMünchen\b|\bHamburg\b|\bFrankfurt\b|\bKöln\b|\bCologne\b"),
    ("USD", r"\bUSA\b|\bUnited States\b"),
    (
        "USD",
        r"\bNew York\b|\bLos Angeles\b|\bChicago\b|\bHouston\b|\bPhoenix\b|\bPhiladelphia\b"
        r"|\bSan Antonio\b|\bSan Diego\b|\bDallas\b|\bSan Jose\b",
    ),
    ("INR", r"\bIndia\b"),
    (
        "INR",
        r"\bMumbai\b|\bDelhi\b|\bBangalore\b|\bBengaluru\b|\bHyderabad\b|\bChennai\b"
        r"|\bKolkata\b|\bPune\b|\bAhmedabad\b|\bJaipur\b",
    ),
    ("CAD", r"\bCanada\b|\bToronto\b|\bVancouver\b|\bMontreal\b|\bCalgary\b|\bOttawa\b"),
    ("AUD", r"\bAustralia\b|\bSydney\b|\bMelbourne\b|\bBrisbane\b|\bPerth\b|\bAdelaide\b"),
    ("EUR", r"\bFrance\b|\bParis\b|\bSpain\b|\bMadrid\b|\bBarcelona\b|\bItaly\b|\bRome\b"),
    ("EUR", r"\bMilan\b|\bNetherlands\b|\bAmsterdam\b|\bBelgium\b|\bBrussels\b"),
    ("EUR", r"\bAustria\b|\bVienna\b"),
    ("JPY", r"\bJapan\b|\bTokyo\b|\bOsaka\b|\bKyoto\b|\bYokohama\b"),
)

# Postal-code shapes are weaker evidence than place names and are matched
# case-sensitively against the original text.
_POSTAL_CODES: tuple[tuple[str, str], ...] = (
    ("GBP", r"\b[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}\b"),
    ("CAD", r"\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b"),
    ("USD", r"\b\d{5}-\d{4}\b"),
    ("EUR", r"\b\d{5}\s"),
    ("USD", r"\b\d{5}\b"),
    ("INR", r"\b\d{6}\b"),
)

LOCATION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    *((re.compile(p, re.IGNORECASE), code) for code, p in _PLACE_NAMES),
    *((re.compile(p), code) for code, p in _POSTAL_CODES),
)

INTERNATIONAL_CHAINS: tuple[str, ...] = (
    "mcdonald",
    "subway",
    "starbucks",
    "kfc",
    "burger king",
    "pizza hut",
    "domino",
    "coca cola",
    "pepsi",
    "shell",
    "bp",
    "exxon",
    "chevron",
    "7-eleven",
    "amazon",
    "google",
    "apple",
    "microsoft",
    "netflix",
    "uber",
    "booking.com",
    "airbnb",
)

ALTERNATE_CURRENCIES: dict[str, tuple[str, ...]] = {
    "subway": ("USD", "GBP", "EUR", "CAD", "AUD"),
    "mcdonald": ("USD", "GBP", "EUR", "CAD", "AUD", "JPY"),
    "starbucks": ("USD", "GBP", "EUR", "CAD", "JPY", "CNY"),
}
