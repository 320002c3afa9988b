from __future__ import annotations

# ISO-4217 code -> symbols / local names the model may see printed on a receipt.
CURRENCY_SYMBOLS: dict[str, tuple[str, ...]] = {
    "USD": ("$", "Dollar", "United States Dollar"),
    "EUR": ("€", "Euro", "European Euro"),
    "GBP": ("£", "Pound", "British Pound Sterling"),
    "INR": ("₹", "Rs", "Rupee", "Indian Rupee"),
    "JPY": ("¥", "Yen", "Japanese Yen"),
    "CNY": ("¥", "Yuan", "Chinese Yuan", "RMB"),
    "CAD": ("C$", "Canadian Dollar"),
    "AUD": ("A$", "Australian Dollar"),
    "CHF": ("CHF", "Swiss Franc"),
    "SEK": ("kr", "Swedish Krona"),
    "NOK": ("kr", "Norwegian Krone"),
    "DKK": ("kr", "Danish Krone"),
    "PLN": ("zł", "Polish Złoty"),
    "CZK": ("Kč", "Czech Koruna"),
    "HUF": ("Ft", "Hungarian Forint"),
    "RON": ("lei", "Romanian Leu"),
    "BGN": ("лв", "Bulgarian Lev"),
    "HRK": ("kn", "Croatian Kuna"),
    "RSD": ("дин", "Serbian Dinar"),
    "TRY": ("₺", "Turkish Lira"),
    "ILS": ("₪", "Israeli Shekel"),
    "AED": ("د.إ", "UAE Dirham"),
    "SAR": ("ر.س", "Saudi Riyal"),
    "QAR": ("ر.ق", "Qatari Riyal"),
    "KWD": ("د.ك", "Kuwaiti Dinar"),
    "BHD": (".د.ب", "Bahraini Dinar"),
    "OMR": ("ر.ع", "Omani Rial"),
    "EGP": ("ج.م", "Egyptian Pound"),
    "ZAR": ("R", "South African Rand"),
    "NGN": ("₦", "Nigerian Naira"),
    "KES": ("KSh", "Kenyan Shilling"),
    "GHS": ("₵", "Ghanaian Cedi"),
    "MXN": ("MX$", "Mexican Peso"),
    "BRL": ("R$", "Brazilian Real"),
    "ARS": ("AR$", "Argentine Peso"),
    "CLP": ("CLP$", "Chilean Peso"),
    "COP": ("COL$", "Colombian Peso"),
    "PEN": ("S/", "Peruvian Sol"),
    "UYU": ("$U", "Uruguayan Peso"),
    "SGD": ("S$", "Singapore Dollar"),
    "MYR": ("RM", "Malaysian Ringgit"),
    "THB": ("฿", "Thai Baht"),
    "IDR": ("Rp", "Indonesian Rupiah"),
    "PHP": ("₱", "Philippine Peso"),
    "VND": ("₫", "Vietnamese Dong"),
    "KRW": ("₩", "South Korean Won"),
    "TWD": ("NT$", "Taiwan Dollar"),
    "HKD": ("HK$", "Hong Kong Dollar"),
    "NZD": ("NZ$", "New Zealand Dollar"),
    "RUB": ("₽", "Russian Ruble"),
    "UAH": ("₴", "Ukrainian Hryvnia"),
    "KZT": ("₸", "Kazakhstani Tenge"),
    "UZS": ("soʻm", "Uzbekistani Som"),
}

SUPPORTED_CURRENCIES: frozenset[str] = frozenset(CURRENCY_SYMBOLS)

_ALIASES: dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
    "RS": "INR",
    "RS.": "INR",
    "RMB": "CNY",
    "C$": "CAD",
    "A$": "AUD",
    "R$": "BRL",
    "S$": "SGD",
    "HK$": "HKD",
    "NZ$": "NZD",
    "NT$": "TWD",
    "₩": "KRW",
    "₺": "TRY",
    "₪": "ILS",
    "₽": "RUB",
    "฿": "THB",
}


def normalize_currency(value: str | None) -> str | None:
    """Map a code or unambiguous symbol to an upper-case 3-letter code, or None."""
    if value is None:
        return None
    s = str(value).strip().upper()
    if not s:
        return None
    if s in _ALIASES:
        return _ALIASES[s]
    if len(s) == 3 and s.isalpha() and s.isascii():
        return s
    return None


def is_supported_currency(code: str | None) -> bool:
    return bool(code) and code in SUPPORTED_CURRENCIES
