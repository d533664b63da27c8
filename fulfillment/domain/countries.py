"""Free-text country name to ISO-2 code normalization.

Unknown input is returned uppercased rather than rejected: geography only
feeds the shipping-route decision and must never fail an order.
"""

COUNTRY_ALIASES = {
    "UNITED ARAB EMIRATES": "AE",
    "UAE": "AE",
    "U.A.E.": "AE",
    "EMIRATES": "AE",
    "INDIA": "IN",
    "UNITED STATES": "US",
    "UNITED STATES OF AMERICA": "US",
    "USA": "US",
    "U.S.A.": "US",
    "UNITED KINGDOM": "GB",
    "GREAT BRITAIN": "GB",
    "UK": "GB",
    "SAUDI ARABIA": "SA",
    "KINGDOM OF SAUDI ARABIA": "SA",
    "KSA": "SA",
    "QATAR": "QA",
    "OMAN": "OM",
    "KUWAIT": "KW",
    "BAHRAIN": "BH",
    "PAKISTAN": "PK",
    "EGYPT": "EG",
    "JORDAN": "JO",
}


def normalize(raw) -> str:
    # Two-letter input is taken as ISO-2 unless it is a known alias (UK).
    value = str(raw or "").strip().upper()
    return COUNTRY_ALIASES.get(value, value)
