"""Country lookups: free-text names to ISO 3166-1 alpha-2, and calling codes."""

COUNTRY_CODES: dict[str, str] = {
    "canada": "CA", "united states": "US", "usa": "US", "united states of america": "US",
    "united kingdom": "GB", "uk": "GB", "great britain": "GB",
    "australia": "AU", "new zealand": "NZ", "india": "IN", "china": "CN",
    "japan": "JP", "south korea": "KR", "korea": "KR",
    "france": "FR", "germany": "DE", "italy": "IT", "spain": "ES",
    "mexico": "MX", "brazil": "BR", "argentina": "AR",
    "south africa": "ZA", "nigeria": "NG", "kenya": "KE", "egypt": "EG",
    "netherlands": "NL", "belgium": "BE", "switzerland": "CH",
    "sweden": "SE", "norway": "NO", "denmark": "DK", "finland": "FI",
    "ireland": "IE", "portugal": "PT", "poland": "PL", "russia": "RU",
    "turkey": "TR", "saudi arabia": "SA", "uae": "AE", "united arab emirates": "AE",
    "qatar": "QA", "singapore": "SG", "malaysia": "MY", "thailand": "TH",
    "indonesia": "ID", "philippines": "PH", "vietnam": "VN",
}

# E.164 country calling codes, longest prefix wins
CALLING_CODES: set[str] = {
    "1", "7", "20", "27", "30", "31", "32", "33", "34", "36", "39", "40", "41",
    "43", "44", "45", "46", "47", "48", "49", "51", "52", "53", "54", "55", "56",
    "57", "58", "60", "61", "62", "63", "64", "65", "66", "81", "82", "84", "86",
    "90", "91", "92", "93", "94", "95", "98", "212", "213", "216", "234", "254",
    "351", "352", "353", "354", "358", "380", "852", "886", "966", "971", "972",
    "974",
}


def country_name_to_code(country: str) -> str:
    """Map a country name to its alpha-2 code; two-letter inputs pass through."""
    if country and len(country.strip()) == 2:
        return country.strip().upper()
    normalized = country.lower().strip()
    return COUNTRY_CODES.get(normalized, normalized.upper()[:2])


def split_calling_code(e164_phone: str) -> tuple[str, str]:
    """Split '+14165551234' into ('1', '4165551234')."""
    digits = e164_phone.lstrip("+")
    for length in (3, 2, 1):
        prefix = digits[:length]
        if prefix in CALLING_CODES:
            return prefix, digits[length:]
    return digits[:1], digits[1:]
