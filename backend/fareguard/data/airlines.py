"""Airline name lookup for providers that only return carrier codes."""

AIRLINE_NAMES: dict[str, str] = {
    "AC": "Air Canada", "WS": "WestJet", "AA": "American Airlines",
    "DL": "Delta Air Lines", "UA": "United Airlines", "B6": "JetBlue Airways",
    "NK": "Spirit Airlines", "F8": "Flair Airlines", "BA": "British Airways",
    "LH": "Lufthansa", "AF": "Air France", "KL": "KLM",
    "LX": "Swiss", "OS": "Austrian", "EK": "Emirates",
    "QR": "Qatar Airways", "SQ": "Singapore Airlines", "CX": "Cathay Pacific",
    "NH": "ANA", "JL": "Japan Airlines", "AS": "Alaska Airlines",
    "WN": "Southwest Airlines", "TS": "Air Transat", "PD": "Porter Airlines",
    "VS": "Virgin Atlantic", "FI": "Icelandair", "TP": "TAP Air Portugal",
    "AY": "Finnair", "SK": "SAS", "IB": "Iberia",
}


def airline_name(code: str, carriers: dict[str, str] | None = None) -> str:
    if carriers and code in carriers:
        return carriers[code].title() if carriers[code].isupper() else carriers[code]
    return AIRLINE_NAMES.get(code, code)
