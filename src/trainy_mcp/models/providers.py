"""Provider identifiers and the country -> authoritative provider mapping."""

from enum import Enum


class ProviderId(str, Enum):
    """National rail data providers."""

    NS = "NS"  # Nederlandse Spoorwegen
    DB = "DB"  # Deutsche Bahn
    SNCF = "SNCF"
    OBB = "OBB"
    SBB = "SBB"  # Schweizerische Bundesbahnen


# Country code -> provider whose data wins for stops in that country
COUNTRY_PROVIDERS: dict[str, ProviderId] = {
    "NL": ProviderId.NS,
    "BE": ProviderId.NS,  # Belgium is covered by NS on international routes
    "DE": ProviderId.DB,
    "FR": ProviderId.SNCF,
    "AT": ProviderId.OBB,
    "CH": ProviderId.SBB,
}

# Spellings seen in provider payloads -> ISO-like code
COUNTRY_ALIASES: dict[str, str] = {
    "NETHERLANDS": "NL",
    "NEDERLAND": "NL",
    "D": "DE",
    "GERMANY": "DE",
    "DEUTSCHLAND": "DE",
    "B": "BE",
    "BELGIUM": "BE",
    "F": "FR",
    "FRANCE": "FR",
    "A": "AT",
    "AUSTRIA": "AT",
    "SWITZERLAND": "CH",
    "SCHWEIZ": "CH",
}

# UIC country prefix of a 7-digit station number -> country code
UIC_COUNTRY_PREFIXES: dict[str, str] = {
    "80": "DE",
    "81": "AT",
    "84": "NL",
    "85": "CH",
    "87": "FR",
    "88": "BE",
}


def normalize_country(country: str | None) -> str | None:
    """Normalize a provider's country spelling to a two-letter code.

    Example: "Germany" -> "DE", "d" -> "DE", "nl" -> "NL", "" -> None
    """
    if not country:
        return None
    upper = country.strip().upper()
    return COUNTRY_ALIASES.get(upper, upper) or None


def country_from_uic(code: str | None) -> str | None:
    """Derive the country of a station from its UIC number.

    Example: "8503000" -> "CH", "ASD" -> None
    """
    if not code or len(code) != 7 or not code.isdigit():
        return None
    return UIC_COUNTRY_PREFIXES.get(code[:2])


def authoritative_provider_for(country: str | None) -> ProviderId | None:
    """Get the provider authoritative for a country, if any."""
    normalized = normalize_country(country)
    if normalized is None:
        return None
    return COUNTRY_PROVIDERS.get(normalized)
