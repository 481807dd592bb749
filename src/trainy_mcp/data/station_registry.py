"""Canonical station registry with cross-provider identifiers.

Core stations on NL/DE/CH/BE international routes, with each provider's
native code. NS accepts names for foreign stations, which is why some NS
entries are display names rather than short codes.
"""

from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import Coordinates, Station, StationKind

NS = ProviderId.NS
DB = ProviderId.DB
SBB = ProviderId.SBB


def _station(
    station_id: str,
    display_name: str,
    country: str,
    lat: float,
    lng: float,
    provider_ids: dict[ProviderId, str],
) -> Station:
    return Station(
        id=station_id,
        display_name=display_name,
        country=country,
        coordinates=Coordinates(lat=lat, lng=lng),
        provider_ids=provider_ids,
        kind=StationKind.REGISTERED,
    )


REGISTERED_STATIONS: list[Station] = [
    # Netherlands
    _station("amsterdam-centraal", "Amsterdam Centraal", "NL", 52.3791, 4.9003,
             {NS: "ASD", DB: "8400058", SBB: "8400058"}),
    _station("amsterdam-zuid", "Amsterdam Zuid", "NL", 52.3389, 4.8728,
             {NS: "ASZ", DB: "8400061"}),
    _station("utrecht-centraal", "Utrecht Centraal", "NL", 52.0893, 5.1101,
             {NS: "UT", DB: "8400621"}),
    _station("arnhem-centraal", "Arnhem Centraal", "NL", 51.9851, 5.8987,
             {NS: "AH", DB: "8400071"}),
    _station("rotterdam-centraal", "Rotterdam Centraal", "NL", 51.9244, 4.4699,
             {NS: "RTD", DB: "8400530"}),
    _station("den-haag-centraal", "Den Haag Centraal", "NL", 52.0808, 4.3247,
             {NS: "GVC", DB: "8400280"}),
    _station("schiphol-airport", "Schiphol Airport", "NL", 52.3105, 4.7613,
             {NS: "SHL", DB: "8400561"}),
    _station("eindhoven-centraal", "Eindhoven Centraal", "NL", 51.4433, 5.4811,
             {NS: "EHV", DB: "8400206"}),
    # Germany
    _station("frankfurt-hbf", "Frankfurt (Main) Hbf", "DE", 50.1072, 8.6637,
             {NS: "Frankfurt (Main) Hbf", DB: "8000105", SBB: "8011068"}),
    _station("koln-hbf", "Köln Hbf", "DE", 50.9431, 6.9589,
             {NS: "Köln Hbf", DB: "8000207", SBB: "8015458"}),
    _station("dusseldorf-hbf", "Düsseldorf Hbf", "DE", 51.2200, 6.7942,
             {NS: "Düsseldorf Hbf", DB: "8000085"}),
    _station("duisburg-hbf", "Duisburg Hbf", "DE", 51.4297, 6.7756,
             {NS: "Duisburg Hbf", DB: "8000086"}),
    _station("essen-hbf", "Essen Hbf", "DE", 51.4513, 7.0142,
             {NS: "Essen Hbf", DB: "8000098"}),
    _station("dortmund-hbf", "Dortmund Hbf", "DE", 51.5177, 7.4591,
             {NS: "Dortmund Hbf", DB: "8000080"}),
    _station("berlin-hbf", "Berlin Hbf", "DE", 52.5251, 13.3694,
             {NS: "Berlin Hbf", DB: "8011160"}),
    _station("munchen-hbf", "München Hbf", "DE", 48.1403, 11.5601,
             {NS: "München Hbf", DB: "8000261", SBB: "8020347"}),
    _station("hamburg-hbf", "Hamburg Hbf", "DE", 53.5530, 10.0066,
             {NS: "Hamburg Hbf", DB: "8002549"}),
    _station("hannover-hbf", "Hannover Hbf", "DE", 52.3768, 9.7417,
             {NS: "Hannover Hbf", DB: "8000152"}),
    _station("oberhausen-hbf", "Oberhausen Hbf", "DE", 51.4728, 6.8517,
             {NS: "Oberhausen Hbf", DB: "8000286"}),
    _station("emmerich", "Emmerich", "DE", 51.8314, 6.2469,
             {NS: "Emmerich", DB: "8001843"}),
    # Switzerland
    _station("zurich-hb", "Zürich HB", "CH", 47.3779, 8.5402,
             {NS: "ZUE", SBB: "8503000", DB: "8503000"}),
    _station("basel-sbb", "Basel SBB", "CH", 47.5474, 7.5896,
             {NS: "BASELS", SBB: "8500010", DB: "8500010"}),
    _station("bern", "Bern", "CH", 46.9480, 7.4474,
             {SBB: "8507000", DB: "8507000"}),
    _station("geneve-cornavin", "Genève", "CH", 46.2101, 6.1423,
             {SBB: "8501008", DB: "8501008"}),
    _station("lausanne", "Lausanne", "CH", 46.5168, 6.6291,
             {SBB: "8501120", DB: "8501120"}),
    _station("luzern", "Luzern", "CH", 47.0502, 8.3093,
             {SBB: "8505000", DB: "8505000"}),
    # France (no SNCF adapter yet)
    _station("paris-nord", "Paris Gare du Nord", "FR", 48.8809, 2.3553, {}),
    _station("paris-est", "Paris Gare de l'Est", "FR", 48.8764, 2.3594, {}),
    # Belgium
    _station("bruxelles-midi", "Bruxelles-Midi / Brussel-Zuid", "BE", 50.8358, 4.3366,
             {NS: "Brussel-Zuid", DB: "8800004"}),
    _station("antwerpen-centraal", "Antwerpen-Centraal", "BE", 51.2172, 4.4211,
             {NS: "Antwerpen-Centraal", DB: "8800012"}),
]

# Common search terms -> registry id (matched after normalize_text)
STATION_ALIASES: dict[str, str] = {
    "amsterdam": "amsterdam-centraal",
    "amsterdam centraal": "amsterdam-centraal",
    "amsterdam central": "amsterdam-centraal",
    "amsterdam cs": "amsterdam-centraal",
    "asd": "amsterdam-centraal",
    "amsterdam zuid": "amsterdam-zuid",
    "amsterdam south": "amsterdam-zuid",
    "utrecht": "utrecht-centraal",
    "utrecht cs": "utrecht-centraal",
    "rotterdam": "rotterdam-centraal",
    "rotterdam cs": "rotterdam-centraal",
    "den haag": "den-haag-centraal",
    "the hague": "den-haag-centraal",
    "arnhem": "arnhem-centraal",
    "schiphol": "schiphol-airport",
    "eindhoven": "eindhoven-centraal",
    "frankfurt": "frankfurt-hbf",
    "frankfurt hbf": "frankfurt-hbf",
    "frankfurt main": "frankfurt-hbf",
    "frankfurt am main": "frankfurt-hbf",
    "frankfurt(main)hbf": "frankfurt-hbf",
    "koln": "koln-hbf",
    "cologne": "koln-hbf",
    "dusseldorf": "dusseldorf-hbf",
    "duisburg": "duisburg-hbf",
    "essen": "essen-hbf",
    "dortmund": "dortmund-hbf",
    "berlin": "berlin-hbf",
    "munchen": "munchen-hbf",
    "munich": "munchen-hbf",
    "hamburg": "hamburg-hbf",
    "hannover": "hannover-hbf",
    "hanover": "hannover-hbf",
    "oberhausen": "oberhausen-hbf",
    "zurich": "zurich-hb",
    "zurich hb": "zurich-hb",
    "zurich hauptbahnhof": "zurich-hb",
    "basel": "basel-sbb",
    "geneva": "geneve-cornavin",
    "geneve": "geneve-cornavin",
    "genf": "geneve-cornavin",
    "lucerne": "luzern",
    "paris nord": "paris-nord",
    "gare du nord": "paris-nord",
    "paris est": "paris-est",
    "gare de l'est": "paris-est",
    "brussels": "bruxelles-midi",
    "bruxelles": "bruxelles-midi",
    "brussel": "bruxelles-midi",
    "brussels south": "bruxelles-midi",
    "brussel zuid": "bruxelles-midi",
    "antwerp": "antwerpen-centraal",
    "antwerpen": "antwerpen-centraal",
}


def registered_stations() -> list[Station]:
    """Fresh copies of the registered stations (callers may fill provider ids)."""
    return [station.model_copy(deep=True) for station in REGISTERED_STATIONS]
