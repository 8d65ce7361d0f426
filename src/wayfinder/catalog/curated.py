"""
Curated popular places.

A small, in-memory table of well-known places per city with search aliases. It is the
first (and zero-I/O) search source, the popular-places listing for short queries, and
the basis of `nearby_places`. Entries within one city are kept more than 500 m apart so
proximity deduplication never collapses two curated places.
"""

from __future__ import annotations

from dataclasses import dataclass

from wayfinder.catalog.cities import City, default_city, find_city


@dataclass(frozen=True)
class CuratedPlace:
    """A popular place with the aliases people actually type."""

    id: str
    title: str
    subtitle: str
    address: str
    lat: float
    lon: float
    city: str
    commune: str
    category: str
    hierarchy_level: int
    popularity: int
    aliases: tuple[str, ...] = ()


CURATED_PLACES: list[CuratedPlace] = [
    # Kinshasa
    CuratedPlace(
        id="kin-airport-ndjili",
        title="Aéroport N'djili",
        subtitle="Ndjili, Kinshasa",
        address="Aéroport International de N'djili, Kinshasa",
        lat=-4.3856,
        lon=15.4446,
        city="Kinshasa",
        commune="Ndjili",
        category="Transport",
        hierarchy_level=5,
        popularity=100,
        aliases=("aeroport", "airport", "aeroport international", "ndjili", "fih"),
    ),
    CuratedPlace(
        id="kin-gombe-centre",
        title="Gombe Centre-ville",
        subtitle="Gombe, Kinshasa",
        address="Boulevard du 30 Juin, Gombe, Kinshasa",
        lat=-4.3175,
        lon=15.3117,
        city="Kinshasa",
        commune="Gombe",
        category="Quartier des affaires",
        hierarchy_level=2,
        popularity=95,
        aliases=("gombe", "centre ville", "downtown", "boulevard du 30 juin"),
    ),
    CuratedPlace(
        id="kin-unikin",
        title="Université de Kinshasa (UNIKIN)",
        subtitle="Mont-Amba, Kinshasa",
        address="Université de Kinshasa, Mont-Amba, Kinshasa",
        lat=-4.4324,
        lon=15.2973,
        city="Kinshasa",
        commune="Lemba",
        category="Éducation",
        hierarchy_level=5,
        popularity=90,
        aliases=("unikin", "universite", "university", "mont amba"),
    ),
    CuratedPlace(
        id="kin-marche-central",
        title="Marché Central",
        subtitle="Commerce, Kinshasa",
        address="Marché Central, Kinshasa",
        lat=-4.3217,
        lon=15.3069,
        city="Kinshasa",
        commune="Kinshasa",
        category="Commerce",
        hierarchy_level=5,
        popularity=85,
        aliases=("marche", "grand marche", "market"),
    ),
    CuratedPlace(
        id="kin-stade-martyrs",
        title="Stade des Martyrs",
        subtitle="Kalamu, Kinshasa",
        address="Stade des Martyrs, Kalamu, Kinshasa",
        lat=-4.3500,
        lon=15.3200,
        city="Kinshasa",
        commune="Kalamu",
        category="Sport",
        hierarchy_level=5,
        popularity=80,
        aliases=("stade", "stadium", "martyrs"),
    ),
    CuratedPlace(
        id="kin-marche-liberte",
        title="Marché de la Liberté",
        subtitle="Masina, Kinshasa",
        address="Marché de la Liberté, Masina, Kinshasa",
        lat=-4.3800,
        lon=15.3500,
        city="Kinshasa",
        commune="Masina",
        category="Commerce",
        hierarchy_level=5,
        popularity=75,
        aliases=("liberte", "marche liberte"),
    ),
    CuratedPlace(
        id="kin-limete",
        title="Limete",
        subtitle="Commune, Kinshasa",
        address="Limete, Kinshasa",
        lat=-4.3800,
        lon=15.2900,
        city="Kinshasa",
        commune="Limete",
        category="Commune",
        hierarchy_level=2,
        popularity=70,
        aliases=("limete industriel", "echangeur"),
    ),
    # Lubumbashi
    CuratedPlace(
        id="lub-airport-luano",
        title="Aéroport de Luano",
        subtitle="Annexe, Lubumbashi",
        address="Aéroport International de Luano, Lubumbashi",
        lat=-11.5913,
        lon=27.5309,
        city="Lubumbashi",
        commune="Annexe",
        category="Transport",
        hierarchy_level=5,
        popularity=100,
        aliases=("aeroport", "airport", "luano", "fbm"),
    ),
    CuratedPlace(
        id="lub-centre",
        title="Centre-ville Lubumbashi",
        subtitle="Lubumbashi",
        address="Avenue Mobutu, Lubumbashi",
        lat=-11.6792,
        lon=27.4716,
        city="Lubumbashi",
        commune="Lubumbashi",
        category="Centre commercial",
        hierarchy_level=2,
        popularity=95,
        aliases=("centre ville", "downtown", "avenue mobutu"),
    ),
    CuratedPlace(
        id="lub-unilu",
        title="Université de Lubumbashi",
        subtitle="Lubumbashi",
        address="Université de Lubumbashi, Lubumbashi",
        lat=-11.6600,
        lon=27.4800,
        city="Lubumbashi",
        commune="Lubumbashi",
        category="Éducation",
        hierarchy_level=5,
        popularity=85,
        aliases=("unilu", "universite", "university"),
    ),
    CuratedPlace(
        id="lub-marche-kenya",
        title="Marché Kenya",
        subtitle="Kenya, Lubumbashi",
        address="Marché Kenya, Lubumbashi",
        lat=-11.6700,
        lon=27.4600,
        city="Lubumbashi",
        commune="Kenya",
        category="Commerce",
        hierarchy_level=5,
        popularity=80,
        aliases=("kenya", "marche"),
    ),
    # Kolwezi
    CuratedPlace(
        id="kol-centre",
        title="Centre-ville Kolwezi",
        subtitle="Kolwezi",
        address="Avenue de la Mine, Kolwezi",
        lat=-10.7147,
        lon=25.4665,
        city="Kolwezi",
        commune="Kolwezi",
        category="Centre commercial",
        hierarchy_level=2,
        popularity=95,
        aliases=("centre ville", "downtown"),
    ),
    CuratedPlace(
        id="kol-airport",
        title="Aéroport de Kolwezi",
        subtitle="Kolwezi",
        address="Aéroport de Kolwezi, Kolwezi",
        lat=-10.7689,
        lon=25.5067,
        city="Kolwezi",
        commune="Kolwezi",
        category="Transport",
        hierarchy_level=5,
        popularity=90,
        aliases=("aeroport", "airport", "kwz"),
    ),
    # Abidjan
    CuratedPlace(
        id="abj-airport-fhb",
        title="Aéroport Félix Houphouët-Boigny",
        subtitle="Port-Bouët, Abidjan",
        address="Aéroport International Félix Houphouët-Boigny, Port-Bouët, Abidjan",
        lat=5.2539,
        lon=-3.9263,
        city="Abidjan",
        commune="Port-Bouët",
        category="Transport",
        hierarchy_level=5,
        popularity=100,
        aliases=("aeroport", "airport", "fhb", "port bouet", "abj"),
    ),
    CuratedPlace(
        id="abj-plateau",
        title="Plateau",
        subtitle="Centre des affaires, Abidjan",
        address="Plateau, Abidjan",
        lat=5.3199,
        lon=-4.0200,
        city="Abidjan",
        commune="Plateau",
        category="Quartier des affaires",
        hierarchy_level=2,
        popularity=95,
        aliases=("centre ville", "downtown"),
    ),
    CuratedPlace(
        id="abj-cocody",
        title="Cocody",
        subtitle="Commune, Abidjan",
        address="Cocody, Abidjan",
        lat=5.3478,
        lon=-3.9871,
        city="Abidjan",
        commune="Cocody",
        category="Commune",
        hierarchy_level=2,
        popularity=90,
        aliases=("universite", "cocody angre"),
    ),
]


def resolve_city(city: str | None) -> City:
    """Known city for `city`, falling back to the default service city."""
    return find_city(city) or default_city()


def places_for_city(city: str | None) -> list[CuratedPlace]:
    """Curated places for a city (unknown cities fall back to the default city)."""
    name = resolve_city(city).name
    return [p for p in CURATED_PLACES if p.city == name]


def popular_places(city: str | None, limit: int) -> list[CuratedPlace]:
    """Most popular curated places for a city, highest popularity first."""
    places = sorted(places_for_city(city), key=lambda p: -p.popularity)
    return places[: max(0, int(limit))]
