"""
Static city → locality catalog.

Locations are stored on vendors and inquiries as "Locality, City" strings.
Matching between them is deliberately loose (substring either way) so that a
vendor registered at "Ganeshguri, Guwahati" still serves a buyer who only
typed "Guwahati".
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Locality:
    id: str
    name: str


@dataclass(frozen=True)
class City:
    id: str
    name: str
    localities: Tuple[Locality, ...]


CITIES: Tuple[City, ...] = (
    City("guwahati", "Guwahati", (
        Locality("ganeshguri", "Ganeshguri"),
        Locality("beltola", "Beltola"),
        Locality("dispur", "Dispur"),
        Locality("six_mile", "Six Mile"),
        Locality("zoo_road", "Zoo Road"),
        Locality("paltan_bazaar", "Paltan Bazaar"),
        Locality("chandmari", "Chandmari"),
        Locality("jalukbari", "Jalukbari"),
    )),
    City("shillong", "Shillong", (
        Locality("police_bazar", "Police Bazar"),
        Locality("laitumkhrah", "Laitumkhrah"),
        Locality("mawlai", "Mawlai"),
    )),
    City("tezpur", "Tezpur", (
        Locality("mission_chariali", "Mission Chariali"),
        Locality("kacharigaon", "Kacharigaon"),
    )),
)


def get_cities() -> List[City]:
    return list(CITIES)


def get_city(city_id: str) -> Optional[City]:
    city_id = (city_id or "").strip().lower()
    return next((c for c in CITIES if c.id == city_id), None)


def find_city_by_name(name: str) -> Optional[City]:
    name = (name or "").strip().lower()
    return next((c for c in CITIES if c.name.lower() == name), None)


def get_locality(city: City, locality_id: str) -> Optional[Locality]:
    locality_id = (locality_id or "").strip().lower()
    return next((loc for loc in city.localities if loc.id == locality_id), None)


def get_formatted_location(city_id: str, locality_id: str) -> Optional[str]:
    """Return "Locality, City" for a valid pair, else None."""
    city = get_city(city_id)
    if not city:
        return None
    locality = get_locality(city, locality_id)
    if not locality:
        return None
    return f"{locality.name}, {city.name}"


def parse_location_pair(text: str) -> Optional[Tuple[str, str, str]]:
    """Resolve a web client's "cityId:localityId" submission.

    Returns (formatted, city_id, locality_id) or None when the text is not a
    known pair.
    """
    if ":" not in (text or ""):
        return None
    city_id, _, locality_id = text.partition(":")
    formatted = get_formatted_location(city_id, locality_id)
    if not formatted:
        return None
    return formatted, city_id.strip().lower(), locality_id.strip().lower()


def title_case(text: str) -> str:
    """Free-text city entries are stored title-cased: "new delhi" → "New Delhi"."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.strip().split())


def city_matches(vendor_city: str, inquiry_city: str) -> bool:
    """Case-insensitive substring match in either direction."""
    a = (vendor_city or "").strip().lower()
    b = (inquiry_city or "").strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def coarse_city(city: str) -> str:
    """Last comma-separated segment: "Ganeshguri, Guwahati" → "Guwahati"."""
    return (city or "").split(",")[-1].strip()
