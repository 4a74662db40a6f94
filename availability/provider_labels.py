"""
Provider detection from free-text labels.

Coverage files exported from mapping tools rarely say which provider they
belong to in a structured way. These helpers guess it from the file name
and from each placemark's ``name``. Nothing here touches the database.

Matching against known providers uses whole-word containment on
diacritics-folded names. Containment can still merge distinct providers
whose names are contained in one another ("Net" and "Net Plus"); more than
one containment match is treated as ambiguous and left for manual review
instead of picking one.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

EXTENSION_RE = re.compile(r"\.(kml|kmz)$", re.IGNORECASE)
SEPARATOR_RE = re.compile(r"\s*[-|]\s*")
NOISE_RE = re.compile(
    r"\b(cobertura|area|área|regiao|região|mapa|poligono|polígono|kml|kmz"
    r"|google earth|googleearth)\b",
    re.IGNORECASE,
)
SLUG_FALLBACK = "operadora"


def normalize_text(value: str | None) -> str:
    """Lowercase, strip and drop diacritics (``"São"`` -> ``"sao"``)."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def slugify(value: str | None) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", normalize_text(value)).strip("-")
    return slug or SLUG_FALLBACK


def _collapse(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def strip_noise(value: str) -> str:
    return _collapse(NOISE_RE.sub(" ", value))


@dataclass(frozen=True)
class FilenameHints:
    provider_name: str | None
    area_name: str | None


def infer_from_filename(filename: str | None) -> FilenameHints:
    """
    Guess provider and area names from an upload's file name.

    ``"Acme_Fibra - Zona Norte.kmz"`` gives provider ``"Acme Fibra"`` and area
    ``"Zona Norte"``. Without a separator the whole cleaned stem is used for
    both.
    """
    base = EXTENSION_RE.sub("", (filename or "").strip()).strip()
    cleaned = _collapse(base.replace("_", " "))
    parts = [part for part in SEPARATOR_RE.split(cleaned) if part]

    raw_provider = parts[0] if parts else cleaned
    raw_area = " - ".join(parts[1:]) if len(parts) > 1 else cleaned

    provider_name = strip_noise(raw_provider)
    area_name = strip_noise(raw_area)
    if not area_name or normalize_text(area_name) == normalize_text(provider_name):
        area_name = cleaned

    return FilenameHints(
        provider_name=provider_name or None,
        area_name=area_name or None,
    )


def candidate_provider_name(label: str | None, filename: str | None) -> str | None:
    """
    Provider name for one feature.

    A label such as ``"Acme - North"`` names its provider before the
    separator. Labels without a separator say nothing about the provider,
    so the file name decides. None means the feature needs manual review.
    """
    text = _collapse((label or "").replace("_", " "))
    if text and SEPARATOR_RE.search(text):
        head = next((part for part in SEPARATOR_RE.split(text) if part), "")
        name = strip_noise(head)
        if name:
            return name
    return infer_from_filename(filename).provider_name


class Named(Protocol):
    name: str


P = TypeVar("P", bound=Named)


@dataclass
class ProviderMatch(Generic[P]):
    provider: P | None = None
    ambiguous: list[P] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return bool(self.ambiguous)


def _contains_words(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    return re.search(rf"(?<![a-z0-9]){re.escape(needle)}(?![a-z0-9])", haystack) is not None


def match_provider(candidate: str, providers: list[P]) -> ProviderMatch[P]:
    """
    Find the known provider a candidate name refers to.

    An exact normalized match wins. Otherwise a single provider whose name
    contains, or is contained in, the candidate as whole words matches.
    Several such providers make the match ambiguous; none means a new
    provider.
    """
    target = normalize_text(candidate)
    if not target:
        return ProviderMatch()

    for provider in providers:
        if normalize_text(provider.name) == target:
            return ProviderMatch(provider=provider)

    partial = [
        provider
        for provider in providers
        if _contains_words(target, normalize_text(provider.name))
        or _contains_words(normalize_text(provider.name), target)
    ]
    if len(partial) == 1:
        return ProviderMatch(provider=partial[0])
    if len(partial) > 1:
        return ProviderMatch(ambiguous=partial)
    return ProviderMatch()
