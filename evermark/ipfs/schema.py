"""
Versioned metadata schema migration.

Evermark metadata has been written in several shapes over time. Each known
shape has a SchemaVersion and exactly one migration into the canonical
Metadata. Unknown shapes migrate to empty metadata; nothing is guessed.

Known shapes:
- V2_EVERMARK: ERC-721 JSON plus an "evermark" block (version "2.0")
- V1_ERC721:   plain ERC-721 JSON (name, description, image, external_url,
               attributes)
- LEGACY_FLAT: early flat shape (title, desc, sourceUrl, imageUrl)
- CACHE_ROW:   fast-store row metadata wrapping the original JSON in
               "originalMetadata"
"""

from enum import Enum
from typing import Any, Callable, Dict, List

from evermark.models import Metadata


class SchemaVersion(Enum):
    V2_EVERMARK = "v2_evermark"
    V1_ERC721 = "v1_erc721"
    LEGACY_FLAT = "legacy_flat"
    CACHE_ROW = "cache_row"
    UNKNOWN = "unknown"


_ERC721_KEYS = ("name", "description", "image", "external_url", "attributes")
_LEGACY_KEYS = ("title", "desc", "sourceUrl", "imageUrl")
_AUTHOR_TRAITS = ("Original Author", "Author")


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _first(*values: Any) -> str:
    for value in values:
        text = _text(value)
        if text:
            return text
    return ""


def _trait(attributes: Any, names: tuple) -> str:
    if not isinstance(attributes, list):
        return ""
    for name in names:
        for attribute in attributes:
            if isinstance(attribute, dict) and attribute.get("trait_type") == name:
                value = _text(attribute.get("value"))
                if value:
                    return value
    return ""


def detect_schema(raw: Any) -> SchemaVersion:
    """Classify a decoded JSON document into one of the known shapes."""
    if not isinstance(raw, dict) or not raw:
        return SchemaVersion.UNKNOWN
    if isinstance(raw.get("evermark"), dict):
        return SchemaVersion.V2_EVERMARK
    if isinstance(raw.get("originalMetadata"), dict):
        return SchemaVersion.CACHE_ROW
    if "name" not in raw and any(key in raw for key in _LEGACY_KEYS):
        return SchemaVersion.LEGACY_FLAT
    if any(key in raw for key in _ERC721_KEYS):
        return SchemaVersion.V1_ERC721
    return SchemaVersion.UNKNOWN


def _migrate_v2(raw: Dict[str, Any]) -> Metadata:
    block = raw["evermark"]
    return Metadata(
        name=_text(raw.get("name")),
        description=_text(raw.get("description")),
        source_url=_first(block.get("sourceUrl"), raw.get("external_url")),
        image=_text(raw.get("image")),
        author=_first(block.get("author"), _trait(raw.get("attributes"), _AUTHOR_TRAITS)),
        schema_version=SchemaVersion.V2_EVERMARK.value,
    )


def _migrate_v1(raw: Dict[str, Any]) -> Metadata:
    return Metadata(
        name=_text(raw.get("name")),
        description=_text(raw.get("description")),
        source_url=_text(raw.get("external_url")),
        image=_text(raw.get("image")),
        author=_trait(raw.get("attributes"), _AUTHOR_TRAITS),
        schema_version=SchemaVersion.V1_ERC721.value,
    )


def _migrate_legacy(raw: Dict[str, Any]) -> Metadata:
    return Metadata(
        name=_text(raw.get("title")),
        description=_first(raw.get("desc"), raw.get("description")),
        source_url=_first(raw.get("sourceUrl"), raw.get("external_url")),
        image=_first(raw.get("imageUrl"), raw.get("image")),
        author=_text(raw.get("author")),
        schema_version=SchemaVersion.LEGACY_FLAT.value,
    )


def _migrate_cache_row(raw: Dict[str, Any]) -> Metadata:
    inner = migrate(raw["originalMetadata"])
    return Metadata(
        name=inner.name,
        description=inner.description,
        source_url=_first(inner.source_url, raw.get("sourceUrl")),
        image=_first(inner.image, raw.get("image")),
        author=inner.author,
        schema_version=SchemaVersion.CACHE_ROW.value,
    )


def _migrate_unknown(raw: Any) -> Metadata:
    return Metadata.empty()


MIGRATIONS: Dict[SchemaVersion, Callable[[Any], Metadata]] = {
    SchemaVersion.V2_EVERMARK: _migrate_v2,
    SchemaVersion.V1_ERC721: _migrate_v1,
    SchemaVersion.LEGACY_FLAT: _migrate_legacy,
    SchemaVersion.CACHE_ROW: _migrate_cache_row,
    SchemaVersion.UNKNOWN: _migrate_unknown,
}


def migrate(raw: Any) -> Metadata:
    """Normalize any known metadata shape into canonical Metadata."""
    return MIGRATIONS[detect_schema(raw)](raw)


def unmigrated_versions() -> List[SchemaVersion]:
    """Versions without a registered migration (always empty when consistent)."""
    return [version for version in SchemaVersion if version not in MIGRATIONS]
