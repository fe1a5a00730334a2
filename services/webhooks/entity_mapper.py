"""
Entity extraction results and the declarative path-based mapping that
supplements what a provider adapter could not find.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.errors import ConfigurationError
from database.models import EntityMapping
from .json_path import extract_value


@dataclass
class ExtractedEntity:
    """Best-effort entity fields pulled from a webhook payload."""

    name: Optional[str] = None
    email: Optional[str] = None
    entity_type: Optional[str] = None
    avatar_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def map_payload(payload: Dict[str, Any], mapping: EntityMapping) -> ExtractedEntity:
    """Apply ``mapping`` to ``payload``; fields that cannot be resolved stay None."""
    metadata = {}
    for key, path_or_value in mapping.metadata.items():
        value = extract_value(payload, path_or_value)
        if value is not None:
            metadata[key] = value

    return ExtractedEntity(
        name=_as_text(extract_value(payload, mapping.name)) if mapping.name else None,
        email=_as_text(extract_value(payload, mapping.email)) if mapping.email else None,
        entity_type=_as_text(extract_value(payload, mapping.entity_type)) if mapping.entity_type else None,
        avatar_url=_as_text(extract_value(payload, mapping.avatar_url)) if mapping.avatar_url else None,
        metadata=metadata,
    )


def merge_extracted(adapter: ExtractedEntity, mapped: ExtractedEntity) -> ExtractedEntity:
    """Fill gaps in the adapter result from the mapping; adapter values win on conflict."""
    metadata = {**mapped.metadata, **{k: v for k, v in adapter.metadata.items() if v is not None}}
    return ExtractedEntity(
        name=adapter.name or mapped.name,
        email=adapter.email or mapped.email,
        entity_type=adapter.entity_type or mapped.entity_type,
        avatar_url=adapter.avatar_url or mapped.avatar_url,
        metadata=metadata,
    )


def resolve_entity(adapter: ExtractedEntity, mapped: ExtractedEntity) -> Dict[str, Any]:
    """
    Produce the entity record to upsert.

    The name falls back to the email. A record still missing its name or
    entity type is a configuration problem.
    """
    merged = merge_extracted(adapter, mapped)
    name = merged.name or merged.email
    if not name:
        raise ConfigurationError("Entity name could not be extracted from payload", field="name")
    if not merged.entity_type:
        raise ConfigurationError("Entity type could not be extracted from payload", field="entity_type")

    metadata = dict(merged.metadata)
    if merged.avatar_url:
        metadata.setdefault("avatar_url", merged.avatar_url)
    return {
        "name": name,
        "email": merged.email,
        "entity_type": merged.entity_type,
        "metadata": metadata,
    }
