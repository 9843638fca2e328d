"""Entity extraction module."""

from .types import Entity, EntityValidation, ExtractedEntities, UrgencyEntity, UrgencyLevel
from .catalog import AliasCatalog, DOCTOR_ALIASES, SERVICE_ALIASES
from .extractor import (
    EntityExtractor,
    extract_entities,
    get_entity_extractor,
    validate_entities,
)

__all__ = [
    # Types
    "Entity",
    "EntityValidation",
    "ExtractedEntities",
    "UrgencyEntity",
    "UrgencyLevel",
    # Catalog
    "AliasCatalog",
    "DOCTOR_ALIASES",
    "SERVICE_ALIASES",
    # Extractor
    "EntityExtractor",
    "get_entity_extractor",
    "extract_entities",
    "validate_entities",
]
