"""
Catalog Module - Black Box Interface

Purpose: Resolve which images may be provisioned
Interface: get_image(), list_images(), seed_defaults()
Hidden: Redis storage, serialization

Editing the catalog is owned by the administrative surface, not this module.
"""

from .catalog import DEFAULT_IMAGES, CatalogModule

__all__ = ["CatalogModule", "DEFAULT_IMAGES"]
