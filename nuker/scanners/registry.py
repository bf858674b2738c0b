"""Lookup of scanner classes by resource type."""

from __future__ import annotations

from typing import Dict, Type

from ..models.resource import ResourceType
from .base import BaseResourceScanner

SCANNER_REGISTRY: Dict[ResourceType, Type[BaseResourceScanner]] = {}


def register_scanner(cls: Type[BaseResourceScanner]) -> Type[BaseResourceScanner]:
    """Class decorator adding a scanner to :data:`SCANNER_REGISTRY`."""
    existing = SCANNER_REGISTRY.get(cls.resource_type)
    if existing is not None and existing is not cls:
        raise ValueError(f"Scanner for {cls.resource_type.value} already registered: {existing.__name__}")
    SCANNER_REGISTRY[cls.resource_type] = cls
    return cls


def get_scanner_class(resource_type: ResourceType) -> Type[BaseResourceScanner]:
    try:
        return SCANNER_REGISTRY[resource_type]
    except KeyError:
        raise ValueError(f"No scanner registered for {resource_type.value}")
