"""
DTO <-> DAO mapping pipeline.
"""

from .mapper import DefaultItemMapper, ItemMapper, StructuralConverter
from .registry import MapperRegistry

__all__ = [
    "ItemMapper",
    "DefaultItemMapper",
    "StructuralConverter",
    "MapperRegistry",
]
