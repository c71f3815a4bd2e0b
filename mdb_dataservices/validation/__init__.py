"""
Validation components.

DocumentValidator checks caller input before any backend call;
ModelRegistry validates stored types once and binds their accessors.
"""

from .registry import ModelBinding, ModelRegistry
from .validator import DocumentValidator, is_empty

__all__ = [
    "DocumentValidator",
    "ModelBinding",
    "ModelRegistry",
    "is_empty",
]
