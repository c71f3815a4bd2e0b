"""
Document base model.

Every stored type derives from Document, which carries the id and the
audit fields the repository manages.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(kw_only=True)
class Document:
    """
    Base class for storage-shape documents (DAOs).

    Subclass this for each stored type and name the partition-key field
    when registering the type.

    Example:
        @dataclass(kw_only=True)
        class ProductDocument(Document):
            category: str
            name: str
            price: float = 0.0
    """

    id: str = ""
    created_on_utc: Optional[datetime] = None
    updated_on_utc: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    deleted: bool = False
