"""
Read/write service facade.
"""

from .factory import DataServiceFactory, StoreProvider
from .read_service import DataReadService
from .write_service import DataWriteService

__all__ = [
    "DataServiceFactory",
    "StoreProvider",
    "DataReadService",
    "DataWriteService",
]
