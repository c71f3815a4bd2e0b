"""
Per-type model registry.

Each stored type is validated once and bound to a partition-key accessor,
so validation and audit code never look properties up by name per call.
"""

import logging
import threading
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Callable, Dict, Optional, Type

from ..exceptions import ConfigurationError
from .validator import DocumentValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelBinding:
    """Registration record for a stored type."""

    model_type: type
    partition_key_property: str
    get_partition_key: Callable[[Any], Any]

    @property
    def model_name(self) -> str:
        return self.model_type.__name__


class ModelRegistry:
    """
    Accessor table keyed by model type.

    Example:
        registry = ModelRegistry()
        binding = registry.register(ProductDocument, "category")
        binding.get_partition_key(product)  # -> "electronics"
    """

    def __init__(self, validator: Optional[DocumentValidator] = None):
        self._validator = validator or DocumentValidator()
        self._bindings: Dict[type, ModelBinding] = {}
        self._lock = threading.Lock()

    def register(self, model_type: Type[Any], partition_key_property: str) -> ModelBinding:
        """
        Validate ``model_type`` and bind its partition-key accessor.

        Re-registering with the same property returns the existing binding.

        Raises:
            ConfigurationError: If the type is invalid or already registered
                with a different partition key
        """
        with self._lock:
            existing = self._bindings.get(model_type)
            if existing is not None:
                if existing.partition_key_property != partition_key_property:
                    raise ConfigurationError(
                        f"{model_type.__name__} is already registered with partition key "
                        f"'{existing.partition_key_property}'",
                        config_key="partition_key",
                        config_value=partition_key_property,
                    )
                return existing

            self._validator.validate_model_configuration(model_type, partition_key_property)
            binding = ModelBinding(
                model_type=model_type,
                partition_key_property=partition_key_property,
                get_partition_key=attrgetter(partition_key_property),
            )
            self._bindings[model_type] = binding
            logger.info(
                f"Registered model {model_type.__name__} with partition key "
                f"'{partition_key_property}'"
            )
            return binding

    def get(self, model_type: Type[Any]) -> ModelBinding:
        binding = self._bindings.get(model_type)
        if binding is None:
            raise ConfigurationError(
                f"Model type {model_type.__name__} is not registered",
                config_key="model_type",
                config_value=model_type.__name__,
            )
        return binding

    def __contains__(self, model_type: object) -> bool:
        return model_type in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)
