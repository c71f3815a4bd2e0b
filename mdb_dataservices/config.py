"""
Configuration management for MDB_DATASERVICES.

Connection profiles name the MongoDB deployments available to the process;
model configurations map each stored type to a database, collection,
partition key and the profiles serving its reads and writes.

Profiles and models are pydantic models, so field ranges are enforced on
construction. Cross-references (duplicate names, unknown profiles) are
checked by DataServicesConfig.validate().
"""

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError

# ============================================================================
# ENVIRONMENT DEFAULTS
# ============================================================================

MONGO_URI: str = os.getenv("MDB_DATASERVICES_MONGO_URI", os.getenv("MONGO_URI", ""))
"""Connection string for the default profile."""

DEFAULT_PROFILE_NAME: str = os.getenv("MDB_DATASERVICES_DEFAULT_PROFILE", "default")
"""Name of the profile created by DataServicesConfig.from_env()."""

NUMBER_OF_WORKERS: int = int(os.getenv("MDB_DATASERVICES_NUMBER_OF_WORKERS", "10"))
"""Default connection pool size per profile."""

MAX_RETRY_ATTEMPTS: int = int(os.getenv("MDB_DATASERVICES_MAX_RETRY_ATTEMPTS", "9"))
"""Default retry attempts for throttled requests."""

MAX_RETRY_WAIT_SECONDS: int = int(os.getenv("MDB_DATASERVICES_MAX_RETRY_WAIT_SECONDS", "30"))
"""Default upper bound on retry back-off (seconds)."""

SERVER_SELECTION_TIMEOUT_MS: int = int(
    os.getenv("MDB_DATASERVICES_SERVER_SELECTION_TIMEOUT_MS", "5000")
)
"""Server selection timeout for MongoDB clients (milliseconds)."""

COUNT_CACHE_EXPIRY_MINUTES: int = int(os.getenv("MDB_DATASERVICES_COUNT_CACHE_MINUTES", "5"))
"""Default expiry for cached partition counts (minutes)."""


class ConnectionProfile(BaseModel):
    """A named backend connection."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    connection_string: str = Field(..., min_length=1)
    number_of_workers: int = Field(NUMBER_OF_WORKERS, ge=1, le=100)
    allow_bulk_execution: bool = True
    max_retry_attempts: int = Field(MAX_RETRY_ATTEMPTS, ge=0, le=20)
    max_retry_wait_seconds: int = Field(MAX_RETRY_WAIT_SECONDS, ge=1, le=300)
    server_selection_timeout_ms: int = Field(SERVER_SELECTION_TIMEOUT_MS, ge=1000)


class ModelConfiguration(BaseModel):
    """Storage settings for one stored type."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = Field(..., min_length=1)
    database_name: str = Field(..., min_length=1)
    collection_name: str = Field(..., min_length=1)
    partition_key: str = Field(..., min_length=1)
    read_profile: str = Field(..., min_length=1)
    write_profile: str = Field(..., min_length=1)


class DataServicesConfig(BaseModel):
    """
    Complete data services configuration.

    Example:
        config = DataServicesConfig.from_dict({
            "profiles": [{"name": "primary", "connection_string": "mongodb://localhost"}],
            "models": [{
                "model_name": "ProductDocument",
                "database_name": "shop",
                "collection_name": "products",
                "partition_key": "category",
                "read_profile": "primary",
                "write_profile": "primary",
            }],
        })
        config.validate()
    """

    profiles: List[ConnectionProfile] = Field(default_factory=list)
    models: List[ModelConfiguration] = Field(default_factory=list)
    count_cache_expiry_minutes: int = Field(COUNT_CACHE_EXPIRY_MINUTES, ge=0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataServicesConfig":
        """
        Build a configuration from plain data.

        Raises:
            ConfigurationError: If any field is missing or out of range
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid data services configuration: {e.error_count()} error(s), "
                f"first at '{location}': {first.get('msg')}",
                config_key=location or None,
            ) from e

    @classmethod
    def from_env(cls, models: Optional[List[ModelConfiguration]] = None) -> "DataServicesConfig":
        """Single-profile configuration built from environment defaults."""
        if not MONGO_URI:
            raise ConfigurationError(
                "MongoDB connection string is required "
                "(set MDB_DATASERVICES_MONGO_URI or MONGO_URI)",
                config_key="MDB_DATASERVICES_MONGO_URI",
            )
        profile = ConnectionProfile(name=DEFAULT_PROFILE_NAME, connection_string=MONGO_URI)
        return cls(profiles=[profile], models=list(models or []))

    def validate(self) -> None:
        """
        Check cross-references between profiles and models.

        Raises:
            ConfigurationError: If there are no profiles, names repeat, or a
                model references an unknown profile
        """
        if not self.profiles:
            raise ConfigurationError(
                "At least one connection profile must be configured", config_key="profiles"
            )

        profile_names = [p.name for p in self.profiles]
        duplicates = sorted({n for n in profile_names if profile_names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate connection profile names: {', '.join(duplicates)}",
                config_key="profiles",
                config_value=duplicates,
            )

        model_names = [m.model_name for m in self.models]
        duplicates = sorted({n for n in model_names if model_names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate model configurations: {', '.join(duplicates)}",
                config_key="models",
                config_value=duplicates,
            )

        known = set(profile_names)
        for model in self.models:
            for role, profile in (("read", model.read_profile), ("write", model.write_profile)):
                if profile not in known:
                    raise ConfigurationError(
                        f"Model '{model.model_name}' references unknown {role} profile "
                        f"'{profile}'",
                        config_key=f"models.{model.model_name}.{role}_profile",
                        config_value=profile,
                    )

    def profile(self, name: str) -> ConnectionProfile:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        raise ConfigurationError(
            f"Unknown connection profile '{name}'", config_key="profiles", config_value=name
        )

    def model(self, model_name: str) -> ModelConfiguration:
        for model in self.models:
            if model.model_name == model_name:
                return model
        raise ConfigurationError(
            f"No model configuration for '{model_name}'",
            config_key="models",
            config_value=model_name,
        )
