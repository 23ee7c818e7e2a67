"""Connection and sync configuration."""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..exceptions import ConfigurationError
from .target import ContentTypeTarget, OrderDirection, TaxonomyTarget

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_ID = "(default)"
EMULATOR_HOST_ENV = "FIRESTORE_EMULATOR_HOST"
TRANSPORT_CHOICES = ("auto", "rest", "native")


@dataclass
class EmulatorSettings:
    """Local emulator endpoint."""
    enabled: bool = False
    host: str = "localhost"
    port: int = 8080

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EmulatorSettings":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            host=data.get("host") or "localhost",
            port=int(data.get("port") or 8080),
        )


@dataclass
class ConnectionSettings:
    """Settings needed to reach the document store."""
    project_id: str = ""
    database_id: str = DEFAULT_DATABASE_ID
    service_account: Optional[Union[str, Dict[str, Any]]] = None  # JSON text or parsed dict
    emulator: EmulatorSettings = field(default_factory=EmulatorSettings)
    timeout: float = 30.0
    transport: str = "auto"  # auto, rest, native
    # Loaded emulator settings while an environment override is active
    stored_emulator: Optional[EmulatorSettings] = field(default=None, repr=False, compare=False)

    @property
    def persisted_emulator(self) -> EmulatorSettings:
        """Emulator settings as saved, ignoring any environment override."""
        return self.stored_emulator or self.emulator

    def validate(self) -> List[str]:
        """Return a list of problems with these settings."""
        errors = []

        if not self.project_id:
            errors.append("Firebase project ID is not configured")

        if not self.database_id:
            errors.append("Database ID must not be empty")

        if not self.emulator.enabled and not self.service_account:
            errors.append("Service account is required unless the emulator is enabled")

        if self.transport not in TRANSPORT_CHOICES:
            errors.append(f"Unknown transport {self.transport!r}, expected one of {', '.join(TRANSPORT_CHOICES)}")

        if self.timeout <= 0:
            errors.append("Timeout must be positive")

        return errors

    def require_valid(self) -> None:
        """Raise ConfigurationError if the settings are unusable."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

    def apply_environment(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Enable the emulator from FIRESTORE_EMULATOR_HOST when set.

        The override only lives in memory; to_dict keeps reporting the
        emulator settings that were loaded.
        """
        environ = os.environ if environ is None else environ
        address = environ.get(EMULATOR_HOST_ENV)
        if not address or self.emulator.enabled:
            return

        host, _, port = address.rpartition(":")
        if not host or not port.isdigit():
            logger.warning(f"Ignoring malformed {EMULATOR_HOST_ENV}: {address}")
            return

        self.stored_emulator = self.emulator
        self.emulator = EmulatorSettings(enabled=True, host=host, port=int(port))
        logger.info(f"Using Firestore emulator at {address} from environment")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "database_id": self.database_id,
            "service_account": self.service_account,
            "emulator": self.persisted_emulator.to_dict(),
            "timeout": self.timeout,
            "transport": self.transport,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConnectionSettings":
        data = data or {}
        return cls(
            project_id=data.get("project_id", ""),
            database_id=data.get("database_id") or DEFAULT_DATABASE_ID,
            service_account=data.get("service_account"),
            emulator=EmulatorSettings.from_dict(data.get("emulator")),
            timeout=float(data.get("timeout", 30.0)),
            transport=data.get("transport", "auto"),
        )


@dataclass
class SyncConfig:
    """Complete sync configuration: connection plus targets."""
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    taxonomies: List[TaxonomyTarget] = field(default_factory=list)
    content_types: List[ContentTypeTarget] = field(default_factory=list)

    # Defaults applied to taxonomy targets that do not set their own order
    default_order_field: str = "name"
    default_order_direction: OrderDirection = OrderDirection.ASC

    # Execution options
    parallel_workers: int = 4
    preflight_check: bool = True

    def get_taxonomy(self, slug: str) -> Optional[TaxonomyTarget]:
        for target in self.taxonomies:
            if target.slug == slug:
                return target
        return None

    def get_content_type(self, content_type: str) -> Optional[ContentTypeTarget]:
        for target in self.content_types:
            if target.content_type == content_type:
                return target
        return None

    def enable_taxonomy(self, slug: str) -> bool:
        """Add a taxonomy target. Returns False if it was already enabled."""
        if self.get_taxonomy(slug):
            return False
        self.taxonomies.append(TaxonomyTarget(
            slug=slug,
            order_field=self.default_order_field,
            order_direction=self.default_order_direction,
        ))
        return True

    def disable_taxonomy(self, slug: str) -> bool:
        """Remove a taxonomy target. Returns False if it was not enabled."""
        before = len(self.taxonomies)
        self.taxonomies = [t for t in self.taxonomies if t.slug != slug]
        return len(self.taxonomies) != before

    def enable_content_type(self, content_type: str, fields: Optional[List[str]] = None) -> bool:
        """Add a content type target. Returns False if it was already enabled."""
        target = self.get_content_type(content_type)
        if target:
            if fields:
                target.set_fields(fields)
            return False
        target = ContentTypeTarget(content_type=content_type)
        if fields:
            target.set_fields(fields)
        self.content_types.append(target)
        return True

    def disable_content_type(self, content_type: str) -> bool:
        """Remove a content type target. Returns False if it was not enabled."""
        before = len(self.content_types)
        self.content_types = [t for t in self.content_types if t.content_type != content_type]
        return len(self.content_types) != before

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "connection": self.connection.to_dict(),
            "taxonomies": [t.to_dict() for t in self.taxonomies],
            "content_types": [t.to_dict() for t in self.content_types],
            "default_order_field": self.default_order_field,
            "default_order_direction": self.default_order_direction.value,
            "parallel_workers": self.parallel_workers,
            "preflight_check": self.preflight_check,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        """Create from dictionary representation."""
        try:
            defaults = {
                "order_field": data.get("default_order_field", "name"),
                "order_direction": data.get("default_order_direction", "asc"),
            }
            return cls(
                connection=ConnectionSettings.from_dict(data.get("connection")),
                taxonomies=[TaxonomyTarget.from_dict(t, defaults) for t in data.get("taxonomies", [])],
                content_types=[ContentTypeTarget.from_dict(t) for t in data.get("content_types", [])],
                default_order_field=defaults["order_field"],
                default_order_direction=OrderDirection.parse(defaults["order_direction"]),
                parallel_workers=max(1, int(data.get("parallel_workers", 4))),
                preflight_check=bool(data.get("preflight_check", True)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid sync configuration: {e}") from e


class ConfigStore(ABC):
    """Where the sync configuration is persisted."""

    @abstractmethod
    def load(self) -> SyncConfig:
        pass

    @abstractmethod
    def save(self, config: SyncConfig) -> None:
        pass


class MemoryConfigStore(ConfigStore):
    """Keeps the configuration in memory."""

    def __init__(self, config: Optional[SyncConfig] = None):
        self._data = (config or SyncConfig()).to_dict()
        self._lock = threading.Lock()

    def load(self) -> SyncConfig:
        with self._lock:
            return SyncConfig.from_dict(json.loads(json.dumps(self._data)))

    def save(self, config: SyncConfig) -> None:
        with self._lock:
            self._data = config.to_dict()


class JsonConfigStore(ConfigStore):
    """Keeps the configuration in a JSON file."""

    def __init__(self, path: Union[str, Path], use_environment: bool = True):
        self.path = Path(path)
        self.use_environment = use_environment
        self._lock = threading.Lock()

    def load(self) -> SyncConfig:
        with self._lock:
            if not self.path.exists():
                logger.debug(f"No config file at {self.path}, using defaults")
                config = SyncConfig()
            else:
                try:
                    with open(self.path) as f:
                        config = SyncConfig.from_dict(json.load(f))
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Invalid JSON in config file {self.path}: {e}") from e

        if self.use_environment:
            config.connection.apply_environment()
        return config

    def save(self, config: SyncConfig) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(config.to_dict(), f, indent=2)
        logger.debug(f"Saved config to {self.path}")
