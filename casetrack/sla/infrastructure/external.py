"""
SLA Configuration Source
=========================

YAML-backed SLA configuration with hot reload.

The watchdog observer runs in its own thread; readers always see either
the old or the new configuration, never a half-parsed one. A failed
reload keeps the previous configuration.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from casetrack.core import ConfigurationException
from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.domain.value_objects import SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def _matches(self, path: str) -> bool:
        return Path(path).resolve() == self.config_path.resolve()

    def on_modified(self, event):
        if event.is_directory or not self._matches(event.src_path):
            return
        logger.info("SLA config file changed", extra={"path": event.src_path})
        self.config_manager.reload()

    def on_moved(self, event):
        # Editors that save through a temp file and rename
        if event.is_directory or not self._matches(event.dest_path):
            return
        logger.info("SLA config file replaced", extra={"path": event.dest_path})
        self.config_manager.reload()


class SLAConfigManager:
    """
    Thread-safe SLA configuration manager with hot-reload support.

    ``version`` increases on every successful (re)load so consumers can
    tell when reference data has to be re-synchronised.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._version = 0

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: File exists but is not a valid configuration
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA configuration in {self._path}",
                {"path": str(self._path), "error": str(e)}
            ) from e
        self._set(config)
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAConfig(**data)

    def _set(self, config: SLAConfig) -> None:
        with self._lock:
            self._config = config
            self._version += 1

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to reload SLA config, keeping previous version",
                extra={"path": str(self._path), "error": str(e), "version": self._version}
            )
            return False

        self._set(new_config)
        logger.info(
            "SLA configuration reloaded",
            extra={
                "version": self._version,
                "templates": len(new_config.templates),
                "escalation_rules": len(new_config.escalation_rules)
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skipped when the file does not exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "SLA config file missing, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent.resolve()), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def version(self) -> int:
        return self._version

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        if self._config is None:
            raise RuntimeError("SLA configuration not loaded")
        return self._config
