"""
YAML-backed configuration store for the CosmicPanel daemon.

The file on disk is the source of truth. The store layers it over built-in
defaults field by field and writes the whole structure back after every
mutation that later startup steps depend on.
"""

import fcntl
import logging
import os
import re
import stat
import tempfile
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from errors import ConfigLockedError, ConfigurationError, ConfigWriteError
from models import (
    Configuration,
    LicenseConfiguration,
    LicenseType,
    PanelConfiguration,
    SystemConfiguration,
    SystemUser,
)

DEFAULT_DATA_DIR = "/usr/local/cosmicpanel"
DEFAULT_USERNAME = "cosmicpanel"
DEFAULT_PANEL_PORT = 1334

_ENV_PATTERN = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z_][A-Za-z0-9_]*))")


def expand_env(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Replace $NAME and ${NAME} with values from the environment.
    Unset variables expand to an empty string.
    """
    if environ is None:
        environ = os.environ

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        return environ.get(name, "")

    return _ENV_PATTERN.sub(_replace, text)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base. Null values leave base untouched."""
    result = base.copy()
    for key, value in override.items():
        if value is None:
            continue
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class ConfigStore:
    def __init__(self, path: str, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or logging.getLogger(__name__)
        self.configuration = Configuration()

    @classmethod
    def open(cls, path: str, logger: Optional[logging.Logger] = None) -> "ConfigStore":
        """Defaults first, then whatever the file sets."""
        store = cls(path, logger)
        store.set_defaults()
        store.load()
        return store

    def set_defaults(self):
        """
        Reset the system and panel sections to their defaults.
        Call before load(); anything set in the file then overrides these.
        """
        self.configuration.system = SystemConfiguration(
            data=DEFAULT_DATA_DIR,
            username=DEFAULT_USERNAME,
        )
        self.configuration.panel = PanelConfiguration(port=DEFAULT_PANEL_PORT)

    def load(self) -> Configuration:
        """
        Read the file, expand environment variables and merge the result
        over the in-memory configuration.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw_text = f.read()
        except OSError as e:
            raise ConfigurationError(f"Unable to read configuration {self.path}: {e}") from e

        try:
            raw = yaml.safe_load(expand_env(raw_text))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Unable to parse configuration {self.path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Configuration {self.path} must be a mapping, got {type(raw).__name__}"
            )

        current = self.configuration.model_dump(by_alias=True)
        try:
            self.configuration = Configuration.model_validate(_deep_merge(current, raw))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration {self.path}: {e}") from e

        self.logger.debug("Loaded configuration from %s", self.path)
        return self.configuration

    def set_license_settings(self, valid: bool, license_type: int):
        """In-memory only, call write_to_disk() to persist."""
        self.configuration.license = LicenseConfiguration(
            valid_license=valid,
            license_type=LicenseType.coerce(license_type),
        )

    def set_system_user(self, user: SystemUser):
        """Record the service account and persist it so it survives a restart."""
        if self.configuration.system is None:
            self.configuration.system = SystemConfiguration()

        self.configuration.system.username = user.username
        self.configuration.system.user.uid = user.uid
        self.configuration.system.user.gid = user.gid

        self.write_to_disk()

    def dump(self) -> str:
        data = self.configuration.model_dump(by_alias=True, mode="json")
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)

    def write_to_disk(self):
        """
        Write the configuration back to the file it was loaded from.

        The file is locked exclusively without blocking. If another writer
        holds it this fails straight away with ConfigLockedError. The new
        content goes to a temporary file in the same directory which then
        replaces the original, so the file is never left half written.
        """
        content = self.dump()
        directory = os.path.dirname(os.path.abspath(self.path))

        try:
            f = open(self.path, "r+", encoding="utf-8")
        except OSError as e:
            raise ConfigWriteError(f"Unable to open configuration {self.path}: {e}") from e

        with f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as e:
                raise ConfigLockedError(
                    f"Configuration {self.path} is locked by another writer"
                ) from e
            except OSError as e:
                raise ConfigWriteError(f"Unable to lock configuration {self.path}: {e}") from e

            tmp_path = None
            try:
                fd, tmp_path = tempfile.mkstemp(
                    prefix=f".{os.path.basename(self.path)}.", suffix=".tmp", dir=directory
                )
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(content)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.chmod(tmp_path, stat.S_IMODE(os.fstat(f.fileno()).st_mode))
                os.replace(tmp_path, self.path)
                tmp_path = None
            except OSError as e:
                raise ConfigWriteError(f"Unable to write configuration {self.path}: {e}") from e
            finally:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        self.logger.debug("Wrote configuration to %s", self.path)
