class BootstrapError(Exception):
    """Base class for errors that abort daemon startup."""

class ConfigurationError(BootstrapError):
    """The configuration file could not be read, parsed or validated."""

class ConfigWriteError(ConfigurationError):
    """The configuration could not be persisted."""

class ConfigLockedError(ConfigWriteError):
    """Another writer holds the configuration file."""

class UserLookupError(BootstrapError):
    """The OS user directory could not answer a lookup."""

class UserCreationError(BootstrapError):
    """The service account could not be created."""

class DataDirectoryError(BootstrapError):
    """The data directory could not be created or handed to the service account."""

class LicenseError(Exception):
    """A license verify exchange failed. Handled by requesting a new license."""
