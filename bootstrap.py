"""
Startup sequence for the CosmicPanel daemon.

configuration -> service account -> data directory -> license.
Configuration and identity failures raise BootstrapError subclasses for the
entrypoint to act on. License problems never abort startup.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from config import Settings, settings as default_settings
from config_store import ConfigStore
from license_client import LicenseClient
from models import Configuration, LicenseStatus, SystemUser
from system_identity import SystemIdentity


@dataclass
class BootstrapResult:
    configuration: Configuration
    user: SystemUser
    license_status: LicenseStatus
    # Effective debug mode: the --debug flag or the file. Never persisted.
    debug: bool = False


def bootstrap(
    config_path: str,
    debug: bool = False,
    dnsonly: bool = False,
    logger: Optional[logging.Logger] = None,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
    identity: Optional[SystemIdentity] = None,
    store: Optional[ConfigStore] = None,
) -> BootstrapResult:
    logger = logger or logging.getLogger(__name__)
    settings = settings or default_settings

    if store is None:
        store = ConfigStore.open(config_path, logger)

    # The flag can only switch debug on and never lands in the configuration
    debug = debug or store.configuration.debug
    if debug:
        logger.setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    if identity is None:
        identity = SystemIdentity(store, logger, shell=settings.SERVICE_SHELL)

    user = identity.ensure_user()
    identity.ensure_data_directory(user)

    with LicenseClient(store, logger, settings=settings, http_client=http_client) as client:
        license_status = client.check_license(dnsonly)

    logger.info("Bootstrap complete (license: %s)", license_status.value)
    return BootstrapResult(
        configuration=store.configuration,
        user=user,
        license_status=license_status,
        debug=debug,
    )
