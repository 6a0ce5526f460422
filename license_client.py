import logging
import socket
from typing import Optional, Callable

import httpx
from pydantic import ValidationError

from config import Settings, settings as default_settings
from config_store import ConfigStore
from errors import LicenseError
from models import LicenseRequestPayload, LicenseStatus, LicenseType, LicenseVerifyResponse

def get_outbound_ip(host: str = "8.8.8.8", port: int = 80) -> str:
    """
    Return the local address the OS would use to reach host.
    UDP connect sends nothing, it only makes the kernel pick a route.
    Returns an empty string when no route is available.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect((host, port))
            return sock.getsockname()[0]
    except OSError:
        return ""

class LicenseClient:
    def __init__(
        self,
        store: ConfigStore,
        logger: Optional[logging.Logger] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        ip_resolver: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.settings = settings or default_settings
        self.license_api_url = self.settings.LICENSE_API_URL.rstrip("/")

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=self.settings.LICENSE_API_TIMEOUT)
        self.ip_resolver = ip_resolver or self._resolve_outbound_ip

    def __enter__(self) -> "LicenseClient":
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        if self._owns_client:
            self.http_client.close()

    def _resolve_outbound_ip(self) -> str:
        return get_outbound_ip(self.settings.OUTBOUND_PROBE_HOST, self.settings.OUTBOUND_PROBE_PORT)

    def check_license(self, prefer_dns_only: bool = False) -> LicenseStatus:
        """
        Verify this host's license with the license server.

        On success the result is stored in the configuration and written
        to disk. If verification fails for any reason a new license is
        requested instead and the stored license is left alone. Without an
        outbound IP the check is skipped.
        """
        ip = self.ip_resolver()
        if not ip:
            self.logger.debug("No outbound IP available, skipping license check")
            return LicenseStatus.UNKNOWN

        try:
            record = self.verify_license(ip)
        except LicenseError as e:
            self.logger.warning("License verification failed: %s", e)
            self.request_new_license(prefer_dns_only)
            return LicenseStatus.REQUEST_SENT

        self.store.set_license_settings(record.valid, record.licenseType)
        self.store.write_to_disk()

        self.logger.info(
            "License %s (%s)",
            "valid" if record.valid else "invalid",
            record.licenseType.name,
        )
        return LicenseStatus.VALID if record.valid else LicenseStatus.INVALID

    def verify_license(self, ip: str) -> LicenseVerifyResponse:
        """
        Ask the license server about ip. Every failure surfaces as LicenseError.
        """
        try:
            response = self.http_client.get(
                f"{self.license_api_url}/verify",
                params={"ip": ip},
            )
            response.raise_for_status()
            return LicenseVerifyResponse.model_validate(response.json())

        except httpx.HTTPError as e:
            raise LicenseError(f"HTTP error during verification: {str(e)}") from e
        except (ValueError, ValidationError) as e:
            raise LicenseError(f"Malformed verification response: {str(e)}") from e

    def request_new_license(self, prefer_dns_only: bool) -> bool:
        """
        Request a DNS-only license when preferred, otherwise a trial license.
        """
        if prefer_dns_only:
            return self.request_dns_only_license()
        return self.request_trial_license()

    def request_dns_only_license(self) -> bool:
        return self.request_license(LicenseType.DNSONLY)

    def request_trial_license(self) -> bool:
        """Request a 15 day trial license."""
        return self.request_license(LicenseType.TRIAL)

    def request_license(self, license_type: LicenseType) -> bool:
        """
        Send a license request. The response is not read back into the
        configuration; the next startup verifies again. Transport errors
        are logged and reported through the return value only.
        """
        ip = self.ip_resolver()
        if not ip:
            self.logger.debug("No outbound IP available, not requesting a license")
            return False

        payload = LicenseRequestPayload(type=license_type, ip=ip)
        self.logger.info("Requesting %s license for %s", payload.type.name, ip)

        try:
            response = self.http_client.post(
                f"{self.license_api_url}/request",
                json=payload.model_dump(mode="json"),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            self.logger.error("License request failed: %s", e)
            return False

        self.logger.debug("License request answered with HTTP %d", response.status_code)
        return True
