from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

class LicenseType(IntEnum):
    FULL = 1
    LITE = 2
    DNSONLY = 3
    TRIAL = 4

    @classmethod
    def coerce(cls, value) -> "LicenseType":
        """Map missing or unknown values to DNSONLY, the most restrictive mode."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.DNSONLY

class LicenseStatus(str, Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"
    REQUEST_SENT = "request_sent"

# Configuration file sections

class SystemUserIds(BaseModel):
    uid: int = 0
    gid: int = 0

class SystemConfiguration(BaseModel):
    # Directory of CosmicPanel
    data: str = ""
    # The user used by CosmicPanel
    username: str = ""
    # Cached uid/gid so the system does not have to be queried again
    user: SystemUserIds = Field(default_factory=SystemUserIds)

class PanelConfiguration(BaseModel):
    port: int = 0

class LicenseConfiguration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid_license: bool = Field(False, alias="validlicense")
    license_type: LicenseType = Field(LicenseType.DNSONLY, alias="licensetype")

    @field_validator("license_type", mode="before")
    @classmethod
    def _coerce_license_type(cls, value):
        return LicenseType.coerce(value)

class Configuration(BaseModel):
    # Ignored when the --debug flag is passed on the command line
    debug: bool = False

    system: Optional[SystemConfiguration] = None
    panel: Optional[PanelConfiguration] = None
    license: Optional[LicenseConfiguration] = None

# OS user directory

class SystemUser(BaseModel):
    username: str
    uid: int
    gid: int

# License server payloads

class LicenseVerifyResponse(BaseModel):
    valid: StrictBool
    licenseType: LicenseType = LicenseType.DNSONLY

    @field_validator("licenseType", mode="before")
    @classmethod
    def _coerce_license_type(cls, value):
        # Only a real integer is a license type, unknown numbers mean DNSONLY
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("licenseType must be an integer")
        return LicenseType.coerce(value)

class LicenseRequestPayload(BaseModel):
    type: LicenseType
    ip: str
