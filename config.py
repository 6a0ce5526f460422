from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # License Server Configuration
    LICENSE_API_URL: str = "https://licenses.cosmicpanel.net"
    LICENSE_API_TIMEOUT: float = 30

    # Outbound IP discovery (no packets are sent, the OS only picks a route)
    OUTBOUND_PROBE_HOST: str = "8.8.8.8"
    OUTBOUND_PROBE_PORT: int = 80

    # Daemon configuration file
    CONFIG_PATH: str = "config.yml"

    # Service account
    SERVICE_SHELL: str = "/bin/false"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    class Config:
        env_file = ".env"

settings = Settings()
