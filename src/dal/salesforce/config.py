"""Connection settings for the Salesforce REST adapters."""

from dataclasses import dataclass
from typing import Optional

from common.config.env import get_env_float, get_env_int, get_env_str

DEFAULT_API_VERSION = "v59.0"


@dataclass(frozen=True)
class SalesforceConfig:
    """Instance URL, OAuth access token and REST API options."""

    instance_url: str
    access_token: str
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 30.0
    max_rows: int = 2000
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate required values and normalize the URL and version."""
        if not self.instance_url:
            raise ValueError("Salesforce instance URL is required.")
        if not self.access_token:
            raise ValueError("Salesforce access token is required.")
        object.__setattr__(self, "instance_url", self.instance_url.rstrip("/"))
        version = self.api_version if self.api_version.startswith("v") else f"v{self.api_version}"
        object.__setattr__(self, "api_version", version)

    @property
    def data_url(self) -> str:
        """Base URL of the versioned data API."""
        return f"{self.instance_url}/services/data/{self.api_version}"

    @classmethod
    def from_env(cls) -> "SalesforceConfig":
        """Build the config from SALESFORCE_* environment variables."""
        return cls(
            instance_url=get_env_str("SALESFORCE_INSTANCE_URL", required=True),
            access_token=get_env_str("SALESFORCE_ACCESS_TOKEN", required=True),
            api_version=get_env_str("SALESFORCE_API_VERSION", DEFAULT_API_VERSION),
            timeout_seconds=get_env_float("SALESFORCE_TIMEOUT_SECONDS", 30.0),
            max_rows=get_env_int("SALESFORCE_MAX_ROWS", 2000),
            user_id=get_env_str("SALESFORCE_USER_ID"),
        )
