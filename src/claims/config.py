"""Configuration for the claims package."""

import os
from dataclasses import dataclass


@dataclass
class ClaimsConfig:
    """
    Configuration for talking to the claim and auth services.

    Attributes:
        api_base: Base URL of the claim API
        auth_base: Base URL of the auth service
        timeout_seconds: HTTP request timeout
        poll_max_attempts: Login polling attempts before giving up
        poll_interval_seconds: Delay between login polling attempts
        image_max_width: Images wider than this are downsized before upload
        image_quality: WebP quality used for downsized images
    """
    api_base: str = "https://api.ucfr.io"
    auth_base: str = "https://auth.stabilityprotocol.com/v1/auth"
    timeout_seconds: float = 30.0
    poll_max_attempts: int = 150
    poll_interval_seconds: float = 2.0
    image_max_width: int = 2000
    image_quality: int = 85

    def __post_init__(self):
        self.api_base = self.api_base.rstrip("/")
        self.auth_base = self.auth_base.rstrip("/")

    @classmethod
    def from_env(cls) -> "ClaimsConfig":
        """Create config from environment variables, falling back to defaults."""
        config = cls()
        if os.environ.get("CLAIMWATCH_API_BASE"):
            config.api_base = os.environ["CLAIMWATCH_API_BASE"].rstrip("/")
        if os.environ.get("CLAIMWATCH_AUTH_BASE"):
            config.auth_base = os.environ["CLAIMWATCH_AUTH_BASE"].rstrip("/")
        if os.environ.get("CLAIMWATCH_TIMEOUT"):
            config.timeout_seconds = float(os.environ["CLAIMWATCH_TIMEOUT"])
        return config
