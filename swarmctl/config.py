"""Configuration management for the swarmctl application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # HTTP API
    API_KEY: str = os.getenv("SWARMCTL_API_KEY", "swarmctl-secret")
    API_HOST: str = os.getenv("SWARMCTL_API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("SWARMCTL_API_PORT", "8080"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_KEYS: tuple = ("api_key", "password", "secret", "token")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        required = {
            "SWARMCTL_API_KEY": cls.API_KEY,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
