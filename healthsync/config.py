import os
from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when the service cannot start with the current environment."""
    pass


class Settings:
    AIRTABLE_API_KEY: str = os.getenv("AIRTABLE_API_KEY", "")
    AIRTABLE_BASE_ID: str = os.getenv("AIRTABLE_BASE_ID", "appTV45bv5pf9icd3")
    AIRTABLE_API_URL: str = os.getenv("AIRTABLE_API_URL", "https://api.airtable.com/v0")
    AIRTABLE_TIMEOUT: float = float(os.getenv("AIRTABLE_TIMEOUT", "30"))
    PORT: int = int(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    def require_credentials(self) -> None:
        if not self.AIRTABLE_API_KEY:
            raise ConfigurationError(
                "AIRTABLE_API_KEY is not set. Please check your .env file."
            )


settings = Settings()
