import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Remote FHIR repository (Medplum-compatible)
    FHIR_BASE_URL: str = os.getenv("FHIR_BASE_URL", "https://api.medplum.com/fhir/R4")
    FHIR_TOKEN_URL: str = os.getenv("FHIR_TOKEN_URL", "https://api.medplum.com/oauth2/token")
    FHIR_CLIENT_ID: str = os.getenv("FHIR_CLIENT_ID", "")
    FHIR_CLIENT_SECRET: str = os.getenv("FHIR_CLIENT_SECRET", "")
    FHIR_TIMEOUT_SECONDS: float = float(os.getenv("FHIR_TIMEOUT_SECONDS", "30"))
    FHIR_FRONTEND_URL: str = os.getenv("FHIR_FRONTEND_URL", "http://localhost:3000")

    # Chart reads
    CHART_READ_TIMEOUT_SECONDS: float = float(os.getenv("CHART_READ_TIMEOUT_SECONDS", "10"))
    CHART_READ_STRICT: bool = _as_bool(os.getenv("CHART_READ_STRICT", "false"))

    # Local audit store
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./intake_audit.db")
    PHI_ENCRYPTION_KEY: str = os.getenv("PHI_ENCRYPTION_KEY", "")

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
