from typing import Literal

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # App
    app_name: str = "IPS Exporter"
    debug: bool = False
    log_level: str = "INFO"

    # FHIR server the clinical resources are read from
    fhir_base_url: str = "https://launch.smarthealthit.org/v/r4/fhir"
    fetch_page_limit: int = 5  # Max searchset pages followed per resource type

    # Medications section source: 'MedicationRequest' or 'MedicationStatement'
    medication_resource_type: str = "MedicationRequest"

    # Validator the assembled document is POSTed to
    validation_url: str = "https://r4.ontoserver.csiro.au/fhir/Bundle/$validate"

    # Shared HTTP timeout (seconds) for fetches and validation
    http_timeout: float = 30.0

    # Placeholder ids: 'random' (uuid4 per run) or 'stable' (uuid5 per patient+section)
    placeholder_identifiers: Literal["random", "stable"] = "random"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
