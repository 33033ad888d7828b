# wassce_parser/config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """
    Global project configuration loaded from environment variables (.env file).
    Provides all tunable parameters like file upload limits, OCR paths,
    LLM provider keys and the subject catalog location.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === App Info ===
    APP_NAME: str = "WASSCE Results Parser"
    APP_VERSION: str = "0.2.0"

    # === Uploads ===
    MAX_FILE_MB: int = 10
    ALLOWED_MIME_TYPES: List[str] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/jpg",
            "image/png",
            "application/pdf",
        ]
    )

    # === OCR / PDF Processing ===
    # Example Windows paths:
    #   TESSERACT_CMD="C:\\Program Files\\Tesseract-OCR\\tesseract.exe"
    #   POPPLER_PATH="C:\\tools\\poppler-xx\\bin"
    TESSERACT_CMD: Optional[str] = None
    POPPLER_PATH: Optional[str] = None
    PDF_RENDER_DPI: int = 300

    # === LLM Provider ===
    # gemini | openai | none
    LLM_PROVIDER: str = "gemini"

    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash-8b"

    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"

    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_OUTPUT_TOKENS: int = 2048

    # batched AI subject matching; heuristics are used when disabled
    AI_MATCHING_ENABLED: bool = True

    # === Reference data ===
    # JSON file with {"core": [...], "elective": [...]} subject records
    SUBJECT_CATALOG_PATH: Optional[str] = None

    # === CORS (Frontend integration) ===
    CORS_ALLOW_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def max_file_bytes(self) -> int:
        return self.MAX_FILE_MB * 1024 * 1024


# Create a global settings instance
settings = Settings()
