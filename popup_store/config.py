from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., provider SDK keys).
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    # Comma-separated list of allowed origins.
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Uploaded reference images are written here and served back under /uploads.
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    UPLOAD_DIR: str = "uploads"
    UPLOAD_MAX_BYTES: int = 10 * 1024 * 1024

    V0_API_KEY: str | None = None
    V0_API_BASE_URL: str = "https://api.v0.dev/v1"
    V0_TIMEOUT_SECONDS: float = 600.0
    V0_MODEL_ID: str = "v0-gpt-5"
    V0_IMAGE_GENERATIONS: bool = True
    V0_THINKING: bool = False

    CATALOGUE_MODEL: str = "gpt-4o-mini"
    CATALOGUE_TEMPERATURE: float = 0.7
    CATALOGUE_MAX_TOKENS: int = 2048

    IMAGE_PROVIDER: str = "replicate"
    REPLICATE_API_TOKEN: str | None = None
    REPLICATE_API_BASE_URL: str = "https://api.replicate.com/v1"
    REPLICATE_IMAGE_MODEL: str = "black-forest-labs/flux-schnell"
    # Input field that receives the reference image for models that accept one (e.g. "image").
    REPLICATE_REFERENCE_IMAGE_FIELD: str | None = None
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    IMAGE_REQUEST_TIMEOUT_SECONDS: float = 120.0
    PRODUCT_IMAGE_PLACEHOLDER_URL: str = "/placeholder.jpg"

    LANGFUSE_ENABLED: bool = False
    LANGFUSE_PUBLIC_KEY: str | None = None
    LANGFUSE_SECRET_KEY: str | None = None
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    LANGFUSE_ENVIRONMENT: str | None = None
    LANGFUSE_SAMPLE_RATE: float = 1.0
    LANGFUSE_TIMEOUT_SECONDS: int = 20

    @field_validator("IMAGE_PROVIDER")
    @classmethod
    def validate_image_provider(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in {"replicate", "gemini"}:
            raise ValueError("IMAGE_PROVIDER must be one of: replicate, gemini")
        return cleaned

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def public_base_url(self) -> str:
        return self.PUBLIC_BASE_URL.rstrip("/")

    @property
    def upload_path(self) -> Path:
        return Path(self.UPLOAD_DIR).resolve()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
