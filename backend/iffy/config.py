from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/iffy"

    AWS_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION_NAME: str = "ap-northeast-2"
    S3_BUCKET_NAME: str = "iffy"
    # Public bucket/CDN prefix. Without it we hand out long-lived presigned URLs.
    S3_PUBLIC_BASE_URL: Optional[str] = None
    S3_PRESIGNED_EXPIRES: int = 60 * 60 * 24 * 7

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    OPENAI_API_KEY: Optional[str] = None
    VISION_MODEL: str = "gpt-4o"
    RECOMMENDATION_MODEL: str = "gpt-4o-mini"
    IMAGE_EDIT_MODEL: str = "gpt-image-1"

    GOOGLE_SERVICE_ACCOUNT_EMAIL: Optional[str] = None
    GOOGLE_PRIVATE_KEY: Optional[str] = None
    GIFT_SHEET_ID: Optional[str] = None

    DEPLOYMENT_PROFILE: str = "general"
    CATALOG_SHEET_INDEX: Optional[int] = None
    CATALOG_CACHE_TTL_SECONDS: int = 3600

    FALLBACK_IMAGE_URL: str = "https://static.iffy.example/iffy/fallback_image.webp"

    JWT_SECRET_KEY: str = "dev-only-secret-change-me-in-production-0123456789abcdef"
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def google_private_key(self) -> Optional[str]:
        # Keys pasted into .env keep their newlines escaped.
        if self.GOOGLE_PRIVATE_KEY is None:
            return None
        return self.GOOGLE_PRIVATE_KEY.replace("\\n", "\n")

settings = Settings()
