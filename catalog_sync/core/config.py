from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Catalog / cart / orders API
    CATALOG_API_BASE_URL: str = "http://localhost:5000/api/"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # Presentation helpers
    SHOP_NAME: str = "My Shop"
    ORDER_DATE_FORMAT: str = "%d/%m/%Y"
    NO_GROUP_LABEL: str = "No group"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
