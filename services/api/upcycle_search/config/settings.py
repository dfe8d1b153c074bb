"""Settings for the search API service."""

from pydantic import BaseModel
import os


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "dev")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", 8000))

    es_host: str = os.getenv("ES_HOST", "http://localhost:9200")
    es_materials_index: str = os.getenv("ES_MATERIALS_INDEX", "materials")
    es_users_index: str = os.getenv("ES_USERS_INDEX", "users")
    es_connect_retries: int = int(os.getenv("ES_CONNECT_RETRIES", 20))
    es_retry_delay_seconds: float = float(os.getenv("ES_RETRY_DELAY_SECONDS", 10))

    # OpenAI-compatible chat completions endpoint (OpenRouter by default)
    inference_api_url: str = os.getenv(
        "INFERENCE_API_URL", "https://openrouter.ai/api/v1/chat/completions"
    )
    inference_model: str = os.getenv(
        "INFERENCE_MODEL", "deepseek/deepseek-chat-v3-0324"
    )
    inference_temperature: float = float(os.getenv("INFERENCE_TEMPERATURE", 0.7))
    inference_max_tokens: int = int(os.getenv("INFERENCE_MAX_TOKENS", 1000))
    inference_timeout_seconds: float = float(
        os.getenv("INFERENCE_TIMEOUT_SECONDS", 30)
    )
    app_url: str = os.getenv("APP_URL", "http://localhost:3000")
    app_title: str = os.getenv("APP_TITLE", "UpCycle Connect")

    candidate_pool_size: int = int(os.getenv("CANDIDATE_POOL_SIZE", 500))

    data_dir: str = os.getenv("APP_DATA_DIR", "/app/data")

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
