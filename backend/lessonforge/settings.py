from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	anthropic_api_key: str | None = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
	anthropic_base_url: str = Field(default="https://api.anthropic.com", validation_alias="ANTHROPIC_BASE_URL")
	anthropic_version: str = Field(default="2023-06-01", validation_alias="ANTHROPIC_VERSION")
	# Model used for content generation when neither the request nor the prompt names one
	default_model: str = Field(default="claude-3-opus-20240229", validation_alias="LLM_DEFAULT_MODEL")
	# Smaller/faster model for live quality checks
	quality_model: str = Field(default="claude-3-haiku-20240307", validation_alias="LLM_QUALITY_MODEL")
	llm_timeout_seconds: float = Field(default=120.0, validation_alias="LLM_TIMEOUT_SECONDS")
	llm_max_retries: int = Field(default=3, validation_alias="LLM_MAX_RETRIES")
	# Wait before retry k is retry_base_delay * 2**k seconds
	llm_retry_base_delay: float = Field(default=1.0, validation_alias="LLM_RETRY_BASE_DELAY")

	# Streaming session policy
	quality_check_interval: int = Field(default=10, validation_alias="QUALITY_CHECK_INTERVAL")
	quality_prefix_chars: int = Field(default=2000, validation_alias="QUALITY_PREFIX_CHARS")
	final_quality_check: bool = Field(default=True, validation_alias="FINAL_QUALITY_CHECK")
	final_quality_chars: int = Field(default=8000, validation_alias="FINAL_QUALITY_CHARS")
	session_idle_timeout_seconds: float = Field(default=60.0, validation_alias="SESSION_IDLE_TIMEOUT_SECONDS")

	# Validation scores at or above this value auto-approve on the offline path
	approval_threshold: float = Field(default=8.0, validation_alias="APPROVAL_THRESHOLD")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	default_requests_limit: int = Field(default=1000, validation_alias="DEFAULT_REQUESTS_LIMIT")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()


def get_settings() -> Settings:
	return settings
