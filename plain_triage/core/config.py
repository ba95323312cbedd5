from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from plain_triage.domain.models import ClassifierMode, PriorityBand


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Plain
    plain_api_token: str | None = Field(None, alias="PLAIN_API_TOKEN")
    plain_signature_secret: str | None = Field(None, alias="PLAIN_SIGNATURE_SECRET")
    plain_api_url: str = Field("https://core-api.uk.plain.com/graphql/v1", alias="PLAIN_API_URL")
    plain_timeout_seconds: float = Field(15.0, alias="PLAIN_TIMEOUT_SECONDS")
    label_p0_id: str | None = Field(None, alias="LABEL_P0_ID")
    label_p1_id: str | None = Field(None, alias="LABEL_P1_ID")
    label_p2_id: str | None = Field(None, alias="LABEL_P2_ID")
    label_p3_id: str | None = Field(None, alias="LABEL_P3_ID")

    # Supabase (audit store). Left empty, records are kept in-process.
    supabase_url: str | None = Field(None, alias="SUPABASE_URL")
    supabase_service_role_key: str | None = Field(None, alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_table: str = Field("tickets", alias="SUPABASE_TABLE")

    # LLM provider
    llm_provider: str = Field("openai", alias="LLM_PROVIDER")  # openai | anthropic
    llm_model: str = Field("gpt-4o-mini", alias="LLM_MODEL")
    llm_temperature: float = Field(0.1, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(300, alias="LLM_MAX_TOKENS")
    llm_timeout_seconds: float = Field(30.0, alias="LLM_TIMEOUT_SECONDS")
    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(
        None, validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY")
    )

    # Classification
    classifier_mode: ClassifierMode = Field(ClassifierMode.AI, alias="CLASSIFIER_MODE")
    history_window_size: int = Field(12, alias="HISTORY_WINDOW_SIZE", ge=0)
    history_max_chars: int = Field(200, alias="HISTORY_MAX_CHARS", gt=0)
    history_timeout_seconds: float = Field(5.0, alias="HISTORY_TIMEOUT_SECONDS")
    label_confidence_threshold: float = Field(0.7, alias="LABEL_CONFIDENCE_THRESHOLD", ge=0, le=1)
    priority_rules_path: str | None = Field(None, alias="PRIORITY_RULES_PATH")
    memory_store_max_records: int = Field(1000, alias="MEMORY_STORE_MAX_RECORDS", gt=0)

    # Runtime
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("classifier_mode", mode="before")
    @classmethod
    def _strip_only_suffix(cls, value: object) -> object:
        # "ai-only" / "rules-only" are accepted spellings
        if isinstance(value, str):
            return value.strip().lower().removesuffix("-only")
        return value

    def priority_label_ids(self) -> dict[PriorityBand, str]:
        configured = {
            PriorityBand.P0: self.label_p0_id,
            PriorityBand.P1: self.label_p1_id,
            PriorityBand.P2: self.label_p2_id,
            PriorityBand.P3: self.label_p3_id,
        }
        return {band: label_id for band, label_id in configured.items() if label_id}


settings = Settings()
