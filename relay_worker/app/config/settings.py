from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    broker_host: str = Field(..., validation_alias="BROKER_HOST")
    broker_port: int = Field(..., validation_alias="BROKER_PORT")
    broker_user: str = Field(..., validation_alias="BROKER_USER")
    broker_password: str = Field(..., validation_alias="BROKER_PASSWORD")

    queue_name: str = Field(..., validation_alias="QUEUE_NAME")
    queue_max_length: int = Field(..., validation_alias="QUEUE_MAX_LENGTH")
    # Defaults to "<queue_name>.dlq" when empty.
    dead_letter_queue_name: str = Field("", validation_alias="DEAD_LETTER_QUEUE_NAME")
    prefetch_count: int = Field(100, validation_alias="PREFETCH_COUNT")

    consumer_backend: str = Field("rabbitmq", validation_alias="CONSUMER_BACKEND")
    dead_letter_backend: str = Field("mongo", validation_alias="DEAD_LETTER_BACKEND")

    database_host: str = Field("localhost", validation_alias="DATABASE_HOST")
    database_port: int = Field(27017, validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("audience_relay", validation_alias="DATABASE_NAME")
    dead_letter_collection: str = Field("dead_letters", validation_alias="DEAD_LETTER_COLLECTION")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")

    # Connection setup (broker and database), not message redelivery.
    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(10, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")

    mailchimp_api_key: str = Field(..., validation_alias="MAILCHIMP_API_KEY")
    mailchimp_list_id: str = Field(..., validation_alias="MAILCHIMP_LIST_ID")
    upstream_connect_timeout_seconds: float = Field(5.0, validation_alias="UPSTREAM_CONNECT_TIMEOUT_SECONDS")
    upstream_read_timeout_seconds: float = Field(15.0, validation_alias="UPSTREAM_READ_TIMEOUT_SECONDS")
    upstream_user_agent: str = Field("", validation_alias="UPSTREAM_USER_AGENT")

    # Delivery policy.
    group_size: int = Field(10, validation_alias="GROUP_SIZE")
    inter_group_pause_ms: int = Field(250, validation_alias="INTER_GROUP_PAUSE_MS")
    # Real upstream attempts per message; the last retryable failure dead-letters.
    max_attempts_before_dead_letter: int = Field(5, validation_alias="MAX_ATTEMPTS_BEFORE_DEAD_LETTER")
    retry_backoff_base_seconds: float = Field(30.0, validation_alias="RETRY_BACKOFF_BASE_SECONDS")
    retry_backoff_max_seconds: float = Field(300.0, validation_alias="RETRY_BACKOFF_MAX_SECONDS")

    batch_max_size: int = Field(100, validation_alias="BATCH_MAX_SIZE")
    batch_max_wait_seconds: float = Field(1.0, validation_alias="BATCH_MAX_WAIT_SECONDS")

    @property
    def resolved_dead_letter_queue_name(self) -> str:
        return self.dead_letter_queue_name or f"{self.queue_name}.dlq"
