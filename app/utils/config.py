from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App Environment
    app_env: str = "prod"
    log_format: str = "json"
    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    # Record store
    record_store_backend: str = "postgres"
    postgres_dsn: str = ""
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10
    # OpenAI
    openai_api_key: str = ""
    openai_api_base_url: str = "https://api.openai.com/v1"
    llm_request_timeout: float = 120.0
    # Models
    summary_model: str = "gpt-4o"
    conversation_model: str = "gpt-4o-mini"
    title_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1024
    # Context
    summary_context_slides: int = 5
    rag_top_k: int = 3
    # Pre-generation
    pregeneration_fanout: int = 5
    slide_summary_concurrency: int = 2
    pregenerate_on_background_completion: bool = False
    job_queue_retained_jobs: int = 5000
    # GCP
    gcp_project_id: str = ""
    slide_summary_topic: str = ""
    # Pub/Sub
    pubsub_base_url: str = ""
    pubsub_service_account_email: str = ""
    pubsub_emulator_host: str = ""
    # S3
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_bucket_name: str = ""
    s3_endpoint_url: str = ""
    # Extraction
    slide_render_zoom: float = 2.0
    # PostHog Configuration
    posthog_api_key: str = ""
    posthog_api_url: str = "https://us.i.posthog.com"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )
