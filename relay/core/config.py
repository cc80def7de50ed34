"""
Configuration module - centralized settings for the entire application.
Uses pydantic-settings to load values from environment variables and .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Pydantic-settings automatically:
    1. Reads from environment variables (highest priority)
    2. Falls back to .env file values
    3. Uses default values if neither exists

    To override in production, set environment variables:
        export COMMAND_SERVICE_URL=http://command-service:3007
        export SERVICE_API_KEY=your-shared-service-key
    """

    # ---------------------------------------------------------------------------
    # PYDANTIC SETTINGS CONFIGURATION
    # ---------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",        # Load from .env file in project root
        env_file_encoding="utf-8",  # File encoding
        extra="ignore",         # Ignore extra env vars not defined here
    )

    # ---------------------------------------------------------------------------
    # APPLICATION SETTINGS
    # ---------------------------------------------------------------------------
    # APP_NAME: Display name shown in API docs and logging
    APP_NAME: str = "Relay Orchestrator"

    # DEBUG: Enable debug mode (DEBUG level logging for the relay.* loggers)
    DEBUG: bool = False

    # CLIENT_ID / CLIENT_VERSION: Sent in every request envelope (meta block)
    CLIENT_ID: str = "relay-orchestrator"
    CLIENT_VERSION: str = "1.0.0"
    DEFAULT_LOCALE: str = "en-US"
    DEFAULT_TIMEZONE: str = "America/New_York"

    # ---------------------------------------------------------------------------
    # BACKEND SERVICES
    # ---------------------------------------------------------------------------
    # Each backend is an independent HTTP service speaking the mcp.v1 envelope.
    # Requests go to POST {SERVICE_URL}/{action}.
    COMMAND_SERVICE_URL: str = "http://localhost:3007"
    WEB_SEARCH_SERVICE_URL: str = "http://localhost:3002"
    USER_MEMORY_SERVICE_URL: str = "http://localhost:3001"
    CONVERSATION_SERVICE_URL: str = "http://localhost:3004"
    LLM_SERVICE_URL: str = "http://localhost:3003"
    SCREEN_SERVICE_URL: str = "http://localhost:3008"

    # SERVICE_API_KEY: Shared bearer token for the backend services
    # Leave empty for local development without auth
    SERVICE_API_KEY: str = ""

    # ---------------------------------------------------------------------------
    # TIMEOUTS (milliseconds)
    # ---------------------------------------------------------------------------
    SERVICE_DEFAULT_TIMEOUT_MS: int = 30_000
    COMMAND_TIMEOUT_MS: int = 60_000          # Shell execution + interpretation
    GUIDE_TIMEOUT_MS: int = 300_000           # Tutorial/code generation is slow
    AUTOMATION_TIMEOUT_MS: int = 300_000      # Static automation plans
    COMPUTER_USE_TIMEOUT_MS: int = 60_000     # Initiating the streaming session only
    SCREEN_TIMEOUT_MS: int = 60_000           # Multi-window analysis can take a while
    ANSWER_TIMEOUT_MS: int = 30_000
    ANSWER_WITH_CONTEXT_TIMEOUT_MS: int = 60_000

    # ---------------------------------------------------------------------------
    # CIRCUIT BREAKER
    # ---------------------------------------------------------------------------
    # BREAKER_FAILURE_THRESHOLD: Consecutive failures before a service is OPEN
    # BREAKER_COOLDOWN_MS: How long an OPEN breaker rejects calls before
    #   letting a single HALF_OPEN probe through
    BREAKER_FAILURE_THRESHOLD: int = 5
    BREAKER_COOLDOWN_MS: int = 60_000

    # ---------------------------------------------------------------------------
    # RETRY POLICY (idempotent actions only)
    # ---------------------------------------------------------------------------
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY_MS: int = 1_000
    RETRY_MAX_DELAY_MS: int = 10_000
    RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # ---------------------------------------------------------------------------
    # METRICS
    # ---------------------------------------------------------------------------
    # METRICS_HISTORY_SIZE: Ring buffer capacity for request records
    # METRICS_LATENCY_WINDOW: Latency samples kept per series (global/service/action)
    METRICS_HISTORY_SIZE: int = 1000
    METRICS_LATENCY_WINDOW: int = 1000

    # ---------------------------------------------------------------------------
    # INTENT CLASSIFICATION
    # ---------------------------------------------------------------------------
    # Below this confidence the classifier asks for clarification
    INTENT_CLARIFICATION_THRESHOLD: float = 0.5

    # INTENT_EMBEDDINGS_ENABLED: Use OpenAI embeddings for semantic scoring.
    # When disabled (default) the hermetic word-overlap similarity is used.
    INTENT_EMBEDDINGS_ENABLED: bool = False
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"

    # ---------------------------------------------------------------------------
    # WORKFLOW
    # ---------------------------------------------------------------------------
    # COMPUTER_USE_ENABLED: Hand automation off to the streaming computer-use
    # agent. When False, automation requests produce a static plan instead.
    COMPUTER_USE_ENABLED: bool = True

    # WORKFLOW_MAX_ITERATIONS: Hard cap on node executions per run
    WORKFLOW_MAX_ITERATIONS: int = 50


# ---------------------------------------------------------------------------
# GLOBAL SETTINGS INSTANCE
# ---------------------------------------------------------------------------
# Usage: from relay.core.config import settings
# Then:  settings.BREAKER_FAILURE_THRESHOLD, settings.COMMAND_SERVICE_URL, etc.
settings = Settings()
