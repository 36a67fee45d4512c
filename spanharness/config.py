"""Global configuration — loaded from environment variables."""

from pydantic_settings import BaseSettings


class HarnessSettings(BaseSettings):
    app_command: str = "npm run start"
    log_level: str = "INFO"

    # HTTP probe
    probe_host: str = "localhost"
    probe_initial_delay: float = 1.0
    probe_interval: float = 0.25
    probe_timeout: float = 10.0
    probe_request_timeout: float = 5.0

    # Span dump polling
    span_poll_interval: float = 0.5
    final_spans_timeout: float = 3.0

    # Seconds between SIGTERM and SIGKILL
    terminate_grace_period: float = 5.0

    model_config = {"env_prefix": "SPANHARNESS_"}


settings = HarnessSettings()
