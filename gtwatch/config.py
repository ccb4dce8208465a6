"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class GtwatchSettings(BaseSettings):
    log_level: str = "INFO"

    # Kernel process-information source
    proc_root: Path = Path("/proc")

    # Workspace
    town_root: Path = Path(".")
    mayor_session: str = "hq-mayor"
    deacon_session: str = "hq-deacon"
    events_file: str = ".events.jsonl"

    # Terminal multiplexer
    tmux_binary: str = "tmux"
    tmux_socket: str = ""  # tmux -L socket name; empty uses the default server
    tmux_timeout_seconds: float = 10.0

    # Agent detection (comma-separated exact process names)
    agent_process_names: str = "node,claude"
    agent_version_pattern: str = r"^\d+\.\d+\.\d+"

    # Session teardown
    sigterm_grace_seconds: float = 2.0
    descendant_rescan_delay_seconds: float = 0.05
    descendant_rescan_attempts: int = 3
    fresh_session_retries: int = 5  # Polls for a killed zombie to disappear

    # Pattern-based daemon shutdown
    daemon_graceful_timeout_seconds: float = 2.0
    daemon_settle_seconds: float = 0.1

    model_config = {"env_prefix": "GTWATCH_"}


settings = GtwatchSettings()
