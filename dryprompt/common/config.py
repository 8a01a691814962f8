"""
Configuration Management for DryPrompt

Loads configuration from ~/.dryprompt/config.json, a local .env file and
environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger("dryprompt.common.config")

# Default config paths
CONFIG_DIR = Path(os.getenv("DRYPROMPT_HOME", str(Path.home() / ".dryprompt")))
CONFIG_PATH = CONFIG_DIR / "config.json"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
PROMPT_LOG_PATH = CONFIG_DIR / "prompt_log.json"
ARCHIVE_DIR = CONFIG_DIR / "archive"


@dataclass
class CaptureConfig:
    """Capture Coordinator configuration"""
    target_process_names: List[str] = field(default_factory=lambda: ["Cursor", "Cursor.app"])
    process_check_interval: float = 10.0  # coarse tier, seconds
    window_check_interval: float = 1.0  # fine tier, seconds
    buffer_timeout: float = 3.0  # inactivity before a buffer is evaluated
    min_text_length: int = 10
    min_distinct_chars: int = 4
    fallback_sample_interval: float = 10.0
    prefer_native_capture: bool = True


@dataclass
class StorageConfig:
    """Log Store configuration"""
    log_path: str = str(PROMPT_LOG_PATH)
    archive_dir: str = str(ARCHIVE_DIR)
    archive_keep: int = 30


@dataclass
class AnalysisConfig:
    """Analysis Pipeline configuration"""
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 100
    embedding_batch_delay: float = 0.2
    min_embed_length: int = 10
    similarity_threshold: float = 0.7
    min_cluster_size: int = 2
    max_clusters: int = 10
    synthesis_delay: float = 0.5
    synthesis_sample_size: int = 5
    trigger_prefix: str = ";"


@dataclass
class LLMConfig:
    """Completion provider configuration"""
    provider: str = "openai"
    openai_model: str = "gpt-4o"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    temperature: float = 0.3
    max_tokens: int = 1000


@dataclass
class SchedulerConfig:
    """Application Controller timers"""
    analysis_interval: float = 60 * 60.0
    initial_check_delay: float = 60.0
    min_entries_for_analysis: int = 5
    error_recovery_delay: float = 30.0
    permission_poll_interval: float = 2.0


@dataclass
class AnalyticsConfig:
    """Optional Supabase analytics store"""
    supabase_url: str = ""
    supabase_key: str = ""


@dataclass
class ServerConfig:
    """Local control server"""
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class DryPromptConfig:
    """Main DryPrompt configuration"""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_section(cls, data: dict, name: str):
    """Build a config section from a dict, ignoring unknown keys."""
    section = data.get(name, {}) or {}
    defaults = cls()
    values = {
        key: section.get(key, getattr(defaults, key))
        for key in defaults.__dataclass_fields__
    }
    return cls(**values)


def _parse_capture_config(data: dict) -> CaptureConfig:
    """Parse capture section, accepting a single target name as a string"""
    config = _parse_section(CaptureConfig, data, "capture")
    if isinstance(config.target_process_names, str):
        config.target_process_names = [config.target_process_names]
    return config


def load_config() -> DryPromptConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including values from a local .env file)
    2. Config file (~/.dryprompt/config.json)
    3. Default values
    """
    load_dotenv()
    config = DryPromptConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.capture = _parse_capture_config(data)
            config.storage = _parse_section(StorageConfig, data, "storage")
            config.analysis = _parse_section(AnalysisConfig, data, "analysis")
            config.llm = _parse_section(LLMConfig, data, "llm")
            config.scheduler = _parse_section(SchedulerConfig, data, "scheduler")
            config.analytics = _parse_section(AnalyticsConfig, data, "analytics")
            config.server = _parse_section(ServerConfig, data, "server")
        except (json.JSONDecodeError, IOError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("DRYPROMPT_TARGET_PROCESS"):
        config.capture.target_process_names = [
            name.strip() for name in os.getenv("DRYPROMPT_TARGET_PROCESS").split(",") if name.strip()
        ]
    if os.getenv("DRYPROMPT_PORT"):
        config.server.port = int(os.getenv("DRYPROMPT_PORT"))
    if os.getenv("DRYPROMPT_ANALYSIS_INTERVAL"):
        config.scheduler.analysis_interval = float(os.getenv("DRYPROMPT_ANALYSIS_INTERVAL"))
    if os.getenv("DRYPROMPT_SIMILARITY_THRESHOLD"):
        config.analysis.similarity_threshold = float(os.getenv("DRYPROMPT_SIMILARITY_THRESHOLD"))

    # Secret-bearing env vars, tracked so save_config never writes them
    _env_map = {
        "SUPABASE_URL": (config.analytics, "supabase_url"),
        "SUPABASE_ANON_KEY": (config.analytics, "supabase_key"),
        "ANTHROPIC_API_KEY": (config.llm, "anthropic_api_key"),
        "DRYPROMPT_LLM_PROVIDER": (config.llm, "provider"),
        "OPENAI_MODEL": (config.llm, "openai_model"),
        "ANTHROPIC_MODEL": (config.llm, "anthropic_model"),
    }
    for env_var, (section, attr) in _env_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: DryPromptConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    analytics_section = {
        "supabase_url": config.analytics.supabase_url,
        "supabase_key": config.analytics.supabase_key,
    }
    llm_section = {
        key: getattr(config.llm, key) for key in config.llm.__dataclass_fields__
    }
    for key in ("supabase_url", "supabase_key"):
        if key in env_sourced:
            analytics_section[key] = ""
    if "anthropic_api_key" in env_sourced:
        llm_section["anthropic_api_key"] = ""

    data = {
        "capture": {
            key: getattr(config.capture, key) for key in config.capture.__dataclass_fields__
        },
        "storage": {
            key: getattr(config.storage, key) for key in config.storage.__dataclass_fields__
        },
        "analysis": {
            key: getattr(config.analysis, key) for key in config.analysis.__dataclass_fields__
        },
        "llm": llm_section,
        "scheduler": {
            key: getattr(config.scheduler, key) for key in config.scheduler.__dataclass_fields__
        },
        "analytics": analytics_section,
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories(config: DryPromptConfig = None) -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    if config is not None:
        Path(config.storage.log_path).parent.mkdir(parents=True, exist_ok=True)
        Path(config.storage.archive_dir).mkdir(parents=True, exist_ok=True)
    else:
        ARCHIVE_DIR.mkdir(parents=True, exist_ok=True)
