"""
Configuration Management
========================

Centralized configuration for ShellSense.
Supports YAML configuration files with sensible defaults; API keys and
local endpoints can also come from the environment or a .env file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any
import yaml

from dotenv import load_dotenv

from shellsense.utils.errors import ConfigurationError
from shellsense.utils.logging import setup_structured_logging

REASONING_EFFORTS = ("none", "low", "medium", "high")

# Load .env from the package root, never from the terminal's cwd
_project_root = Path(__file__).parent.parent.parent
load_dotenv(dotenv_path=_project_root / ".env")


@dataclass
class ProviderConfig:
    """Credentials and endpoints for model backends."""
    openai_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    anthropic_api_key: Optional[str] = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    google_api_key: Optional[str] = field(default_factory=lambda: (
        os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    ))

    ollama_base_url: str = field(default_factory=lambda: os.getenv(
        "OLLAMA_BASE_URL",
        "http://localhost:11434/v1"
    ))
    lmstudio_base_url: str = field(default_factory=lambda: os.getenv(
        "LMSTUDIO_BASE_URL",
        "http://localhost:1234/v1"
    ))
    vllm_base_url: str = field(default_factory=lambda: os.getenv(
        "VLLM_BASE_URL",
        "http://localhost:8000/v1"
    ))

    def local_base_url(self, backend: str) -> str:
        """Base URL for a named local server (ollama, lmstudio, vllm)."""
        urls = {
            "ollama": self.ollama_base_url,
            "lmstudio": self.lmstudio_base_url,
            "vllm": self.vllm_base_url,
        }
        try:
            return urls[backend.lower().replace(" ", "").replace("-", "")]
        except KeyError:
            raise ConfigurationError(f"Unknown local backend: {backend}", config_key="local_backend")


@dataclass
class SuggestionConfig:
    """Configuration for terminal suggestions."""
    enabled: bool = True
    provider: Optional[str] = field(default_factory=lambda: os.getenv("SHELLSENSE_PROVIDER"))
    model: Optional[str] = field(default_factory=lambda: os.getenv("SHELLSENSE_MODEL"))
    local_backend: str = "ollama"  # only used when provider == "local"
    reasoning_effort: str = "none"

    debounce_seconds: float = 2.5
    meaningful_debounce_seconds: float = 0.3  # used after cwd/exit/output changes
    cooldown_seconds: float = 0.5
    post_command_delay_seconds: float = 1.0  # added on top of the cooldown

    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 50

    max_suggestions: int = 3
    max_reason_length: int = 35


@dataclass
class ResearchConfig:
    """Configuration for the tool-driven research loop."""
    enabled: bool = True
    max_steps: int = 20
    command_threshold: int = 5  # commands between periodic research passes
    max_consecutive_failures: int = 3
    output_truncate_chars: int = 1000
    native_tools: bool = False  # provider tool calling instead of JSON replies


@dataclass
class TimeoutConfig:
    """Per-call network timeouts, in seconds."""
    planning: float = 20.0
    generation: float = 30.0
    research: float = 15.0
    tools: float = 120.0


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""
    level: str = field(default_factory=lambda: os.getenv("SHELLSENSE_LOG_LEVEL", "INFO"))
    format_type: str = "dev"
    log_file: Optional[str] = None

    def apply(self) -> logging.Logger:
        """Install the package log handlers described by this section."""
        return setup_structured_logging(self.level, self.format_type, self.log_file)


@dataclass
class Config:
    """Main configuration object."""
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)
    research: ResearchConfig = field(default_factory=ResearchConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    _SECTIONS = ('providers', 'suggestions', 'research', 'timeouts', 'logging')

    @property
    def is_configured(self) -> bool:
        """Suggestions can run: enabled, with a provider and a model."""
        return bool(
            self.suggestions.enabled
            and self.suggestions.provider
            and self.suggestions.model
        )

    @classmethod
    def load_from_file(cls, config_path: Path) -> 'Config':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded values

        Raises:
            ConfigurationError: If the file is not a mapping or names unknown keys
        """
        config = cls()

        if not config_path.exists():
            return config

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        if not data:
            return config
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        for section_name, values in data.items():
            if section_name not in cls._SECTIONS:
                raise ConfigurationError(
                    f"Unknown config section: {section_name}",
                    config_key=section_name
                )
            if not isinstance(values, dict):
                continue
            section = getattr(config, section_name)
            for key, value in values.items():
                if not hasattr(section, key):
                    raise ConfigurationError(
                        f"Unknown config key: {section_name}.{key}",
                        config_key=f"{section_name}.{key}"
                    )
                setattr(section, key, value)

        config.validate()
        return config

    def validate(self) -> None:
        """
        Check values that would otherwise only fail mid-run.

        Raises:
            ConfigurationError: Unknown reasoning effort or logging format
        """
        effort = str(self.suggestions.reasoning_effort).lower()
        if effort not in REASONING_EFFORTS:
            raise ConfigurationError(
                f"Unknown reasoning effort: {self.suggestions.reasoning_effort}"
                f" (expected one of {', '.join(REASONING_EFFORTS)})",
                config_key="suggestions.reasoning_effort"
            )
        self.suggestions.reasoning_effort = effort

        if self.logging.format_type not in ("json", "dev"):
            raise ConfigurationError(
                f"Unknown log format: {self.logging.format_type}",
                config_key="logging.format_type"
            )

    @classmethod
    def load_default(cls) -> 'Config':
        """
        Load default configuration.

        Looks for config files in this order:
        1. .shellsense.yaml in current directory
        2. .shellsense.yaml in home directory
        3. Default values (no file)

        Returns:
            Config instance
        """
        current_dir_config = Path('.shellsense.yaml')
        if current_dir_config.exists():
            return cls.load_from_file(current_dir_config)

        home_config = Path.home() / '.shellsense.yaml'
        if home_config.exists():
            return cls.load_from_file(home_config)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Configuration as nested dicts, API keys omitted."""
        data = {}
        for section_name in self._SECTIONS:
            section = getattr(self, section_name)
            data[section_name] = {
                key: value for key, value in vars(section).items()
                if not key.endswith('_api_key')
            }
        return data

    def to_yaml(self) -> str:
        """
        Convert configuration to YAML string.

        Returns:
            YAML representation of config
        """
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)
