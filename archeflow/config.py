"""Configuration management for archeflow.

Three config sections:
- resolver: entry descriptor name, default common prefix, choices file
- output: default template engine for <templates> blocks without one
- cli: interactive or batch resolution by default

Config resolution order (highest priority first):
1. Programmatic (ArcheflowConfig constructed in code)
2. Environment variables (ARCHEFLOW_COMMON_PREFIX, ARCHEFLOW_CLI_MODE, etc.)
3. Config file (~/.config/archeflow/config.json)
4. Hardcoded defaults

A descriptor's own ``common-prefix`` attribute always wins over the
configured default.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


# =============================================================================
# Config file location
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "archeflow"
CONFIG_FILE = CONFIG_DIR / "config.json"

CLI_MODES = ("interactive", "batch")


# =============================================================================
# Config dataclasses
# =============================================================================


@dataclass
class ResolverConfig:
    """Descriptor loading and choice resolution settings."""

    entry_descriptor: str = "helidon-archetype.xml"
    common_prefix: str = ""  # empty = relative paths fall back to the root
    choices_file: str = ".helidon"
    choices_prefix: str = "FLOW."


@dataclass
class OutputConfig:
    """Output selection settings."""

    default_engine: str = "mustache"


@dataclass
class CliConfig:
    mode: str = "interactive"


@dataclass
class ArcheflowConfig:
    """Top-level archeflow configuration.

    Examples:
        # Package use
        config = ArcheflowConfig(resolver=ResolverConfig(common_prefix="app"))

        # CLI use, loads from ~/.config/archeflow/config.json
        config = ArcheflowConfig.load()
    """

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    cli: CliConfig = field(default_factory=CliConfig)

    @classmethod
    def load(cls) -> "ArcheflowConfig":
        """Load config from file + env vars.

        Priority: env var values > config.json values > defaults.
        """
        config = cls()

        # Layer 1: Load from config file if it exists
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                _apply_dict(config, data)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Failed to load config from %s: %s", CONFIG_FILE, exc)

        # Layer 2: Env var overrides
        if (val := os.environ.get("ARCHEFLOW_COMMON_PREFIX")) is not None:
            config.resolver.common_prefix = val
        if val := os.environ.get("ARCHEFLOW_ENTRY_DESCRIPTOR"):
            config.resolver.entry_descriptor = val
        if val := os.environ.get("ARCHEFLOW_CHOICES_FILE"):
            config.resolver.choices_file = val
        if val := os.environ.get("ARCHEFLOW_CLI_MODE"):
            if val in CLI_MODES:
                config.cli.mode = val
            else:
                logger.warning("Invalid ARCHEFLOW_CLI_MODE=%r, ignoring", val)

        return config

    def save(self) -> None:
        """Save config to ~/.config/archeflow/config.json."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for display."""
        return {
            "resolver": asdict(self.resolver),
            "output": asdict(self.output),
            "cli": asdict(self.cli),
        }

    @property
    def batch_mode(self) -> bool:
        return self.cli.mode == "batch"


# =============================================================================
# Config dict application
# =============================================================================


def _apply_dict(config: ArcheflowConfig, data: dict) -> None:
    """Apply a dict of values onto an ArcheflowConfig."""
    for section_name in ("resolver", "output", "cli"):
        section = data.get(section_name)
        if not isinstance(section, dict):
            continue
        target = getattr(config, section_name)
        for k, v in section.items():
            if hasattr(target, k):
                setattr(target, k, v)
            else:
                logger.warning("Unknown config key %s.%s, ignoring", section_name, k)
    if config.cli.mode not in CLI_MODES:
        logger.warning("Invalid cli.mode=%r in config file, using interactive", config.cli.mode)
        config.cli.mode = "interactive"


# =============================================================================
# Global config singleton
# =============================================================================

_config: ArcheflowConfig | None = None


def get_config() -> ArcheflowConfig:
    """Get the global ArcheflowConfig instance.

    First call loads from file + env vars. Subsequent calls return cached instance.
    Use configure() to replace the global config programmatically.
    """
    global _config
    if _config is None:
        _config = ArcheflowConfig.load()
    return _config


def configure(config: ArcheflowConfig) -> None:
    """Set the global ArcheflowConfig programmatically.

    Use this when archeflow is used as a package:
        from archeflow.config import configure, ArcheflowConfig, ResolverConfig
        configure(ArcheflowConfig(resolver=ResolverConfig(common_prefix="app")))
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global config (forces reload on next get_config())."""
    global _config
    _config = None
