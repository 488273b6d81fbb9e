"""Application configuration for x402-policy.

Defines configuration models for logging, the default policy file and code
generation. Config is stored at the OS-appropriate location (via
platformdirs); every field has a default, so a missing file only matters to
commands that require one.

Example usage:
    # Load from config file
    config = AppConfig.load_from_files(get_config_path())

    # Save new configuration
    config.save_to_file(get_config_path())
"""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from x402_policy.constants import CONFIG_DIR, CONFIG_FILENAME


def get_config_path() -> Path:
    """Get the full path to the application config file.

    - macOS: ~/Library/Application Support/x402-policy/x402_policy_config.json
    - Linux: ~/.config/x402-policy/x402_policy_config.json

    Returns:
        Path to the config file.
    """
    return Path(CONFIG_DIR) / CONFIG_FILENAME


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    The log_dir specifies a base directory. Within it, logs are stored
    in a x402_policy_logs/ subdirectory with this structure:
        <log_dir>/
        └── x402_policy_logs/
            ├── system/
            │   └── system.jsonl
            └── audit/
                └── decisions.jsonl

    Attributes:
        log_dir: Base directory for logs. None logs system events to stderr
            and disables the decision audit file.
        log_level: Level for the system log.
    """

    log_dir: str | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


# =============================================================================
# Policy / Codegen Configuration
# =============================================================================


class PolicySettings(BaseModel):
    """Where the enforced policy lives.

    Attributes:
        path: Policy file used by the PEP and reload endpoint.
    """

    path: str | None = None


class CodegenConfig(BaseModel):
    """Code generation defaults.

    Attributes:
        default_framework: Target used when ``generate`` gets no --framework.
    """

    default_framework: Literal["express", "fastify", "fastapi"] = "express"


class AppConfig(BaseModel):
    """Main application configuration for x402-policy.

    Attributes:
        logging: Logging configuration (log dir and level).
        policy: Policy file location.
        codegen: Code generation defaults.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    codegen: CodegenConfig = Field(default_factory=CodegenConfig)

    @property
    def log_dir(self) -> Path | None:
        return Path(self.logging.log_dir).expanduser() if self.logging.log_dir else None

    @property
    def policy_path(self) -> Path | None:
        return Path(self.policy.path).expanduser() if self.policy.path else None

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to JSON file.

        Creates parent directories if they don't exist.

        Args:
            config_path: Path where x402_policy_config.json should be saved.
        """
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(), f, indent=2)

    @classmethod
    def load_from_files(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file.

        Args:
            config_path: Path to the config file (x402_policy_config.json).

        Returns:
            AppConfig instance with loaded configuration.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config file is invalid JSON or fails validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found at {config_path}")

        recovery_hint = "Fix the file or delete it to fall back to defaults."
        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_path}: {e}\n\n{recovery_hint}") from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = ".".join(str(x) for x in error["loc"])
                errors.append(f"  - {loc}: {error['msg']}")
            raise ValueError(
                f"Invalid configuration in {config_path}:\n" + "\n".join(errors) + f"\n\n{recovery_hint}"
            ) from e


def load_config_or_default(config_path: Path | None = None) -> AppConfig:
    """Load the config file if present, otherwise return defaults.

    Raises:
        ValueError: If the file exists but is invalid.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return AppConfig()
    return AppConfig.load_from_files(path)

