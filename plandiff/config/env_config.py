"""Environment variable configuration.

Values come from an optional ``.env`` file and the process environment, with
the ``.env`` file taking precedence. Every value is validated before it is
allowed to override the JSON configuration.
"""
import os
import logging
import re
from typing import Optional, Dict, Union
from pathlib import Path
from dataclasses import dataclass

from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable environment configuration object."""

    gemini_api_key: Optional[str]
    gemini_model: Optional[str]
    gemini_timeout: Optional[int]
    gemini_temperature: Optional[float]
    gemini_thinking_budget: Optional[int]
    annotation_batch_size: Optional[int]
    debug_logging: bool
    is_api_key_configured: bool


class EnvironmentConfigError(ConfigError):
    """Raised when an environment variable holds an invalid value."""
    pass


class EnvironmentValidator:
    """Validates environment variable values."""

    GEMINI_API_KEY_PATTERN = re.compile(r'^AIza[0-9A-Za-z_-]{35}$')
    MODEL_NAME_PATTERN = re.compile(r'^[a-z0-9][a-z0-9.\-]*$')

    @classmethod
    def validate_api_key(cls, api_key: Optional[str]) -> bool:
        """Return True for a non-empty key; warn when it is not in the usual AI Studio format."""
        if not api_key or not isinstance(api_key, str) or not api_key.strip():
            return False

        if not cls.GEMINI_API_KEY_PATTERN.match(api_key.strip()):
            logger.warning("API key does not match the usual Gemini key format")
        return True

    @classmethod
    def validate_model_name(cls, model_name: str) -> bool:
        return bool(model_name) and bool(cls.MODEL_NAME_PATTERN.match(model_name))

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                               min_val: Optional[Union[int, float]] = None,
                               max_val: Optional[Union[int, float]] = None,
                               value_type: type = int) -> Union[int, float]:
        """Validate numeric value within specified range.

        Raises:
            EnvironmentConfigError: If the value is not a number or out of range
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise EnvironmentConfigError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise EnvironmentConfigError(f"Value {numeric_value} below minimum {min_val}")

        if max_val is not None and numeric_value > max_val:
            raise EnvironmentConfigError(f"Value {numeric_value} above maximum {max_val}")

        return numeric_value


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load ``KEY=VALUE`` pairs from a .env file.

    Args:
        env_path: Path to .env file. Defaults to .env in current directory.

    Returns:
        dict: Loaded variables (empty if the file does not exist)
    """
    if env_path is None:
        env_path = ".env"

    env_vars: Dict[str, str] = {}
    env_file_path = Path(env_path)

    if not env_file_path.exists():
        logger.debug(f"Environment file {env_path} not found, using system environment only")
        return env_vars

    try:
        with open(env_file_path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()

                if not line or line.startswith('#'):
                    continue

                if line.startswith('export '):
                    line = line[len('export '):].lstrip()

                if '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip()

                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]

                    env_vars[key] = value
                else:
                    logger.warning(f"Invalid line format in {env_path}:{line_num}")

        logger.info(f"Loaded {len(env_vars)} variables from {env_path}")

    except OSError as e:
        logger.error(f"Error reading environment file {env_path}: {e}")

    return env_vars


def get_env_var(key: str, default: Optional[str] = None,
                env_vars: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Look ``key`` up in the loaded .env values, then in the process environment."""
    if env_vars and key in env_vars:
        return env_vars[key]
    return os.getenv(key, default)


def _truthy(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in ('true', '1', 'yes', 'on')


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Load and validate environment configuration.

    Unset variables stay ``None`` so they do not override the JSON config.

    Raises:
        EnvironmentConfigError: If a set variable holds an invalid value
    """
    env_vars = load_env_file(env_file_path)
    validator = EnvironmentValidator()

    api_key = get_env_var("GEMINI_API_KEY", env_vars=env_vars)
    is_api_configured = validator.validate_api_key(api_key)
    if not is_api_configured:
        api_key = None

    model = get_env_var("GEMINI_MODEL", env_vars=env_vars)
    if model is not None and not validator.validate_model_name(model):
        logger.warning(f"Invalid model name '{model}' in environment, ignoring")
        model = None

    timeout = get_env_var("GEMINI_TIMEOUT", env_vars=env_vars)
    temperature = get_env_var("GEMINI_TEMPERATURE", env_vars=env_vars)
    thinking_budget = get_env_var("GEMINI_THINKING_BUDGET", env_vars=env_vars)
    batch_size = get_env_var("ANNOTATION_BATCH_SIZE", env_vars=env_vars)

    config = EnvironmentConfig(
        gemini_api_key=api_key,
        gemini_model=model,
        gemini_timeout=(validator.validate_numeric_range(timeout, 5, 600, int)
                        if timeout else None),
        gemini_temperature=(validator.validate_numeric_range(temperature, 0.0, 1.0, float)
                            if temperature else None),
        gemini_thinking_budget=(validator.validate_numeric_range(thinking_budget, 0, 32768, int)
                                if thinking_budget else None),
        annotation_batch_size=(validator.validate_numeric_range(batch_size, 1, 16, int)
                               if batch_size else None),
        debug_logging=_truthy(get_env_var("DEBUG_LOGGING", "false", env_vars=env_vars)),
        is_api_key_configured=is_api_configured,
    )

    if is_api_configured:
        logger.info("Environment configuration loaded with Gemini API key")
    else:
        logger.info("Environment configuration loaded - set GEMINI_API_KEY to enable annotation")

    return config


__all__ = [
    "EnvironmentConfig",
    "EnvironmentConfigError",
    "EnvironmentValidator",
    "load_environment_config",
    "load_env_file",
    "get_env_var",
]
