"""Application configuration for the translation pipeline."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import yaml
from dotenv import load_dotenv

from mod_translator.logging_config import setup_logger

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BATCH_SIZE = 200
DEFAULT_CONCURRENCY = 4
DEFAULT_RETRY_COUNT = 3
MIN_BATCH_SIZE = 20
MAX_BATCH_SIZE = 2000
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 16
MIN_RETRY_COUNT = 0
MAX_RETRY_COUNT = 10

COMPLETIONS_PATH = "/v1/chat/completions"


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    exports_root: str
    snapshot_path: str
    glossary_file_path: str

    # API configuration
    api_url: str
    api_key: str
    model_name: str
    request_timeout: float

    # Batching and concurrency
    batch_size: int
    max_batch_chars: int
    concurrency: int
    retry_count: int
    retry_base_delay: float
    rate_limit_per_minute: int
    max_glossary_rules: int
    max_glossary_tokens: int

    # Processing settings
    dry_run: bool


@dataclass
class ConfigValidationResult:
    success: bool
    message: str = ''


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to defaults on any problem."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Copy config.example.yaml to '{project_root}/config.yaml' or set TRANSLATOR_CONFIG_FILE.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {}) or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/translation_log.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _resolve_path(project_root: str, path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(project_root, path)


def load_app_config() -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    The API key is read from TRANSLATOR_API_KEY, falling back to OPENAI_API_KEY.
    Values are not validated here; call validate_config before any network use.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()
    _load_dotenv_files(project_root)
    config = _load_yaml_config(project_root)

    logger = _setup_logger_from_config(config)
    _log_dotenv_status(logger, project_root)

    api_config = config.get('api', {}) or {}
    batching = config.get('batching', {}) or {}

    api_key = os.environ.get('TRANSLATOR_API_KEY') or os.environ.get('OPENAI_API_KEY') or api_config.get('api_key', '')

    return AppConfig(
        project_root=project_root,
        exports_root=_resolve_path(project_root, config.get('exports_root', 'exports')),
        snapshot_path=_resolve_path(project_root, config.get('snapshot_path', 'content_snapshot.json')),
        glossary_file_path=_resolve_path(project_root, config.get('glossary_file_path', 'glossary.json')),
        api_url=os.environ.get('TRANSLATOR_API_URL', api_config.get('api_url', DEFAULT_API_URL)),
        api_key=api_key or '',
        model_name=os.environ.get('TRANSLATOR_MODEL', api_config.get('model_name', DEFAULT_MODEL)),
        request_timeout=float(api_config.get('request_timeout', 90.0)),
        batch_size=int(batching.get('batch_size', DEFAULT_BATCH_SIZE)),
        max_batch_chars=int(batching.get('max_batch_chars', 24000)),
        concurrency=int(batching.get('concurrency', DEFAULT_CONCURRENCY)),
        retry_count=int(batching.get('retry_count', DEFAULT_RETRY_COUNT)),
        retry_base_delay=float(batching.get('retry_base_delay', 1.0)),
        rate_limit_per_minute=int(batching.get('rate_limit_per_minute', 60)),
        max_glossary_rules=int(batching.get('max_glossary_rules', 200)),
        max_glossary_tokens=int(batching.get('max_glossary_tokens', 2000)),
        dry_run=bool(config.get('dry_run', False)),
    )


def normalize_api_url(api_url: str) -> Optional[str]:
    """
    Normalize an endpoint to the provider's chat-completions URL.

    ``https://host`` and ``https://host/v1`` both become
    ``https://host/v1/chat/completions``; query and fragment are dropped.

    Returns:
        The normalized URL, or None when the input is not an absolute http(s) URL.
    """
    if not api_url or not api_url.strip():
        return None
    try:
        parts = urlsplit(api_url.strip())
    except ValueError:
        return None
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        return None

    path = parts.path.rstrip('/')
    if not path:
        path = COMPLETIONS_PATH
    elif path.lower().endswith('/chat/completions'):
        pass
    elif path.lower().endswith('/v1'):
        path = f"{path}/chat/completions"
    else:
        path = f"{path}{COMPLETIONS_PATH}"
    return urlunsplit((parts.scheme, parts.netloc, path, '', ''))


def api_base_url(normalized_api_url: str) -> str:
    """Strip the completions suffix so the OpenAI SDK can append it again."""
    suffix = '/chat/completions'
    if normalized_api_url.lower().endswith(suffix):
        return normalized_api_url[:-len(suffix)]
    return normalized_api_url


def validate_config(config: AppConfig) -> ConfigValidationResult:
    """
    Check endpoint, key, model and tuning ranges without touching the network.

    On success ``config.api_url`` is replaced by its normalized form.
    """
    if not config.api_url or not config.api_url.strip():
        return ConfigValidationResult(False, "Translator API URL is empty. Configure api.api_url.")

    normalized_url = normalize_api_url(config.api_url)
    if normalized_url is None:
        return ConfigValidationResult(
            False, "Translator API URL is invalid. Configure a valid http/https endpoint."
        )

    if not config.api_key or not config.api_key.strip():
        return ConfigValidationResult(
            False, "Translator API key is empty. Set TRANSLATOR_API_KEY or OPENAI_API_KEY."
        )

    if not config.model_name or not config.model_name.strip():
        return ConfigValidationResult(False, "Translator model is empty. Configure api.model_name.")

    ranges = [
        ("batch size", config.batch_size, MIN_BATCH_SIZE, MAX_BATCH_SIZE),
        ("concurrency", config.concurrency, MIN_CONCURRENCY, MAX_CONCURRENCY),
        ("retry count", config.retry_count, MIN_RETRY_COUNT, MAX_RETRY_COUNT),
    ]
    for name, value, minimum, maximum in ranges:
        if not minimum <= value <= maximum:
            return ConfigValidationResult(
                False,
                f"Translator {name} is invalid. Configure a value between {minimum} and {maximum}."
            )

    if config.max_batch_chars <= 0:
        return ConfigValidationResult(False, "Translator max batch chars must be positive.")

    config.api_url = normalized_url
    config.api_key = config.api_key.strip()
    config.model_name = config.model_name.strip()
    return ConfigValidationResult(True, "OK")
