"""
Configuration defaults, loading and validation.

sitemap_stream is used as a library, so configuration is a plain dict merged
over DEFAULT_CONFIG. It can also be loaded from a JSON file:

    {
        "tls_handshake_timeout": 10,
        "proxy_request_timeout": 20,
        "index_proxy_request_timeout": 60,
        "direct_request_timeout": 20,
        "verify_tls": true,
        "priority_policy": "reject",
        "changefreq_policy": "ignore",
        "log_payload": false
    }
"""

import json
import logging
import os
from typing import Dict, Optional, Any

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = "sitemap_stream.json"

# 1.1 Timeouts (seconds)
# Proxied sitemap index requests get a longer budget than page sitemaps:
# index files are fetched once per site and often sit behind slow generators.
TLS_HANDSHAKE_TIMEOUT = 10
PROXY_REQUEST_TIMEOUT = 20
INDEX_PROXY_REQUEST_TIMEOUT = 60
DIRECT_REQUEST_TIMEOUT = 20

# 1.2 Validation policies
PRIORITY_REJECT = "reject"
PRIORITY_CLAMP = "clamp"
PRIORITY_POLICIES = (PRIORITY_REJECT, PRIORITY_CLAMP)

CHANGEFREQ_IGNORE = "ignore"
CHANGEFREQ_REJECT = "reject"
CHANGEFREQ_POLICIES = (CHANGEFREQ_IGNORE, CHANGEFREQ_REJECT)

DEFAULT_CONFIG: Dict[str, Any] = {
    "tls_handshake_timeout": TLS_HANDSHAKE_TIMEOUT,
    "proxy_request_timeout": PROXY_REQUEST_TIMEOUT,
    "index_proxy_request_timeout": INDEX_PROXY_REQUEST_TIMEOUT,
    "direct_request_timeout": DIRECT_REQUEST_TIMEOUT,
    "verify_tls": True,
    "priority_policy": PRIORITY_REJECT,
    "changefreq_policy": CHANGEFREQ_IGNORE,
    "log_payload": False,
}

TIMEOUT_KEYS = (
    "tls_handshake_timeout",
    "proxy_request_timeout",
    "index_proxy_request_timeout",
    "direct_request_timeout",
)
BOOL_KEYS = ("verify_tls", "log_payload")


def _check_value(key: str, value: Any) -> Optional[str]:
    """Return a problem description for a single config value, or None if it is valid."""
    if key in TIMEOUT_KEYS:
        # bool is an int subclass; a timeout of True makes no sense
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            return f"'{key}' must be a positive number of seconds, got {value!r}"
    elif key in BOOL_KEYS:
        if not isinstance(value, bool):
            return f"'{key}' must be true or false, got {value!r}"
    elif key == "priority_policy":
        if value not in PRIORITY_POLICIES:
            return f"'priority_policy' must be one of {PRIORITY_POLICIES}, got {value!r}"
    elif key == "changefreq_policy":
        if value not in CHANGEFREQ_POLICIES:
            return f"'changefreq_policy' must be one of {CHANGEFREQ_POLICIES}, got {value!r}"
    return None


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    valid = True
    for key, value in config.items():
        if key not in DEFAULT_CONFIG:
            logger.warning(f"Unknown configuration key '{key}' will be ignored.")
            continue
        problem = _check_value(key, value)
        if problem:
            logger.error(problem)
            valid = False

    if config.get("verify_tls") is False:
        logger.warning("'verify_tls' is false: sitemap servers' TLS certificates will not be verified.")

    if valid:
        logger.info("Configuration validation successful.")
    return valid


def resolve_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge caller overrides over DEFAULT_CONFIG.

    Invalid values are logged and replaced with their default; unknown keys are dropped.
    """
    overrides = overrides or {}
    resolved = dict(DEFAULT_CONFIG)
    for key, value in overrides.items():
        if key not in DEFAULT_CONFIG:
            logger.warning(f"Ignoring unknown configuration key '{key}'.")
            continue
        problem = _check_value(key, value)
        if problem:
            logger.warning(f"{problem}. Using default: {DEFAULT_CONFIG[key]!r}")
            continue
        resolved[key] = value
    return resolved


def load_config(path: str = CONFIG_FILE_PATH) -> Optional[Dict[str, Any]]:
    """Loads configuration from a JSON file and merges it over the defaults."""
    if not os.path.exists(path):
        logger.error(f"Configuration file not found: {path}")
        return None
    try:
        with open(path, 'r') as f:
            config_data = json.load(f)
        logger.info(f"Successfully loaded configuration from {path}")
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON from {path}: {e}")
        return None
    except OSError as e:
        logger.error(f"Could not read configuration file {path}: {e}")
        return None

    if not validate_config(config_data):
        return None
    return resolve_config(config_data)
