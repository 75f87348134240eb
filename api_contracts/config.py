"""
Runtime configuration for the contract engine.

Values come from the environment (a local .env file is honored). The build
phase never reads configuration; only request handling and the Flask adapter
do, so a service can be assembled once and served under different settings.

Env vars:
  - API_CONTRACT_MODE: "warn" (default) or "strict" response validation
  - API_SPEC_JSON_PATH / API_SPEC_YAML_PATH: document endpoints for Flask
  - API_REQUEST_ID_HEADER: correlation header (default X-Request-ID)
  - API_MAX_BODY_BYTES: largest accepted request body (default 10 MiB)
"""

import os
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class SchemaMode(Enum):
    """Response contract enforcement mode."""
    WARN = "warn"      # Log violations, send the response anyway
    STRICT = "strict"  # Replace the response with a 500 envelope


def _get_default_mode() -> SchemaMode:
    """Get schema mode from environment."""
    mode = os.environ.get('API_CONTRACT_MODE', 'warn').lower()
    return SchemaMode.STRICT if mode == 'strict' else SchemaMode.WARN


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    CONTRACT_MODE = _get_default_mode()

    SPEC_JSON_PATH = os.getenv('API_SPEC_JSON_PATH', '/openapi.json')
    SPEC_YAML_PATH = os.getenv('API_SPEC_YAML_PATH', '/openapi.yaml')

    REQUEST_ID_HEADER = os.getenv('API_REQUEST_ID_HEADER', 'X-Request-ID')

    # Checked against Content-Length before any body extractor reads the payload
    MAX_BODY_BYTES = _get_int('API_MAX_BODY_BYTES', 10 * 1024 * 1024)
