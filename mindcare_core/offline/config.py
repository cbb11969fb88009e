# =============================================================================
# mindcare_core/offline/config.py
# Storage Configuration from Streamlit Secrets / Environment
# =============================================================================
"""
Configuration for the sync core.

Expected secrets.toml format:
    [google]
    client_id = "xxxx.apps.googleusercontent.com"
    client_secret = "xxxx"

    [storage]
    db_path = "local_data/mindcare.db"
    folder_name = "MindCare"
    request_timeout = 30
    token_lifetime_seconds = 3600

Without secrets, the environment (and a .env file) is used instead.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional
import logging

import streamlit as st
from dotenv import load_dotenv

from mindcare_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_CLIENT_ID = "GOOGLE_CLIENT_ID"
ENV_CLIENT_SECRET = "GOOGLE_CLIENT_SECRET"
ENV_DB_PATH = "MINDCARE_DB_PATH"
ENV_FOLDER_NAME = "MINDCARE_DRIVE_FOLDER"
ENV_REQUEST_TIMEOUT = "MINDCARE_REQUEST_TIMEOUT"
ENV_TOKEN_LIFETIME = "MINDCARE_TOKEN_LIFETIME"


@dataclass
class StorageConfig:
    """Settings needed to wire the storage graph."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    db_path: Optional[str] = None            # None -> LocalDatabase default
    folder_name: str = "MindCare"
    token_lifetime_seconds: int = 3600
    request_timeout: Optional[float] = None  # None -> wait indefinitely


def _read_secrets() -> Mapping[str, Any]:
    try:
        if hasattr(st, "secrets"):
            return {
                section: dict(st.secrets[section])
                for section in ("google", "storage")
                if section in st.secrets
            }
    except Exception as e:
        # No secrets.toml is a normal local setup
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def _parse_number(value: Any, key: str, cast) -> Any:
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for '{key}': {value!r}",
            config_key=key,
            expected_type=cast.__name__,
        )


def load_storage_config(secrets: Optional[Mapping[str, Any]] = None) -> StorageConfig:
    """
    Build a StorageConfig from secrets, falling back to environment variables.

    Args:
        secrets: Mapping shaped like st.secrets; read from Streamlit when None

    Raises:
        ConfigurationError: a numeric setting cannot be parsed
    """
    load_dotenv()
    if secrets is None:
        secrets = _read_secrets()

    google = dict(secrets.get("google", {}) or {})
    storage = dict(secrets.get("storage", {}) or {})

    timeout = _parse_number(
        storage.get("request_timeout", os.getenv(ENV_REQUEST_TIMEOUT)),
        "request_timeout",
        float,
    )
    lifetime = _parse_number(
        storage.get("token_lifetime_seconds", os.getenv(ENV_TOKEN_LIFETIME)),
        "token_lifetime_seconds",
        int,
    )
    if lifetime is not None and lifetime <= 0:
        raise ConfigurationError(
            f"token_lifetime_seconds must be positive, got {lifetime}",
            config_key="token_lifetime_seconds",
            expected_type="int",
        )

    config = StorageConfig(
        client_id=google.get("client_id") or os.getenv(ENV_CLIENT_ID),
        client_secret=google.get("client_secret") or os.getenv(ENV_CLIENT_SECRET),
        db_path=storage.get("db_path") or os.getenv(ENV_DB_PATH),
        folder_name=storage.get("folder_name") or os.getenv(ENV_FOLDER_NAME) or "MindCare",
        token_lifetime_seconds=lifetime or 3600,
        request_timeout=timeout,
    )

    if not config.client_id:
        logger.warning("Google client id not configured; silent token renewal is disabled")
    return config
