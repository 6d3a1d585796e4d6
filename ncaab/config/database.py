"""
Database Configuration for the Team Posterior Store
===================================================
Credentials are read from environment variables with sensible fallbacks.

Environment Variables:
    DB_USER: Default database username (fallback: 'ncaab_user')
    DB_PASSWORD: Default database password (no hardcoded default)
    NCAAB_TEAM_DB_HOST / _PORT / _NAME / _USER / _PASSWORD: Per-database overrides
    NCAAB_DB_CONNECT_TIMEOUT: Connection timeout in seconds

Usage:
    from ncaab.config import get_team_db_config

    conn = psycopg2.connect(**get_team_db_config())
"""

import os
from typing import Any, Dict


def _default_user() -> str:
    return os.getenv("NCAAB_DB_USER", os.getenv("DB_USER", "ncaab_user"))


def _default_password():
    return os.getenv("NCAAB_DB_PASSWORD", os.getenv("DB_PASSWORD"))


def get_db_config(
    env_prefix: str, default_port: int, default_database: str, default_host: str = "localhost"
) -> Dict[str, Any]:
    """
    Build database config dict from environment variables.

    Args:
        env_prefix: Prefix for env vars (e.g., 'NCAAB_TEAM' -> NCAAB_TEAM_DB_HOST)
        default_port: Default port if not in env
        default_database: Default database name if not in env
        default_host: Default host if not in env

    Returns:
        Dict with psycopg2 connection parameters
    """
    return {
        "host": os.getenv(f"{env_prefix}_DB_HOST", default_host),
        "port": int(os.getenv(f"{env_prefix}_DB_PORT", default_port)),
        "database": os.getenv(f"{env_prefix}_DB_NAME", default_database),
        "user": os.getenv(f"{env_prefix}_DB_USER", _default_user()),
        "password": os.getenv(f"{env_prefix}_DB_PASSWORD", _default_password()),
        "connect_timeout": int(os.getenv("NCAAB_DB_CONNECT_TIMEOUT", 10)),
    }


def get_team_db_config() -> Dict[str, Any]:
    """Get ncaab_team database config (port 5548)."""
    return get_db_config("NCAAB_TEAM", 5548, "ncaab_team")
