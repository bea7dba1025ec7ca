# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration.

Builds the same Pg2S3Config as the TOML loader from PG2S3_* environment
variables, for container deployments without a config file.
"""

from __future__ import annotations

import os
from typing import List, Mapping

from pg2s3.config import (
    DEFAULT_PREFIX,
    BackupConfig,
    EncryptionConfig,
    Pg2S3Config,
    RestoreConfig,
)
from pg2s3.errors import explain_invalid_retention, explain_missing_values
from pg2s3.exceptions import ConfigurationError


def _parse_retention(value: str | None) -> int:
    if not value:
        return 0
    try:
        retention = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention(value)) from exc
    if retention < 0:
        raise ConfigurationError(explain_invalid_retention(value))
    return retention


def _parse_list(value: str | None) -> List[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def create_config_from_env(environ: Mapping[str, str] | None = None) -> Pg2S3Config:
    """
    Create a Pg2S3Config from environment variables.

    Required:
        - PG2S3_PG_URL: PostgreSQL connection URL
        - PG2S3_S3_URL: s3://ACCESS_KEY:SECRET_KEY@HOST[:PORT]/BUCKET

    Optional:
        - PG2S3_BACKUP_PREFIX: Backup name prefix (default: pg2s3)
        - PG2S3_BACKUP_RETENTION: Non-negative integer (default: 0)
        - PG2S3_BACKUP_SCHEDULE: Cron expression (UTC)
        - PG2S3_RESTORE_SCHEMAS: Comma-separated schema names
        - PG2S3_ENCRYPTION_PUBLIC_KEYS: Comma-separated age public keys
    """

    env = os.environ if environ is None else environ

    pg_url = env.get("PG2S3_PG_URL")
    s3_url = env.get("PG2S3_S3_URL")
    missing = [
        name
        for name, value in (("PG2S3_PG_URL", pg_url), ("PG2S3_S3_URL", s3_url))
        if not value
    ]
    if missing:
        raise ConfigurationError(explain_missing_values(missing))

    return Pg2S3Config(
        pg_url=pg_url,
        s3_url=s3_url,
        backup=BackupConfig(
            prefix=env.get("PG2S3_BACKUP_PREFIX") or DEFAULT_PREFIX,
            retention=_parse_retention(env.get("PG2S3_BACKUP_RETENTION")),
            schedule=env.get("PG2S3_BACKUP_SCHEDULE") or None,
        ),
        restore=RestoreConfig(schemas=_parse_list(env.get("PG2S3_RESTORE_SCHEMAS"))),
        encryption=EncryptionConfig(
            public_keys=_parse_list(env.get("PG2S3_ENCRYPTION_PUBLIC_KEYS"))
        ),
    )
