# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation. The config record
is built once at startup and passed explicitly to every component, nothing
below the loaders reads the process environment.
"""

from dataclasses import dataclass, field, replace
from typing import List
from urllib.parse import unquote, urlparse
import re

from pg2s3.errors import (
    explain_invalid_prefix,
    explain_invalid_retention,
    explain_invalid_s3_url,
    explain_invalid_schedule,
)
from pg2s3.exceptions import ConfigurationError

DEFAULT_PREFIX = "pg2s3"
DEFAULT_REGION = "us-east-1"

# Endpoints that are served without TLS (local MinIO during development)
INSECURE_HOSTS = ("localhost", "127.0.0.1")


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_cron(expression: str) -> str | None:
    """Return a reason string when the cron expression is unusable."""
    from apscheduler.triggers.cron import CronTrigger

    try:
        CronTrigger.from_crontab(expression, timezone="UTC")
    except ValueError as e:
        return str(e)
    return None


@dataclass(frozen=True)
class S3Config:
    """Connection details for one S3 bucket."""

    endpoint: str
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    region: str = DEFAULT_REGION

    @property
    def secure(self) -> bool:
        """TLS is disabled for local development endpoints."""
        host = self.endpoint.split(":")[0]
        return host not in INSECURE_HOSTS

    @property
    def endpoint_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}"


def parse_s3_url(s3_url: str) -> S3Config:
    """
    Parse an S3 URL into its connection details.

    Format: s3://ACCESS_KEY:SECRET_KEY@HOST[:PORT]/BUCKET

    Args:
        s3_url: S3 URL

    Returns:
        S3Config
    """
    try:
        parsed = urlparse(s3_url)
        # Accessing .port validates it
        parsed.port
    except ValueError as e:
        raise ConfigurationError(explain_invalid_s3_url(s3_url)) from e

    if not parsed.netloc:
        raise ConfigurationError(explain_invalid_s3_url(s3_url))

    endpoint = parsed.netloc.rpartition("@")[2]
    return S3Config(
        endpoint=endpoint,
        access_key_id=unquote(parsed.username or ""),
        secret_access_key=unquote(parsed.password or ""),
        bucket_name=parsed.path.lstrip("/"),
    )


@dataclass(frozen=True)
class BackupConfig:
    """Backup naming, retention and schedule."""

    # Name prefix of the backup series
    prefix: str = DEFAULT_PREFIX

    # Number of most recent backups kept by pruning (0 = see PrunePolicy)
    retention: int = 0

    # Cron expression (UTC) for the scheduler, None disables scheduling
    schedule: str | None = None


@dataclass(frozen=True)
class RestoreConfig:
    """Restore options."""

    # Schemas passed to pg_restore (-n); empty restores everything
    schemas: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class EncryptionConfig:
    """Encryption options."""

    # age public keys; empty disables encryption
    public_keys: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Pg2S3Config:
    """
    Immutable configuration for pg2s3.

    Built once by the loader and handed to the orchestrator, scheduler
    and CLI.
    """

    # Required: PostgreSQL connection URL
    pg_url: str

    # Required: s3://ACCESS_KEY:SECRET_KEY@HOST[:PORT]/BUCKET
    s3_url: str

    backup: BackupConfig = field(default_factory=BackupConfig)
    restore: RestoreConfig = field(default_factory=RestoreConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.pg_url:
            errors.append("pg_url must not be empty")

        try:
            s3 = parse_s3_url(self.s3_url)
        except ConfigurationError as e:
            errors.append(e.message)
        else:
            if not _validate_bucket_name(s3.bucket_name):
                errors.append(f"Invalid bucket name: {s3.bucket_name!r}")

        prefix = self.backup.prefix
        if not prefix or "_" in prefix or "." in prefix:
            errors.append(explain_invalid_prefix(prefix))

        retention = self.backup.retention
        if isinstance(retention, bool) or not isinstance(retention, int) or retention < 0:
            errors.append(explain_invalid_retention(retention))

        if self.backup.schedule:
            reason = _validate_cron(self.backup.schedule)
            if reason:
                errors.append(explain_invalid_schedule(self.backup.schedule, reason))

        # Raise all errors at once
        if errors:
            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def s3(self) -> S3Config:
        return parse_s3_url(self.s3_url)

    @property
    def encryption_enabled(self) -> bool:
        return len(self.encryption.public_keys) > 0

    def with_updates(self, **kwargs) -> "Pg2S3Config":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        Nested sections are replaced whole, e.g.
        ``config.with_updates(backup=BackupConfig(retention=3))``.
        """
        return replace(self, **kwargs)

    def redacted(self) -> dict:
        """Config summary without credentials, for logging."""
        s3 = self.s3
        return {
            "s3_endpoint": s3.endpoint,
            "bucket": s3.bucket_name,
            "prefix": self.backup.prefix,
            "retention": self.backup.retention,
            "schedule": self.backup.schedule,
            "restore_schemas": list(self.restore.schemas),
            "recipients": len(self.encryption.public_keys),
        }
