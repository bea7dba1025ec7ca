# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 - PostgreSQL backups to S3-compatible object storage.

Creates pg_dump backups, optionally encrypts them with age, uploads them
under time-ordered names, restores the most recent one and prunes old
ones by retention count.
"""

__version__ = "0.1.0"

# Configuration
from pg2s3.config import Pg2S3Config
from pg2s3.loader import read_config, read_config_file
from pg2s3.env import create_config_from_env

# Naming and catalog policy
from pg2s3.naming import generate_backup_name, parse_backup_timestamp
from pg2s3.catalog import PrunePolicy, order_backups, select_expired

# Core orchestration
from pg2s3.core import (
    BackupOrchestrator,
    BackupResult,
    PruneResult,
    RestoreResult,
    create_orchestrator,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Pg2S3Config",
    "read_config",
    "read_config_file",
    "create_config_from_env",
    # Naming and catalog policy
    "generate_backup_name",
    "parse_backup_timestamp",
    "PrunePolicy",
    "order_backups",
    "select_expired",
    # Core orchestration
    "BackupOrchestrator",
    "BackupResult",
    "RestoreResult",
    "PruneResult",
    "create_orchestrator",
]
