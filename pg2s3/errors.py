# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pg2s3.

These helpers centralize wording for common configuration errors so that
the file loader and the environment loader present the same messages.
"""

from typing import Iterable


def explain_missing_values(keys: Iterable[str]) -> str:
    """
    Explain that required configuration values are missing.
    """

    return f"missing config values: {', '.join(keys)}"


def explain_extra_values(keys: Iterable[str]) -> str:
    """
    Explain that the configuration contains unknown values.
    """

    return f"extra config values: {', '.join(keys)}"


def explain_invalid_s3_url(value: str) -> str:
    """
    Explain that the S3 URL could not be used.
    """

    return (
        f"Invalid s3_url value: {value!r}. "
        "Expected s3://ACCESS_KEY:SECRET_KEY@HOST[:PORT]/BUCKET."
    )


def explain_invalid_retention(value: object) -> str:
    return (
        f"Invalid backup retention value: {value!r}. "
        "It must be a non-negative integer number of backups."
    )


def explain_invalid_schedule(value: str, reason: str) -> str:
    return (
        f"Invalid backup schedule: {value!r} ({reason}). "
        "Expected a standard 5-field cron expression such as '0 9 * * *'."
    )


def explain_invalid_prefix(prefix: str) -> str:
    return f"Invalid backup prefix: {prefix!r}. A prefix must not contain '_' or '.'."


def explain_missing_config_file(path: str) -> str:
    """
    Explain that the configuration file does not exist.
    """

    return (
        f"Config file not found: {path}. "
        "Pass --conf PATH or use --env to read PG2S3_* environment variables."
    )
