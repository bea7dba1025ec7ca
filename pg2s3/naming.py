# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup naming scheme.

    <prefix>_<timestamp>.<ext>[.<ext>]*

The prefix and the RFC 3339 timestamp are separated by "_", the timestamp
and the extensions by ".". Plaintext backups end in ".backup", encrypted
backups in ".backup.age". This format is the only persisted artifact and
must stay readable by older and newer versions.
"""

import re
from datetime import datetime

from pg2s3.errors import explain_invalid_prefix
from pg2s3.exceptions import InvalidName, InvalidPrefix

BACKUP_EXTENSION = "backup"
ENCRYPTED_EXTENSION = "age"

NAME_DELIMITERS = re.compile(r"[_.]")

# Second precision only: a fraction would be split off at the "."
RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(Z|[+-]\d{2}:\d{2})$"
)


def format_rfc3339(moment: datetime) -> str:
    """Second-precision RFC 3339, with "Z" for a zero offset."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def generate_backup_name(prefix: str, now: datetime | None = None) -> str:
    """
    Generate a backup name for the given prefix.

    Args:
        prefix: Backup series prefix (must not contain "_" or ".")
        now: Backup time, defaults to the current local time

    Returns:
        Name such as "nightly_2021-09-23T14:41:17-05:00.backup"

    Raises:
        InvalidPrefix: If the prefix contains a name delimiter
    """
    if NAME_DELIMITERS.search(prefix):
        raise InvalidPrefix(explain_invalid_prefix(prefix), details={"prefix": prefix})

    if now is None:
        now = datetime.now().astimezone()

    return f"{prefix}_{format_rfc3339(now)}.{BACKUP_EXTENSION}"


def parse_backup_timestamp(name: str) -> datetime:
    """
    Parse the timestamp of a backup name.

    Splits on "_" and "." and parses the second field. Any number of
    trailing extension fields is accepted.

    Raises:
        InvalidName: If the name has fewer than three fields or the
            second field is not an RFC 3339 timestamp
    """
    fields = NAME_DELIMITERS.split(name)
    if len(fields) < 3:
        raise InvalidName(f"invalid backup name: {name}", details={"name": name})

    timestamp = fields[1]
    if not RFC3339.match(timestamp):
        raise InvalidName(f"invalid backup name: {name}", details={"name": name})

    try:
        return datetime.fromisoformat(timestamp)
    except ValueError as e:
        raise InvalidName(f"invalid backup name: {name}", details={"name": name}) from e


def is_encrypted(name: str) -> bool:
    return name.endswith(f".{ENCRYPTED_EXTENSION}")


def with_encrypted_suffix(name: str) -> str:
    return f"{name}.{ENCRYPTED_EXTENSION}"


def strip_encrypted_suffix(name: str) -> str:
    if is_encrypted(name):
        return name[: -len(ENCRYPTED_EXTENSION) - 1]
    return name
