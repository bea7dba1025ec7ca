# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Catalog policy - ordering and retention selection for backup names.

The catalog is always derived from a fresh listing. Ordering is
fail-closed: a single name that does not parse aborts the whole
operation, since a partial ordering could select the wrong backups for
deletion.
"""

from enum import Enum
from typing import Iterable, List

from pg2s3.exceptions import EmptyCatalog
from pg2s3.naming import parse_backup_timestamp


class PrunePolicy(str, Enum):
    """How a retention count of zero (or less) is interpreted."""

    SCHEDULED = "scheduled"  # Keep everything, automatic jobs never wipe a bucket
    MANUAL = "manual"  # Delete everything, once the caller has confirmed


def order_backups(names: Iterable[str]) -> List[str]:
    """
    Order backup names newest first.

    The sort is stable: names with the same timestamp keep their
    listing order.

    Raises:
        InvalidName: If any name does not parse
    """
    names = list(names)

    # Pre-check every name before sorting anything
    timestamps = {name: parse_backup_timestamp(name) for name in names}

    return sorted(names, key=lambda name: timestamps[name], reverse=True)


def latest_backup(names: Iterable[str]) -> str:
    """
    Return the most recent backup name.

    Raises:
        EmptyCatalog: If there are no backups
        InvalidName: If any name does not parse
    """
    ordered = order_backups(names)
    if not ordered:
        raise EmptyCatalog("no backups present to restore")
    return ordered[0]


def requires_wipe_confirmation(retention: int, policy: PrunePolicy) -> bool:
    """True when pruning would delete every backup and must be confirmed."""
    return policy == PrunePolicy.MANUAL and retention <= 0


def select_expired(
    ordered: List[str],
    retention: int,
    policy: PrunePolicy = PrunePolicy.SCHEDULED,
    wipe_confirmed: bool = False,
) -> List[str]:
    """
    Select the backups beyond the retention count.

    Args:
        ordered: Names ordered newest first (see order_backups)
        retention: Number of most recent backups to keep
        policy: Interpretation of retention <= 0
        wipe_confirmed: Caller has confirmed deleting every backup
            (only consulted for PrunePolicy.MANUAL with retention <= 0)

    Returns:
        Expired names, oldest last
    """
    if retention <= 0:
        if requires_wipe_confirmation(retention, policy) and wipe_confirmed:
            return list(ordered)
        return []

    if len(ordered) <= retention:
        return []

    return list(ordered[retention:])
