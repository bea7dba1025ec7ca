# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 Core - Backup orchestrator.

This module composes the naming scheme, catalog policy and encryption
pipeline with a dump producer and an object store to implement the three
backup lifecycle operations:

- backup:  name -> dump -> [encrypt] -> upload
- restore: list -> latest -> download -> [decrypt] -> confirm -> restore
- prune:   list -> order -> [confirm full wipe] -> select expired -> delete

There are no retries. The first failure aborts the operation and is
raised to the caller. Each operation holds at most one local temporary
artifact, removed on every exit path.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Callable, List

import structlog
from ulid import ULID

from pg2s3.catalog import (
    PrunePolicy,
    order_backups,
    requires_wipe_confirmation,
    select_expired,
)
from pg2s3.config import Pg2S3Config
from pg2s3.encryption import (
    decrypt_stream,
    encrypt_stream,
    parse_identity,
    parse_recipients,
)
from pg2s3.exceptions import EmptyCatalog, InvalidIdentity
from pg2s3.naming import (
    generate_backup_name,
    is_encrypted,
    strip_encrypted_suffix,
    with_encrypted_suffix,
)
from pg2s3.postgres import DumpDatabase, PostgresDatabase
from pg2s3.storage import ObjectStore, S3ObjectStore
from pg2s3.streams import pipe_through, spooled_artifact

logger = structlog.get_logger()

# confirm(prompt) -> True to proceed
ConfirmFunc = Callable[[str], bool]

# read_private_key(prompt) -> age private key
PrivateKeyFunc = Callable[[str], str]


@dataclass
class BackupResult:
    """Result of a backup operation."""

    operation_id: str  # ULID
    name: str
    encrypted: bool
    dump_size: int
    stored_size: int
    duration_seconds: float


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    operation_id: str  # ULID
    name: str
    restored: bool
    decrypted: bool
    duration_seconds: float


@dataclass
class PruneResult:
    """Result of a prune operation."""

    operation_id: str  # ULID
    policy: str
    retention: int
    total_backups: int
    deleted_keys: List[str] = field(default_factory=list)
    kept_keys: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def _elapsed(start_time: datetime) -> float:
    return (datetime.now(UTC) - start_time).total_seconds()


class BackupOrchestrator:
    """
    Runs backup, restore and prune against one bucket and backup prefix.

    The orchestrator holds no lock: callers must not run two operations
    against the same bucket and prefix at the same time.

    Args:
        config: pg2s3 configuration
        database: Dump producer and consumer
        store: Object store for the backup bucket
        confirm: Asked before a restore and before deleting every backup
        read_private_key: Asked for the age private key of an encrypted backup
    """

    def __init__(
        self,
        config: Pg2S3Config,
        *,
        database: DumpDatabase,
        store: ObjectStore,
        confirm: ConfirmFunc,
        read_private_key: PrivateKeyFunc | None = None,
    ):
        self.config = config
        self.database = database
        self.store = store
        self.confirm = confirm
        self.read_private_key = read_private_key

    @property
    def catalog_prefix(self) -> str:
        """Key prefix shared by every backup of the configured series."""
        return f"{self.config.backup.prefix}_"

    async def list_backups(self) -> List[str]:
        """
        List the backup catalog, newest first.

        Raises:
            InvalidName: If any object in the catalog is not a backup name
            ObjectStoreFailed: If the listing fails
        """
        names = await self.store.list_names(self.catalog_prefix)
        return order_backups(names)

    async def backup(self, now: datetime | None = None) -> BackupResult:
        """
        Create a new backup and upload it.

        The name gains the encryption suffix only once encryption has
        succeeded; nothing is uploaded if any earlier stage fails.
        """
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        log = logger.bind(operation_id=operation_id)

        name = generate_backup_name(self.config.backup.prefix, now)
        log.info("backup_started", name=name)

        public_keys = self.config.encryption.public_keys
        encrypted = self.config.encryption_enabled
        try:
            if encrypted:
                parse_recipients(public_keys)

            async with spooled_artifact() as artifact:
                if encrypted:
                    # pg_dump -> age -> artifact
                    dump_size, _ = await pipe_through(
                        self.database.dump,
                        lambda plaintext: encrypt_stream(plaintext, artifact, public_keys),
                    )
                    name = with_encrypted_suffix(name)
                else:
                    dump_size = await self.database.dump(artifact)

                await artifact.seek(0)
                stored_size = await self.store.upload(name, artifact)

        except Exception as e:
            log.error("backup_failed", name=name, error=str(e))
            raise

        result = BackupResult(
            operation_id=operation_id,
            name=name,
            encrypted=encrypted,
            dump_size=dump_size,
            stored_size=stored_size,
            duration_seconds=_elapsed(start_time),
        )

        log.info(
            "backup_created",
            name=name,
            encrypted=encrypted,
            size=stored_size,
            duration=result.duration_seconds,
        )
        return result

    async def restore(self) -> RestoreResult:
        """
        Restore the most recent backup.

        Declining the confirmation is not an error: the result then has
        restored=False and the database is left untouched.

        Raises:
            EmptyCatalog: If there are no backups (nothing is downloaded)
        """
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        log = logger.bind(operation_id=operation_id)

        names = await self.store.list_names(self.catalog_prefix)
        if not names:
            raise EmptyCatalog(
                "no backups present to restore",
                details={"prefix": self.config.backup.prefix},
            )

        latest = order_backups(names)[0]
        log.info("restore_started", name=latest)

        decrypted = False
        try:
            async with spooled_artifact() as artifact:
                if is_encrypted(latest):
                    private_key = self._private_key_for(latest)
                    parse_identity(private_key)
                    # S3 -> age -> artifact, so a wrong key fails before confirmation
                    await pipe_through(
                        lambda ciphertext: self.store.download(latest, ciphertext),
                        lambda ciphertext: decrypt_stream(ciphertext, artifact, private_key),
                    )
                    decrypted = True
                    log.info("backup_decrypted", name=strip_encrypted_suffix(latest))
                else:
                    await self.store.download(latest, artifact)

                await artifact.seek(0)

                if not self.confirm(f"restore {latest}"):
                    log.info("restore_declined", name=latest)
                    return RestoreResult(
                        operation_id=operation_id,
                        name=latest,
                        restored=False,
                        decrypted=decrypted,
                        duration_seconds=_elapsed(start_time),
                    )

                await self.database.restore(artifact)

        except Exception as e:
            log.error("restore_failed", name=latest, error=str(e))
            raise

        result = RestoreResult(
            operation_id=operation_id,
            name=latest,
            restored=True,
            decrypted=decrypted,
            duration_seconds=_elapsed(start_time),
        )
        log.info("restore_completed", name=latest, duration=result.duration_seconds)
        return result

    async def prune(self, policy: PrunePolicy = PrunePolicy.MANUAL) -> PruneResult:
        """
        Delete the oldest backups beyond the retention count.

        With PrunePolicy.SCHEDULED a retention of zero keeps everything.
        With PrunePolicy.MANUAL it deletes everything, after confirmation.

        Deletion stops at the first failure; backups deleted before it
        stay deleted.

        Raises:
            ObjectStoreFailed: Naming the backup that could not be deleted
        """
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        log = logger.bind(operation_id=operation_id, policy=policy.value)

        retention = self.config.backup.retention
        ordered = await self.list_backups()

        wipe_confirmed = False
        if ordered and requires_wipe_confirmation(retention, policy):
            wipe_confirmed = self.confirm(f"delete all {len(ordered)} backups")
            if not wipe_confirmed:
                log.info("prune_declined", total=len(ordered))

        expired = select_expired(ordered, retention, policy, wipe_confirmed)
        expired_set = set(expired)
        deleted: List[str] = []

        try:
            for name in expired:
                await self.store.delete(name)
                deleted.append(name)
                log.info("backup_deleted", name=name)
        except Exception as e:
            log.error("prune_failed", deleted=len(deleted), error=str(e))
            raise

        result = PruneResult(
            operation_id=operation_id,
            policy=policy.value,
            retention=retention,
            total_backups=len(ordered),
            deleted_keys=deleted,
            kept_keys=[name for name in ordered if name not in expired_set],
            duration_seconds=_elapsed(start_time),
        )
        log.info(
            "prune_completed",
            deleted=len(deleted),
            kept=len(result.kept_keys),
            duration=result.duration_seconds,
        )
        return result

    def _private_key_for(self, name: str) -> str:
        if self.read_private_key is None:
            raise InvalidIdentity(
                f"backup {name} is encrypted but no private key is available",
                details={"name": name},
            )
        return self.read_private_key("enter private key: ")

    async def verify_connections(self) -> None:
        """
        Check the database, the bucket and the configured public keys.

        Raises:
            ExternalCommandFailed: If the database is unreachable
            ObjectStoreFailed: If the bucket is unreachable
            InvalidRecipient: If a public key does not parse
        """
        parse_recipients(self.config.encryption.public_keys)

        ping = getattr(self.database, "ping", None)
        if ping is not None:
            await ping()

        check = getattr(self.store, "check", None)
        if check is not None:
            await check()

        logger.info("connections_verified", **self.config.redacted())


def create_orchestrator(
    config: Pg2S3Config,
    confirm: ConfirmFunc | None = None,
    read_private_key: PrivateKeyFunc | None = None,
) -> BackupOrchestrator:
    """
    Wire an orchestrator to PostgreSQL, S3 and the terminal.

    Args:
        config: pg2s3 configuration
        confirm: Confirmation prompt (terminal prompt by default)
        read_private_key: Private key prompt (hidden terminal input by default)

    Returns:
        BackupOrchestrator
    """
    from pg2s3.prompts import confirm_prompt, private_key_prompt

    return BackupOrchestrator(
        config,
        database=PostgresDatabase(config.pg_url, config.restore.schemas),
        store=S3ObjectStore(config.s3),
        confirm=confirm or confirm_prompt,
        read_private_key=read_private_key or private_key_prompt,
    )
