# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 Encryption - age encryption pipeline for backup streams.

Backups are encrypted to one or more X25519 recipients (age public keys);
any matching identity (age private key) can decrypt them. The age format
itself is provided by pyrage; this module only moves bytes between
streams and maps failures onto pg2s3 exceptions.

age runs in a worker thread and streams through the async readers and
writers, so neither side is ever held in memory whole. This module never
touches S3 or the filesystem.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence, Tuple

import pyrage
import structlog
from pyrage import x25519

from pg2s3.exceptions import (
    DecryptionFailed,
    EncryptionFailed,
    InvalidIdentity,
    InvalidRecipient,
)
from pg2s3.streams import AsyncReader, AsyncWriter, BlockingReader, BlockingWriter

logger = structlog.get_logger()

# Thread pool for CPU-bound age operations
_executor = ThreadPoolExecutor(max_workers=2)


def parse_recipients(public_keys: Sequence[str]) -> List[x25519.Recipient]:
    """
    Parse age public keys.

    Raises:
        InvalidRecipient: If any key is not a valid X25519 recipient
    """
    recipients = []
    for index, public_key in enumerate(public_keys):
        try:
            recipients.append(x25519.Recipient.from_str(public_key.strip()))
        except Exception as e:
            # Never echo key material, the index is enough to find it
            raise InvalidRecipient(
                f"invalid public key at position {index}: {e}",
                details={"index": index},
            ) from e
    return recipients


def parse_identity(private_key: str) -> x25519.Identity:
    """
    Parse an age private key.

    Raises:
        InvalidIdentity: If the key is not a valid X25519 identity
    """
    try:
        return x25519.Identity.from_str(private_key.strip())
    except Exception as e:
        raise InvalidIdentity(f"invalid private key: {e}") from e


def generate_identity() -> Tuple[str, str]:
    """
    Generate a new age key pair.

    Returns:
        Tuple of (private_key, public_key)
    """
    identity = x25519.Identity.generate()
    return (str(identity), str(identity.to_public()))


async def encrypt_stream(
    source: AsyncReader,
    sink: AsyncWriter,
    public_keys: Sequence[str],
) -> int:
    """
    Encrypt source to every recipient and stream the ciphertext to sink.

    Recipients are parsed before anything is read or written. On failure
    the sink may hold a partial ciphertext, which the caller discards.

    Args:
        source: Plaintext stream
        sink: Destination for the ciphertext
        public_keys: age public keys (at least one)

    Returns:
        Number of ciphertext bytes written

    Raises:
        InvalidRecipient: If a public key does not parse or none is given
        EncryptionFailed: If age fails to produce the ciphertext
    """
    recipients = parse_recipients(public_keys)
    if not recipients:
        raise InvalidRecipient("at least one public key is required to encrypt")

    loop = asyncio.get_running_loop()
    reader = BlockingReader(source, loop)
    writer = BlockingWriter(sink, loop)
    try:
        await loop.run_in_executor(
            _executor, pyrage.encrypt_io, reader, writer, recipients
        )
    except pyrage.EncryptError as e:
        raise EncryptionFailed(f"unable to encrypt backup: {e}") from e

    logger.debug(
        "backup_encrypted",
        recipients=len(recipients),
        ciphertext_size=writer.written,
    )
    return writer.written


async def decrypt_stream(
    source: AsyncReader,
    sink: AsyncWriter,
    private_key: str,
) -> int:
    """
    Decrypt source with the given identity and stream the plaintext to sink.

    Args:
        source: age ciphertext stream
        sink: Destination for the plaintext
        private_key: age private key

    Returns:
        Number of plaintext bytes written

    Raises:
        InvalidIdentity: If the private key does not parse
        DecryptionFailed: If the ciphertext was not encrypted to this
            identity or is corrupt
    """
    identity = parse_identity(private_key)

    loop = asyncio.get_running_loop()
    reader = BlockingReader(source, loop)
    writer = BlockingWriter(sink, loop)
    try:
        await loop.run_in_executor(
            _executor, pyrage.decrypt_io, reader, writer, [identity]
        )
    except pyrage.DecryptError as e:
        raise DecryptionFailed(
            "unable to decrypt backup: wrong private key or corrupted data",
            details={"reason": str(e)},
        ) from e

    logger.debug("backup_decrypted", plaintext_size=writer.written)
    return writer.written
