# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 Exceptions - Custom exceptions for the pg2s3 package.
"""


class Pg2S3Error(Exception):
    """Base exception for all pg2s3 errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(Pg2S3Error):
    """Raised when configuration is invalid."""

    pass


class InvalidPrefix(Pg2S3Error):
    """Raised when a backup prefix contains a name delimiter."""

    pass


class InvalidName(Pg2S3Error):
    """Raised when an object name is not a valid backup name."""

    pass


class EmptyCatalog(Pg2S3Error):
    """Raised when a restore is attempted with no backups present."""

    pass


class InvalidRecipient(Pg2S3Error):
    """Raised when a public key cannot be parsed."""

    pass


class InvalidIdentity(Pg2S3Error):
    """Raised when a private key cannot be parsed."""

    pass


class DecryptionFailed(Pg2S3Error):
    """Raised when ciphertext does not match the identity or is corrupt."""

    pass


class ExternalCommandFailed(Pg2S3Error):
    """Raised when pg_dump or pg_restore fails."""

    pass


class ObjectStoreFailed(Pg2S3Error):
    """Raised when S3 operations fail."""

    pass


class EncryptionFailed(Pg2S3Error):
    """Raised when age fails to encrypt a backup."""

    pass
