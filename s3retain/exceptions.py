# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Exceptions - Custom exceptions for the s3retain package.
"""


class S3RetainError(Exception):
    """Base exception for all s3retain errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(S3RetainError):
    """Raised when configuration is invalid."""

    pass


class CatalogError(S3RetainError):
    """Raised when the backup catalog cannot be listed."""

    pass


class DeletionError(S3RetainError):
    """Raised when deletions failed and the run is configured to be strict."""

    pass


class AuditError(S3RetainError):
    """Raised when audit trail operations fail."""

    pass
