from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .reconcile import SyncReport


class PresaleError(RuntimeError):
    """Base class for every error raised by the reconciliation engine."""


class ConfigurationError(PresaleError):
    """Presale window or settings are missing or invalid. Raised before any I/O."""


class TransientFetchError(PresaleError):
    """The chain data source failed; the run can be retried safely."""


class PartialHistoryError(TransientFetchError):
    def __init__(self, message: str, collected: int) -> None:
        super().__init__(message)
        self.collected = collected


class SyncIncompleteError(TransientFetchError):
    """A transaction batch could not be fetched. Entries already written stay written."""

    def __init__(self, message: str, report: "SyncReport") -> None:
        super().__init__(message)
        self.report = report


class MalformedTransactionError(PresaleError):
    """A parsed transaction is missing fields the classifier needs."""


class ManifestMismatchError(PresaleError):
    pass
