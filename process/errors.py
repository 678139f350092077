"""Exceptions raised out of the sync pipeline."""


class SyncError(RuntimeError):
    """The sync could not run at all (e.g. the store is unreachable)."""


class SyncInProgressError(SyncError):
    """Another sync holds the single-flight guard."""
