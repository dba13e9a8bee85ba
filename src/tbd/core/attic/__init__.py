"""
Attic: append-only record of values discarded by conflict resolution.

Example:
    >>> from tbd.core.attic import AtticLedger
    >>> ledger = AtticLedger(Path(".tbd/data-sync-worktree/.tbd/data-sync/attic"))
    >>> for entry in ledger.list_for("is-01hx5zzkbkactav9wevgemmvrz"):
    ...     print(entry.field, entry.lost_value)
"""

from tbd.core.attic.ledger import AtticLedger, AtticView, AtticWriteError
from tbd.core.attic.models import AtticContext, AtticEntry, ResolutionRule

__all__ = [
    "AtticContext",
    "AtticEntry",
    "AtticLedger",
    "AtticView",
    "AtticWriteError",
    "ResolutionRule",
]
