"""
Issue records: models, file format, identifiers and the record store.

Example:
    >>> from tbd.core.issues import Issue, RecordStore, generate_issue_id
    >>> store = RecordStore(Path(".tbd/data-sync/issues"))
    >>> saved = store.save(Issue(id=generate_issue_id(), title="Crash on start"))
"""

from tbd.core.issues.ids import generate_issue_id, generate_short_id, is_issue_id
from tbd.core.issues.models import Dependency, DependencyType, Issue, IssueKind, IssueStatus
from tbd.core.issues.parser import IssueParseError, parse_issue_text, serialize_issue
from tbd.core.issues.store import RecordNotFoundError, RecordStore, StaleWriteError

__all__ = [
    "Dependency",
    "DependencyType",
    "Issue",
    "IssueKind",
    "IssueParseError",
    "IssueStatus",
    "RecordNotFoundError",
    "RecordStore",
    "StaleWriteError",
    "generate_issue_id",
    "generate_short_id",
    "is_issue_id",
    "parse_issue_text",
    "serialize_issue",
]
