"""
tbd - git-native issue tracking.

Issues live as individual Markdown files on a dedicated sync branch. This
package contains the synchronization and conflict-resolution engine that
keeps those files consistent between a local clone and its remote.
"""

__version__ = "0.1.0"

from tbd.core.issues.models import Issue, IssueKind, IssueStatus

__all__ = ["Issue", "IssueKind", "IssueStatus", "__version__"]
