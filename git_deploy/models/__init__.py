from .deploy import (
    BackupRecord,
    CommandOutcome,
    CommitEntry,
    CommitLog,
    DeploymentResult,
    RepositoryStatus,
    dump,
    utc_now,
)

__all__ = [
    "BackupRecord",
    "CommandOutcome",
    "CommitEntry",
    "CommitLog",
    "DeploymentResult",
    "RepositoryStatus",
    "dump",
    "utc_now",
]
