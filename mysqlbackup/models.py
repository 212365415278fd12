from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class BackupTarget:
    """A database selected for backup in a run"""
    database_name: str

    def __str__(self):
        return self.database_name


@dataclass(frozen=True)
class DatabaseOutcome:
    """Result of one database's dump/upload/prune cycle"""
    target: BackupTarget
    succeeded: bool
    error_detail: Optional[str] = None
    artifact_key: Optional[str] = None
    pruned: int = 0

    @classmethod
    def success(cls, target: BackupTarget, artifact_key: str, pruned: int = 0) -> 'DatabaseOutcome':
        return cls(target=target, succeeded=True, artifact_key=artifact_key, pruned=pruned)

    @classmethod
    def failure(cls, target: BackupTarget, error_detail: str) -> 'DatabaseOutcome':
        return cls(target=target, succeeded=False, error_detail=error_detail)


@dataclass(frozen=True)
class RunSummary:
    """Aggregated outcomes of a run"""
    total: int = 0
    failed: int = 0
    outcomes: Tuple[DatabaseOutcome, ...] = ()

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    def add(self, outcome: DatabaseOutcome) -> 'RunSummary':
        """Return a new summary with ``outcome`` folded in."""
        return RunSummary(
            total=self.total + 1,
            failed=self.failed + (0 if outcome.succeeded else 1),
            outcomes=self.outcomes + (outcome,)
        )


class RunStatus(Enum):
    SKIPPED = 'skipped'      # another run holds the lock
    ABORTED = 'aborted'      # fatal precondition, no database attempted
    COMPLETED = 'completed'


@dataclass(frozen=True)
class RunResult:
    """Final state of one coordinator invocation"""
    status: RunStatus
    summary: RunSummary = field(default_factory=RunSummary)
    reason: Optional[str] = None

    @property
    def exit_code(self) -> int:
        if self.status is RunStatus.SKIPPED:
            return 0
        if self.status is RunStatus.ABORTED:
            return 1
        return 1 if self.summary.failed > 0 else 0

    def __repr__(self):
        return f'<RunResult status={self.status.value} total={self.summary.total} failed={self.summary.failed}>'
