from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FrozenModel(BaseModel):
    """Base model for values that must not change once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CommandOutcome(FrozenModel):
    command: str = Field(..., description="Command line as executed.")
    success: bool = Field(..., description="True when the process exited with 0.")
    exit_code: int = Field(..., description="Process return code.")
    output: List[str] = Field(default_factory=list, description="Merged stdout/stderr lines.")
    execution_time: float = Field(default=0.0, description="Wall clock seconds.")

    @classmethod
    def failure(cls, command: str, message: str, exit_code: int = 127) -> "CommandOutcome":
        return cls(command=command, success=False, exit_code=exit_code, output=[message])

    @classmethod
    def combine(cls, outcomes: Iterable["CommandOutcome"], *, empty_message: str) -> "CommandOutcome":
        """Fold several command runs into one task-level outcome."""
        items = list(outcomes)
        if not items:
            return cls(command="", success=True, exit_code=0, output=[empty_message])
        failed = [item for item in items if not item.success]
        output: List[str] = []
        for item in items:
            output.append(f"$ {item.command}")
            output.extend(item.output)
        return cls(
            command=" && ".join(item.command for item in items),
            success=not failed,
            exit_code=failed[0].exit_code if failed else 0,
            output=output,
            execution_time=round(sum(item.execution_time for item in items), 2),
        )


class DeploymentResult(FrozenModel):
    success: bool = Field(..., description="False when dependency install failed.")
    timestamp: datetime = Field(..., description="Deployment start in the display timezone.")
    dependency_changes: bool = Field(
        default=False, description="True when an install was forced or manifests changed."
    )
    dependency_install_outcome: Optional[CommandOutcome] = Field(
        default=None, description="Install command outcome when an install ran."
    )
    additional_tasks: Dict[str, CommandOutcome] = Field(
        default_factory=dict, description="Auxiliary maintenance task outcomes by task name."
    )
    execution_time: float = Field(default=0.0, description="Total seconds spent.")
    error: Optional[str] = Field(default=None, description="Error summary when the deploy failed.")


class BackupRecord(FrozenModel):
    commit_hash: str = Field(..., description="Commit checked out before the pull.")
    branch: str = Field(..., description="Branch checked out before the pull.")
    saved_at: datetime = Field(default_factory=utc_now, description="UTC save time.")

    @field_validator("saved_at")
    @classmethod
    def _whole_seconds(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(microsecond=0)

    def age_hours(self, now: Optional[datetime] = None) -> float:
        reference = now or utc_now()
        return (reference - self.saved_at).total_seconds() / 3600


class RepositoryStatus(FrozenModel):
    branch: str
    commit_hash: str = Field(..., serialization_alias="commit")
    modified: List[str] = Field(default_factory=list)
    added: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    untracked: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def clean(self) -> bool:
        return not (self.modified or self.added or self.deleted or self.untracked)


class CommitEntry(FrozenModel):
    hash: str
    message: str
    author_name: str
    author_email: str
    author_date: str
    committer_name: str
    committer_email: str
    commit_date: str


class CommitLog(FrozenModel):
    commits: List[CommitEntry] = Field(default_factory=list)
    branch: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_commits(self) -> int:
        return len(self.commits)


def dump(model: BaseModel) -> Dict[str, Any]:
    """JSON-ready dict honouring serialization aliases."""
    return model.model_dump(mode="json", by_alias=True)
