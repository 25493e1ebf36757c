"""Per-stage and per-run outcomes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Stage(str, Enum):
    """Pipeline stages in execution order."""

    ACQUIRE = "acquire"
    NORMALIZE = "normalize"
    LOAD = "load"
    ARCHIVE = "archive"
    TRIGGER = "trigger"


PROCESS_STAGES = [Stage.ACQUIRE, Stage.NORMALIZE, Stage.LOAD, Stage.ARCHIVE]


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StageResult(BaseModel):
    """Outcome of one stage."""

    stage: Stage
    status: StageStatus
    error_type: Optional[str] = Field(default=None, description="Exception class name")
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    started_at: str = Field(default_factory=_now)
    completed_at: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @classmethod
    def skipped(cls, stage: Stage, reason: str) -> "StageResult":
        return cls(
            stage=stage,
            status=StageStatus.SKIPPED,
            details={"reason": reason},
            completed_at=_now(),
        )


class PipelineRunResult(BaseModel):
    """Outcome of a full Acquire, Normalize, Load, Archive run."""

    started_at: str = Field(default_factory=_now)
    completed_at: Optional[str] = None
    stages: List[StageResult] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.stages) and all(s.succeeded for s in self.stages)

    def get(self, stage: Stage) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage == stage:
                return result
        return None
