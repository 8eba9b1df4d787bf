from dataclasses import dataclass
from enum import Enum


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """Result of a best-effort step (pre-warm, cookie banner, challenge click).

    Best-effort steps never raise; callers log the outcome and carry on.
    """

    step: str
    status: StepStatus
    detail: str = ""

    @classmethod
    def succeeded(cls, step: str, detail: str = "") -> "StepOutcome":
        return cls(step, StepStatus.SUCCEEDED, detail)

    @classmethod
    def skipped(cls, step: str, detail: str = "") -> "StepOutcome":
        return cls(step, StepStatus.SKIPPED, detail)

    @classmethod
    def failed(cls, step: str, detail: str = "") -> "StepOutcome":
        return cls(step, StepStatus.FAILED, detail)

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCEEDED

    def __str__(self) -> str:
        suffix = f" ({self.detail})" if self.detail else ""
        return f"{self.step}: {self.status.value}{suffix}"
