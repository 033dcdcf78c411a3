from __future__ import annotations


class WorkflowError(Exception):
    pass


class UnconfiguredTransitionError(WorkflowError):
    def __init__(self, level: object, action: object) -> None:
        self.level = level
        self.action = action
        super().__init__(f"Action {action!r} is not configured at approval level {level!r}")


class ApprovalRecordImmutableError(WorkflowError):
    def __init__(self) -> None:
        super().__init__("Approval records are append-only")
