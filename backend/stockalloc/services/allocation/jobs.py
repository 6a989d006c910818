"""
Allocation Jobs
Explicit job value carried through a multi-document write sequence.

The document store offers no cross-document transactions, so every write
sequence is tracked step by step. A job records which steps completed and
which one failed, and carries its own cancellation signal.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import threading
import uuid


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobCancelled(Exception):
    """Raised inside a job when cancellation was requested"""
    pass


@dataclass
class SagaStep:
    name: str
    status: str = "completed"
    detail: Dict[str, Any] = field(default_factory=dict)
    at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "status": self.status, "detail": dict(self.detail), "at": self.at}


@dataclass
class AllocationJob:
    """One caller-initiated allocate or reset action"""
    action: str
    parent_ref: str
    item_ref: str
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: JobState = JobState.PENDING
    steps: List[SagaStep] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    _cancel: threading.Event = field(default_factory=threading.Event, repr=False)

    def start(self):
        self.state = JobState.RUNNING

    def request_cancel(self):
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def checkpoint(self):
        """Stop between steps when cancellation was requested"""
        if self._cancel.is_set():
            raise JobCancelled(f"Job {self.job_id} cancelled")

    def complete_step(self, name: str, **detail):
        self.steps.append(SagaStep(name=name, detail=detail))

    def fail_step(self, name: str, error: Exception):
        self.failed_step = name
        self.error = str(error)
        self.steps.append(SagaStep(name=name, status="failed", detail={"error": str(error)}))

    @property
    def completed_steps(self) -> List[str]:
        return [s.name for s in self.steps if s.status == "completed"]

    def finish(self):
        """Settle the final state from what was recorded"""
        if self.failed_step:
            self.state = JobState.PARTIAL if self.completed_steps else JobState.FAILED
        elif self.cancel_requested:
            self.state = JobState.CANCELLED
        else:
            self.state = JobState.COMPLETED
        return self.state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "action": self.action,
            "state": self.state.value,
            "steps": [s.to_dict() for s in self.steps],
            "completed_steps": self.completed_steps,
            "failed_step": self.failed_step,
            "error": self.error,
        }
