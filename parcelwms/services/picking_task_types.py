# parcelwms/services/picking_task_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from parcelwms.models.cell import Cell
    from parcelwms.models.picking_task import PickingTask
    from parcelwms.models.unit import Unit

TASK_OPEN = "open"
TASK_IN_PROGRESS = "in_progress"
TASK_DONE = "done"
TASK_CANCELED = "canceled"

ACTIVE_STATUSES = (TASK_OPEN, TASK_IN_PROGRESS)
TERMINAL_STATUSES = (TASK_DONE, TASK_CANCELED)


@dataclass
class StartResult:
    task_id: int
    picked_by: Optional[str]
    already_started: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "taskId": self.task_id,
            "pickedBy": self.picked_by,
            "alreadyStarted": self.already_started,
        }


@dataclass
class BatchResult:
    task_id: int
    task_completed: bool
    moved: int
    total: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "taskId": self.task_id,
            "taskCompleted": self.task_completed,
            "moved": self.moved,
            "total": self.total,
            "message": self.message,
        }


@dataclass
class CancelResult:
    task_id: int
    units_returned: int = 0
    units_failed: int = 0
    units_skipped: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        if self.units_failed:
            message = (
                f"Task canceled; {self.units_returned} unit(s) returned, "
                f"{self.units_failed} failed (resume to retry)"
            )
        else:
            message = f"Task canceled; {self.units_returned} unit(s) returned"
        return {
            "ok": True,
            "taskId": self.task_id,
            "message": message,
            "units_returned": self.units_returned,
            "units_failed": self.units_failed,
            "units_skipped": self.units_skipped,
            "failures": self.failures,
        }


@dataclass
class CheckUnitResult:
    found: bool
    unit: Optional["Unit"] = None
    task: Optional["PickingTask"] = None
    to_cell: Optional["Cell"] = None
    reason: Optional[str] = None


@dataclass
class CreateResult:
    task_id: int
    unit_count: int
    target_picking_cell_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "taskId": self.task_id,
            "unitCount": self.unit_count,
            "targetPickingCellId": self.target_picking_cell_id,
        }
