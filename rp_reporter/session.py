"""Per-run reporting state shared by all lifecycle operations."""

from dataclasses import dataclass, field
from typing import Optional

from .tree import ItemTree, TestItem

LAUNCH_DISABLED = "-1"


@dataclass
class ReportingSession:
    """Launch id, timestamp watermark and the item logs attach to.

    ``launch_id`` is None before the launch starts and LAUNCH_DISABLED once
    the launch could not be created; disabled is final.
    """
    launch_id: Optional[str] = None
    last_used_time: Optional[int] = None
    current_item: Optional[TestItem] = None
    tree: ItemTree = field(default_factory=ItemTree)

    @property
    def disabled(self) -> bool:
        return self.launch_id == LAUNCH_DISABLED

    def disable(self) -> None:
        self.launch_id = LAUNCH_DISABLED

    def shift_watermark(self, timestamp: int) -> None:
        self.last_used_time = timestamp
