# src/wpfleet/tools/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from wpfleet.api.schemas import Site

BACKUP = "backup"
SCREENSHOT = "screenshot"
UPDATE = "update"


@dataclass
class StepResult:
    status: str  # success or error
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    site_error: Optional[str] = None  # recorded as Site.last_error on failure

    @property
    def ok(self) -> bool:
        return self.status == "success"


class StepExecutor(ABC):
    """Performs one maintenance step against a site."""

    @abstractmethod
    def run_step(self, step: str, site: Site) -> StepResult:
        pass
