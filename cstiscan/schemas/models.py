from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum

from cstiscan.utils.logger import get_logger

logger = get_logger("schemas.models")

UNKNOWN_ENGINE = "unknown"


class SurfaceKind(str, Enum):
    FORM = "form"
    INPUT = "input"
    BUTTON = "button"
    ANCHOR = "anchor"
    CLASS = "class"

    @property
    def selector(self) -> str:
        """CSS selector used to enumerate this surface on the live page."""
        if self == SurfaceKind.ANCHOR:
            return "a"
        if self == SurfaceKind.CLASS:
            return "form"
        return self.value


class NavigationOutcome(str, Enum):
    NAVIGATED = "navigated"
    NO_NAVIGATION = "no-navigation"
    TIMED_OUT = "timed-out"


class SurfaceResult(BaseModel):
    """Outcome of probing every instance of one surface kind on one page."""
    kind: SurfaceKind
    vulnerable: bool = False
    instances: int = 0
    positives: List[int] = Field(default_factory=list)
    skipped: bool = False  # enumeration failed or surface disabled

    @classmethod
    def not_vulnerable(cls, kind: SurfaceKind, skipped: bool = False) -> "SurfaceResult":
        return cls(kind=kind, skipped=skipped)


class PageVerdict(BaseModel):
    """Per-page scan verdict."""
    url: str
    vulnerable: bool = False
    engine: str = UNKNOWN_ENGINE
    surface_breakdown: Dict[SurfaceKind, bool] = Field(default_factory=dict)
    surfaces: List[SurfaceResult] = Field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def vulnerable_surfaces(self) -> List[SurfaceKind]:
        return [kind for kind, hit in self.surface_breakdown.items() if hit]

    def record(self, result: SurfaceResult):
        """Fold one surface result into the verdict."""
        self.surfaces.append(result)
        self.surface_breakdown[result.kind] = result.vulnerable
        if result.vulnerable:
            self.vulnerable = True
            logger.debug(f"{self.url}: {result.kind.value} positive at {result.positives}")


class ScanReport(BaseModel):
    """Aggregate result of one orchestrator run."""
    target: str
    pages: List[PageVerdict] = Field(default_factory=list)
    aborted: bool = False
    abort_reason: Optional[str] = None

    @property
    def vulnerable(self) -> bool:
        return any(p.vulnerable for p in self.pages)

    @property
    def positives(self) -> List[PageVerdict]:
        return [p for p in self.pages if p.vulnerable]

    @property
    def engines(self) -> Dict[str, str]:
        return {p.url: p.engine for p in self.pages}

    def verdict_for(self, url: str) -> Optional[PageVerdict]:
        for page in self.pages:
            if page.url == url:
                return page
        return None
