"""
Scan Context - Per-run scan options and state.

Replaces ambient CLI arguments: the orchestrator receives one immutable
ScanOptions and threads it (via ScanContext) into every surface prober and
the crawler.
"""

from typing import Optional
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, field_validator

from cstiscan.engines.catalog import EngineId
from cstiscan.schemas.models import PageVerdict, ScanReport


class ScanOptions(BaseModel):
    """
    Options for a scan request.

    These options define what the scan should do and how it should behave.
    They are immutable once the scan starts.
    """
    model_config = ConfigDict(frozen=True)

    target_url: str
    engine_hint: Optional[EngineId] = None
    crawl: bool = False
    crawl_depth: int = 1
    crawl_subdomains: bool = False
    skip_forms: bool = False
    skip_inputs: bool = False
    skip_buttons: bool = False
    skip_links: bool = False
    check_class: bool = False
    continue_when_positive: bool = False

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v):
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"target_url must be an absolute http(s) URL (got {v!r})")
        return v

    @field_validator("crawl_depth")
    @classmethod
    def validate_depth(cls, v):
        if v < 0:
            raise ValueError(f"crawl_depth must be >= 0 (got {v})")
        return v

    @field_validator("engine_hint", mode="before")
    @classmethod
    def parse_engine_hint(cls, v):
        if v is None or isinstance(v, EngineId):
            return v
        return EngineId.parse(v)


class ScanContext:
    """
    Per-run state container.

    Holds the options, the report being built and the stop flag that
    implements the early-exit policy.
    """

    def __init__(self, options: ScanOptions):
        self.options = options
        self.report = ScanReport(target=options.target_url)
        self.stopped = False

    def should_stop(self, positive: bool) -> bool:
        """A positive halts the run unless continue_when_positive is set."""
        if positive and not self.options.continue_when_positive:
            self.stopped = True
        return self.stopped

    def add_page(self, verdict: PageVerdict):
        self.report.pages.append(verdict)

    def abort(self, reason: str):
        self.stopped = True
        self.report.aborted = True
        self.report.abort_reason = reason
