"""Pydantic schemas for crawl jobs.

``CrawlJob`` is the in-memory job record mutated by the orchestrator's
processing loop.  Its persisted form (``to_state``) is a camelCase JSON
document written to ``<reports_dir>/<job_id>.json`` after every state
change; ``from_state`` rebuilds the record when an interrupted job is
resumed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pagesift.core.schemas.extraction import parse_selectors

JobStatus = Literal["pending", "processing", "completed", "failed"]
"""Job lifecycle: ``pending -> processing -> completed | failed``."""

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "processing"})


class WebhookConfig(BaseModel):
    """Batch-result callback attached to a crawl job.

    Attributes:
        url: Endpoint receiving the final report.
        headers: Extra request headers merged over ``Content-Type``.
        progress_updates: POST a small progress event after every URL.
        extra_fields: Static fields merged into every payload.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    progress_updates: bool = False
    extra_fields: Dict[str, Any] = Field(default_factory=dict)


class CrawlJobConfig(BaseModel):
    """Job submission: a site map URL or an explicit URL list.

    Whether at least one source is present is checked by the orchestrator,
    which raises :class:`~pagesift.core.exceptions.JobValidationError`.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    sitemap_url: Optional[str] = None
    urls: Optional[List[str]] = None
    target_selectors: List[str] = Field(default_factory=list)
    remove_selectors: List[str] = Field(default_factory=list)
    webhook: Optional[WebhookConfig] = None

    @field_validator("target_selectors", "remove_selectors", mode="before")
    @classmethod
    def _split_selectors(cls, value: Any) -> List[str]:
        return parse_selectors(value)

    def echo(self) -> Dict[str, Any]:
        """Public view of the config with webhook headers withheld."""
        return {
            "sitemapUrl": self.sitemap_url,
            "urls": self.urls,
            "targetSelectors": self.target_selectors,
            "removeSelectors": self.remove_selectors,
            "webhook": (
                {"url": self.webhook.url, "hasHeaders": bool(self.webhook.headers)}
                if self.webhook
                else None
            ),
        }


class JobResult(BaseModel):
    """Outcome of one URL within a job.

    ``metadata`` is the formatted ``Key: value`` block of the page and
    ``content`` its markdown; both are ``None`` when ``success`` is false.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    success: bool
    metadata: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class CrawlJob(BaseModel):
    """Mutable job record owned by exactly one processing task."""

    id: str
    status: JobStatus = "pending"
    config: CrawlJobConfig
    urls: List[str] = Field(default_factory=list)
    results: List[JobResult] = Field(default_factory=list)
    processed: int = 0
    total: int = 0
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    webhook_error: Optional[str] = None

    @property
    def successful(self) -> List[JobResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[JobResult]:
        return [r for r in self.results if not r.success]

    @property
    def processing_time_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "successful": len(self.successful),
            "failed": len(self.failed),
            "processingTime": self.processing_time_ms,
        }

    def to_state(self) -> Dict[str, Any]:
        """Serialise the full job, including what a resume needs.

        Returns:
            A JSON-compatible dict with camelCase keys.
        """
        return {
            "id": self.id,
            "status": self.status,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "config": self.config.model_dump(by_alias=True, mode="json"),
            "urls": list(self.urls),
            "summary": self.summary(),
            "results": [r.model_dump(by_alias=True, mode="json") for r in self.results],
            "error": self.error,
            "webhookError": self.webhook_error,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "CrawlJob":
        """Rebuild a job from its persisted ``to_state`` document."""
        summary = state.get("summary") or {}
        results = [JobResult.model_validate(r) for r in state.get("results") or []]
        return cls(
            id=state["id"],
            status=state.get("status", "pending"),
            config=CrawlJobConfig.model_validate(state.get("config") or {}),
            urls=state.get("urls") or [],
            results=results,
            processed=summary.get("processed", len(results)),
            total=summary.get("total", 0),
            start_time=state.get("startTime") or datetime.now(UTC),
            end_time=state.get("endTime"),
            error=state.get("error"),
            webhook_error=state.get("webhookError"),
        )


def public_status(state: Dict[str, Any]) -> Dict[str, Any]:
    """Strip resume-only data (webhook headers, URL list) from a job state."""
    view = {key: value for key, value in state.items() if key != "urls"}
    config = CrawlJobConfig.model_validate(state.get("config") or {})
    view["config"] = config.echo()
    return view
