"""Crawl job orchestration.

A job is submitted with either a site map URL or an explicit URL list.
:meth:`CrawlOrchestrator.create_job` validates the submission, persists the
new job and schedules :meth:`CrawlOrchestrator.process_job` as an asyncio
task without waiting for it.

Processing is strictly sequential within a job: URLs are extracted one at
a time, in submission order, with a short pause in between.  Several jobs
may run concurrently; the shared
:class:`~pagesift.scraper.session_manager.SessionManager` caps the total
number of browser sessions across all of them.

State is persisted after every URL so an interrupted job can be resumed
from its last completed URL (:meth:`CrawlOrchestrator.resume_interrupted_jobs`).
A job whose report webhook is delivered successfully is forgotten: its
report file and in-memory entry are removed.  When delivery fails, both are
kept and the failure is recorded as ``webhookError``.
"""

from __future__ import annotations

import asyncio
import secrets
import time
import xml.etree.ElementTree as ET
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from pagesift.config.settings import Settings
from pagesift.core.exceptions import JobValidationError, PageSiftError, WebhookDeliveryError
from pagesift.core.logging_config import job_id_var
from pagesift.core.schemas.extraction import ExtractionOptions
from pagesift.core.schemas.jobs import (
    ACTIVE_STATUSES,
    CrawlJob,
    CrawlJobConfig,
    JobResult,
    WebhookConfig,
    public_status,
)
from pagesift.crawl.job_store import JobStore
from pagesift.crawl.sitemap import SitemapResolver
from pagesift.crawl.webhooks import build_job_payload, post_job_report, post_progress
from pagesift.scraper.pipeline import ExtractionPipeline

logger = structlog.get_logger(__name__)


def new_job_id() -> str:
    """Return ``job_<epoch ms>_<random>``, unique per process."""
    return f"job_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class CrawlOrchestrator:
    """Creates, runs, persists and reports crawl jobs.

    Args:
        pipeline: Extraction pipeline used for every URL.
        settings: Supplies the reports directory, crawl delay and timeouts.
        store: Job persistence; defaults to a :class:`JobStore` on
            ``settings.reports_dir``.
        sitemap_resolver: Site map expansion; defaults to a
            :class:`SitemapResolver` built from ``settings``.
        client: Optional shared ``httpx.AsyncClient`` for webhooks.
    """

    def __init__(
        self,
        pipeline: ExtractionPipeline,
        settings: Settings,
        *,
        store: Optional[JobStore] = None,
        sitemap_resolver: Optional[SitemapResolver] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._pipeline = pipeline
        self._settings = settings
        self._store = store or JobStore(settings.reports_dir)
        self._sitemaps = sitemap_resolver or SitemapResolver(settings)
        self._client = client
        self._jobs: Dict[str, CrawlJob] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def create_job(self, config: Union[CrawlJobConfig, Dict[str, Any]]) -> Dict[str, Any]:
        """Validate ``config``, persist a new job and start processing it.

        Args:
            config: Submission carrying ``sitemapUrl`` or a non-empty ``urls``.

        Returns:
            ``{"jobId", "status": "started", "config"}`` with the config
            echoed without webhook headers.

        Raises:
            JobValidationError: If neither source is given or the
                submission is malformed.
        """
        if not isinstance(config, CrawlJobConfig):
            try:
                config = CrawlJobConfig.model_validate(config)
            except ValidationError as exc:
                raise JobValidationError(f"Invalid job configuration: {exc}") from exc

        if not config.sitemap_url and not config.urls:
            raise JobValidationError("Either sitemapUrl or a non-empty urls array is required")

        job = CrawlJob(id=new_job_id(), config=config)
        self._jobs[job.id] = job
        await self._store.save(job.to_state())
        self._spawn(job.id)

        logger.info(
            "crawl_job_created",
            job_id=job.id,
            source="sitemap" if config.sitemap_url else "urls",
            has_webhook=config.webhook is not None,
        )
        return {"jobId": job.id, "status": "started", "config": config.echo()}

    def _spawn(self, job_id: str) -> None:
        task = asyncio.create_task(self.process_job(job_id), name=f"crawl-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_job(self, job_id: str) -> None:
        """Run a known job to a terminal state, then deliver its webhook."""
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("crawl_job_unknown", job_id=job_id)
            return

        token = job_id_var.set(job_id)
        try:
            await self._run(job)
            if job.config.webhook is not None:
                await self._deliver_report(job, job.config.webhook)
        finally:
            job_id_var.reset(token)

    async def _run(self, job: CrawlJob) -> None:
        job.status = "processing"
        try:
            if not job.urls:
                job.urls = await self._resolve_urls(job.config)
                job.total = len(job.urls)
            await self._persist(job)
            logger.info(
                "crawl_job_started", job_id=job.id, total=job.total, resume_at=job.processed
            )

            delay = self._settings.crawl_delay_ms / 1000
            for index in range(job.processed, len(job.urls)):
                result = await self._process_url(job, job.urls[index])
                job.results.append(result)
                job.processed += 1
                await self._persist(job)
                await self._report_progress(job, result)
                if index < len(job.urls) - 1:
                    await asyncio.sleep(delay)

            job.status = "completed"
        except (PageSiftError, httpx.HTTPError, ET.ParseError, ValueError) as exc:
            job.status = "failed"
            job.error = str(exc) or type(exc).__name__
            logger.error("crawl_job_failed", job_id=job.id, error=job.error)

        job.end_time = datetime.now(UTC)
        await self._persist(job)
        logger.info(
            "crawl_job_finished",
            job_id=job.id,
            status=job.status,
            processing_time_ms=job.processing_time_ms,
            **{k: v for k, v in job.summary().items() if k != "processingTime"},
        )

    async def _resolve_urls(self, config: CrawlJobConfig) -> List[str]:
        if config.sitemap_url:
            return await self._sitemaps.resolve(config.sitemap_url)
        return list(config.urls or [])

    async def _process_url(self, job: CrawlJob, url: str) -> JobResult:
        """Extract one URL; any failure is recorded, never raised."""
        try:
            request = ExtractionOptions(
                target_selectors=job.config.target_selectors,
                remove_selectors=job.config.remove_selectors,
            ).resolve(url, self._settings)
            extraction = await self._pipeline.extract(request)
        except Exception as exc:  # noqa: BLE001
            logger.warning("crawl_url_failed", job_id=job.id, url=url, error=str(exc))
            return JobResult(url=url, success=False, error=str(exc) or type(exc).__name__)

        logger.debug(
            "crawl_url_done",
            job_id=job.id,
            url=url,
            stage=int(extraction.stage),
            chars=len(extraction.markdown),
        )
        return JobResult(
            url=url,
            success=True,
            metadata=extraction.formatted_metadata,
            content=extraction.markdown,
        )

    async def _persist(self, job: CrawlJob) -> None:
        await self._store.save(job.to_state())

    async def _report_progress(self, job: CrawlJob, result: JobResult) -> None:
        webhook = job.config.webhook
        if webhook is None or not webhook.progress_updates:
            return
        await post_progress(
            webhook, job, result, timeout=self._settings.webhook_timeout, client=self._client
        )

    async def _deliver_report(self, job: CrawlJob, webhook: WebhookConfig) -> None:
        try:
            status_code = await post_job_report(
                webhook,
                build_job_payload(job),
                timeout=self._settings.webhook_timeout,
                client=self._client,
            )
        except WebhookDeliveryError as exc:
            job.webhook_error = exc.message
            await self._persist(job)
            logger.error(
                "crawl_webhook_failed",
                job_id=job.id,
                url=webhook.url,
                status_code=exc.status_code,
                error=exc.message,
            )
            return

        await self._store.delete(job.id)
        self._jobs.pop(job.id, None)
        logger.info("crawl_webhook_delivered", job_id=job.id, status_code=status_code)

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    async def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Public job state from memory, else from disk, else ``not_found``."""
        job = self._jobs.get(job_id)
        if job is not None:
            return public_status(job.to_state())
        state = await self._store.load(job_id)
        if state is not None:
            return public_status(state)
        return {"status": "not_found"}

    async def get_job_results(self, job_id: str) -> Optional[Dict[str, Any]]:
        """The persisted report of ``job_id``, or ``None`` if there is none."""
        state = await self._store.load(job_id)
        return public_status(state) if state is not None else None

    async def cleanup_job(self, job_id: str) -> bool:
        """Forget a job: delete its report and drop it from memory."""
        removed_file = await self._store.delete(job_id)
        removed_entry = self._jobs.pop(job_id, None) is not None
        if removed_file or removed_entry:
            logger.info("crawl_job_cleaned_up", job_id=job_id)
        return removed_file or removed_entry

    async def resume_interrupted_jobs(self) -> List[str]:
        """Restart every persisted job left ``pending`` or ``processing``.

        Returns:
            The ids of the resumed jobs.
        """
        resumed: List[str] = []
        for state in await self._store.list_states():
            if state.get("status") not in ACTIVE_STATUSES or state.get("id") in self._jobs:
                continue
            try:
                job = CrawlJob.from_state(state)
            except (KeyError, ValidationError) as exc:
                logger.error("crawl_job_resume_failed", job_id=state.get("id"), error=str(exc))
                continue
            self._jobs[job.id] = job
            self._spawn(job.id)
            resumed.append(job.id)

        if resumed:
            logger.info("crawl_jobs_resumed", count=len(resumed), job_ids=resumed)
        return resumed

    async def join(self) -> None:
        """Wait until every running job task has finished."""
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]

    async def shutdown(self) -> None:
        """Cancel running jobs.  Their persisted state stays resumable."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("crawl_orchestrator_shutdown", cancelled=len(tasks))
