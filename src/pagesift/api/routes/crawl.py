"""Crawl job routes.

``POST /crawl_sitemap``
    Start a job over every page listed in a site map (``sitemapUrl``).

``POST /crawl_urls``
    Start a job over an explicit, non-empty ``urls`` array.

``GET /job/{job_id}``
    Current job status (``404`` with ``{"status": "not_found"}`` if unknown).

``GET /job/{job_id}/results``
    The persisted report of a job.

``DELETE /job/{job_id}``
    Forget a job and delete its report.

Jobs run in the background; the creation routes return immediately with
the new ``jobId``.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from pagesift.api.dependencies import get_orchestrator
from pagesift.crawl.jobs import CrawlOrchestrator

router = APIRouter(tags=["crawl"])

_WEBHOOK_EXAMPLE = {
    "url": "https://your-webhook.com/endpoint",
    "headers": {"Authorization": "Bearer token"},
    "progressUpdates": True,
    "extraFields": {"project": "my-crawler"},
}

_SITEMAP_EXAMPLE = {
    "sitemapUrl": "https://example.com/sitemap.xml",
    "targetSelectors": [".main-content", "article"],
    "removeSelectors": [".ads", ".nav"],
    "webhook": _WEBHOOK_EXAMPLE,
}

_URLS_EXAMPLE = {
    "urls": ["https://example.com/page1", "https://example.com/page2"],
    "targetSelectors": [".main-content", "article"],
    "removeSelectors": [".ads", ".nav"],
    "webhook": _WEBHOOK_EXAMPLE,
}


def _pick(payload: Dict[str, Any], camel: str, snake: str) -> Any:
    return payload.get(camel, payload.get(snake))


@router.post("/crawl_sitemap")
async def crawl_sitemap(
    orchestrator: Annotated[CrawlOrchestrator, Depends(get_orchestrator)],
    payload: Optional[Dict[str, Any]] = Body(default=None),
) -> JSONResponse:
    """Create a job from a site map."""
    payload = payload or {}
    sitemap_url = _pick(payload, "sitemapUrl", "sitemap_url")
    if not sitemap_url:
        return JSONResponse(
            {"error": "sitemapUrl is required", "example": _SITEMAP_EXAMPLE},
            status_code=400,
        )

    created = await orchestrator.create_job(
        {
            "sitemapUrl": sitemap_url,
            "targetSelectors": _pick(payload, "targetSelectors", "target_selectors"),
            "removeSelectors": _pick(payload, "removeSelectors", "remove_selectors"),
            "webhook": payload.get("webhook"),
        }
    )
    return JSONResponse(created)


@router.post("/crawl_urls")
async def crawl_urls(
    orchestrator: Annotated[CrawlOrchestrator, Depends(get_orchestrator)],
    payload: Optional[Dict[str, Any]] = Body(default=None),
) -> JSONResponse:
    """Create a job from an explicit list of URLs."""
    payload = payload or {}
    urls = payload.get("urls")
    if not isinstance(urls, list) or not urls:
        return JSONResponse(
            {"error": "urls array is required", "example": _URLS_EXAMPLE},
            status_code=400,
        )

    created = await orchestrator.create_job(
        {
            "urls": urls,
            "targetSelectors": _pick(payload, "targetSelectors", "target_selectors"),
            "removeSelectors": _pick(payload, "removeSelectors", "remove_selectors"),
            "webhook": payload.get("webhook"),
        }
    )
    return JSONResponse(created)


@router.get("/job/{job_id}")
async def job_status(
    job_id: str,
    orchestrator: Annotated[CrawlOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    """Return the status of a job."""
    status = await orchestrator.get_job_status(job_id)
    code = 404 if status.get("status") == "not_found" else 200
    return JSONResponse(status, status_code=code)


@router.get("/job/{job_id}/results")
async def job_results(
    job_id: str,
    orchestrator: Annotated[CrawlOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    """Return the persisted report of a job."""
    report = await orchestrator.get_job_results(job_id)
    if report is None:
        return JSONResponse({"status": "not_found"}, status_code=404)
    return JSONResponse(report)


@router.delete("/job/{job_id}")
async def delete_job(
    job_id: str,
    orchestrator: Annotated[CrawlOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    """Delete a job's report and in-memory entry."""
    removed = await orchestrator.cleanup_job(job_id)
    if not removed:
        return JSONResponse({"status": "not_found"}, status_code=404)
    return JSONResponse({"jobId": job_id, "status": "deleted"})
