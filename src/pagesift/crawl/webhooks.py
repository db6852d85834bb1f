"""Outbound webhooks.

Two independent delivery paths exist:

``post_job_report`` / ``post_progress``
    Crawl-job callbacks.  The report payload has a fixed shape built by
    :func:`build_job_payload`; the caller's ``extraFields`` are merged over
    it.  No template substitution is applied on this path.

``send_webhook``
    Single-conversion callback.  The descriptor may carry a ``data``
    template whose string values support the ``##markdown##``, ``##url##``,
    ``##timestamp##``, ``##metadata##`` and ``##options##`` markers.  This
    function never raises; it reports the outcome as a dict.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Dict, Mapping, Optional

import httpx
import structlog

from pagesift.config.settings import Settings
from pagesift.core.exceptions import WebhookDeliveryError
from pagesift.core.schemas.extraction import SimpleWebhookConfig
from pagesift.core.schemas.jobs import CrawlJob, JobResult, WebhookConfig

logger = structlog.get_logger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _merged_headers(extra: Mapping[str, str]) -> Dict[str, str]:
    return {**_JSON_HEADERS, **dict(extra or {})}


# ---------------------------------------------------------------------------
# Crawl-job callbacks
# ---------------------------------------------------------------------------


def _result_entry(result: JobResult) -> Dict[str, Any]:
    return {
        "url": result.url,
        "status": "success" if result.success else "failed",
        "markdown": result.content if result.success else None,
        "error": None if result.success else result.error,
        "timestamp": result.timestamp.isoformat(),
        "metadata": result.metadata if result.success else None,
    }


def build_job_payload(job: CrawlJob) -> Dict[str, Any]:
    """Build the final report POSTed when a job finishes.

    Args:
        job: The finished job.

    Returns:
        A JSON-compatible dict: ``timestamp``, echoed ``config``,
        ``status``, ``summary`` and ``results`` split into ``successful``
        and ``failed`` entries, with the webhook's ``extraFields`` merged
        over the top level.
    """
    summary = job.summary()
    payload: Dict[str, Any] = {
        "timestamp": _now_iso(),
        "config": job.config.echo(),
        "status": job.status,
        "summary": {
            "total": summary["total"],
            "successful": summary["successful"],
            "failed": summary["failed"],
            "processingTime": summary["processingTime"],
        },
        "results": {
            "successful": [_result_entry(r) for r in job.successful],
            "failed": [_result_entry(r) for r in job.failed],
        },
    }
    if job.config.webhook is not None:
        payload.update(job.config.webhook.extra_fields)
    return payload


async def post_job_report(
    webhook: WebhookConfig,
    payload: Dict[str, Any],
    *,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> int:
    """POST a job report to ``webhook.url``.

    Returns:
        The HTTP status code of the accepted delivery.

    Raises:
        WebhookDeliveryError: On transport errors or a non-2xx response.
    """
    headers = _merged_headers(webhook.headers)
    try:
        if client is not None:
            response = await client.post(
                webhook.url, json=payload, headers=headers, timeout=timeout
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.post(webhook.url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise WebhookDeliveryError(webhook.url, str(exc) or type(exc).__name__) from exc

    if response.is_error:
        raise WebhookDeliveryError(
            webhook.url,
            f"HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response.status_code


async def post_progress(
    webhook: WebhookConfig,
    job: CrawlJob,
    result: JobResult,
    *,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """POST a per-URL progress event.  Failures are logged, never raised."""
    payload: Dict[str, Any] = {
        "jobId": job.id,
        "status": job.status,
        "processed": job.processed,
        "total": job.total,
        "url": result.url,
        "success": result.success,
        "timestamp": _now_iso(),
    }
    payload.update(webhook.extra_fields)
    try:
        await post_job_report(webhook, payload, timeout=timeout, client=client)
    except WebhookDeliveryError as exc:
        logger.warning("progress_webhook_failed", job_id=job.id, url=webhook.url, error=exc.message)
        return False
    return True


# ---------------------------------------------------------------------------
# Single-conversion callback
# ---------------------------------------------------------------------------


def render_template(template: Any, variables: Mapping[str, str]) -> Any:
    """Substitute ``##name##`` markers in every string value of ``template``.

    Dicts and lists are walked recursively; non-string scalars are
    returned unchanged.
    """
    if isinstance(template, dict):
        return {key: render_template(value, variables) for key, value in template.items()}
    if isinstance(template, list):
        return [render_template(item, variables) for item in template]
    if isinstance(template, str):
        rendered = template
        for name, value in variables.items():
            rendered = rendered.replace(f"##{name}##", value)
        return rendered
    return template


def build_simple_payload(
    descriptor: SimpleWebhookConfig,
    *,
    url: str,
    markdown: str,
    metadata: Any,
    options: Any,
) -> Dict[str, Any]:
    """Base conversion payload merged with the rendered ``data`` template."""
    converted_at = _now_iso()
    payload: Dict[str, Any] = {
        "original_url": url,
        "converted_at": converted_at,
        "metadata": metadata,
        "options": options,
        "markdown": markdown,
    }
    if not descriptor.data:
        return payload
    variables = {
        "markdown": markdown,
        "url": url,
        "timestamp": converted_at,
        "metadata": json.dumps(metadata, default=str),
        "options": json.dumps(options, default=str),
    }
    payload.update(render_template(descriptor.data, variables))
    return payload


def _error_details(response: Optional[httpx.Response]) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None


async def send_webhook(
    descriptor: SimpleWebhookConfig,
    *,
    url: str,
    markdown: str,
    metadata: Any,
    options: Any,
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Deliver one conversion result to ``descriptor.url``.

    Args:
        descriptor: Callback target, method, headers, timeout and template.
        url: The converted page URL.
        markdown: The converted document.
        metadata: Page metadata sent as-is (and as JSON for ``##metadata##``).
        options: Effective conversion options.
        settings: Supplies the default timeout.
        client: Optional shared client.

    Returns:
        ``{"success": True, "status", "statusText"}`` on a 2xx response,
        otherwise ``{"success": False, "error", "details"}``.
    """
    payload = build_simple_payload(
        descriptor, url=url, markdown=markdown, metadata=metadata, options=options
    )
    timeout = descriptor.timeout or settings.simple_webhook_timeout
    method = (descriptor.method or "POST").upper()
    headers = _merged_headers(descriptor.headers)
    log = logger.bind(webhook_url=descriptor.url, method=method)

    try:
        if client is not None:
            response = await client.request(
                method, descriptor.url, json=payload, headers=headers, timeout=timeout
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.request(
                    method, descriptor.url, json=payload, headers=headers
                )
    except httpx.HTTPError as exc:
        log.warning("webhook_failed", error=str(exc))
        return {"success": False, "error": str(exc) or type(exc).__name__, "details": None}

    if response.is_error:
        log.warning("webhook_rejected", status_code=response.status_code)
        return {
            "success": False,
            "error": f"Request failed with status code {response.status_code}",
            "details": _error_details(response),
        }

    log.info("webhook_sent", status_code=response.status_code)
    return {
        "success": True,
        "status": response.status_code,
        "statusText": response.reason_phrase,
    }
