"""Single-page conversion routes.

``GET /convert``
    Query-string options; responds with ``text/markdown``.

``POST /convert``
    JSON body with the same options plus an optional ``custom_webhook``.
    Responds with markdown, or with ``{markdown, webhook_result, config}``
    when the client accepts ``application/json``.

Option names are accepted in snake_case and camelCase.  A missing URL is
answered with HTTP 400 and usage hints.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse

from pagesift.api.dependencies import get_pipeline
from pagesift.config.settings import Settings, get_settings
from pagesift.core.schemas.extraction import ConvertRequest, ExtractionOptions, ExtractionRequest
from pagesift.crawl.webhooks import send_webhook
from pagesift.scraper.pipeline import ExtractionPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["convert"])

_MARKDOWN = "text/markdown"

_GET_USAGE = {
    "basic": "/convert?url=https://example.com",
    "withSelectors": "/convert?url=https://example.com&targetSelectors=.main-content,.article",
    "withConfig": "/convert?url=https://example.com&aggressive_cleaning=false&remove_images=true",
}

_POST_EXAMPLE = {
    "url": "https://example.com",
    "targetSelectors": [".main-content", "article"],
    "removeSelectors": [".ads", ".nav"],
    "aggressive_cleaning": False,
    "remove_images": True,
    "custom_webhook": {
        "url": "https://your-webhook.com/endpoint",
        "method": "POST",
        "headers": {"Authorization": "Bearer token"},
    },
}


def _effective_options(request: ExtractionRequest) -> Dict[str, Any]:
    return {
        "targetSelectors": list(request.target_selectors),
        "removeSelectors": list(request.remove_selectors),
        "aggressive_cleaning": request.aggressive_cleaning,
        "remove_images": request.remove_images,
    }


@router.get("/convert")
async def convert_get(
    request: Request,
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    settings: Annotated[Settings, Depends(get_settings)],
    url: Optional[str] = None,
) -> Response:
    """Convert the page at ``url`` and return its markdown document."""
    if not url:
        return JSONResponse(
            {"error": "URL parameter is required", "usage": _GET_USAGE},
            status_code=400,
        )

    options = ExtractionOptions.model_validate(dict(request.query_params))
    extraction = options.resolve(url, settings)
    logger.info("convert_requested", url=extraction.url, method="GET")

    document = await pipeline.convert_url_to_markdown(extraction)
    return Response(content=document, media_type=_MARKDOWN)


@router.post("/convert")
async def convert_post(
    request: Request,
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    settings: Annotated[Settings, Depends(get_settings)],
    payload: Optional[Dict[str, Any]] = Body(default=None),
) -> Response:
    """Convert a page, optionally forwarding the result to a webhook."""
    if not payload or not payload.get("url"):
        return JSONResponse(
            {"error": "URL is required in request body", "example": _POST_EXAMPLE},
            status_code=400,
        )

    body = ConvertRequest.model_validate(payload)
    extraction = body.resolve(body.url, settings)
    logger.info(
        "convert_requested",
        url=extraction.url,
        method="POST",
        has_webhook=body.custom_webhook is not None,
    )

    result = await pipeline.extract(extraction)
    document = result.document
    options = _effective_options(extraction)

    webhook_result = None
    if body.custom_webhook is not None:
        webhook_result = await send_webhook(
            body.custom_webhook,
            url=extraction.url,
            markdown=document,
            metadata=result.metadata,
            options=options,
            settings=settings,
        )

    if "application/json" in request.headers.get("accept", ""):
        return JSONResponse(
            {
                "markdown": document,
                "webhook_result": webhook_result,
                "config": {
                    "aggressive_cleaning": extraction.aggressive_cleaning,
                    "remove_images": extraction.remove_images,
                },
            }
        )
    return Response(content=document, media_type=_MARKDOWN)
