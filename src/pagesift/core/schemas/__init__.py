"""Pydantic schemas for request/response validation.

Sub-modules:
    extraction: ExtractionOptions, ConvertRequest, SimpleWebhookConfig, ExtractionRequest
    jobs: WebhookConfig, CrawlJobConfig, JobResult, CrawlJob

Every input model accepts both snake_case and camelCase field names.
"""

from __future__ import annotations
