"""Schemas for single-page extraction requests.

``ExtractionOptions`` is the loosely-typed input accepted from the HTTP
layer (query strings or JSON bodies, snake_case or camelCase).  It is
resolved against :class:`~pagesift.config.settings.Settings` into an
immutable :class:`ExtractionRequest`, which is what the extraction
pipeline consumes.  Resolution order for every tunable is: request value,
then settings (environment), then the settings default.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pagesift.config.settings import Settings
from pagesift.core.exceptions import InvalidURLError


def normalize_url(raw_url: str) -> str:
    """Return ``raw_url`` with an ``https://`` scheme added when missing.

    Args:
        raw_url: Caller-supplied URL, possibly without a scheme.

    Returns:
        An absolute ``http``/``https`` URL.

    Raises:
        InvalidURLError: If the value is empty or has no host.
    """
    candidate = (raw_url or "").strip()
    if not candidate:
        raise InvalidURLError(raw_url)
    if not candidate.lower().startswith("http"):
        candidate = f"https://{candidate}"
    try:
        parsed = urlparse(candidate)
    except ValueError as exc:
        raise InvalidURLError(raw_url) from exc
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(raw_url)
    return candidate


def parse_selectors(value: Any) -> List[str]:
    """Accept a list of selectors or a comma-separated string of them."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if str(part).strip()]
    raise ValueError("selectors must be a list or a comma-separated string")


class ExtractionOptions(BaseModel):
    """Per-request extraction overrides.

    ``None`` means "not supplied"; the settings value is used instead.

    Attributes:
        target_selectors: CSS selectors whose matches become the whole
            document before cleaning.
        remove_selectors: Extra CSS selectors to strip.
        aggressive_cleaning: Run the boilerplate rules and markdown rule chain.
        remove_images: Drop images instead of keeping them as placeholders.
        min_content_length: Markdown length below which fallback stages run.
        dynamic_content_timeout: Per-selector wait (ms) for target selectors.
        scroll_wait_time: Total pause (ms) across incremental scroll steps.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    target_selectors: List[str] = Field(default_factory=list)
    remove_selectors: List[str] = Field(default_factory=list)
    aggressive_cleaning: Optional[bool] = None
    remove_images: Optional[bool] = None
    min_content_length: Optional[int] = Field(default=None, ge=0)
    dynamic_content_timeout: Optional[int] = Field(default=None, ge=0)
    scroll_wait_time: Optional[int] = Field(default=None, ge=0)

    @field_validator("target_selectors", "remove_selectors", mode="before")
    @classmethod
    def _split_selectors(cls, value: Any) -> List[str]:
        return parse_selectors(value)

    def resolve(self, url: str, settings: Settings) -> "ExtractionRequest":
        """Merge these overrides with ``settings`` into an immutable request.

        Args:
            url: Target URL; normalised with :func:`normalize_url`.
            settings: Service settings supplying every unset value.

        Returns:
            The frozen request handed to the extraction pipeline.

        Raises:
            InvalidURLError: If ``url`` cannot be normalised.
        """

        def pick(value: Any, default: Any) -> Any:
            return default if value is None else value

        return ExtractionRequest(
            url=normalize_url(url),
            target_selectors=tuple(self.target_selectors),
            remove_selectors=tuple(self.remove_selectors),
            aggressive_cleaning=pick(self.aggressive_cleaning, settings.aggressive_cleaning),
            remove_images=pick(self.remove_images, settings.remove_images),
            min_content_length=pick(self.min_content_length, settings.min_content_length),
            dynamic_content_timeout=pick(
                self.dynamic_content_timeout, settings.dynamic_content_timeout
            ),
            scroll_wait_time=pick(self.scroll_wait_time, settings.scroll_wait_time),
            extra_scroll_wait_time=settings.extra_scroll_wait_time,
            scroll_steps=settings.scroll_steps,
            max_retries=settings.max_retries,
        )


class SimpleWebhookConfig(BaseModel):
    """Callback descriptor for a single conversion.

    Attributes:
        url: Endpoint receiving the result.
        method: HTTP method (default ``POST``).
        headers: Extra request headers merged over ``Content-Type``.
        timeout: Request timeout in seconds; ``None`` uses the settings value.
        data: Optional payload template.  String values may contain the
            markers ``##markdown##``, ``##url##``, ``##timestamp##``,
            ``##metadata##`` and ``##options##``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)
    data: Dict[str, Any] = Field(default_factory=dict)


class ConvertRequest(ExtractionOptions):
    """JSON body of ``POST /convert``."""

    url: str
    custom_webhook: Optional[SimpleWebhookConfig] = None


@dataclass(frozen=True)
class ExtractionRequest:
    """Fully resolved input of one page extraction.

    Immutable once an attempt starts.  The fallback state machine derives a
    copy with ``aggressive_cleaning=False`` for its last stage via
    :func:`dataclasses.replace`; nothing else is ever overridden.
    """

    url: str
    target_selectors: Tuple[str, ...] = ()
    remove_selectors: Tuple[str, ...] = ()
    aggressive_cleaning: bool = True
    remove_images: bool = False
    min_content_length: int = 500
    dynamic_content_timeout: int = 5_000
    scroll_wait_time: int = 200
    extra_scroll_wait_time: int = 1_000
    scroll_steps: int = 5
    max_retries: int = 2

    @property
    def preserve_images(self) -> bool:
        return not self.remove_images
