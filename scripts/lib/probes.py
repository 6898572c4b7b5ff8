"""HTTP checks against deployed sites and APIs."""

import json
import logging
import re
from urllib.parse import urljoin

import httpx

from .polling import retry_until_true

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

CSS_HREF_PATTERN = re.compile(r'href="([^"]*\.css[^"]*)"')
JS_SRC_PATTERN = re.compile(r'src="([^"]*\.js[^"]*)"')
API_BODY_MARKERS = ('"message":', '"Message":', '"error":', '"Error":')


def fetch(
    url: str,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> httpx.Response | None:
    """GET a URL following redirects; None when the request itself fails."""
    try:
        if client is not None:
            return client.get(url, follow_redirects=True)
        return httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.info("GET %s failed: %s", url, e)
        return None


def status_of(url: str, client: httpx.Client | None = None) -> int | None:
    response = fetch(url, client)
    return response.status_code if response is not None else None


def check_status(
    url: str,
    expected: int = 200,
    attempts: int = 5,
    delay: float = 30,
    client: httpx.Client | None = None,
) -> bool:
    """Retry until ``url`` answers with the expected status code."""

    def check() -> bool:
        status = status_of(url, client)
        logger.info("GET %s -> %s", url, status)
        return status == expected

    return retry_until_true(check, attempts, delay)


def check_content(
    url: str,
    text: str,
    attempts: int = 3,
    delay: float = 10,
    client: httpx.Client | None = None,
) -> bool:
    """Retry until the body at ``url`` contains ``text``."""

    def check() -> bool:
        response = fetch(url, client)
        return response is not None and text in response.text

    return retry_until_true(check, attempts, delay)


def extract_assets(html: str) -> list[str]:
    """CSS and JS references from an HTML page, in document order."""
    refs = CSS_HREF_PATTERN.findall(html) + JS_SRC_PATTERN.findall(html)
    seen = []
    for ref in refs:
        if ref not in seen:
            seen.append(ref)
    return seen


def resolve_asset(base_url: str, ref: str) -> str:
    """Absolute URL for an asset reference relative to the site root."""
    if ref.startswith(("http://", "https://")):
        return ref
    return urljoin(base_url.rstrip("/") + "/", ref.lstrip("/"))


def looks_like_html(body: str) -> bool:
    return "<!doctype html" in body[:512].lower()


def looks_like_api_response(body: str) -> bool:
    """True for a JSON body produced by Lambda rather than the SPA fallback."""
    if looks_like_html(body):
        return False
    try:
        json.loads(body)
        return True
    except ValueError:
        return any(marker in body for marker in API_BODY_MARKERS)
