"""URL extraction and store matching for shop links.

Provides helpers used by Telegram handlers to pull URLs out of free text and
split them into links of partner stores and links nobody pays commission for.
"""

from __future__ import annotations

import logging
import re
from typing import Final, TypedDict
from urllib.parse import urlparse

from ..models import AffiliateStore
from ..services.affiliate import AffiliateService, affiliate_service

logger = logging.getLogger(__name__)


class MatchedURL(TypedDict):
    """A pasted URL together with the partner store that covers it."""

    url: str
    store: AffiliateStore


class ProcessedURLs(TypedDict):
    """URL matching outcome for one message."""

    matched: list[MatchedURL]
    unsupported_hosts: list[str]


class URLProcessor:
    """Handles URL detection and store lookup."""

    URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"(https?://[^\s\)\]\}]+)")

    def __init__(self, service: AffiliateService):
        self.service = service

    def extract_urls(self, text: str | None) -> list[str]:
        """Extract URLs from free-form text."""
        if not text:
            return []

        raw_urls = self.URL_PATTERN.findall(text)
        urls = [url.rstrip(".,);?!") for url in raw_urls]
        logger.debug("Extracted %d URLs from text", len(urls))
        return urls

    def match_stores(self, urls: list[str]) -> ProcessedURLs:
        """Split URLs into partner store links and unsupported hosts."""
        matched: list[MatchedURL] = []
        unsupported: list[str] = []

        for url in urls:
            host = urlparse(url).hostname
            if not host:
                continue
            store = self.service.repository.get_store_by_domain(host)
            if store is None:
                if host not in unsupported:
                    unsupported.append(host)
            else:
                matched.append(MatchedURL(url=url, store=store))

        if unsupported:
            logger.info("URLs from unsupported hosts: %s", unsupported)

        return ProcessedURLs(matched=matched, unsupported_hosts=unsupported)

    def process_message(self, text: str | None) -> ProcessedURLs:
        """Full URL pipeline used by message handlers."""
        return self.match_stores(self.extract_urls(text))


url_processor = URLProcessor(affiliate_service)
