"""
Sitemap-based URL discovery.

Resolves a site's sitemap into the ordered list of pages a scan will audit.
Called once when the scan is created; the list is stored on the job and
never re-resolved on resume.
"""
from collections import deque
from typing import Deque, List, Optional, Set, Tuple
import requests
from bs4 import BeautifulSoup

from a11y_portal.platform.config import settings
from a11y_portal.platform.exceptions import SitemapDiscoveryError
from a11y_portal.platform.logger import get_logger
from a11y_portal.platform.utils.url_validator import validate_url

logger = get_logger(__name__)


def parse_sitemap_document(xml_text: str) -> Tuple[List[str], List[str]]:
    """
    Split one sitemap document into (page urls, nested sitemap urls).

    Works for both <urlset> and <sitemapindex> documents.
    """
    soup = BeautifulSoup(xml_text, "xml")

    page_urls: List[str] = []
    nested_sitemaps: List[str] = []

    for url_tag in soup.find_all("url"):
        loc = url_tag.find("loc")
        if not loc or not loc.text:
            continue
        is_valid, candidate, _ = validate_url(loc.text)
        if is_valid:
            page_urls.append(candidate)

    for sitemap_tag in soup.find_all("sitemap"):
        loc = sitemap_tag.find("loc")
        if not loc or not loc.text:
            continue
        is_valid, candidate, _ = validate_url(loc.text)
        if is_valid:
            nested_sitemaps.append(candidate)

    return page_urls, nested_sitemaps


class SitemapDiscoveryService:

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
        max_documents: Optional[int] = None,
        max_urls: Optional[int] = None,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout or settings.SITEMAP_FETCH_TIMEOUT_SECONDS
        self._max_documents = max_documents or settings.SITEMAP_MAX_DOCUMENTS
        self._max_urls = max_urls or settings.SITEMAP_MAX_URLS

    def _fetch(self, sitemap_url: str) -> str:
        try:
            response = self._session.get(
                sitemap_url,
                timeout=self._timeout,
                headers={"User-Agent": settings.SCANNER_USER_AGENT},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SitemapDiscoveryError(f"Failed to fetch sitemap {sitemap_url}: {e}") from e
        return response.text

    def resolve(self, sitemap_url: str) -> List[str]:
        """
        Return the de-duplicated page URLs of a sitemap, in document order.

        Sitemap indexes are followed breadth-first. Only the root sitemap has
        to be reachable; a nested document that fails is logged and skipped.
        """
        is_valid, sitemap_url, error = validate_url(sitemap_url or "")
        if not is_valid:
            raise SitemapDiscoveryError(f"Invalid sitemap URL: {error}")

        targets: Deque[str] = deque([sitemap_url])
        seen_targets: Set[str] = set()
        seen_pages: Set[str] = set()
        pages: List[str] = []

        while targets and len(seen_targets) < self._max_documents:
            target = targets.popleft()
            if target in seen_targets:
                continue
            seen_targets.add(target)

            try:
                xml_text = self._fetch(target)
            except SitemapDiscoveryError:
                if target == sitemap_url:
                    raise
                logger.warning(f"Skipping unreachable nested sitemap {target}")
                continue

            page_urls, nested = parse_sitemap_document(xml_text)
            for page in page_urls:
                if page in seen_pages:
                    continue
                seen_pages.add(page)
                pages.append(page)
                if len(pages) >= self._max_urls:
                    logger.info(f"Sitemap {sitemap_url}: URL cap of {self._max_urls} reached")
                    return pages

            targets.extend(url for url in nested if url not in seen_targets)

        if not pages:
            raise SitemapDiscoveryError(f"No page URLs found in sitemap {sitemap_url}")

        logger.info(f"Sitemap {sitemap_url}: {len(pages)} pages from {len(seen_targets)} document(s)")
        return pages
