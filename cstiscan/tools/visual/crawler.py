from dataclasses import dataclass
from typing import List, Optional, Set
from urllib.parse import urljoin, urlparse

from cstiscan.core.config import settings
from cstiscan.core.timeouts import with_timeout
from cstiscan.tools.visual import scripts
from cstiscan.utils.logger import get_logger

logger = get_logger("tools.visual.crawler")


@dataclass(frozen=True)
class CrawlNode:
    url: str
    depth_remaining: int


def site_host(url: str) -> str:
    """Lower-cased hostname of `url`, www. kept."""
    return (urlparse(url).hostname or "").lower()


def strip_query_and_fragment(href: str) -> str:
    return href.split("?")[0].split("#")[0]


def is_in_scope(url: str, seed_host: str, include_subdomains: bool) -> bool:
    """
    Same-site check: the seed host with or without www., plus any host
    ending in ".<seed_host>" when subdomains are included. The subdomain
    rule uses the seed host as given, so a www. seed only admits hosts
    under www.
    """
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    if not host:
        return False
    bare = seed_host[4:] if seed_host.startswith("www.") else seed_host
    if host == bare or host == f"www.{bare}":
        return True
    return include_subdomains and host.endswith(f".{seed_host}")


def normalize_url(link: str, base_url: str) -> Optional[str]:
    """Resolve `link` against `base_url`; None when the result is not an http(s) URL."""
    try:
        resolved = urljoin(base_url, link)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return resolved


class LinkCrawler:
    """
    Depth-first same-site link discovery.

    Uses an explicit worklist instead of recursion. The visited set belongs to
    one crawl() call, so each URL is expanded at most once per call whatever
    the depth budget or link cycles.
    """

    def __init__(self, page, max_pages: int = None, navigation_timeout: float = None):
        self.page = page
        self.max_pages = settings.CRAWL_MAX_PAGES if max_pages is None else max_pages
        self.navigation_timeout = navigation_timeout or settings.NAVIGATION_TIMEOUT

    async def _extract_links(self, seed_host: str, include_subdomains: bool) -> List[str]:
        outcome = await with_timeout(self.page.evaluate(scripts.ANCHOR_HREFS), self.navigation_timeout)
        if not outcome.ok:
            logger.warning(f"Could not read links on {self.page.url}: {outcome.describe()}")
            return []

        links = []
        seen = set()
        for href in outcome.value or []:
            if not isinstance(href, str) or not href:
                continue
            link = strip_query_and_fragment(href)
            if not is_in_scope(link, seed_host, include_subdomains):
                continue
            if link not in seen:
                seen.add(link)
                links.append(link)
        return links

    async def crawl(self, seed_url: str, max_depth: int, include_subdomains: bool = False) -> List[str]:
        """
        Returns the seed URL followed by every in-scope link discovered, in
        discovery order and without duplicates.
        """
        seed_host = site_host(seed_url)
        visited: Set[str] = set()
        discovered: List[str] = [seed_url]
        known: Set[str] = {seed_url}
        stack: List[CrawlNode] = [CrawlNode(seed_url, max_depth)]
        expanded = 0

        while stack:
            node = stack.pop()
            if node.depth_remaining <= 0 or node.url in visited:
                continue
            if self.max_pages and expanded >= self.max_pages:
                logger.info(f"Crawl page limit ({self.max_pages}) reached")
                break

            visited.add(node.url)
            expanded += 1
            logger.info(f"Crawling: {node.url} (Depth: {node.depth_remaining})")

            outcome = await with_timeout(self.page.navigate(node.url, self.navigation_timeout), self.navigation_timeout)
            if not outcome.ok:
                # Only this branch is lost
                logger.warning(f"Error while crawling {node.url}: {outcome.describe()}")
                continue

            links = await self._extract_links(seed_host, include_subdomains)
            logger.debug(f"Found {len(links)} links on {node.url} - {self.page.url}")

            children = []
            for link in links:
                normalized = normalize_url(link, self.page.url)
                if normalized is None:
                    continue
                if normalized not in known:
                    known.add(normalized)
                    discovered.append(normalized)
                if normalized not in visited:
                    children.append(CrawlNode(normalized, node.depth_remaining - 1))

            # Reversed so the first link on the page is expanded first
            stack.extend(reversed(children))

        logger.info(f"Crawl finished. Expanded {expanded} pages, discovered {len(discovered)} URLs.")
        return discovered
