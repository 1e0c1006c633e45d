"""
Scan Orchestrator.

Per target page:

    Navigate (www toggle retry) -> ResolveEngine -> RunSurfaceProbers -> Verdict

In crawl mode the same pipeline runs for every in-scope link the crawler
discovers from the target, with a fresh fingerprint per page.
"""
from typing import List, Optional, Type, Union
from urllib.parse import urlparse, urlunparse

from cstiscan.core.config import settings
from cstiscan.core.exceptions import is_transient
from cstiscan.core.timeouts import with_timeout
from cstiscan.engines.catalog import EngineId
from cstiscan.engines.fingerprint import EngineFingerprinter, fingerprinter as default_fingerprinter
from cstiscan.engines.reflection import ReflectionOracle
from cstiscan.schemas.models import UNKNOWN_ENGINE, PageVerdict, ScanReport, SurfaceKind
from cstiscan.services.scan_context import ScanContext, ScanOptions
from cstiscan.tools.visual.browser import browser_manager
from cstiscan.tools.visual.crawler import LinkCrawler
from cstiscan.tools.visual.injector import InjectionDriver
from cstiscan.agents.probers import PROBER_ORDER, SurfaceProber
from cstiscan.utils.logger import get_logger

logger = get_logger("agents.orchestrator")


def toggle_www(url: str) -> str:
    """Strip a leading www. from the host, or add one when absent."""
    parsed = urlparse(url)
    netloc = parsed.netloc
    userinfo, sep, hostport = netloc.rpartition("@")
    if hostport.lower().startswith("www."):
        hostport = hostport[4:]
    else:
        hostport = f"www.{hostport}"
    return urlunparse(parsed._replace(netloc=f"{userinfo}{sep}{hostport}"))


class ScanOrchestrator:
    """Drives one scan run over a single browser page."""

    def __init__(
        self,
        options: ScanOptions,
        page,
        fingerprinter: EngineFingerprinter = None,
        injector: InjectionDriver = None,
        oracle: ReflectionOracle = None,
    ):
        self.options = options
        self.page = page
        self.context = ScanContext(options)
        self.fingerprinter = fingerprinter or default_fingerprinter
        self.injector = injector
        self.oracle = oracle

    def prober_classes(self) -> List[Type[SurfaceProber]]:
        """Surface probers enabled for this run, in scan order."""
        options = self.options
        enabled = {
            SurfaceKind.FORM: not options.skip_forms,
            SurfaceKind.INPUT: not options.skip_inputs,
            SurfaceKind.BUTTON: not options.skip_buttons,
            SurfaceKind.ANCHOR: not options.skip_links,
            SurfaceKind.CLASS: options.check_class,
        }
        return [cls for cls in PROBER_ORDER if enabled[cls.kind]]

    async def _goto(self, url: str) -> bool:
        outcome = await with_timeout(
            self.page.navigate(url, settings.NAVIGATION_TIMEOUT), settings.NAVIGATION_TIMEOUT
        )
        if not outcome.ok:
            if outcome.error is not None and not is_transient(outcome.error):
                logger.error(f"Unexpected error loading {url}: {outcome.describe()}")
            else:
                logger.warning(f"Error loading {url}: {outcome.describe()}")
        return outcome.ok

    async def navigate_with_fallback(self, url: str) -> Optional[str]:
        """
        Load `url`, retrying once with the www. prefix toggled.
        Returns the URL that loaded, or None if both attempts failed.
        """
        logger.info(f"Visiting: {url}")
        if await self._goto(url):
            return url

        alternate = toggle_www(url)
        logger.info(f"Retrying with toggled www: {alternate}")
        if await self._goto(alternate):
            return alternate
        return None

    async def scan_page(self, url: str, hint: Optional[Union[str, EngineId]] = None) -> PageVerdict:
        """Fingerprint the loaded page and run the enabled probers on it."""
        engine = await self.fingerprinter.resolve(self.page, hint)
        verdict = PageVerdict(url=url, engine=getattr(engine, "value", engine))

        if engine == UNKNOWN_ENGINE:
            logger.info(f"Unknown engine on {url}, skipping (see `cstiscan engines` for supported engines)")
            verdict.skipped_reason = "unknown engine"
            return verdict

        for prober_cls in self.prober_classes():
            prober = prober_cls(
                self.page,
                engine,
                continue_when_positive=self.options.continue_when_positive,
                injector=self.injector,
                oracle=self.oracle,
            )
            logger.info(f"Checking {prober.kind.value} surface on {url}")
            result = await prober.run()
            verdict.record(result)
            if self.context.should_stop(result.vulnerable):
                break

        logger.info(f"{url}: {'VULNERABLE' if verdict.vulnerable else 'not vulnerable'} ({verdict.engine})")
        return verdict

    async def _scan_crawled(self, seed_url: str):
        options = self.options
        logger.info(f"Crawling {seed_url} at depth {options.crawl_depth}")
        crawler = LinkCrawler(self.page)
        links = await crawler.crawl(seed_url, options.crawl_depth, options.crawl_subdomains)
        links = links[1:]
        logger.info(f"{len(links)} links to check")

        for i, link in enumerate(links, 1):
            if self.context.stopped:
                break
            logger.info(f"Checking link {link} {i}/{len(links)}")
            loaded = await self.navigate_with_fallback(link)
            if loaded is None:
                logger.warning(f"Skipping unreachable link: {link}")
                continue
            self.context.add_page(await self.scan_page(loaded))

    async def run(self) -> ScanReport:
        options = self.options
        loaded = await self.navigate_with_fallback(options.target_url)
        if loaded is None:
            logger.error(f"Target unreachable: {options.target_url}")
            self.context.abort(f"Could not load {options.target_url} with or without www.")
            return self.context.report

        self.context.add_page(await self.scan_page(loaded, options.engine_hint))

        if options.crawl and not self.context.stopped:
            await self._scan_crawled(loaded)

        report = self.context.report
        logger.info(f"Scan finished: {len(report.pages)} pages, {len(report.positives)} vulnerable")
        return report


async def run_scan(options: ScanOptions) -> ScanReport:
    """Launch the browser, run one scan, and always shut the browser down."""
    try:
        async with browser_manager.get_page() as page:
            return await ScanOrchestrator(options, page).run()
    finally:
        await browser_manager.stop()


__all__ = ["ScanOrchestrator", "run_scan", "toggle_www"]
