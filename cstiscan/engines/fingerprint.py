"""
Template engine fingerprinting.

Probes the page's global namespace for each catalog engine's characteristic
symbol, in catalog order, and reports the first one that exists.
"""
from typing import Optional, Union

from cstiscan.core.config import settings
from cstiscan.core.timeouts import with_timeout
from cstiscan.engines import catalog
from cstiscan.engines.catalog import EngineId
from cstiscan.schemas.models import UNKNOWN_ENGINE
from cstiscan.tools.visual import scripts
from cstiscan.utils.logger import get_logger

logger = get_logger("engines.fingerprint")


class EngineFingerprinter:
    """Detect which client-side template engine is in use."""

    def __init__(self, timeout: float = None):
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout or settings.PROBE_TIMEOUT

    async def _probe(self, page, engine_id: EngineId) -> bool:
        signature = catalog.get(engine_id)
        outcome = await with_timeout(
            page.evaluate(scripts.DETECT_PROBE, signature.detection_probe), self.timeout
        )
        if outcome.ok:
            return bool(outcome.value)
        # Undefined global is the normal "absent" answer
        if not outcome.reference_error:
            logger.debug(f"Error probing {engine_id.value} ({signature.detection_probe}): {outcome.describe()}")
        return False

    async def detect(self, page) -> Union[EngineId, str]:
        """First engine whose probe confirms, or "unknown"."""
        for engine_id in catalog.all_ids():
            if await self._probe(page, engine_id):
                logger.info(f"Template engine detected: {engine_id.value}")
                return engine_id
        logger.info(f"No known template engine on {page.url}")
        return UNKNOWN_ENGINE

    async def confirm(self, page, engine_id: Union[str, EngineId]) -> bool:
        """Evaluate only the named engine's probe."""
        if catalog.lookup(engine_id) is None:
            logger.warning(f"Cannot confirm unknown engine {engine_id}")
            return False
        return await self._probe(page, EngineId(engine_id))

    async def resolve(self, page, hint: Optional[Union[str, EngineId]] = None) -> Union[EngineId, str]:
        """Confirm the caller's hint; fall back to a full catalog scan."""
        if hint is None:
            return await self.detect(page)

        signature = catalog.lookup(hint)
        if signature is not None:
            logger.info(f"Checking if the page is based on {signature.id.value}")
            if await self._probe(page, signature.id):
                logger.info("Engine hint confirmed")
                return signature.id

        logger.info("Engine hint not confirmed, probing every supported engine")
        return await self.detect(page)


fingerprinter = EngineFingerprinter()
