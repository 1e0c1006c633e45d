"""
Payload injection primitives.

Each primitive is bounded by the injection budget and fail-soft: failures are
logged and reported through the boolean return value, never raised.
"""
from typing import Union

from cstiscan.core.config import settings
from cstiscan.core.timeouts import with_timeout
from cstiscan.engines import catalog
from cstiscan.engines.catalog import EngineId
from cstiscan.engines.reflection import CLASS_MARKER
from cstiscan.tools.visual import scripts
from cstiscan.utils.logger import get_logger

logger = get_logger("tools.visual.injector")

EMAIL_SUFFIX = "@test.com"


class InjectionDriver:
    """Writes engine payloads into the live page."""

    def __init__(self, timeout: float = None):
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout or settings.INJECTION_TIMEOUT

    async def _fill(self, page, value: str) -> bool:
        outcome = await with_timeout(
            page.evaluate(scripts.FILL_INPUTS, {"value": value, "emailSuffix": EMAIL_SUFFIX}),
            self.timeout,
        )
        if not outcome.ok:
            logger.warning(f"Filling inputs {outcome.describe()}")
            return False
        logger.debug(f"Filled {outcome.value} inputs")
        return True

    async def fill_all_inputs(self, page, engine_id: Union[str, EngineId]) -> bool:
        """Set every input's value to the engine payload (file/submit skipped)."""
        payload = catalog.payload_for(engine_id)
        logger.debug(f"Injecting payload: {payload}")
        return await self._fill(page, payload)

    async def type_into_input(self, page, engine_id: Union[str, EngineId], input_handle) -> bool:
        """Keystroke-level entry so input event handlers fire."""
        payload = catalog.payload_for(engine_id)
        outcome = await with_timeout(page.type(input_handle, payload), self.timeout)
        if not outcome.ok:
            logger.warning(f"Typing payload {outcome.describe()}")
            return False
        return True

    async def inject_into_link_query(self, page, engine_id: Union[str, EngineId], link_index: int) -> bool:
        """Rewrite every query value of the Nth anchor to the payload, then click it."""
        payload = catalog.payload_for(engine_id)
        outcome = await with_timeout(
            page.evaluate(scripts.REWRITE_LINK_AND_CLICK, {"payload": payload, "index": link_index}),
            self.timeout,
        )
        if not outcome.ok:
            logger.warning(f"Link {link_index} injection {outcome.describe()}")
            return False
        if not outcome.value:
            logger.debug(f"Link {link_index} missing or not a URL, not clicked")
        return bool(outcome.value)

    async def fill_with_marker(self, page, technique: int = 0) -> bool:
        """Fill inputs with the class-reflection marker instead of a payload."""
        if technique != 0:
            # Only value assignment exists for now
            logger.warning(f"Unsupported class injection technique {technique}")
            return False
        logger.debug("Injecting class marker")
        return await self._fill(page, CLASS_MARKER)


injector = InjectionDriver()
