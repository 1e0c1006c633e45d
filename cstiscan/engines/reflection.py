"""
Reflection oracle.

Decides whether the page shows the *evaluated* form of an injected payload.
Both checks are bounded and fail closed: a timeout or evaluation error means
"not reflected", never an exception.
"""
import re
from typing import Union

from cstiscan.core.config import settings
from cstiscan.core.timeouts import with_timeout
from cstiscan.engines.catalog import EngineId, ReflectionMode, lookup
from cstiscan.tools.visual import scripts
from cstiscan.utils.logger import get_logger

logger = get_logger("engines.reflection")

# Random marker injected for class-attribute reflection checks
CLASS_MARKER = "uoihpojskx"


class ReflectionOracle:
    """Reflection checks against the page's current rendered markup."""

    def __init__(self, timeout: float = None):
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout or settings.REFLECTION_TIMEOUT

    async def has_reflection(self, page, engine_id: Union[str, EngineId]) -> bool:
        signature = lookup(engine_id)
        if signature is None:
            logger.warning(f"No reflection pattern for engine {engine_id}")
            return False

        outcome = await with_timeout(page.evaluate(scripts.OUTER_HTML), self.timeout)
        if not outcome.ok:
            logger.warning(f"Reflection check {outcome.describe()} on {page.url}")
            return False

        markup = outcome.value or ""
        if signature.mode == ReflectionMode.COMPUTED:
            found = signature.reflection_pattern in markup
        else:
            found = re.search(signature.reflection_pattern, markup) is not None

        if found:
            logger.info(f"Vulnerability detected at: {page.url}")
            if signature.flagged:
                logger.warning(f"Engine {signature.id.value} is flagged ({signature.flagged}); confirm manually")
        return found

    async def has_class_reflection(self, page) -> bool:
        outcome = await with_timeout(page.evaluate(scripts.CLASS_MARKER, CLASS_MARKER), self.timeout)
        if not outcome.ok:
            logger.warning(f"Class reflection check {outcome.describe()} on {page.url}")
            return False
        if outcome.value:
            logger.info(f"Class-based reflection detected at: {page.url}")
        return bool(outcome.value)


oracle = ReflectionOracle()
