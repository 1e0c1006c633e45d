"""
Surface probers.

One state machine shared by every surface kind:

    Enumerate -> Inject -> Trigger -> AwaitNavigation -> CheckReflection -> Restore

The surface is re-enumerated from the live page before every instance,
because injecting into or triggering the previous instance may have
navigated or rewritten the DOM. Handles from an earlier iteration are never
reused. Every step is bounded and fail-soft: nothing raised inside a prober
reaches the orchestrator.
"""
from typing import List, Optional, Union

from cstiscan.core.config import settings
from cstiscan.core.timeouts import with_timeout
from cstiscan.engines.catalog import EngineId
from cstiscan.engines.reflection import ReflectionOracle, oracle as default_oracle
from cstiscan.schemas.models import NavigationOutcome, SurfaceKind, SurfaceResult
from cstiscan.tools.visual import scripts
from cstiscan.tools.visual.injector import InjectionDriver, injector as default_injector
from cstiscan.utils.logger import get_logger

logger = get_logger("agents.probers")


class SurfaceProber:
    """
    Base prober. Subclasses set `kind` and override inject()/trigger();
    `reload_when_idle` selects reload as the restore strategy when the
    trigger caused no navigation.
    """
    kind: SurfaceKind = None
    reload_when_idle: bool = False

    def __init__(
        self,
        page,
        engine: Union[str, EngineId],
        continue_when_positive: bool = False,
        injector: InjectionDriver = None,
        oracle: ReflectionOracle = None,
    ):
        self.page = page
        self.engine = engine
        self.continue_when_positive = continue_when_positive
        self.injector = injector or default_injector
        self.oracle = oracle or default_oracle
        self.baseline_url: Optional[str] = None
        self._navigation = NavigationOutcome.NO_NAVIGATION

    @property
    def label(self) -> str:
        return self.kind.value.upper()

    # --- States -----------------------------------------------------------

    async def enumerate(self) -> Optional[List]:
        """Live element handles for this surface, or None when the query failed."""
        outcome = await with_timeout(self.page.query_all(self.kind.selector), settings.ENUMERATION_TIMEOUT)
        if not outcome.ok:
            logger.warning(f"Error getting {self.kind.value} elements: {outcome.describe()}")
            return None
        return list(outcome.value or [])

    async def inject(self, index: int, handles: List) -> bool:
        return await self.injector.fill_all_inputs(self.page, self.engine)

    async def trigger(self, index: int, handles: List) -> bool:
        raise NotImplementedError

    async def await_navigation(self, marker) -> NavigationOutcome:
        outcome = await with_timeout(
            self.page.wait_for_navigation(marker, settings.POST_TRIGGER_NAVIGATION_TIMEOUT),
            # Outer bound only guards against a wedged adapter
            settings.POST_TRIGGER_NAVIGATION_TIMEOUT + settings.NAVIGATION_TIMEOUT,
        )
        if not outcome.ok:
            logger.debug(f"Navigation wait {outcome.describe()}")
            return NavigationOutcome.TIMED_OUT
        return outcome.value

    async def check(self) -> bool:
        return await self.oracle.has_reflection(self.page, self.engine)

    async def restore(self, navigation: NavigationOutcome):
        """Bring the page back to the baseline URL, whatever happened."""
        if navigation in (NavigationOutcome.NAVIGATED, NavigationOutcome.TIMED_OUT):
            outcome = await with_timeout(self.page.go_back(settings.HISTORY_TIMEOUT), settings.HISTORY_TIMEOUT)
            if not outcome.ok:
                logger.warning(f"Error going back: {outcome.describe()}")
        elif self.reload_when_idle:
            outcome = await with_timeout(self.page.reload(settings.HISTORY_TIMEOUT), settings.HISTORY_TIMEOUT)
            if not outcome.ok:
                logger.warning(f"Error reloading: {outcome.describe()}")

        logger.debug(f"LOCATION {self.page.url}")
        if self.page.url != self.baseline_url:
            outcome = await with_timeout(
                self.page.navigate(self.baseline_url, settings.NAVIGATION_TIMEOUT), settings.NAVIGATION_TIMEOUT
            )
            if not outcome.ok:
                logger.warning(f"Error returning to {self.baseline_url}: {outcome.describe()}")

    # --- Loop -------------------------------------------------------------

    async def probe_instance(self, index: int, total: int) -> Optional[bool]:
        """
        Run one instance through the state machine. Returns None when the
        instance vanished from the DOM (skipped), else the reflection result.
        Restore is left to the caller so a stopping scan can keep the
        evidence page loaded.
        """
        handles = await self.enumerate()
        if handles is None or index >= len(handles):
            logger.debug(f"{self.label} {index + 1}/{total} no longer present, skipping")
            return None

        marker = self.page.navigation_marker()
        logger.debug(f"{self.label} {index + 1}/{total}: injecting")
        await self.inject(index, handles)
        await self.trigger(index, handles)
        self._navigation = await self.await_navigation(marker)
        logger.debug(f"{self.label} {index + 1}/{total}: {self._navigation.value}")

        vulnerable = await self.check()
        logger.info(f"{self.label} {index + 1}/{total} RESULT: {vulnerable}")
        return vulnerable

    async def run(self) -> SurfaceResult:
        self.baseline_url = self.page.url
        handles = await self.enumerate()
        if handles is None:
            return SurfaceResult.not_vulnerable(self.kind, skipped=True)

        total = len(handles)
        logger.info(f"NUM {self.label}S {total}")
        result = SurfaceResult(kind=self.kind, instances=total)

        for index in range(total):
            self._navigation = NavigationOutcome.NO_NAVIGATION
            vulnerable = await self.probe_instance(index, total)
            if vulnerable is None:
                continue
            if vulnerable:
                result.vulnerable = True
                result.positives.append(index)
                if not self.continue_when_positive:
                    logger.info("VULNERABILITY FOUND - EXITING")
                    break
                logger.info("VULNERABILITY FOUND - CONTINUING")
            await self.restore(self._navigation)

        return result


class FormProber(SurfaceProber):
    """Fill every input, then submit the Nth form."""
    kind = SurfaceKind.FORM

    async def trigger(self, index: int, handles: List) -> bool:
        outcome = await with_timeout(self.page.evaluate(scripts.SUBMIT_FORM, index), settings.INJECTION_TIMEOUT)
        if not outcome.ok:
            logger.warning(f"Submitting form {index} {outcome.describe()}")
            return False
        return bool(outcome.value)


class InputProber(SurfaceProber):
    """Type the payload into the Nth input, then press Enter on it."""
    kind = SurfaceKind.INPUT

    async def inject(self, index: int, handles: List) -> bool:
        return await self.injector.type_into_input(self.page, self.engine, handles[index])

    async def trigger(self, index: int, handles: List) -> bool:
        # Typing fires input handlers that may re-render the field
        handles = await self.enumerate()
        if handles is None or index >= len(handles):
            logger.debug(f"Input {index} gone after typing, not pressing Enter")
            return False
        outcome = await with_timeout(self.page.press(handles[index], "Enter"), settings.INJECTION_TIMEOUT)
        if not outcome.ok:
            logger.warning(f"Pressing Enter on input {index} {outcome.describe()}")
            return False
        return True


class ButtonProber(SurfaceProber):
    """Fill every input, then click the Nth button."""
    kind = SurfaceKind.BUTTON
    reload_when_idle = True

    async def trigger(self, index: int, handles: List) -> bool:
        outcome = await with_timeout(self.page.evaluate(scripts.CLICK_BUTTON, index), settings.INJECTION_TIMEOUT)
        if not outcome.ok:
            logger.warning(f"Error clicking button {index}: {outcome.describe()}")
            return False
        return bool(outcome.value)


class LinkProber(SurfaceProber):
    """Fill every input, then put the payload in the Nth link's query and follow it."""
    kind = SurfaceKind.ANCHOR
    reload_when_idle = True

    async def inject(self, index: int, handles: List) -> bool:
        await self.injector.fill_all_inputs(self.page, self.engine)
        return await self.injector.inject_into_link_query(self.page, self.engine, index)

    async def trigger(self, index: int, handles: List) -> bool:
        # The anchor was already clicked while rewriting its href
        return True


class ClassProber(FormProber):
    """Submit forms filled with a marker and look for it in class attributes."""
    kind = SurfaceKind.CLASS

    @property
    def label(self) -> str:
        return "CLASS FORM"

    async def inject(self, index: int, handles: List) -> bool:
        return await self.injector.fill_with_marker(self.page)

    async def check(self) -> bool:
        return await self.oracle.has_class_reflection(self.page)


PROBER_ORDER = (FormProber, InputProber, ButtonProber, LinkProber, ClassProber)

__all__ = [
    "SurfaceProber",
    "FormProber",
    "InputProber",
    "ButtonProber",
    "LinkProber",
    "ClassProber",
    "PROBER_ORDER",
]
