"""
Surface prober state machine tests, driven through FakePage.
"""
import pytest

from cstiscan.agents.probers import (
    ButtonProber,
    ClassProber,
    FormProber,
    InputProber,
    LinkProber,
)
from cstiscan.schemas.models import SurfaceKind

URL = "https://example.com/"
ANGULAR = {"angular", "angular.version"}


@pytest.mark.asyncio
async def test_zero_instances_is_a_clean_noop(make_page):
    page = make_page({URL: {"globals": ANGULAR}}, start=URL)
    result = await FormProber(page, "angular").run()

    assert result.kind == SurfaceKind.FORM
    assert result.instances == 0
    assert result.vulnerable is False
    assert result.skipped is False


@pytest.mark.asyncio
async def test_form_submission_reflection(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"], "reflects": {"form"}}}, start=URL)
    result = await FormProber(page, "angular").run()

    assert result.vulnerable is True
    assert result.positives == [0]


@pytest.mark.asyncio
async def test_literal_reflection_is_not_vulnerable(make_page):
    page = make_page(
        {URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"], "reflects": {"form"}, "evaluates": False}},
        start=URL,
    )
    result = await FormProber(page, "angular").run()
    assert result.vulnerable is False


@pytest.mark.asyncio
async def test_input_prober_types_then_presses_enter(make_page):
    page = make_page({URL: {"globals": {"Mustache"}, "inputs": ["text"], "reflects": {"input"}}}, start=URL)
    result = await InputProber(page, "mustache").run()

    assert result.vulnerable is True
    assert page.calls.index(("type", 0)) < page.calls.index(("press", "Enter"))


@pytest.mark.asyncio
async def test_button_without_navigation_reloads(make_page):
    page = make_page({URL: {"globals": ANGULAR, "buttons": 1, "inputs": ["text"]}}, start=URL)
    result = await ButtonProber(page, "angular").run()

    assert result.vulnerable is False
    assert ("reload",) in page.calls
    assert ("go_back",) not in page.calls


@pytest.mark.asyncio
async def test_form_without_navigation_does_not_reload(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"]}}, start=URL)
    await FormProber(page, "angular").run()
    assert ("reload",) not in page.calls


@pytest.mark.asyncio
async def test_navigation_is_undone_with_go_back(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 2, "inputs": ["text"], "navigates": {"form"}}}, start=URL)
    result = await FormProber(page, "angular").run()

    assert result.instances == 2
    assert result.vulnerable is False
    assert page.calls.count(("go_back",)) == 2
    assert page.url == URL


@pytest.mark.asyncio
async def test_timed_out_navigation_is_restored(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"], "navigates": {"form"}}}, start=URL)
    page.navigation_times_out = True
    await FormProber(page, "angular").run()

    assert ("go_back",) in page.calls
    assert page.url == URL


@pytest.mark.asyncio
async def test_baseline_renavigation_when_history_fails(make_page, fast_timeouts):
    page = make_page({URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"], "navigates": {"form"}}}, start=URL)
    page.hang.add("go_back")
    await FormProber(page, "angular").run()

    assert ("navigate", URL) in page.calls
    assert page.url == URL


@pytest.mark.asyncio
async def test_followed_link_is_undone_with_go_back(make_page):
    page = make_page(
        {URL: {"globals": {"Mustache"}, "anchors": ["https://example.com/s?q=x"], "navigates": {"anchor"}}},
        start=URL,
    )
    result = await LinkProber(page, "mustache").run()

    assert result.vulnerable is False
    assert ("go_back",) in page.calls
    assert page.url == URL


@pytest.mark.asyncio
async def test_link_prober_detects_reflection(make_page):
    page = make_page(
        {URL: {"globals": {"Mustache"}, "anchors": ["https://example.com/?q=x"], "reflects": {"anchor"}}},
        start=URL,
    )
    result = await LinkProber(page, "mustache").run()
    assert result.vulnerable is True
    assert ("reload",) not in page.calls  # stopped on the positive, evidence kept


@pytest.mark.asyncio
async def test_class_prober(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 1, "inputs": ["text"], "class_reflects": True}}, start=URL)
    result = await ClassProber(page, "angular").run()

    assert result.kind == SurfaceKind.CLASS
    assert result.vulnerable is True


@pytest.mark.asyncio
async def test_enumeration_failure_skips_surface(make_page):
    page = make_page({URL: {"globals": ANGULAR, "buttons": 2}}, start=URL)
    page.fail_queries.add("button")
    result = await ButtonProber(page, "angular").run()

    assert result.skipped is True
    assert result.vulnerable is False


@pytest.mark.asyncio
async def test_vanished_instance_is_skipped(make_page):
    page = make_page({URL: {"globals": ANGULAR, "buttons": 2, "inputs": ["text"]}}, start=URL)
    original_query_all = page.query_all
    counts = iter([2, 2, 0])

    async def shrinking_query_all(selector):
        handles = await original_query_all(selector)
        return handles[:next(counts)]

    page.query_all = shrinking_query_all
    result = await ButtonProber(page, "angular").run()

    assert result.instances == 2
    assert result.vulnerable is False
    assert [c for c in page.calls if c == ("evaluate", "CLICK_BUTTON")] == [("evaluate", "CLICK_BUTTON")]


@pytest.mark.asyncio
async def test_stops_on_first_positive_by_default(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 3, "inputs": ["text"], "reflects": {"form"}}}, start=URL)
    result = await FormProber(page, "angular").run()
    assert result.positives == [0]


@pytest.mark.asyncio
async def test_continue_when_positive_accumulates(make_page):
    page = make_page({URL: {"globals": ANGULAR, "forms": 3, "inputs": ["text"], "reflects": {"form"}}}, start=URL)
    result = await FormProber(page, "angular", continue_when_positive=True).run()
    assert result.positives == [0, 1, 2]


@pytest.mark.asyncio
async def test_hanging_interactions_are_fail_soft(make_page, fast_timeouts):
    page = make_page({URL: {"globals": ANGULAR, "forms": 2, "inputs": ["text"], "reflects": {"form"}}}, start=URL)
    page.hang.update({"SUBMIT_FORM", "OUTER_HTML"})
    result = await FormProber(page, "angular").run()

    assert result.instances == 2
    assert result.vulnerable is False


@pytest.mark.asyncio
async def test_input_is_re_enumerated_between_typing_and_enter(make_page):
    page = make_page({URL: {"globals": {"Mustache"}, "inputs": ["text"], "reflects": {"input"}}}, start=URL)
    enumerations = []
    pressed = []
    original_query_all = page.query_all
    original_press = page.press

    async def recording_query_all(selector):
        handles = await original_query_all(selector)
        enumerations.append(handles)
        return handles

    async def recording_press(handle, key):
        pressed.append(handle)
        await original_press(handle, key)

    page.query_all = recording_query_all
    page.press = recording_press
    result = await InputProber(page, "mustache").run()

    assert result.vulnerable is True
    sequence = [call[0] for call in page.calls if call[0] in ("query_all", "type", "press")]
    assert sequence == ["query_all", "query_all", "type", "query_all", "press"]
    assert pressed[0] is enumerations[-1][0]


@pytest.mark.asyncio
async def test_input_removed_by_typing_is_not_pressed(make_page):
    page = make_page({URL: {"globals": {"Mustache"}, "inputs": ["text"], "reflects": {"input"}}}, start=URL)
    original_type = page.type

    async def rerendering_type(handle, text):
        await original_type(handle, text)
        page.site.inputs.clear()

    page.type = rerendering_type
    result = await InputProber(page, "mustache").run()

    assert result.vulnerable is False
    assert ("press", "Enter") not in page.calls
