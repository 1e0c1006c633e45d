import pytest

from cstiscan.tools.visual.crawler import (
    LinkCrawler,
    is_in_scope,
    normalize_url,
    site_host,
    strip_query_and_fragment,
)

A = "https://example.com/"
B = "https://example.com/b"
C = "https://example.com/c"


class TestScope:

    def test_exact_and_www_hosts_are_in_scope(self):
        assert is_in_scope("https://example.com/x", "example.com", False)
        assert is_in_scope("https://www.example.com/x", "example.com", False)

    def test_subdomains_need_the_flag(self):
        assert not is_in_scope("https://shop.example.com/", "example.com", False)
        assert is_in_scope("https://shop.example.com/", "example.com", True)

    def test_suffix_lookalike_is_never_in_scope(self):
        assert not is_in_scope("https://example.com.evil.net/", "example.com", False)
        assert not is_in_scope("https://example.com.evil.net/", "example.com", True)
        assert not is_in_scope("https://notexample.com/", "example.com", True)

    def test_non_http_links_are_out_of_scope(self):
        assert not is_in_scope("mailto:someone@example.com", "example.com", True)
        assert not is_in_scope("javascript:void(0)", "example.com", True)

    def test_site_host_keeps_www(self):
        assert site_host("https://www.example.com/a") == "www.example.com"
        assert site_host("https://Example.com") == "example.com"

    def test_www_seed_keeps_subdomain_scope_under_www(self):
        assert is_in_scope("https://example.com/", "www.example.com", True)
        assert is_in_scope("https://www.example.com/", "www.example.com", False)
        assert is_in_scope("https://a.www.example.com/", "www.example.com", True)
        assert not is_in_scope("https://shop.example.com/", "www.example.com", True)


class TestUrlHelpers:

    def test_strip_query_and_fragment(self):
        assert strip_query_and_fragment("https://example.com/p?x=1#top") == "https://example.com/p"
        assert strip_query_and_fragment("https://example.com/p#a?b") == "https://example.com/p"

    def test_normalize_resolves_relative_links(self):
        assert normalize_url("/about", "https://example.com/b/c") == "https://example.com/about"

    def test_normalize_drops_invalid_links(self):
        assert normalize_url("javascript:alert(1)", A) is None
        assert normalize_url("http://[::1", A) is None


@pytest.mark.asyncio
async def test_crawl_terminates_on_cycles_and_dedups(make_page):
    page = make_page({
        A: {"anchors": [B]},
        B: {"anchors": [A, C]},
        C: {"anchors": []},
    })
    links = await LinkCrawler(page).crawl(A, 3)

    assert links == [A, B, C]
    assert page.navigation_count(A) == 1
    assert page.navigation_count(B) == 1
    assert page.navigation_count(C) == 1


@pytest.mark.asyncio
async def test_depth_one_lists_links_without_expanding_them(make_page):
    page = make_page({
        A: {"anchors": [B, f"{B}?q=1#x", C]},
        B: {"anchors": ["https://example.com/deep"]},
        C: {},
    })
    links = await LinkCrawler(page).crawl(A, 1)

    assert links == [A, B, C]
    assert page.navigation_count(B) == 0


@pytest.mark.asyncio
async def test_depth_zero_returns_only_seed(make_page):
    page = make_page({A: {"anchors": [B]}})
    assert await LinkCrawler(page).crawl(A, 0) == [A]
    assert page.calls == []


@pytest.mark.asyncio
async def test_depth_first_order(make_page):
    b1 = "https://example.com/b/1"
    page = make_page({
        A: {"anchors": [B, C]},
        B: {"anchors": [b1]},
        C: {},
        b1: {},
    })
    await LinkCrawler(page).crawl(A, 2)
    navigated = [call[1] for call in page.calls if call[0] == "navigate"]
    assert navigated == [A, B, C]


@pytest.mark.asyncio
async def test_subdomain_filter_during_crawl(make_page):
    shop = "https://shop.example.com/"
    evil = "https://example.com.evil.net/"
    page = make_page({A: {"anchors": [shop, evil, B]}, B: {}})

    assert await LinkCrawler(page).crawl(A, 1) == [A, B]
    assert await LinkCrawler(page).crawl(A, 1, include_subdomains=True) == [A, shop, B]


@pytest.mark.asyncio
async def test_failed_branch_is_skipped(make_page):
    broken = "https://example.com/broken"
    page = make_page({A: {"anchors": [broken, C]}, C: {"anchors": [B]}, B: {}})
    links = await LinkCrawler(page).crawl(A, 2)
    assert links == [A, broken, C, B]


@pytest.mark.asyncio
async def test_max_pages_caps_expansions(make_page):
    page = make_page({A: {"anchors": [B, C]}, B: {}, C: {}})
    await LinkCrawler(page, max_pages=1).crawl(A, 3)
    navigated = [call[1] for call in page.calls if call[0] == "navigate"]
    assert navigated == [A]


@pytest.mark.asyncio
async def test_www_seed_does_not_widen_to_sibling_subdomains(make_page):
    seed = "https://www.example.com/"
    page = make_page({seed: {"anchors": ["https://shop.example.com/", B]}, B: {}})
    assert await LinkCrawler(page).crawl(seed, 1, include_subdomains=True) == [seed, B]
