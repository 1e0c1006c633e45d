"""
Browser-side tooling: Playwright page adapter, injected scripts, payload
injection and same-site link crawling.
"""
