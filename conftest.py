import pytest


def pytest_addoption(parser):
    """Register the opt-in flag for tests that drive a real browser.

    Live tests hit the real search engine and need a local Chrome, so they
    are skipped unless ``--live`` is passed.
    """

    # Helper to safely add options without causing conflicts if already registered
    def safe_addoption(*args, **kwargs):
        try:
            parser.addoption(*args, **kwargs)
        except ValueError:
            # Option already registered, skip
            pass

    safe_addoption("--live", action="store_true", help="Run tests marked 'live' against a real browser")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--live"):
        return

    skip_live = pytest.mark.skip(reason="needs --live")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)
