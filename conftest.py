import pytest

from portal import settings as portal_settings


class _SettingsOverride:
    """Attribute-style access to ``portal.settings`` that is undone after the test."""

    def __init__(self, monkeypatch):
        object.__setattr__(self, "_mp", monkeypatch)

    def __getattr__(self, name):
        return getattr(portal_settings, name)

    def __setattr__(self, name, value):
        self._mp.setattr(portal_settings, name, value, raising=False)


@pytest.fixture
def settings(monkeypatch):
    """Override configuration values for the duration of a test."""
    return _SettingsOverride(monkeypatch)


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
