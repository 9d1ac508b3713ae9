import pytest

from graphcrawl import plugin_loader
from graphcrawl.errors import PluginNotFound
from graphcrawl.interfaces import SiteProfile


def test_letterboxd_profile_is_discovered():
    site_cls = plugin_loader.get("letterboxd.LetterboxdSite")

    assert site_cls.__name__ == "LetterboxdSite"
    assert issubclass(site_cls, SiteProfile)
    assert "letterboxd.LetterboxdSite" in plugin_loader.list_available()


def test_unknown_profile_raises():
    with pytest.raises(PluginNotFound):
        plugin_loader.get("nowhere.MissingSite")

    # PluginNotFound is a KeyError so callers can treat it like a lookup miss
    with pytest.raises(KeyError):
        plugin_loader.get("letterboxd.Missing")
