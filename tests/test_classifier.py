"""Tests for request classification."""

import pytest

from swcache.application.cache.classifier import RequestClassifier
from swcache.domain.models import FetchRequest
from swcache.enums import RequestClass

from conftest import ORIGIN, get


@pytest.fixture
def classifier() -> RequestClassifier:
    return RequestClassifier(ORIGIN, ["wasm", "data", "js"])


class TestRequestClassifier:
    def test_navigation_wins_over_extension(self, classifier):
        """A navigate-mode request is a navigation even if its path looks like an asset."""
        assert classifier.classify(get("/app.js", mode="navigate")) == RequestClass.Navigation

    @pytest.mark.parametrize("path", ["/xmoto-web.wasm", "/xmoto-web.data", "/a/b/app.js"])
    def test_versioned_assets(self, classifier, path):
        assert classifier.classify(get(path)) == RequestClass.VersionedAsset

    def test_query_string_does_not_hide_extension(self, classifier):
        assert classifier.classify(get("/app.js?v=3")) == RequestClass.VersionedAsset

    def test_extension_match_is_case_insensitive(self, classifier):
        assert classifier.classify(get("/GAME.WASM")) == RequestClass.VersionedAsset

    @pytest.mark.parametrize("path", ["/", "/manifest.json", "/assets/icon-192.png", "/jsfile"])
    def test_other_requests(self, classifier, path):
        assert classifier.classify(get(path)) == RequestClass.Other

    def test_cross_origin_is_not_intercepted(self, classifier):
        assert classifier.classify(get("/app.js", origin="https://cdn.example")) is None

    def test_different_port_is_cross_origin(self, classifier):
        assert classifier.classify(get("/app.js", origin="https://game.example:8443")) is None

    def test_non_get_is_not_intercepted(self, classifier):
        request = FetchRequest(url=ORIGIN + "/api/scores", method="post")
        assert request.method == "POST"
        assert classifier.classify(request) is None

    def test_extensions_are_normalized(self):
        classifier = RequestClassifier(ORIGIN + "/", [".WASM"])
        assert classifier.is_versioned_asset(get("/x.wasm"))
        assert not classifier.is_versioned_asset(get("/x.js"))
