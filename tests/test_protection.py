"""Unit tests for pagesnap.services.protection."""

import pytest

from pagesnap.services.protection import ProtectionClassifier, ProtectionTier, extract_host


@pytest.fixture
def classifier():
    return ProtectionClassifier(["braip.com", "ev.braip.com"])


class TestExtractHost:
    def test_lowercases_host(self):
        assert extract_host("https://EV.Braip.COM/path?q=1") == "ev.braip.com"

    def test_strips_port_and_credentials(self):
        assert extract_host("https://user:pw@braip.com:8443/x") == "braip.com"

    def test_unparseable_returns_empty(self):
        assert extract_host("http://[::1") == ""
        assert extract_host(None) == ""


class TestProtectionClassifier:
    @pytest.mark.parametrize(
        "url",
        [
            "https://braip.com",
            "https://ev.braip.com/x",
            "https://checkout.ev.braip.com/pay",
            "http://BRAIP.COM/produto",
        ],
    )
    def test_protected_hosts_are_enhanced(self, classifier, url):
        assert classifier.classify(url) is ProtectionTier.ENHANCED
        assert classifier.is_enhanced(url)

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "https://notbraip.com",
            "https://braip.com.evil.net",
            "https://example.com/?next=braip.com",
        ],
    )
    def test_other_hosts_are_standard(self, classifier, url):
        assert classifier.classify(url) is ProtectionTier.STANDARD

    @pytest.mark.parametrize("url", ["", "not a url", "http://[::1", "mailto:someone"])
    def test_unparseable_urls_fail_open(self, classifier, url):
        assert classifier.classify(url) is ProtectionTier.STANDARD

    def test_empty_domain_list(self):
        assert ProtectionClassifier([]).classify("https://braip.com") is ProtectionTier.STANDARD

    def test_blank_entries_are_ignored(self):
        classifier = ProtectionClassifier(["", "braip.com"])
        assert classifier.domains == ("braip.com",)

    def test_stable_for_same_url(self, classifier):
        url = "https://ev.braip.com/x"
        assert {classifier.classify(url) for _ in range(5)} == {ProtectionTier.ENHANCED}
