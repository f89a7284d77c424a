"""Unit tests for merchant normalization"""

import pytest
from spend_sentinel.domain.merchants import is_subscription_service, normalize


@pytest.mark.parametrize(
    "raw",
    ["Netflix.com", "NETFLIX INC", "netflix ltd", "www.netflix.com", "Netflix Limited"],
)
def test_normalize_collapses_merchant_variants(raw):
    """Domain, casing and legal-suffix variants share one grouping key"""
    assert normalize(raw) == "netflix"


def test_normalize_strips_uk_domain_and_punctuation():
    assert normalize("www.spotify.co.uk") == "spotify"
    assert normalize("Tesco Stores Ltd.") == "tescostores"
    assert normalize("M&S Food #123") == "msfood123"


def test_normalize_is_total():
    """Empty or symbol-only input yields an empty key rather than raising"""
    assert normalize("") == ""
    assert normalize(None) == ""
    assert normalize("*** ---") == ""


def test_subscription_allowlist():
    assert is_subscription_service("netflix") is True
    assert is_subscription_service("spotifypremium") is True
    assert is_subscription_service("tescostores") is False
    assert is_subscription_service("") is False


@pytest.mark.parametrize("pattern", ["ashboroughbakery", "bizzoomarket", "seatidalcafe", "paypalnetflix"])
def test_subscription_allowlist_ignores_embedded_names(pattern):
    assert is_subscription_service(pattern) is False
