"""Merchant normalization - reduce raw descriptions to stable grouping keys"""

import re

# Legal-entity suffixes, dropped wherever they appear as a word
LEGAL_SUFFIXES = frozenset({"ltd", "limited", "plc", "inc", "corp"})

_DOMAIN_SUFFIX = re.compile(r"\.(?:com|co\.uk|net|org|io|tv)\b")
_WWW_PREFIX = re.compile(r"\bwww\.")
_TOKEN = re.compile(r"[a-z0-9]+")

# Known streaming / SaaS / utility services (already in normalized form)
SUBSCRIPTION_SERVICES = (
    "netflix",
    "spotify",
    "disneyplus",
    "disney",
    "amazonprime",
    "primevideo",
    "applemusic",
    "appletv",
    "icloud",
    "youtube",
    "nowtv",
    "hbo",
    "hulu",
    "paramount",
    "audible",
    "deezer",
    "tidal",
    "adobe",
    "microsoft",
    "office365",
    "dropbox",
    "github",
    "notion",
    "slack",
    "zoom",
    "openai",
    "chatgpt",
    "patreon",
    "xbox",
    "playstation",
    "nintendo",
    "puregym",
    "thegymgroup",
    "britishgas",
    "octopusenergy",
    "edfenergy",
    "thameswater",
    "virginmedia",
    "skydigital",
    "vodafone",
    "tvlicence",
)


def normalize(raw: str) -> str:
    """
    Collapse a description or merchant name into a grouping key.

    "Netflix.com", "NETFLIX INC" and "netflix ltd" all become "netflix".
    Total: any input (including empty) yields a possibly-empty string.
    """
    text = (raw or "").lower()
    text = _WWW_PREFIX.sub("", text)
    text = _DOMAIN_SUFFIX.sub(" ", text)
    tokens = [t for t in _TOKEN.findall(text) if t not in LEGAL_SUFFIXES]
    return "".join(tokens)


def is_subscription_service(merchant_pattern: str) -> bool:
    """
    Advisory check of a normalized merchant against the known-service allowlist.

    Matches on prefix, so "spotifypremium" counts but "thehboroughcafe" does not.
    """
    if not merchant_pattern:
        return False
    return merchant_pattern.startswith(SUBSCRIPTION_SERVICES)
