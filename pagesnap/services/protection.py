"""Decide whether a target needs the enhanced anti-detection profile."""

import logging
from enum import Enum
from typing import Iterable
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class ProtectionTier(str, Enum):
    STANDARD = "standard"
    ENHANCED = "enhanced"


def extract_host(url: str) -> str:
    """Lower-cased hostname of ``url``, or "" when it cannot be parsed."""
    try:
        return (urlparse(url).hostname or "").lower()
    except (ValueError, TypeError, AttributeError):
        return ""


class ProtectionClassifier:
    """Match a URL's host against a list of protected domains.

    A host matches a domain when it is equal to it or is a subdomain of it
    (``ev.braip.com`` matches ``braip.com``; ``notbraip.com`` does not).
    Unparseable URLs are ``STANDARD``.
    """

    def __init__(self, protected_domains: Iterable[str]):
        self._domains = tuple(d for d in protected_domains if d)

    @property
    def domains(self) -> tuple[str, ...]:
        return self._domains

    def classify(self, url: str) -> ProtectionTier:
        host = extract_host(url)
        if not host:
            return ProtectionTier.STANDARD
        for domain in self._domains:
            if host == domain or host.endswith("." + domain):
                return ProtectionTier.ENHANCED
        return ProtectionTier.STANDARD

    def is_enhanced(self, url: str) -> bool:
        return self.classify(url) is ProtectionTier.ENHANCED
