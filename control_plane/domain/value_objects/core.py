"""Domain value objects for tenant identity.

Value objects are immutable types that represent domain concepts with
self-validation. They have no identity, only value. Validation failures
raise ValueError; services translate them to ValidationException.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

# Lowercase alphanumeric with single inner hyphens (e.g. acme, acme-corp).
_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

# Code point ranges commonly rendered as emoji.
_EMOJI_RE = re.compile(
    "["
    "\U0001f000-\U0001faff"
    "\u2600-\u27bf"
    "\u2300-\u23ff"
    "\u2b00-\u2bff"
    "\u2190-\u21ff"
    "\u3030\u303d\u3297\u3299"
    "\u00a9\u00ae\u203c\u2049\u2122\u2139"
    "]"
)


@dataclass(frozen=True)
class Subdomain:
    """Value object for a tenant subdomain (globally unique, immutable key).

    Subdomains are 3-63 characters of lowercase letters, digits and
    hyphens, cannot start or end with a hyphen, cannot contain
    consecutive hyphens and cannot be a reserved name. Input is
    normalized (trimmed, lowercased) before validation.
    """

    value: str

    MIN_LENGTH: ClassVar[int] = 3
    MAX_LENGTH: ClassVar[int] = 63
    RESERVED: ClassVar[frozenset[str]] = frozenset({
        "www", "api", "app", "admin", "dashboard", "blog", "docs", "help",
        "support", "mail", "email", "ftp", "cdn", "static", "assets", "media",
        "images", "files", "download", "uploads", "status", "test", "staging",
        "dev", "development", "prod", "production", "preview", "demo", "beta",
        "alpha", "public", "private", "secure", "auth", "login", "logout",
        "signup", "register", "account", "profile", "settings", "config",
        "console", "panel", "control", "manage", "management", "client",
        "customer", "user", "users", "tenant", "tenants", "subdomain",
        "subdomains", "s", "ns", "dns", "mx", "smtp", "pop", "imap", "webmail",
        "calendar", "cal", "meet", "video", "chat", "forum", "community",
        "social", "network",
    })

    def __post_init__(self) -> None:
        normalized = (self.value or "").strip().lower()
        object.__setattr__(self, "value", normalized)
        if not normalized:
            raise ValueError("Subdomain is required")
        if len(normalized) < self.MIN_LENGTH or len(normalized) > self.MAX_LENGTH:
            raise ValueError(
                f"Subdomain must be {self.MIN_LENGTH}-{self.MAX_LENGTH} characters"
            )
        if normalized.startswith("-") or normalized.endswith("-"):
            raise ValueError("Subdomain cannot start or end with a hyphen")
        if "--" in normalized:
            raise ValueError("Subdomain cannot contain consecutive hyphens")
        if not _SUBDOMAIN_RE.match(normalized):
            raise ValueError(
                "Subdomain can only contain lowercase letters, numbers, and hyphens"
            )
        if normalized in self.RESERVED:
            raise ValueError(f"Subdomain '{normalized}' is reserved")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TenantName:
    """Value object for a tenant display name: 2-100 characters after trimming."""

    value: str

    MIN_LENGTH: ClassVar[int] = 2
    MAX_LENGTH: ClassVar[int] = 100

    def __post_init__(self) -> None:
        trimmed = (self.value or "").strip()
        object.__setattr__(self, "value", trimmed)
        if not trimmed:
            raise ValueError("Tenant name is required")
        if len(trimmed) < self.MIN_LENGTH:
            raise ValueError(
                f"Tenant name must be at least {self.MIN_LENGTH} characters"
            )
        if len(trimmed) > self.MAX_LENGTH:
            raise ValueError(
                f"Tenant name must be less than {self.MAX_LENGTH} characters"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TenantEmoji:
    """Value object for the tenant badge: 1-10 characters containing an emoji."""

    value: str

    MAX_LENGTH: ClassVar[int] = 10

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("Emoji is required")
        if len(self.value) > self.MAX_LENGTH:
            raise ValueError("Emoji is too long")
        if not _EMOJI_RE.search(self.value):
            raise ValueError("Please select a valid emoji")

    def __str__(self) -> str:
        return self.value
