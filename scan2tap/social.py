"""
Social platform catalog and URL normalization.

Each platform variant carries its own matcher and URL template. Input may be
a bare handle ("@alice"), a full profile URL, or for WhatsApp a phone number;
the result is a canonical URL plus the normalized username.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern, Tuple
from urllib.parse import urlsplit

from .errors import ValidationFailed

SCHEME_RE = re.compile(r"^(https?://|mailto:|tel:)", re.IGNORECASE)


class PlatformKind(str, Enum):
    HANDLE = "handle"
    PHONE = "phone"
    WEBSITE = "website"


@dataclass(frozen=True)
class PlatformSpec:
    label: str
    domains: Tuple[str, ...]
    patterns: Tuple[Pattern, ...]
    identifier: Optional[Pattern]
    url_template: str
    username_prefix: str = ""
    kind: PlatformKind = PlatformKind.HANDLE
    # pasted profile URLs are kept verbatim instead of rebuilt from the handle
    keep_full_url: bool = False
    placeholder: str = "username"


@dataclass(frozen=True)
class SocialHandle:
    platform: "Platform"
    url: str
    username: str

    @property
    def label(self) -> str:
        return self.platform.spec.label

    @property
    def display_username(self) -> str:
        prefix = self.platform.spec.username_prefix
        return f"{prefix}{self.username}" if prefix and self.username else self.username


def _p(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _id(pattern: str) -> Pattern:
    return re.compile(pattern)


class Platform(str, Enum):
    INSTAGRAM = "instagram"
    WHATSAPP = "whatsapp"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    SNAPCHAT = "snapchat"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    SPOTIFY = "spotify"
    WEBSITE = "website"
    PINTEREST = "pinterest"
    TWITCH = "twitch"
    TELEGRAM = "telegram"
    DISCORD = "discord"
    THREADS = "threads"

    @property
    def spec(self) -> PlatformSpec:
        return PLATFORM_SPECS[self]

    @classmethod
    def from_key(cls, key: str) -> "Platform":
        normalized = (key or "").strip().lower()
        normalized = PLATFORM_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationFailed(f"Unsupported platform: {key}")


PLATFORM_ALIASES = {"x": "twitter", "web": "website", "url": "website"}

PLATFORM_SPECS = {
    Platform.INSTAGRAM: PlatformSpec(
        label="Instagram",
        domains=("instagram.com", "instagr.am"),
        patterns=_p(r"(?:instagram\.com|instagr\.am)/([^/?\s]+)", r"^@?([a-zA-Z0-9._]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._]{1,30}$"),
        url_template="https://instagram.com/{username}",
        placeholder="@username",
    ),
    Platform.WHATSAPP: PlatformSpec(
        label="WhatsApp",
        domains=("wa.me", "whatsapp.com"),
        patterns=_p(r"wa\.me/([^/?\s]+)", r"whatsapp\.com/([^/?\s]+)"),
        identifier=_id(r"^[0-9]{7,15}$"),
        url_template="https://wa.me/{username}",
        kind=PlatformKind.PHONE,
        placeholder="+1234567890",
    ),
    Platform.TIKTOK: PlatformSpec(
        label="TikTok",
        domains=("tiktok.com",),
        patterns=_p(r"tiktok\.com/@([^/?\s]+)", r"tiktok\.com/([^/?\s]+)", r"^@?([a-zA-Z0-9._]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._]{1,24}$"),
        url_template="https://tiktok.com/@{username}",
        username_prefix="@",
        placeholder="@username",
    ),
    Platform.YOUTUBE: PlatformSpec(
        label="YouTube",
        domains=("youtube.com", "youtu.be"),
        patterns=_p(
            r"youtube\.com/@([^/?\s]+)",
            r"youtube\.com/c/([^/?\s]+)",
            r"youtube\.com/channel/([^/?\s]+)",
            r"youtube\.com/user/([^/?\s]+)",
            r"youtu\.be/([^/?\s]+)",
            r"^@?([a-zA-Z0-9._-]+)$",
        ),
        identifier=_id(r"^[a-zA-Z0-9._-]+$"),
        url_template="https://youtube.com/@{username}",
        username_prefix="@",
        keep_full_url=True,
        placeholder="@username or full URL",
    ),
    Platform.SNAPCHAT: PlatformSpec(
        label="Snapchat",
        domains=("snapchat.com",),
        patterns=_p(r"snapchat\.com/add/([^/?\s]+)", r"snapchat\.com/([^/?\s]+)", r"^@?([a-zA-Z0-9._-]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._-]{1,30}$"),
        url_template="https://snapchat.com/add/{username}",
    ),
    Platform.LINKEDIN: PlatformSpec(
        label="LinkedIn",
        domains=("linkedin.com",),
        patterns=_p(r"linkedin\.com/in/([^/?\s]+)", r"linkedin\.com/company/([^/?\s]+)", r"^([a-zA-Z0-9-]+)$"),
        identifier=_id(r"^[a-zA-Z0-9-]{2,100}$"),
        url_template="https://linkedin.com/in/{username}",
        keep_full_url=True,
        placeholder="username or full URL",
    ),
    Platform.FACEBOOK: PlatformSpec(
        label="Facebook",
        domains=("facebook.com", "fb.com"),
        patterns=_p(r"(?:facebook\.com|fb\.com)/([^/?\s]+)", r"^([a-zA-Z0-9.]+)$"),
        identifier=_id(r"^[a-zA-Z0-9.]+$"),
        url_template="https://facebook.com/{username}",
        keep_full_url=True,
        placeholder="username or full URL",
    ),
    Platform.TWITTER: PlatformSpec(
        label="X",
        domains=("x.com", "twitter.com"),
        patterns=_p(r"(?:x\.com|twitter\.com)/([^/?\s]+)", r"^@?([a-zA-Z0-9_]+)$"),
        identifier=_id(r"^[a-zA-Z0-9_]{1,15}$"),
        url_template="https://x.com/{username}",
        placeholder="@username",
    ),
    Platform.SPOTIFY: PlatformSpec(
        label="Spotify",
        domains=("open.spotify.com", "spotify.com"),
        patterns=_p(r"open\.spotify\.com/user/([^/?\s]+)", r"spotify\.com/user/([^/?\s]+)", r"^([a-zA-Z0-9._-]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._-]+$"),
        url_template="https://open.spotify.com/user/{username}",
        keep_full_url=True,
        placeholder="Artist/Playlist URL",
    ),
    Platform.WEBSITE: PlatformSpec(
        label="Website",
        domains=(),
        patterns=(),
        identifier=None,
        url_template="{username}",
        kind=PlatformKind.WEBSITE,
        placeholder="https://yourwebsite.com",
    ),
    Platform.PINTEREST: PlatformSpec(
        label="Pinterest",
        domains=("pinterest.com",),
        patterns=_p(r"pinterest\.com/([^/?\s]+)", r"^@?([a-zA-Z0-9._-]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._-]{1,30}$"),
        url_template="https://pinterest.com/{username}",
    ),
    Platform.TWITCH: PlatformSpec(
        label="Twitch",
        domains=("twitch.tv",),
        patterns=_p(r"twitch\.tv/([^/?\s]+)", r"^@?([a-zA-Z0-9_]+)$"),
        identifier=_id(r"^[a-zA-Z0-9_]{1,25}$"),
        url_template="https://twitch.tv/{username}",
    ),
    Platform.TELEGRAM: PlatformSpec(
        label="Telegram",
        domains=("t.me", "telegram.me"),
        patterns=_p(r"(?:t\.me|telegram\.me)/([^/?\s]+)", r"^@?([a-zA-Z0-9_]+)$"),
        identifier=_id(r"^[a-zA-Z0-9_]{1,32}$"),
        url_template="https://t.me/{username}",
        username_prefix="@",
        placeholder="@username",
    ),
    Platform.DISCORD: PlatformSpec(
        label="Discord",
        domains=("discord.gg", "discord.com"),
        patterns=_p(
            r"discord\.gg/([^/?\s]+)",
            r"discord\.com/invite/([^/?\s]+)",
            r"discord\.com/users/([^/?\s]+)",
            r"^([a-zA-Z0-9._-]+)$",
        ),
        identifier=_id(r"^[a-zA-Z0-9._-]+$"),
        url_template="https://discord.gg/{username}",
        placeholder="invite code",
    ),
    Platform.THREADS: PlatformSpec(
        label="Threads",
        domains=("threads.net",),
        patterns=_p(r"threads\.net/@([^/?\s]+)", r"threads\.net/([^/?\s]+)", r"^@?([a-zA-Z0-9._]+)$"),
        identifier=_id(r"^[a-zA-Z0-9._]{1,30}$"),
        url_template="https://threads.net/@{username}",
        username_prefix="@",
        placeholder="@username",
    ),
}


def _strip_at(value: str) -> str:
    return value[1:] if value.startswith("@") else value


def has_scheme(url: str) -> bool:
    return bool(SCHEME_RE.match(url or ""))


def ensure_scheme(url: str) -> str:
    """Prefix https:// when the URL carries no scheme."""
    url = (url or "").strip()
    if not url or has_scheme(url):
        return url
    return f"https://{url}"


def looks_like_url(value: str) -> bool:
    return "." in value or "/" in value


def normalize_custom_url(url: str) -> str:
    """Validate a free-form link URL, adding https:// to scheme-less domains/paths."""
    url = (url or "").strip()
    if not url:
        raise ValidationFailed("URL is required")
    if has_scheme(url):
        return url
    if not looks_like_url(url) or " " in url:
        raise ValidationFailed("Please enter a valid URL (e.g. example.com)")
    return ensure_scheme(url)


def _contains_domain(value: str, spec: PlatformSpec) -> bool:
    lowered = value.lower()
    return any(domain in lowered for domain in spec.domains)


def extract_username(raw: str, platform: Platform) -> str:
    cleaned = (raw or "").strip()
    if not cleaned:
        return ""
    for pattern in platform.spec.patterns:
        match = pattern.search(cleaned)
        if match and match.group(1):
            return _strip_at(match.group(1))
    return _strip_at(cleaned)


def generate_social_url(username: str, platform: Platform) -> str:
    if not username:
        return ""
    return platform.spec.url_template.format(username=_strip_at(username))


def parse_social_input(raw: str, platform: Platform) -> SocialHandle:
    """Turn user input into a canonical SocialHandle or raise ValidationFailed."""
    spec = platform.spec
    cleaned = (raw or "").strip()
    if not cleaned:
        raise ValidationFailed(f"Please enter your {spec.label} {spec.placeholder}")

    if spec.kind is PlatformKind.WEBSITE:
        url = ensure_scheme(cleaned)
        host = urlsplit(url).hostname or ""
        if "." not in host or " " in cleaned:
            raise ValidationFailed("Please enter a valid website address")
        return SocialHandle(platform=platform, url=url, username=host)

    if spec.kind is PlatformKind.PHONE:
        source = extract_username(cleaned, platform) if _contains_domain(cleaned, spec) else cleaned
        username = re.sub(r"[^0-9]", "", source)
    else:
        username = extract_username(cleaned, platform)

    if not username or not spec.identifier.match(username):
        raise ValidationFailed(f"Please enter a valid {spec.label} {spec.placeholder}")

    if spec.keep_full_url and _contains_domain(cleaned, spec):
        url = ensure_scheme(cleaned)
    else:
        url = generate_social_url(username, platform)
    return SocialHandle(platform=platform, url=url, username=username)


def display_username(url: str, platform: Platform) -> str:
    username = extract_username(url, platform)
    prefix = platform.spec.username_prefix
    return f"{prefix}{username}" if prefix and username else username


def platform_from_url(url: str) -> Optional[Platform]:
    host = (urlsplit(ensure_scheme(url)).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    for platform, spec in PLATFORM_SPECS.items():
        if any(host == domain or host.endswith("." + domain) for domain in spec.domains):
            return platform
    return None


def platform_catalog():
    return [
        {"id": p.value, "name": p.spec.label, "placeholder": p.spec.placeholder}
        for p in Platform
    ]
