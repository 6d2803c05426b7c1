"""
User-Agent classification for browser, OS, platform and device detection.

User-Agents are notoriously messy (Chrome claims to be Mozilla, Safari and
Chrome all at once), so browser and OS extraction uses ordered pattern
tables where the first match wins.

Device classification is deliberately coarse and independent of the
parser: a case-insensitive keyword check against the raw string, in a fixed
order (mobile, tablet, TV, otherwise desktop). Note that "ipad" is a mobile
keyword, so the tablet rule only fires for UAs that say "tablet".

The VPN flag is a placeholder and is always False.
"""

import re
from dataclasses import dataclass
from enum import Enum

UNKNOWN = "Unknown"


class DeviceType(str, Enum):
    """Device category."""
    MOBILE = "Mobile"
    TABLET = "Tablet"
    TV = "TV"
    DESKTOP = "Desktop"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class UserAgentInfo:
    """
    Classified user-agent information.

    Attributes:
        browser: Browser family name (Chrome, Firefox, Safari, etc.)
        version: Browser version as written in the UA (e.g. "120.0.6099.43")
        os: Operating system (Windows, macOS, iOS, Android, Linux)
        platform: Hardware/platform family (Microsoft Windows, Apple Mac, iPhone)
        device: Coarse device category
        is_vpn: Always False
        source: The raw user-agent string
    """
    browser: str = UNKNOWN
    version: str = UNKNOWN
    os: str = UNKNOWN
    platform: str = UNKNOWN
    device: DeviceType = DeviceType.UNKNOWN
    is_vpn: bool = False
    source: str = UNKNOWN

    def to_dict(self) -> dict:
        """Convert to the JSON shape returned by the API."""
        return {
            "browser": self.browser,
            "version": self.version,
            "os": self.os,
            "platform": self.platform,
            "device": self.device.value,
            "isVPN": self.is_vpn,
            "source": self.source,
        }


# =============================================================================
# BROWSER DETECTION PATTERNS
# =============================================================================
# Order matters! Check specific browsers before generic ones.
# Each tuple: (regex with the version as group 1, browser_name)

_VERSION = r"(\d+(?:\.\d+)*)"

BROWSER_PATTERNS = [
    # Chromium-based browsers (check before Chrome)
    (rf"Edg(?:e|A|iOS)?/{_VERSION}", "Edge"),
    (rf"OPR/{_VERSION}", "Opera"),
    (rf"Opera.*Version/{_VERSION}", "Opera"),
    (rf"Vivaldi/{_VERSION}", "Vivaldi"),
    (rf"Brave/{_VERSION}", "Brave"),
    (rf"SamsungBrowser/{_VERSION}", "Samsung Internet"),
    (rf"UCBrowser/{_VERSION}", "UC Browser"),
    (rf"YaBrowser/{_VERSION}", "Yandex"),

    # Firefox variants
    (rf"Firefox/{_VERSION}", "Firefox"),
    (rf"FxiOS/{_VERSION}", "Firefox"),

    # Chrome variants (after other Chromium browsers)
    (rf"CriOS/{_VERSION}", "Chrome"),
    (rf"Chrome/{_VERSION}", "Chrome"),
    (rf"Chromium/{_VERSION}", "Chromium"),

    # Safari (must come after Chrome which also contains Safari)
    (rf"Version/{_VERSION}.*Safari", "Safari"),
    (rf"Safari/{_VERSION}", "Safari"),

    # IE and legacy
    (rf"MSIE {_VERSION}", "IE"),
    (rf"Trident.*rv:{_VERSION}", "IE"),

    # Non-browser clients
    (rf"curl/{_VERSION}", "curl"),
    (rf"PostmanRuntime/{_VERSION}", "PostmanRuntime"),
    (rf"python-requests/{_VERSION}", "python-requests"),
]

# =============================================================================
# OS DETECTION PATTERNS
# =============================================================================

OS_PATTERNS = [
    # Apple
    (r"iPhone|iPod", "iOS"),
    (r"iPad", "iPadOS"),
    (r"Macintosh|Mac OS X", "macOS"),

    # Android (before Linux since Android contains Linux)
    (r"Android", "Android"),

    # Windows
    (r"Windows NT 10\.0", "Windows 10"),
    (r"Windows NT 6\.3", "Windows 8.1"),
    (r"Windows NT 6\.2", "Windows 8"),
    (r"Windows NT 6\.1", "Windows 7"),
    (r"Windows Phone", "Windows Phone"),
    (r"Windows", "Windows"),

    (r"CrOS", "Chrome OS"),

    # Linux variants
    (r"Ubuntu", "Ubuntu"),
    (r"Fedora", "Fedora"),
    (r"Linux", "Linux"),

    (r"FreeBSD", "FreeBSD"),
]

# =============================================================================
# PLATFORM DETECTION PATTERNS
# =============================================================================

PLATFORM_PATTERNS = [
    (r"iPhone", "iPhone"),
    (r"iPod", "iPod"),
    (r"iPad", "iPad"),
    (r"Android", "Android"),
    (r"Windows", "Microsoft Windows"),
    (r"Macintosh|Mac OS X", "Apple Mac"),
    (r"CrOS", "Chrome OS"),
    (r"Linux", "Linux"),
    (r"PlayStation", "PlayStation"),
    (r"Xbox", "Xbox"),
    (r"curl/", "Curl"),
]

# =============================================================================
# DEVICE TYPE DETECTION
# =============================================================================
# Checked in order against the lowercased UA; first rule with a hit wins.

DEVICE_RULES = [
    (("mobile", "android", "iphone", "ipad"), DeviceType.MOBILE),
    (("tablet", "ipad"), DeviceType.TABLET),
    (("tv", "smart-tv"), DeviceType.TV),
]


def detect_device(user_agent: str) -> DeviceType:
    """Classify a user-agent into Mobile, Tablet, TV or Desktop."""
    ua = (user_agent or "").lower()
    for keywords, device in DEVICE_RULES:
        if any(keyword in ua for keyword in keywords):
            return device
    return DeviceType.DESKTOP


def _first_match(patterns, ua: str) -> str:
    for pattern, name in patterns:
        if re.search(pattern, ua, re.IGNORECASE):
            return name
    return UNKNOWN


def _detect_browser(ua: str) -> tuple[str, str]:
    """
    Detect browser and version from user-agent.

    Returns: (browser_name, version_string)
    """
    for pattern, browser_name in BROWSER_PATTERNS:
        match = re.search(pattern, ua, re.IGNORECASE)
        if match:
            return (browser_name, match.group(1))
    return (UNKNOWN, UNKNOWN)


def parse_user_agent(user_agent: str) -> UserAgentInfo:
    """
    Parse a user-agent string into browser, version, OS and platform.

    The device field is left as UNKNOWN; see classify_user_agent().

    Examples:
        >>> parse_user_agent("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0").browser
        'Firefox'
    """
    if not user_agent or not user_agent.strip():
        return UserAgentInfo()

    browser, version = _detect_browser(user_agent)
    return UserAgentInfo(
        browser=browser,
        version=version,
        os=_first_match(OS_PATTERNS, user_agent),
        platform=_first_match(PLATFORM_PATTERNS, user_agent),
        source=user_agent,
    )


def classify_user_agent(user_agent: str | None) -> UserAgentInfo:
    """
    Classify a raw user-agent string.

    Empty input or the literal "Unknown" maps every field to "Unknown".
    This is a pure function.

    Examples:
        >>> classify_user_agent("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)").device
        <DeviceType.MOBILE: 'Mobile'>
    """
    if not user_agent or user_agent == UNKNOWN:
        return UserAgentInfo(source=user_agent or UNKNOWN)

    parsed = parse_user_agent(user_agent)
    return UserAgentInfo(
        browser=parsed.browser,
        version=parsed.version,
        os=parsed.os,
        platform=parsed.platform,
        device=detect_device(user_agent),
        is_vpn=False,
        source=user_agent,
    )
