"""Classification of raw user-agent strings into device, browser and OS tags.

All tests are case-insensitive substring checks and the first matching rule
wins. An empty or missing user agent is tagged ``Unknown`` everywhere.
"""

from dataclasses import dataclass

from shortlink.enums import Browser, DeviceType, OperatingSystem

__all__ = [
    "UserAgentInfo",
    "classify",
    "classify_device",
    "classify_browser",
    "classify_operating_system",
]

_BOT_TOKENS = ("bot", "crawler", "spider")
_MOBILE_TOKENS = ("mobile", "android", "iphone")
_TABLET_TOKENS = ("tablet", "ipad")

_WINDOWS_VERSIONS = (
    ("windows nt 10", OperatingSystem.WINDOWS_10),
    ("windows nt 6.3", OperatingSystem.WINDOWS_8_1),
    ("windows nt 6.2", OperatingSystem.WINDOWS_8),
    ("windows nt 6.1", OperatingSystem.WINDOWS_7),
)


@dataclass(frozen=True)
class UserAgentInfo:
    device_type: DeviceType
    browser: Browser
    operating_system: OperatingSystem


def _contains_any(ua: str, tokens: tuple[str, ...]) -> bool:
    return any(token in ua for token in tokens)


def classify_device(user_agent: str | None) -> DeviceType:
    if not user_agent:
        return DeviceType.UNKNOWN
    ua = user_agent.lower()
    if _contains_any(ua, _BOT_TOKENS):
        return DeviceType.BOT
    if _contains_any(ua, _MOBILE_TOKENS):
        return DeviceType.MOBILE
    if _contains_any(ua, _TABLET_TOKENS):
        return DeviceType.TABLET
    return DeviceType.DESKTOP


def classify_browser(user_agent: str | None) -> Browser:
    if not user_agent:
        return Browser.UNKNOWN
    ua = user_agent.lower()
    if "edg/" in ua or "edge" in ua:
        return Browser.EDGE
    if "opr/" in ua or "opera" in ua:
        return Browser.OPERA
    if "chrome" in ua and "edg/" not in ua:
        return Browser.CHROME
    if "safari" in ua and "chrome" not in ua:
        return Browser.SAFARI
    if "firefox" in ua:
        return Browser.FIREFOX
    return Browser.OTHER


def classify_operating_system(user_agent: str | None) -> OperatingSystem:
    if not user_agent:
        return OperatingSystem.UNKNOWN
    ua = user_agent.lower()
    if "android" in ua:
        return OperatingSystem.ANDROID
    if "iphone" in ua or "ipad" in ua:
        return OperatingSystem.IOS
    if "windows" in ua:
        for token, version in _WINDOWS_VERSIONS:
            if token in ua:
                return version
        return OperatingSystem.WINDOWS
    if "mac os x" in ua:
        return OperatingSystem.MACOS
    if "linux" in ua:
        return OperatingSystem.LINUX
    return OperatingSystem.OTHER


def classify(user_agent: str | None) -> UserAgentInfo:
    return UserAgentInfo(
        device_type=classify_device(user_agent),
        browser=classify_browser(user_agent),
        operating_system=classify_operating_system(user_agent),
    )
