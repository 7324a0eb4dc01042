"""User-agent classification rules."""

import pytest

from shortlink.enums import Browser, DeviceType, OperatingSystem
from shortlink.user_agent import (
    UserAgentInfo,
    classify,
    classify_browser,
    classify_device,
    classify_operating_system,
)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.2210.91"
OPERA_WINDOWS = CHROME_WINDOWS + " OPR/106.0.0.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
SAFARI_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@pytest.mark.parametrize(
    "ua, expected",
    [
        (GOOGLEBOT, DeviceType.BOT),
        ("Baiduspider+(+http://www.baidu.com/search/spider.htm)", DeviceType.BOT),
        (SAFARI_IPHONE, DeviceType.MOBILE),
        (CHROME_ANDROID, DeviceType.MOBILE),
        ("Mozilla/5.0 (Linux; U; en-us; KFAPWI Build/JDQ39) Silk/3.13 Tablet", DeviceType.TABLET),
        (CHROME_WINDOWS, DeviceType.DESKTOP),
    ],
)
def test_classify_device(ua: str, expected: DeviceType) -> None:
    assert classify_device(ua) == expected


def test_bot_rule_wins_over_mobile() -> None:
    assert classify_device("Mozilla/5.0 (iPhone) Googlebot-Mobile/2.1") == DeviceType.BOT


@pytest.mark.parametrize(
    "ua, expected",
    [
        (EDGE_WINDOWS, Browser.EDGE),
        (OPERA_WINDOWS, Browser.OPERA),
        (CHROME_WINDOWS, Browser.CHROME),
        (SAFARI_MAC, Browser.SAFARI),
        (FIREFOX_LINUX, Browser.FIREFOX),
        ("curl/8.4.0", Browser.OTHER),
    ],
)
def test_classify_browser(ua: str, expected: Browser) -> None:
    assert classify_browser(ua) == expected


@pytest.mark.parametrize(
    "ua, expected",
    [
        (CHROME_ANDROID, OperatingSystem.ANDROID),
        (SAFARI_IPHONE, OperatingSystem.IOS),
        (CHROME_WINDOWS, OperatingSystem.WINDOWS_10),
        ("Mozilla/5.0 (Windows NT 6.3; Win64)", OperatingSystem.WINDOWS_8_1),
        ("Mozilla/5.0 (Windows NT 6.2; Win64)", OperatingSystem.WINDOWS_8),
        ("Mozilla/5.0 (Windows NT 6.1; WOW64)", OperatingSystem.WINDOWS_7),
        ("Mozilla/5.0 (Windows NT 5.1)", OperatingSystem.WINDOWS),
        (SAFARI_MAC, OperatingSystem.MACOS),
        (FIREFOX_LINUX, OperatingSystem.LINUX),
        ("curl/8.4.0", OperatingSystem.OTHER),
    ],
)
def test_classify_operating_system(ua: str, expected: OperatingSystem) -> None:
    assert classify_operating_system(ua) == expected


def test_edge_is_not_reported_as_chrome() -> None:
    info = classify(EDGE_WINDOWS)
    assert info == UserAgentInfo(DeviceType.DESKTOP, Browser.EDGE, OperatingSystem.WINDOWS_10)


def test_matching_is_case_insensitive() -> None:
    assert classify_browser("FIREFOX/121.0") == Browser.FIREFOX
    assert classify_device("SOME-CRAWLER") == DeviceType.BOT


def test_unrecognised_agent_falls_back() -> None:
    info = classify("SomeClient/1.0")
    assert info.device_type == DeviceType.DESKTOP
    assert info.browser == Browser.OTHER
    assert info.operating_system == OperatingSystem.OTHER


@pytest.mark.parametrize("ua", [None, ""])
def test_missing_agent_is_unknown(ua: str | None) -> None:
    info = classify(ua)
    assert info.device_type == DeviceType.UNKNOWN
    assert info.browser == Browser.UNKNOWN
    assert info.operating_system == OperatingSystem.UNKNOWN
