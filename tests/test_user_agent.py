"""Tests for user-agent classification."""

import pytest
from visitor_analytics.user_agent import (
    DeviceType,
    classify_user_agent,
    detect_device,
    parse_user_agent,
)

CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
SAFARI_IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
SAFARI_IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/604.1"
FIREFOX_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
EDGE_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.2151.97"
CHROME_ANDROID = "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.43 Mobile Safari/537.36"
SMART_TV = "Mozilla/5.0 (SMART-TV; Linux; Tizen 6.0) AppleWebKit/537.36 (KHTML, like Gecko) SamsungBrowser/4.0 Chrome/76.0.3809.146 TV Safari/537.36"


class TestDeviceDetection:
    """Test the ordered keyword rules for device type."""

    def test_iphone_is_mobile(self):
        assert detect_device(SAFARI_IPHONE) == DeviceType.MOBILE

    def test_android_is_mobile(self):
        assert detect_device(CHROME_ANDROID) == DeviceType.MOBILE

    def test_ipad_matches_mobile_rule_first(self):
        """iPad is a mobile keyword, and the mobile rule is checked first."""
        assert detect_device(SAFARI_IPAD) == DeviceType.MOBILE

    def test_tablet_keyword(self):
        assert detect_device("Mozilla/5.0 (Tablet; rv:68.0) Gecko/68.0 Firefox/68.0") == DeviceType.TABLET

    def test_smart_tv(self):
        assert detect_device(SMART_TV) == DeviceType.TV

    def test_mobile_beats_tv(self):
        assert detect_device("Mozilla/5.0 (Linux; Android 9; AFTMM) TV Mobile") == DeviceType.MOBILE

    def test_case_insensitive(self):
        assert detect_device("SOMETHING IPHONE") == DeviceType.MOBILE

    def test_desktop_default(self):
        assert detect_device(CHROME_MAC) == DeviceType.DESKTOP
        assert detect_device(FIREFOX_WINDOWS) == DeviceType.DESKTOP

    def test_unrecognized_is_desktop(self):
        assert detect_device("curl/8.4.0") == DeviceType.DESKTOP


class TestParseUserAgent:
    """Test browser, version, OS and platform extraction."""

    def test_chrome_macos(self):
        info = parse_user_agent(CHROME_MAC)
        assert info.browser == "Chrome"
        assert info.version == "120.0.0.0"
        assert info.os == "macOS"
        assert info.platform == "Apple Mac"

    def test_firefox_windows(self):
        info = parse_user_agent(FIREFOX_WINDOWS)
        assert info.browser == "Firefox"
        assert info.version == "121.0"
        assert info.os == "Windows 10"
        assert info.platform == "Microsoft Windows"

    def test_edge_before_chrome(self):
        info = parse_user_agent(EDGE_WINDOWS)
        assert info.browser == "Edge"
        assert info.version == "119.0.2151.97"

    def test_safari_ios(self):
        info = parse_user_agent(SAFARI_IPHONE)
        assert info.browser == "Safari"
        assert info.version == "17.0"
        assert info.os == "iOS"
        assert info.platform == "iPhone"

    def test_android_chrome(self):
        info = parse_user_agent(CHROME_ANDROID)
        assert info.browser == "Chrome"
        assert info.os == "Android"
        assert info.platform == "Android"

    def test_unrecognized_fields_are_unknown(self):
        info = parse_user_agent("SomeCustomAgent")
        assert info.browser == "Unknown"
        assert info.version == "Unknown"
        assert info.os == "Unknown"
        assert info.platform == "Unknown"


class TestClassifyUserAgent:
    """Test the combined classifier."""

    @pytest.mark.parametrize("ua", ["", None, "Unknown"])
    def test_empty_or_unknown_input(self, ua):
        info = classify_user_agent(ua)
        assert info.to_dict() == {
            "browser": "Unknown",
            "version": "Unknown",
            "os": "Unknown",
            "platform": "Unknown",
            "device": "Unknown",
            "isVPN": False,
            "source": "Unknown",
        }

    def test_full_classification(self):
        data = classify_user_agent(SAFARI_IPHONE).to_dict()
        assert data["browser"] == "Safari"
        assert data["os"] == "iOS"
        assert data["device"] == "Mobile"
        assert data["source"] == SAFARI_IPHONE

    def test_vpn_flag_always_false(self):
        for ua in (CHROME_MAC, SAFARI_IPHONE, SMART_TV, "x"):
            assert classify_user_agent(ua).is_vpn is False

    def test_is_deterministic(self):
        assert classify_user_agent(CHROME_ANDROID) == classify_user_agent(CHROME_ANDROID)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
