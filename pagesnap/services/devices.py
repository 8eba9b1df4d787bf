"""Device class presets for viewport emulation and user agent rotation."""

from enum import Enum


class DeviceClass(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    BOTH = "both"

    def expand(self) -> list["DeviceClass"]:
        """Concrete device classes a request for this value covers."""
        if self is DeviceClass.BOTH:
            return [DeviceClass.DESKTOP, DeviceClass.MOBILE]
        return [self]


DEVICE_PRESETS = {
    DeviceClass.DESKTOP: {
        "name": "Desktop 1080p",
        "width": 1920,
        "height": 1080,
        "device_scale_factor": 1,
        "is_mobile": False,
        "has_touch": False,
        "ch_platform": '"Windows"',
        "ch_mobile": "?0",
        # Standard tier
        "user_agents": [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        ],
        # Enhanced tier
        "enhanced_user_agents": [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        ],
    },
    DeviceClass.MOBILE: {
        "name": "Mobile 430x930",
        "width": 430,
        "height": 930,
        "device_scale_factor": 2,
        "is_mobile": True,
        "has_touch": True,
        "ch_platform": '"Android"',
        "ch_mobile": "?1",
        "user_agents": [
            "Mozilla/5.0 (Linux; Android 10; SM-G975F) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/537.36 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/537.36",
            "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
        ],
        "enhanced_user_agents": [
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
            "Mozilla/5.0 (Linux; Android 13; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
            "Mozilla/5.0 (Linux; Android 13; Pixel 7 Pro) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
        ],
    },
}


def get_preset(device_class: DeviceClass | str) -> dict:
    """Preset for a concrete device class. ``both`` has no preset of its own."""
    device_class = DeviceClass(device_class)
    if device_class is DeviceClass.BOTH:
        raise ValueError("'both' must be expanded before choosing a preset")
    return DEVICE_PRESETS[device_class]


def user_agents_for(device_class: DeviceClass | str, enhanced: bool) -> list[str]:
    preset = get_preset(device_class)
    return preset["enhanced_user_agents"] if enhanced else preset["user_agents"]
