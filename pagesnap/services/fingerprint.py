"""Per-attempt browser identity: launch flags, context options and fingerprint overrides.

A ``SessionProfile`` is a plain value describing everything a browser session
needs to look like a regular visitor for a given protection tier and device
class. For the enhanced tier it also carries a ``FingerprintProfile``, whose
``overrides()`` table lists every browser-observable property we replace and
with what. The table is rendered to a single init script only at the engine
boundary, so the override set can be inspected and tested without a browser.
"""

import json
import random
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from pagesnap.services.devices import DeviceClass, get_preset, user_agents_for
from pagesnap.services.protection import ProtectionTier

# ---------------------------------------------------------------------------
# Chromium launch args
# ---------------------------------------------------------------------------

BASE_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
)

ENHANCED_LAUNCH_ARGS = (
    # Core stealth
    "--disable-blink-features=AutomationControlled",
    "--exclude-switches=enable-automation",
    "--disable-plugins-discovery",
    # Background behaviour
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-prompt-on-repost",
    "--disable-client-side-phishing-detection",
    # Headers & fingerprinting
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-features=VizDisplayCompositor,VizHitTestSurfaceLayer,TranslateUI,BlinkGenPropertyTrees",
    "--disable-background-mode",
    "--disable-sync",
    "--disable-translate",
    "--no-default-browser-check",
    "--no-first-run",
    "--metrics-recording-only",
    "--no-report-upload",
    # Canvas & WebGL
    "--disable-canvas-aa",
    "--disable-2d-canvas-clip-aa",
    "--disable-gl-drawing-for-tests",
    # Compositor
    "--use-mock-keychain",
    "--disable-field-trial-config",
    "--run-all-compositor-stages-before-draw",
    "--disable-threaded-animation",
    "--disable-threaded-scrolling",
    "--disable-checker-imaging",
    # Network & security
    "--ignore-certificate-errors",
    "--ignore-ssl-errors",
    "--ignore-certificate-errors-spki-list",
    "--allow-running-insecure-content",
    "--disable-web-security",
    # Memory
    "--max_old_space_size=4096",
    "--memory-pressure-off",
    "--window-size=1920,1080",
)

ENHANCED_SLOW_MO_MS = 100


def launch_args_for(tier: ProtectionTier) -> tuple[str, ...]:
    """Ordered, de-duplicated Chromium flags for a protection tier."""
    args = BASE_LAUNCH_ARGS
    if tier is ProtectionTier.ENHANCED:
        args = args + ENHANCED_LAUNCH_ARGS
    return tuple(dict.fromkeys(args))


# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

ENHANCED_REFERER = "https://www.google.com/"

_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "sec-ch-ua": '"Chromium";v="120", "Not A(Brand";v="99", "Google Chrome";v="120"',
    "DNT": "1",
}


def build_headers(
    device_class: DeviceClass,
    tier: ProtectionTier,
    url: str,
    rng: random.Random,
) -> dict[str, str]:
    preset = get_preset(device_class)
    headers = dict(_BASE_HEADERS)
    headers["sec-ch-ua-mobile"] = preset["ch_mobile"]
    headers["sec-ch-ua-platform"] = preset["ch_platform"]
    headers["X-Forwarded-For"] = f"192.168.1.{rng.randrange(255)}"
    headers["Referer"] = ENHANCED_REFERER if tier is ProtectionTier.ENHANCED else url
    return headers


# ---------------------------------------------------------------------------
# Fingerprint override table
# ---------------------------------------------------------------------------


class OverrideKind(str, Enum):
    GETTER = "getter"  # property getter returning a constant
    RESOLVED_CALL = "resolved_call"  # method returning Promise.resolve(value)
    PERMISSIONS_QUERY = "permissions_query"
    WEBGL_PARAMETER = "webgl_parameter"
    CANVAS_EXPORT = "canvas_export"
    SEEDED_RANDOM = "seeded_random"
    TIMEZONE_OFFSET = "timezone_offset"
    CHROME_OBJECT = "chrome_object"
    IFRAME_SRCDOC = "iframe_srcdoc"


@dataclass(frozen=True)
class PropertyOverride:
    """One browser-observable property and the value it is pinned to."""

    target: str  # JS expression of the owning object
    name: str
    kind: OverrideKind
    value: Any = None

    @property
    def path(self) -> str:
        return f"{self.target}.{self.name}"


def _js(value: Any) -> str:
    if value is None:
        return "undefined"
    # json emits Infinity/NaN literally, which is valid JS
    return json.dumps(value)


_TEMPLATES = {
    OverrideKind.GETTER: (
        "try {{ Object.defineProperty({target}, {name}, {{ get: () => ({value}) }}); }} catch (e) {{}}"
    ),
    OverrideKind.RESOLVED_CALL: (
        "try {{ if ({target}.{raw_name}) {{ {target}.{raw_name} = () => Promise.resolve({value}); }} }} catch (e) {{}}"
    ),
    OverrideKind.PERMISSIONS_QUERY: (
        "try {{ if ({target}) {{ {target}.{raw_name} = (parameters) => Promise.resolve({{"
        " state: {value}, name: parameters && parameters.name, onchange: null,"
        " addEventListener: () => {{}}, removeEventListener: () => {{}}, dispatchEvent: () => false"
        " }}); }} }} catch (e) {{}}"
    ),
    OverrideKind.WEBGL_PARAMETER: """(function() {{
    const params = {value};
    const patch = (proto) => {{
        if (!proto) return;
        const orig = proto.{raw_name};
        proto.{raw_name} = function(parameter) {{
            if (Object.prototype.hasOwnProperty.call(params, parameter)) return params[parameter];
            return orig.call(this, parameter);
        }};
    }};
    patch(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
    patch(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);
}})();""",
    OverrideKind.CANVAS_EXPORT: """(function() {{
    const spoof = {value};
    const orig = {target}.{raw_name};
    {target}.{raw_name} = function(type, quality) {{
        if (type === spoof.type) return spoof.payload;
        return orig.call(this, type, quality);
    }};
}})();""",
    OverrideKind.SEEDED_RANDOM: """(function() {{
    const lcg = {value};
    let seed = lcg.seed;
    {target}.{raw_name} = function() {{
        seed = (seed * lcg.multiplier + lcg.increment) % lcg.modulus;
        return seed / lcg.modulus;
    }};
}})();""",
    OverrideKind.TIMEZONE_OFFSET: (
        "{target}.{raw_name} = function() {{ return {value}; }};"
    ),
    OverrideKind.CHROME_OBJECT: """{target}.{raw_name} = {{
    runtime: {value},
    loadTimes: function() {{
        const now = Date.now() / 1000;
        return {{
            requestTime: now - Math.random(),
            startLoadTime: now - Math.random() * 2,
            commitLoadTime: now - Math.random(),
            finishDocumentLoadTime: now - Math.random(),
            finishLoadTime: now,
            firstPaintTime: now - Math.random(),
            firstPaintAfterLoadTime: 0,
            navigationType: 'Other',
            wasFetchedViaSpdy: false,
            wasNpnNegotiated: false,
            npnNegotiatedProtocol: 'unknown',
            wasAlternateProtocolAvailable: false,
            connectionInfo: 'http/1.1',
        }};
    }},
    csi: function() {{
        return {{
            startE: Date.now() - Math.random() * 1000,
            onloadT: Date.now(),
            pageT: Date.now() - Math.random() * 2000,
            tran: 15,
        }};
    }},
}};""",
    OverrideKind.IFRAME_SRCDOC: """(function() {{
    const orig = {target}.{raw_name};
    {target}.{raw_name} = function(tagName) {{
        const element = orig.apply(this, arguments);
        if (String(tagName).toLowerCase() === 'iframe') {{
            element.srcdoc = element.srcdoc || '';
        }}
        return element;
    }};
}})();""",
}


def render_override(override: PropertyOverride) -> str:
    return _TEMPLATES[override.kind].format(
        target=override.target,
        name=json.dumps(override.name),
        raw_name=override.name,
        value=_js(override.value),
    )


def render_init_script(overrides) -> str:
    """Join the override table into one script for ``add_init_script``."""
    parts = [f"// {o.path}\n{render_override(o)}" for o in overrides]
    return "\n\n".join(parts) + "\n"


# 1x1 transparent PNG returned for every PNG canvas export
BLANK_CANVAS_PNG = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8"
    "/5+hHgAHggJ/PchI7wAAAABJRU5ErkJggg=="
)

# Automation markers removed from window
AUTOMATION_MARKERS = (
    "domAutomation",
    "domAutomationController",
    "_selenium",
    "__webdriver_script_fn",
    "__driver_evaluate",
    "__webdriver_evaluate",
    "_phantom",
    "__nightmare",
)

LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


def seeded_random_sequence(seed: int, count: int) -> list[float]:
    """The values the overridden ``Math.random`` yields, in order."""
    values = []
    for _ in range(count):
        seed = (seed * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        values.append(seed / LCG_MODULUS)
    return values


@dataclass(frozen=True)
class FingerprintProfile:
    """Synthetic fingerprint shared by every enhanced session of a device class."""

    screen_width: int = 1920
    screen_height: int = 1040
    color_depth: int = 24
    languages: tuple[str, ...] = ("en-US", "en")
    plugins: tuple[tuple[str, str], ...] = (
        ("Chrome PDF Plugin", "Portable Document Format"),
        ("Chrome PDF Viewer", "PDF Viewer"),
        ("Native Client", "Native Client"),
    )
    webgl_vendor: str = "Intel Inc."
    webgl_renderer: str = "Intel(R) Iris(TM) Graphics 6100"
    random_seed: int = 12345
    canvas_payload: str = BLANK_CANVAS_PNG
    timezone_offset_minutes: int = 300  # America/New_York, standard time
    permission_state: str = "granted"
    notification_permission: str = "default"
    connection: tuple[tuple[str, Any], ...] = (
        ("effectiveType", "4g"),
        ("rtt", 100),
        ("downlink", 10),
    )
    battery_level: float = 1.0

    @classmethod
    def for_device(cls, device_class: DeviceClass) -> "FingerprintProfile":
        preset = get_preset(device_class)
        if preset["is_mobile"]:
            return cls(screen_width=preset["width"], screen_height=preset["height"])
        # Desktop leaves room for a 40px taskbar
        return cls(screen_width=preset["width"], screen_height=preset["height"] - 40)

    def overrides(self) -> tuple[PropertyOverride, ...]:
        plugins = {str(i): {"name": n, "description": d} for i, (n, d) in enumerate(self.plugins)}
        plugins["length"] = len(self.plugins)
        table = [
            PropertyOverride("navigator", "webdriver", OverrideKind.GETTER, None),
            PropertyOverride("navigator", "plugins", OverrideKind.GETTER, plugins),
            PropertyOverride("navigator", "languages", OverrideKind.GETTER, list(self.languages)),
            PropertyOverride("navigator", "connection", OverrideKind.GETTER, dict(self.connection)),
            PropertyOverride(
                "navigator.permissions", "query", OverrideKind.PERMISSIONS_QUERY, self.permission_state
            ),
            PropertyOverride(
                "navigator",
                "getBattery",
                OverrideKind.RESOLVED_CALL,
                {
                    "charging": True,
                    "chargingTime": 0,
                    "dischargingTime": float("inf"),
                    "level": self.battery_level,
                },
            ),
            PropertyOverride("screen", "availWidth", OverrideKind.GETTER, self.screen_width),
            PropertyOverride("screen", "availHeight", OverrideKind.GETTER, self.screen_height),
            PropertyOverride("screen", "colorDepth", OverrideKind.GETTER, self.color_depth),
            PropertyOverride("screen", "pixelDepth", OverrideKind.GETTER, self.color_depth),
            PropertyOverride(
                "window", "chrome", OverrideKind.CHROME_OBJECT, {"onConnect": None, "onMessage": None}
            ),
            PropertyOverride(
                "Notification", "permission", OverrideKind.GETTER, self.notification_permission
            ),
            PropertyOverride(
                "WebGLRenderingContext.prototype",
                "getParameter",
                OverrideKind.WEBGL_PARAMETER,
                # UNMASKED_VENDOR_WEBGL / UNMASKED_RENDERER_WEBGL
                {"37445": self.webgl_vendor, "37446": self.webgl_renderer},
            ),
            PropertyOverride(
                "Date.prototype",
                "getTimezoneOffset",
                OverrideKind.TIMEZONE_OFFSET,
                self.timezone_offset_minutes,
            ),
            PropertyOverride(
                "HTMLCanvasElement.prototype",
                "toDataURL",
                OverrideKind.CANVAS_EXPORT,
                {"type": "image/png", "payload": self.canvas_payload},
            ),
            PropertyOverride("document", "createElement", OverrideKind.IFRAME_SRCDOC),
            PropertyOverride(
                "Math",
                "random",
                OverrideKind.SEEDED_RANDOM,
                {
                    "seed": self.random_seed,
                    "multiplier": LCG_MULTIPLIER,
                    "increment": LCG_INCREMENT,
                    "modulus": LCG_MODULUS,
                },
            ),
        ]
        table.extend(
            PropertyOverride("window", marker, OverrideKind.GETTER, None) for marker in AUTOMATION_MARKERS
        )
        return tuple(table)

    def init_script(self) -> str:
        return render_init_script(self.overrides())


# ---------------------------------------------------------------------------
# Session profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class Geolocation:
    latitude: float
    longitude: float

    def as_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


ENHANCED_LOCALE = "en-US"
ENHANCED_TIMEZONE = "America/New_York"
ENHANCED_GEOLOCATION = Geolocation(latitude=40.7128, longitude=-74.0060)


@dataclass(frozen=True)
class SessionProfile:
    protection_tier: ProtectionTier
    device_class: DeviceClass
    launch_args: tuple[str, ...]
    user_agent: str
    viewport: Viewport
    extra_headers: Mapping[str, str]
    is_mobile: bool
    has_touch: bool
    device_scale_factor: float
    locale: str | None = None
    timezone_id: str | None = None
    geolocation: Geolocation | None = None
    permissions: tuple[str, ...] = ()
    fingerprint: FingerprintProfile | None = None
    slow_mo_ms: int = 0

    @property
    def enhanced(self) -> bool:
        return self.protection_tier is ProtectionTier.ENHANCED

    def context_options(self) -> dict[str, Any]:
        """Keyword arguments for ``Browser.new_context``."""
        opts: dict[str, Any] = dict(
            user_agent=self.user_agent,
            viewport=self.viewport.as_dict(),
            extra_http_headers=dict(self.extra_headers),
            ignore_https_errors=True,
            java_script_enabled=True,
            bypass_csp=True,
            has_touch=self.has_touch,
            is_mobile=self.is_mobile,
            device_scale_factor=self.device_scale_factor,
        )
        if self.locale:
            opts["locale"] = self.locale
        if self.timezone_id:
            opts["timezone_id"] = self.timezone_id
        if self.geolocation:
            opts["geolocation"] = self.geolocation.as_dict()
        if self.permissions:
            opts["permissions"] = list(self.permissions)
        return opts

    def init_script(self) -> str | None:
        if self.fingerprint is None:
            return None
        return self.fingerprint.init_script()


def build_session_profile(
    tier: ProtectionTier,
    device_class: DeviceClass | str,
    url: str,
    rng: random.Random | None = None,
) -> SessionProfile:
    """Build a fresh profile for one capture attempt."""
    rng = rng or random.Random()
    device_class = DeviceClass(device_class)
    preset = get_preset(device_class)
    enhanced = tier is ProtectionTier.ENHANCED

    profile = dict(
        protection_tier=tier,
        device_class=device_class,
        launch_args=launch_args_for(tier),
        user_agent=rng.choice(user_agents_for(device_class, enhanced)),
        viewport=Viewport(preset["width"], preset["height"]),
        extra_headers=MappingProxyType(build_headers(device_class, tier, url, rng)),
        is_mobile=preset["is_mobile"],
        has_touch=preset["has_touch"],
        device_scale_factor=preset["device_scale_factor"],
    )
    if enhanced:
        profile.update(
            locale=ENHANCED_LOCALE,
            timezone_id=ENHANCED_TIMEZONE,
            geolocation=ENHANCED_GEOLOCATION,
            permissions=("geolocation",),
            fingerprint=FingerprintProfile.for_device(device_class),
            slow_mo_ms=ENHANCED_SLOW_MO_MS,
        )
    return SessionProfile(**profile)
