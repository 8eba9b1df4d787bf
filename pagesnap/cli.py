"""CLI tool for PageSnap: capture screenshots without running the API.

Usage:
    python -m pagesnap.cli classify https://ev.braip.com/checkout
    python -m pagesnap.cli capture https://example.com --device mobile --out shots/
    python -m pagesnap.cli capture https://example.com --owner u1 --item p1
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path


def _setup_logging(verbose: bool = False):
    from pagesnap.core.logging_config import configure_logging

    configure_logging(log_format="text", log_level="DEBUG" if verbose else "WARNING", stream=sys.stderr)


async def _cmd_capture(args) -> int:
    """Capture a URL locally, or capture and upload when an owner is given."""
    from pagesnap.config import settings
    from pagesnap.core.exceptions import PageSnapError
    from pagesnap.middleware.request_id import bind_request_id
    from pagesnap.schemas.screenshot import ScreenshotRequest
    from pagesnap.services.devices import DeviceClass
    from pagesnap.services.screenshot import build_pipeline, build_scheduler, build_screenshot_service

    bind_request_id()
    request = ScreenshotRequest(
        url=args.url, ownerId=args.owner or "local", itemId=args.item, deviceClass=args.device
    )
    try:
        capture_request = request.to_capture_request()
    except PageSnapError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 2

    if args.owner:
        if not settings.storage_configured:
            print("[ERROR] Storage configuration not found", file=sys.stderr)
            return 2
        service = build_screenshot_service(settings)
        outcome = await service.capture_request(capture_request)
        print(json.dumps({
            "success": outcome.success,
            "protectionTier": outcome.protection_tier.value,
            "screenshots": {d.value: loc for d, loc in outcome.locations.items()},
            "errors": {d.value: err for d, err in outcome.errors.items()},
        }, indent=2))
        return 0 if outcome.any_succeeded else 1

    pipeline = build_pipeline(settings)
    scheduler = build_scheduler(settings)
    enhanced = pipeline.classifier.is_enhanced(capture_request.url)
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    failed = 0
    for device_class in capture_request.device_class.expand():
        async def attempt(strategy, timeout_ms, device_class: DeviceClass = device_class):
            return await pipeline.capture(capture_request.url, device_class, strategy, timeout_ms)

        try:
            buffer = await scheduler.run(
                f"Screenshot-{device_class.value}", attempt, settings.CAPTURE_MAX_RETRIES, enhanced
            )
        except PageSnapError as e:
            print(f"[ERROR] {device_class.value}: {e.message}", file=sys.stderr)
            failed += 1
            continue
        path = out_dir / f"{device_class.value}-{int(time.time() * 1000)}.jpeg"
        path.write_bytes(buffer)
        print(str(path))
    return 1 if failed else 0


def _cmd_classify(args) -> int:
    from pagesnap.config import settings
    from pagesnap.services.protection import ProtectionClassifier

    tier = ProtectionClassifier(settings.PROTECTED_DOMAINS).classify(args.url)
    print(tier.value)
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="pagesnap",
        description="PageSnap CLI: screenshot capture for bot-protected pages",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # --- capture ---
    capture_parser = subparsers.add_parser("capture", help="Capture a URL")
    capture_parser.add_argument("url", help="URL to capture")
    capture_parser.add_argument(
        "--device", default="both", choices=["desktop", "mobile", "both"],
        help="Device class (default: both)",
    )
    capture_parser.add_argument("--out", default=".", help="Directory for JPEG files (local mode)")
    capture_parser.add_argument("--owner", default=None, help="Owner id; uploads to storage when set")
    capture_parser.add_argument("--item", default=None, help="Item id for the storage key")

    # --- classify ---
    classify_parser = subparsers.add_parser("classify", help="Print the protection tier of a URL")
    classify_parser.add_argument("url", help="URL to classify")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _setup_logging(args.verbose)

    if args.command == "capture":
        sys.exit(asyncio.run(_cmd_capture(args)))
    elif args.command == "classify":
        sys.exit(_cmd_classify(args))


if __name__ == "__main__":
    main()
