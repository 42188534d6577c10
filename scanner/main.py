# =============================================================================
# RepairIQ - Scanner Client Entry Point
# =============================================================================
# Console front end for the scan pipeline.  Captures from the local camera,
# a relayed phone camera, or an image file, sends each frame to the server
# for classification, and prints the component with its explanation.
#
# Phone flow:
#   1. Request a deep link from /phone-camera and print it with instructions
#   2. Join the relay and wait for the first phone frame
#   3. Scan from the phone; fall back to the local camera if it disconnects
# =============================================================================

import argparse
import asyncio
import logging
import sys

from config import get_config
from scanner.client import ClassificationClient
from scanner.explainer import ExplanationResolver
from scanner.orchestrator import ScanFailure, ScanOrchestrator, ScanResult
from scanner.sources import (
    FrameSourceKind,
    LocalCamera,
    RelayedPhone,
    SourceNotReadyError,
    UploadedImage,
)

logger = logging.getLogger(__name__)


def confidence_level(confidence: float) -> str:
    """Bucket a confidence score for display."""
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"


def print_result(result: ScanResult) -> None:
    """Present one scan result on the console."""
    print("\n" + "-" * 60)
    if isinstance(result, ScanFailure):
        print(f"  Scan {result.scan_id} failed ({result.stage}): {result.message}")
        print("-" * 60)
        return

    print(
        f"  {result.label}  —  {round(result.confidence * 100)}% "
        f"({confidence_level(result.confidence)} confidence)"
    )
    print("-" * 60)
    if result.is_unknown:
        print("  Unknown component: I couldn't identify this with confidence.")
        print("  Try better lighting, move closer, or rescan from another angle.")
        return

    print(result.explanation.text)
    if not result.explanation.is_generated:
        print("\n  (static explanation — AI generation unavailable)")


async def run_scans(args, config) -> int:
    """Build the pipeline, run the requested scans and release the sources."""
    client = ClassificationClient(config.server_url, timeout=config.request_timeout_seconds)

    camera = LocalCamera(camera_index=config.camera_index)
    sources = {FrameSourceKind.LOCAL_CAMERA: camera}
    initial = FrameSourceKind.LOCAL_CAMERA

    phone = None
    if args.source == "phone":
        phone = RelayedPhone(client.relay_url)
        sources[FrameSourceKind.RELAYED_PHONE] = phone
        initial = FrameSourceKind.RELAYED_PHONE
    elif args.source == "file":
        sources[FrameSourceKind.UPLOADED_IMAGE] = UploadedImage(args.image)
        initial = FrameSourceKind.UPLOADED_IMAGE

    orchestrator = ScanOrchestrator(
        sources=sources,
        classifier=client,
        explainer=ExplanationResolver(
            model=config.explanation_model,
            timeout=config.explanation_timeout_seconds,
        ),
        publish=print_result,
        low_confidence_threshold=config.low_confidence_threshold,
        initial_source=initial,
    )

    try:
        if args.source != "file":
            try:
                await camera.start()
            except SourceNotReadyError as exc:
                if args.source == "camera":
                    logger.error("Failed to start camera: %s", exc)
                    return 1
                logger.warning("Local camera unavailable (%s); phone only", exc)

        if phone is not None:
            link = await asyncio.to_thread(client.get_phone_link)
            print("\n  Connect your phone camera:")
            print(f"    {link.phoneUrl}")
            for step, instruction in enumerate(link.instructions, start=1):
                print(f"    {step}. {instruction}")

            phone.on_disconnected = orchestrator.on_phone_disconnected
            await phone.start()
            if await phone.wait_for_phone(timeout=args.phone_timeout):
                print("\n  Phone connected! Switching to phone camera...")
            else:
                print("\n  No phone connected; using the local camera.")
                orchestrator.on_phone_disconnected(None)

        for i in range(args.count):
            await orchestrator.scan()
            if i + 1 < args.count:
                await asyncio.sleep(args.interval)
    finally:
        for source in sources.values():
            await source.stop()

    return 0


def main():
    """CLI entry point for the scanner client."""
    parser = argparse.ArgumentParser(
        description="RepairIQ — identify hardware components from a camera",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--source", choices=["camera", "phone", "file"], default="camera",
        help="Where to capture frames from",
    )
    parser.add_argument("--image", type=str, default=None, help="Image file for --source file")
    parser.add_argument("--count", type=int, default=1, help="Number of scans to run")
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between scans")
    parser.add_argument(
        "--phone-timeout", type=float, default=120.0,
        help="Seconds to wait for a phone to connect",
    )
    parser.add_argument(
        "--server-url", type=str, default=None,
        help="Server base URL (e.g., http://127.0.0.1:3000)",
    )
    parser.add_argument("--camera", type=int, default=None, help="Local camera index")
    args = parser.parse_args()

    if args.source == "file" and not args.image:
        parser.error("--source file requires --image")

    config = get_config()
    if args.server_url is not None:
        config.server_url = args.server_url
    if args.camera is not None:
        config.camera_index = args.camera

    logging.basicConfig(
        level=logging.DEBUG if config.verbose_logging else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    print("\n" + "=" * 60)
    print("  RepairIQ — Scanner")
    print("=" * 60)
    print(f"  Source      : {args.source}")
    print(f"  Server      : {config.server_url}")
    print(f"  Scans       : {args.count}")
    print("=" * 60 + "\n")

    client = ClassificationClient(config.server_url)
    if not client.wait_for_server(timeout=60, poll_interval=2.0):
        logger.error("Server not available. Exiting.")
        sys.exit(1)

    try:
        sys.exit(asyncio.run(run_scans(args, config)))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received. Shutting down...")


if __name__ == "__main__":
    main()
