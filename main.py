"""
Face Detection App CLI Entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, and either
    run the detection proxy or run the capture & render client once.

Usage:
    python main.py serve                                   # Proxy on :3001
    python main.py serve --port 8080 --config app.yaml
    python main.py detect --url https://example.com/face.jpg
    python main.py detect --file photo.jpg --output out.jpg --no-display
    python main.py detect --camera --device 1 --json faces.json

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

import cv2
from dotenv import load_dotenv

from face_detection_app.config import AppConfig, load_config
from face_detection_app.errors import ConfigurationError
from face_detection_app.renderer import WINDOW_NAME, show_canvas
from face_detection_app.serializer import save_json
from face_detection_app.session import Session, SessionSnapshot, SessionState

_CAPTURE_KEYS = {ord(" "), ord("c")}
_QUIT_KEYS = {ord("q"), 27}  # 'q' or ESC


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments (sys.argv[1:] when argv is None)."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )

    parser = argparse.ArgumentParser(
        description="Face Detection App — detection proxy and capture client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", parents=[common], help="Run the detection proxy.")
    serve.add_argument("--host", type=str, help="Bind address. Overrides config.")
    serve.add_argument("--port", type=int, help="Bind port. Overrides config.")

    detect = subparsers.add_parser("detect", parents=[common], help="Detect faces in one image.")
    source = detect.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", type=str, help="Remote image URL.")
    source.add_argument("--file", type=str, help="Local image file.")
    source.add_argument("--camera", action="store_true", help="Capture from a live camera.")
    detect.add_argument("--device", type=int, help="Camera device index. Overrides config.")
    detect.add_argument("--proxy-url", type=str, help="Detection proxy base URL. Overrides config.")
    detect.add_argument("--output", type=str, help="Save the annotated image to this path.")
    detect.add_argument("--json", type=str, help="Save detected faces as JSON to this path.")
    detect.add_argument(
        "--no-display",
        action="store_true",
        help="Do not open a window with the annotated result.",
    )

    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Apply CLI overrides on top of the loaded configuration."""
    if getattr(args, "host", None) is not None:
        config = replace(config, server=replace(config.server, host=args.host))
    if getattr(args, "port", None) is not None:
        config = replace(config, server=replace(config.server, port=args.port))
    if getattr(args, "device", None) is not None:
        config = replace(config, camera=replace(config.camera, device=args.device))
    if getattr(args, "proxy_url", None) is not None:
        config = replace(config, client=replace(config.client, proxy_url=args.proxy_url))
    return config


def serve(config: AppConfig) -> int:
    """Run the proxy until interrupted."""
    import uvicorn

    from face_detection_app.server import create_app

    try:
        app = create_app(config)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    logger.info(
        "Available endpoints: GET /api/health, GET /api/test-azure, POST /api/detect-faces"
    )
    uvicorn.run(app, host=config.server.host, port=config.server.port)
    return 0


def _run_camera(session: Session) -> bool:
    """Show the live preview until the user captures or quits.

    Returns:
        True if a photo was captured, False otherwise.
    """
    session.start_camera()
    if not session.camera_active:
        return False

    logger.info("Camera live. Press SPACE or 'c' to capture, 'q' or ESC to quit.")
    try:
        while session.camera_active:
            frame = session.live_frame()
            if frame is None:
                return False
            key = show_canvas(frame, wait_ms=1)
            if key in _CAPTURE_KEYS:
                session.capture_photo()
                return True
            if key in _QUIT_KEYS:
                logger.info("Quit signal received (key press).")
                return False
        return False
    finally:
        session.stop_camera()


def detect(config: AppConfig, args: argparse.Namespace) -> int:
    """Run one acquisition → detection → render cycle."""

    def on_change(snapshot: SessionSnapshot) -> None:
        if snapshot.state is SessionState.DETECTING:
            logger.info("Submitting image for detection...")
        elif snapshot.state is SessionState.ERROR:
            logger.error("%s", snapshot.error)
        elif snapshot.state is SessionState.SHOWING_RESULTS and snapshot.notice:
            logger.info("%s", snapshot.notice)

    with Session(config) as session:
        session.subscribe(on_change)

        if args.url:
            session.submit_url(args.url)
        elif args.file:
            session.submit_file(args.file)
        elif not _run_camera(session):
            cv2.destroyAllWindows()
            return 1 if session.state is SessionState.ERROR else 0

        if args.json and session.state is SessionState.SHOWING_RESULTS:
            save_json(session.faces, args.json, source=session.image_source)

        canvas = session.render()
        if canvas is None:
            logger.warning("Nothing to render (preview unavailable).")
        else:
            if args.output:
                cv2.imwrite(args.output, canvas)
                logger.info("Annotated image saved to %s", args.output)
            if not args.no_display:
                logger.info("Press any key to close the window.")
                show_canvas(canvas, wait_ms=0)

        cv2.destroyAllWindows()
        return 0 if session.state is SessionState.SHOWING_RESULTS else 1


def main() -> int:
    """Main entry point."""
    args = parse_args()
    load_dotenv()

    # Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = _apply_overrides(load_config(args.config), args)
    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    try:
        if args.command == "serve":
            return serve(config)
        return detect(config, args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
