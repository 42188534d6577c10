# =============================================================================
# RepairIQ - Server Entry Point
# =============================================================================
# CLI entry point for starting the FastAPI server: hardware classifier
# (TorchScript) + phone camera relay.
# =============================================================================

import argparse
import logging

import uvicorn

from config import get_config


def main():
    """Parse CLI arguments, apply overrides, and start the server."""
    parser = argparse.ArgumentParser(
        description="RepairIQ — hardware classification server + phone relay",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=None, help="Server bind address")
    parser.add_argument("--port", type=int, default=None, help="Server bind port")
    parser.add_argument("--model", type=str, default=None, help="Path to TorchScript model (.pt)")
    parser.add_argument("--env", type=str, default=None, help="Environment tag (development/production)")
    parser.add_argument("--public-url", type=str, default=None, help="Base URL phones use to reach this server")
    parser.add_argument("--quiet", action="store_true", help="Disable verbose (debug) logging")
    args = parser.parse_args()

    config = get_config()
    public_url_derived = config.public_base_url == config.server_url

    if args.host is not None:
        config.server_host = args.host
    if args.port is not None:
        config.server_port = args.port
    if args.model is not None:
        config.model_path = args.model
    if args.env is not None:
        config.environment = args.env
    if args.quiet:
        config.verbose_logging = False

    config.server_url = f"http://{config.server_host}:{config.server_port}"
    if args.public_url is not None:
        config.public_base_url = args.public_url
    elif public_url_derived:
        config.public_base_url = config.server_url

    logging.basicConfig(
        level=logging.DEBUG if config.verbose_logging else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    print("\n" + "=" * 60)
    print("  RepairIQ — Server")
    print("=" * 60)
    print(f"  Model       : {config.model_path}")
    print(f"  Device      : {config.device}")
    print(f"  Environment : {config.environment}")
    print(f"  CORS origin : {config.cors_origin}")
    print(f"  Phone links : {config.public_base_url}")
    print(f"  Listening   : {config.server_host}:{config.server_port}")
    print("=" * 60 + "\n")

    uvicorn.run(
        "server.app:app",
        host=config.server_host,
        port=config.server_port,
        log_level="debug" if config.verbose_logging else "info",
    )


if __name__ == "__main__":
    main()
