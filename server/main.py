# =============================================================================
# CLIPKit Demo - Server Entry Point
# =============================================================================
# CLI entry point for starting the FastAPI server that hosts the CLIP image
# and text encoders and the demo session.
# =============================================================================

import argparse
import logging

import uvicorn

from config import get_config


def main():
    """Parse CLI arguments, apply overrides, and start the server."""
    parser = argparse.ArgumentParser(
        description="CLIPKit Demo - Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=None, help="Server bind address")
    parser.add_argument("--port", type=int, default=None, help="Server bind port")
    parser.add_argument("--image-encoder", type=str, default=None, help="Path to the image encoder bundle")
    parser.add_argument("--text-encoder", type=str, default=None, help="Path to the text encoder bundle")
    parser.add_argument("--device", type=str, default=None, help="Compute device (mps, cuda, cpu)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = get_config()

    if args.host is not None:
        config.server_host = args.host
    if args.port is not None:
        config.server_port = args.port
    if args.image_encoder is not None:
        config.image_encoder_path = args.image_encoder
    if args.text_encoder is not None:
        config.text_encoder_path = args.text_encoder
    if args.device is not None:
        config.device = args.device

    config.server_url = f"http://{config.server_host}:{config.server_port}"

    print("\n" + "=" * 60)
    print("  CLIPKit Demo - Server")
    print("=" * 60)
    print(f"  Image encoder : {config.image_encoder_path}")
    print(f"  Text encoder  : {config.text_encoder_path}")
    print(f"  Image size    : {config.image_size}x{config.image_size}")
    print(f"  Metric        : {config.metric}")
    print(f"  Device        : {config.device}")
    print(f"  Listening     : {config.server_host}:{config.server_port}")
    print("=" * 60 + "\n")

    uvicorn.run(
        "server.app:app",
        host=config.server_host,
        port=config.server_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
