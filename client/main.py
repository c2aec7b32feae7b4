# =============================================================================
# CLIPKit Demo - Demo Client Orchestrator
# =============================================================================
# Entry point for the demo client.  Walks the same flow as the touch demo:
#   1. Load the image encoder and the text encoder
#   2. Encode the selected images
#   3. Encode the entered texts
#   4. Once there is an image and at least two texts, calculate distances
#      between the first image and every text, best match first
# =============================================================================

import argparse
import logging
import sys
from typing import List, Optional

from client.client import DemoClient
from config import get_config
from shared.errors import ClipDemoError
from shared.schemas import DistanceResponse

logger = logging.getLogger(__name__)


class DemoRunner:
    """
    Drives one demo run against the server.

    Args:
        client:             Connected DemoClient.
        image_encoder_path: Bundle path for the image encoder (server default when None).
        text_encoder_path:  Bundle path for the text encoder (server default when None).
    """

    def __init__(
        self,
        client: DemoClient,
        image_encoder_path: Optional[str] = None,
        text_encoder_path: Optional[str] = None,
    ):
        self._client = client
        self._image_encoder_path = image_encoder_path
        self._text_encoder_path = text_encoder_path

    def load_encoders(self) -> None:
        self._client.load_encoder("image", self._image_encoder_path)
        self._client.load_encoder("text", self._text_encoder_path)

    def run(
        self,
        images: List[str],
        texts: List[str],
        image_index: int = 0,
        metric: Optional[str] = None,
    ) -> DistanceResponse:
        """
        Load encoders, encode inputs and return the ranked distances.

        Raises:
            ClipDemoError: Any typed failure reported by the server.
        """
        self.load_encoders()

        for path in images:
            embed = self._client.encode_image(path)
            logger.info("Image '%s' → %d-dim embedding", embed.label, embed.dimension)

        for text in texts:
            embed = self._client.encode_text(text)
            logger.info("Text '%s' → %d-dim embedding", embed.label, embed.dimension)

        return self._client.calculate_distances(image_index=image_index, metric=metric)


def format_distances(result: DistanceResponse) -> str:
    """Render a distance table for the terminal."""
    width = max([len(row.text) for row in result.results] + [4])
    lines = [
        f"Image: {result.image_label}  (metric={result.metric.value})",
        f"  {'#':>3}  {'Text':<{width}}  {'Score':>8}  {'Distance':>8}",
    ]
    for row in result.results:
        lines.append(f"  {row.rank:>3}  {row.text:<{width}}  {row.score:>8.4f}  {row.distance:>8.4f}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the demo client."""
    parser = argparse.ArgumentParser(
        description="CLIPKit Demo - rank texts against an image by CLIP similarity",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--image", action="append", required=True, dest="images",
        help="Image file to encode (repeatable; the first one is the subject)",
    )
    parser.add_argument(
        "--text", action="append", required=True, dest="texts",
        help="Text to encode (repeatable; at least two are needed)",
    )
    parser.add_argument("--server-url", type=str, default=None, help="Server base URL")
    parser.add_argument("--image-encoder-path", type=str, default=None, help="Image encoder bundle on the server")
    parser.add_argument("--text-encoder-path", type=str, default=None, help="Text encoder bundle on the server")
    parser.add_argument("--image-index", type=int, default=0, help="Which encoded image to rank against")
    parser.add_argument("--metric", choices=["cosine", "euclidean"], default=None, help="Similarity metric")
    parser.add_argument("--reset", action="store_true", help="Clear embeddings left over from earlier runs")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if len(args.texts) < 2:
        parser.error("at least two --text values are needed to calculate distances")

    config = get_config()
    server_url = args.server_url or config.server_url

    client = DemoClient(server_url=server_url)
    if not client.wait_for_server():
        logger.error("Server not available at %s. Exiting.", server_url)
        return 1

    if args.reset:
        client.reset()

    runner = DemoRunner(
        client,
        image_encoder_path=args.image_encoder_path,
        text_encoder_path=args.text_encoder_path,
    )
    try:
        result = runner.run(args.images, args.texts, image_index=args.image_index, metric=args.metric)
    except ClipDemoError as exc:
        logger.error("%s: %s", exc.kind, exc.message)
        return 1

    print(format_distances(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
