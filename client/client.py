# =============================================================================
# CLIPKit Demo - HTTP Client
# =============================================================================
# Provides the DemoClient class that talks to the demo server: loads encoder
# bundles, uploads images and text for encoding, and fetches ranked
# distances.  Error responses are turned back into the typed exceptions the
# server raised.
# =============================================================================

import logging
import time
from typing import Optional, Sequence, Union

import requests
from PIL import Image

from shared.errors import error_from_payload
from shared.imaging import encode_image_base64, load_image
from shared.schemas import (
    DistanceResponse,
    EmbeddingListResponse,
    EmbeddingResponse,
    LoadResponse,
    RankResponse,
)

logger = logging.getLogger(__name__)


def _flag(value: bool) -> str:
    return "true" if value else "false"


class DemoClient:
    """
    HTTP client for the CLIPKit demo server.

    Connection failures and timeouts are retried with exponential backoff.
    HTTP error responses are not retried: they are decoded into the matching
    ClipDemoError subclass and raised.

    Args:
        server_url:  Base URL of the server (e.g., "http://127.0.0.1:8000").
        max_retries: Attempts per request for transient network failures (>= 1).
        timeout:     Per-request timeout in seconds.
    """

    def __init__(self, server_url: str, max_retries: int = 3, timeout: float = 300.0):
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self._server_url = server_url.rstrip("/")
        self._max_retries = max_retries
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Send a request and return the decoded JSON body.

        Raises:
            ClipDemoError: The typed error from an ErrorResponse body.
            requests.exceptions.RequestException: After all retries exhausted,
                or for HTTP errors without an ErrorResponse body.
        """
        url = f"{self._server_url}{path}"
        kwargs.setdefault("timeout", self._timeout)
        last_exception = None

        for attempt in range(1, self._max_retries + 1):
            try:
                response = self._session.request(method, url, **kwargs)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                last_exception = exc
                wait_time = 2 ** (attempt - 1)
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s, retrying in %ds",
                    method, path, attempt, self._max_retries, exc, wait_time,
                )
                time.sleep(wait_time)
                continue

            if response.status_code >= 400:
                self._raise_for_error(response)
            return response.json()

        logger.error("All %d attempts failed for %s %s", self._max_retries, method, path)
        raise last_exception

    @staticmethod
    def _raise_for_error(response: requests.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and "error" in body:
            error = error_from_payload(body)
            logger.debug("Server returned %d %s", response.status_code, error.kind)
            raise error
        response.raise_for_status()

    # -----------------------------------------------------------------
    # API
    # -----------------------------------------------------------------

    def health(self) -> dict:
        return self._request("GET", "/health", timeout=5)

    def wait_for_server(self, timeout: int = 60, poll_interval: float = 2.0) -> bool:
        """
        Block until the server's /health endpoint answers.

        Args:
            timeout:       Maximum seconds to wait for the server.
            poll_interval: Seconds between health check polls.

        Returns:
            True if the server is ready, False if timeout expired.
        """
        url = f"{self._server_url}/health"
        start = time.time()

        logger.info("Waiting for server at %s (timeout=%ds)...", url, timeout)

        while (time.time() - start) < timeout:
            try:
                response = self._session.get(url, timeout=5)
                if response.status_code == 200 and response.json().get("status") == "ok":
                    logger.info("Server is ready.")
                    return True
            except requests.exceptions.ConnectionError:
                logger.debug("Server not reachable yet...")

            time.sleep(poll_interval)

        logger.error("Timed out waiting for server after %ds.", timeout)
        return False

    def load_encoder(self, kind: str, path: Optional[str] = None) -> LoadResponse:
        """Load the image or text encoder bundle on the server."""
        body = self._request("POST", f"/api/v1/encoders/{kind}/load", json={"path": path})
        result = LoadResponse(**body)
        logger.info("%s encoder loaded (dim=%s, %.1fms)", kind.capitalize(), result.dimension, result.load_time_ms)
        return result

    def encode_image(
        self,
        image: Union[str, Image.Image],
        label: Optional[str] = None,
        include_vector: bool = False,
    ) -> EmbeddingResponse:
        """
        Upload an image (file path or PIL image) for encoding.

        A file path doubles as the default label.
        """
        if isinstance(image, str):
            label = label or image
            image = load_image(image)

        payload = {"image_data": encode_image_base64(image), "label": label}
        body = self._request(
            "POST", "/api/v1/embeddings/image",
            json=payload, params={"include_vector": _flag(include_vector)},
        )
        return EmbeddingResponse(**body)

    def encode_text(self, text: str, include_vector: bool = False) -> EmbeddingResponse:
        body = self._request(
            "POST", "/api/v1/embeddings/text",
            json={"text": text}, params={"include_vector": _flag(include_vector)},
        )
        return EmbeddingResponse(**body)

    def list_embeddings(self, include_vectors: bool = False) -> EmbeddingListResponse:
        body = self._request("GET", "/api/v1/embeddings", params={"include_vectors": _flag(include_vectors)})
        return EmbeddingListResponse(**body)

    def calculate_distances(self, image_index: int = 0, metric: Optional[str] = None) -> DistanceResponse:
        payload = {"image_index": image_index}
        if metric is not None:
            payload["metric"] = metric
        body = self._request("POST", "/api/v1/distances", json=payload)
        return DistanceResponse(**body)

    def rank(
        self,
        subject: Sequence[float],
        candidates: Sequence[Sequence[float]],
        metric: str = "cosine",
    ) -> RankResponse:
        payload = {
            "subject": [float(x) for x in subject],
            "candidates": [[float(x) for x in candidate] for candidate in candidates],
            "metric": metric,
        }
        body = self._request("POST", "/api/v1/rank", json=payload)
        return RankResponse(**body)

    def reset(self) -> None:
        self._request("DELETE", "/api/v1/embeddings")
