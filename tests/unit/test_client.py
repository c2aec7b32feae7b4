"""
Unit tests for the demo HTTP client and CLI.

The requests session is replaced with a mock; no server is started.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from PIL import Image

from client.client import DemoClient
from client.main import DemoRunner, format_distances, main
from shared.errors import DimensionMismatchError, EncoderNotLoadedError
from shared.schemas import DistanceResponse


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code}")
    return response


DISTANCES = {
    "image_index": 0,
    "image_label": "cat.png",
    "metric": "cosine",
    "results": [
        {"rank": 1, "index": 1, "text": "a cat", "score": 0.31, "distance": 0.69},
        {"rank": 2, "index": 0, "text": "a dog", "score": 0.22, "distance": 0.78},
    ],
}


@pytest.fixture
def demo_client():
    client = DemoClient("http://server:8000/", max_retries=3, timeout=10)
    client._session = MagicMock()
    return client


class TestDemoClient:

    def test_encode_text(self, demo_client):
        demo_client._session.request.return_value = _response(
            body={"kind": "text", "index": 0, "label": "a cat", "dimension": 512, "embedding": None}
        )

        result = demo_client.encode_text("a cat")

        assert result.dimension == 512
        method, url = demo_client._session.request.call_args[0]
        assert method == "POST"
        assert url == "http://server:8000/api/v1/embeddings/text"
        assert demo_client._session.request.call_args[1]["json"] == {"text": "a cat"}

    def test_encode_image_from_path(self, demo_client, tmp_path):
        path = tmp_path / "cat.png"
        Image.new("RGB", (4, 4), (9, 9, 9)).save(path)
        demo_client._session.request.return_value = _response(
            body={"kind": "image", "index": 0, "label": str(path), "dimension": 512}
        )

        result = demo_client.encode_image(str(path))

        payload = demo_client._session.request.call_args[1]["json"]
        assert payload["label"] == str(path)
        assert payload["image_data"]
        assert result.label == str(path)

    def test_typed_error_is_raised(self, demo_client):
        demo_client._session.request.return_value = _response(
            422,
            {
                "error": "dimension_mismatch",
                "message": "Dimension mismatch for candidate 0: expected 2, got 3",
                "details": {"expected": 2, "actual": 3, "index": 0},
            },
        )

        with pytest.raises(DimensionMismatchError) as exc_info:
            demo_client.rank([1, 0], [[1, 0, 0]])

        assert exc_info.value.expected == 2
        assert demo_client._session.request.call_count == 1

    def test_http_error_without_error_body(self, demo_client):
        demo_client._session.request.return_value = _response(404, {"detail": "Not Found"})

        with pytest.raises(requests.exceptions.HTTPError):
            demo_client.load_encoder("audio")

    @patch("client.client.time.sleep")
    def test_retries_connection_errors(self, mock_sleep, demo_client):
        demo_client._session.request.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            _response(body={"status": "ok"}),
        ]

        demo_client.reset()

        assert demo_client._session.request.call_count == 2
        mock_sleep.assert_called_once_with(1)

    @patch("client.client.time.sleep")
    def test_gives_up_after_retries(self, mock_sleep, demo_client):
        demo_client._session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(requests.exceptions.Timeout):
            demo_client.list_embeddings()

        assert demo_client._session.request.call_count == 3

    @pytest.mark.parametrize("max_retries", [0, -1])
    def test_rejects_non_positive_retries(self, max_retries):
        with pytest.raises(ValueError):
            DemoClient("http://server", max_retries=max_retries)

    @patch("client.client.time.sleep")
    def test_single_attempt_raises_the_network_error(self, mock_sleep):
        client = DemoClient("http://server", max_retries=1)
        client._session = MagicMock()
        client._session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(requests.exceptions.ConnectionError):
            client.health()

        assert client._session.request.call_count == 1

    def test_calculate_distances(self, demo_client):
        demo_client._session.request.return_value = _response(body=DISTANCES)

        result = demo_client.calculate_distances(metric="cosine")

        assert [row.text for row in result.results] == ["a cat", "a dog"]
        assert demo_client._session.request.call_args[1]["json"] == {"image_index": 0, "metric": "cosine"}

    @patch("client.client.time.sleep")
    def test_wait_for_server(self, mock_sleep, demo_client):
        demo_client._session.get.side_effect = [
            requests.exceptions.ConnectionError("down"),
            _response(body={"status": "ok"}),
        ]

        assert demo_client.wait_for_server(timeout=30, poll_interval=0.1) is True


class TestDemoRunner:

    def test_walks_the_flow(self):
        client = MagicMock()
        client.calculate_distances.return_value = DistanceResponse(**DISTANCES)
        runner = DemoRunner(client, image_encoder_path="/b/image", text_encoder_path="/b/text")

        result = runner.run(["cat.png"], ["a dog", "a cat"])

        client.load_encoder.assert_any_call("image", "/b/image")
        client.load_encoder.assert_any_call("text", "/b/text")
        client.encode_image.assert_called_once_with("cat.png")
        assert [c.args[0] for c in client.encode_text.call_args_list] == ["a dog", "a cat"]
        client.calculate_distances.assert_called_once_with(image_index=0, metric=None)
        assert result.image_label == "cat.png"

    def test_format_distances(self):
        table = format_distances(DistanceResponse(**DISTANCES))

        lines = table.splitlines()
        assert lines[0] == "Image: cat.png  (metric=cosine)"
        assert "a cat" in lines[2]
        assert "0.3100" in lines[2]


class TestMain:

    @patch("client.main.DemoClient")
    def test_prints_table(self, mock_client_cls, capsys):
        client = mock_client_cls.return_value
        client.wait_for_server.return_value = True
        client.calculate_distances.return_value = DistanceResponse(**DISTANCES)

        code = main(["--image", "cat.png", "--text", "a dog", "--text", "a cat", "--server-url", "http://x:1"])

        assert code == 0
        mock_client_cls.assert_called_once_with(server_url="http://x:1")
        assert "a cat" in capsys.readouterr().out

    @patch("client.main.DemoClient")
    def test_typed_error_exits_nonzero(self, mock_client_cls):
        client = mock_client_cls.return_value
        client.wait_for_server.return_value = True
        client.load_encoder.side_effect = EncoderNotLoadedError("image")

        code = main(["--image", "cat.png", "--text", "a", "--text", "b"])

        assert code == 1

    def test_needs_two_texts(self):
        with pytest.raises(SystemExit):
            main(["--image", "cat.png", "--text", "only one"])
