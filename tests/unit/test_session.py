"""
Unit tests for the demo session.

These tests use fake encoders and never load a model bundle.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from server.loader import LoadResult
from server.session import DemoSession
from shared.errors import (
    DimensionMismatchError,
    EncoderNotLoadedError,
    EncodingError,
    ModelLoadError,
    SessionStateError,
)


class TestAttach:

    def test_new_session_has_no_encoders(self):
        session = DemoSession()

        assert not session.image_encoder_loaded
        assert not session.text_encoder_loaded
        assert not session.can_calculate

    def test_attach_flags(self, loaded_session):
        assert loaded_session.image_encoder_loaded
        assert loaded_session.text_encoder_loaded

    def test_failed_load_raises(self):
        session = DemoSession()
        failed = LoadResult(kind="image", path="missing", loaded=False, error="bundle not found")

        with pytest.raises(ModelLoadError):
            session.attach(failed)
        assert not session.image_encoder_loaded


class TestEncoding:

    def test_encode_without_encoder(self, red_image):
        session = DemoSession()

        with pytest.raises(EncoderNotLoadedError) as exc_info:
            session.encode_image(red_image)
        assert exc_info.value.encoder_kind == "image"

        with pytest.raises(EncoderNotLoadedError):
            session.encode_text("red")

    def test_encode_image_appends(self, loaded_session, red_image):
        index, embed = loaded_session.encode_image(red_image, label="red.png")

        assert index == 0
        assert embed.label == "red.png"
        assert embed.image is red_image
        assert embed.scalars == pytest.approx([1.0, 0.0, 0.0])
        assert loaded_session.image_embeds == [embed]

    def test_default_image_label_and_size(self, loaded_session, red_image):
        _, embed = loaded_session.encode_image(red_image)
        loaded_session.encode_image(red_image, size=(32, 16))

        assert embed.label == "image-0"
        assert loaded_session._image_encoder.calls == [(224, 224), (32, 16)]

    def test_encode_text_appends(self, loaded_session):
        loaded_session.encode_text("red")
        loaded_session.encode_text("blue")

        assert [embed.text for embed in loaded_session.text_embeds] == ["red", "blue"]

    def test_concurrent_encodes_report_their_own_index(self, loaded_session):
        texts = [f"text-{i}" for i in range(32)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(loaded_session.encode_text, texts))

        stored = loaded_session.text_embeds
        assert sorted(index for index, _ in results) == list(range(len(texts)))
        for index, embed in results:
            assert stored[index] is embed

    def test_empty_text_rejected(self, loaded_session):
        with pytest.raises(EncodingError):
            loaded_session.encode_text("   ")
        assert loaded_session.text_embeds == []


class TestDistances:

    def test_gate_needs_image_and_two_texts(self, loaded_session, red_image):
        loaded_session.encode_image(red_image)
        loaded_session.encode_text("red")
        assert not loaded_session.can_calculate

        loaded_session.encode_text("blue")
        assert loaded_session.can_calculate

    def test_calculate_before_ready(self, loaded_session, red_image):
        loaded_session.encode_image(red_image)
        loaded_session.encode_text("red")

        with pytest.raises(SessionStateError):
            loaded_session.calculate_distances()

    def test_ranks_texts_against_first_image(self, loaded_session, red_image):
        loaded_session.encode_image(red_image, label="red.png")
        loaded_session.encode_image(Image.new("RGB", (8, 8), (0, 0, 255)), label="blue.png")
        for text in ("blue", "magenta", "red"):
            loaded_session.encode_text(text)

        subject, ranked = loaded_session.calculate_distances()

        assert subject.label == "red.png"
        assert [embed.text for embed, _ in ranked] == ["red", "magenta", "blue"]
        assert [entry.index for _, entry in ranked] == [2, 1, 0]
        assert ranked[0][1].score == pytest.approx(1.0, abs=1e-6)

    def test_selects_image_by_index(self, loaded_session, red_image):
        loaded_session.encode_image(red_image)
        loaded_session.encode_image(Image.new("RGB", (8, 8), (0, 0, 255)), label="blue.png")
        loaded_session.encode_text("red")
        loaded_session.encode_text("blue")

        subject, ranked = loaded_session.calculate_distances(image_index=1)

        assert subject.label == "blue.png"
        assert ranked[0][0].text == "blue"

    def test_image_index_out_of_range(self, loaded_session, red_image):
        loaded_session.encode_image(red_image)
        loaded_session.encode_text("red")
        loaded_session.encode_text("blue")

        with pytest.raises(SessionStateError):
            loaded_session.calculate_distances(image_index=3)

    def test_ranking_errors_propagate(self, loaded_session, red_image):
        class WideTextEncoder:
            kind = "text"

            def encode(self, text):
                return [1.0, 0.0, 0.0, 0.0]

        loaded_session.encode_image(red_image)
        loaded_session.encode_text("red")
        loaded_session.attach(LoadResult(kind="text", path="wide", loaded=True, encoder=WideTextEncoder()))
        loaded_session.encode_text("wide")

        with pytest.raises(DimensionMismatchError):
            loaded_session.calculate_distances()

    def test_reset_keeps_encoders(self, loaded_session, red_image):
        loaded_session.encode_image(red_image)
        loaded_session.encode_text("red")

        loaded_session.reset()

        assert loaded_session.image_embeds == []
        assert loaded_session.text_embeds == []
        assert loaded_session.image_encoder_loaded
