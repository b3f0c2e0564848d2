"""Frame normalization and template matching."""

import numpy as np
import pytest

from conftest import encode_png, white_square_scene
from needlebot.errors import DecodeError, FrameReleasedError, InvalidDimensionsError
from needlebot.needles import Needle
from needlebot.vision import Frame, FrameNormalizer, MatchResult, TemplateMatcher, decode_gray


def test_normalize_bgra_uses_luma_weights():
    bgra = np.zeros((10, 12, 4), dtype=np.uint8)
    bgra[..., 1] = 255  # pure green
    bgra[..., 3] = 255
    with FrameNormalizer().normalize(encode_png(bgra)) as frame:
        assert (frame.width, frame.height) == (12, 10)
        assert frame.pixels.ndim == 2
        # BT.601: 0.587 * 255
        assert abs(int(frame.pixels[0, 0]) - 150) <= 1


def test_normalize_bgr_and_gray_inputs():
    bgr = np.full((5, 5, 3), 200, dtype=np.uint8)
    gray = np.full((5, 5), 77, dtype=np.uint8)
    assert decode_gray(encode_png(bgr))[0, 0] == 200
    assert decode_gray(encode_png(gray))[0, 0] == 77


@pytest.mark.parametrize("data", [b"", b"definitely not a png", b"\x89PNG\r\n\x1a\n\x00\x00"])
def test_normalize_rejects_garbage(data):
    with pytest.raises(DecodeError):
        FrameNormalizer().normalize(data)


def test_frame_is_released_when_block_exits():
    with Frame(np.zeros((4, 4), dtype=np.uint8)) as frame:
        assert not frame.released
    assert frame.released
    with pytest.raises(FrameReleasedError):
        _ = frame.pixels


def test_frame_is_released_on_error_path():
    frame = Frame(np.zeros((4, 4), dtype=np.uint8))
    with pytest.raises(RuntimeError):
        with frame:
            raise RuntimeError("boom")
    assert frame.released


def test_frame_pixels_are_read_only():
    with Frame(np.zeros((4, 4), dtype=np.uint8)) as frame:
        with pytest.raises(ValueError):
            frame.pixels[0, 0] = 1


def test_white_square_found_at_paste_offset(white_needle, scene):
    with Frame(scene) as frame:
        res = TemplateMatcher().match(frame, white_needle)
    assert res.score >= 0.99
    assert (res.x, res.y) == (50, 80)
    assert (res.width, res.height) == (64, 64)


def test_textured_needle_exact_copy_scores_one():
    rng = np.random.default_rng(7)
    frame_px = rng.integers(0, 256, size=(120, 160), dtype=np.uint8)
    patch = frame_px[33:33 + 24, 91:91 + 30].copy()
    needle = Needle.from_gray("patch", patch)

    for method in ("ccorr_normed", "ccoeff_normed"):
        with Frame(frame_px.copy()) as frame:
            res = TemplateMatcher(method=method).match(frame, needle)
        assert res.score == pytest.approx(1.0, abs=1e-3)
        assert (res.x, res.y) == (91, 33)


def test_match_location_stays_inside_valid_alignments(white_needle):
    frame_px = np.zeros((70, 90), dtype=np.uint8)
    frame_px[6:, 26:] = 255  # square hugging the bottom-right corner
    with Frame(frame_px) as frame:
        res = TemplateMatcher().match(frame, white_needle)
    assert 0 <= res.x <= 90 - 64
    assert 0 <= res.y <= 70 - 64
    assert (res.x, res.y) == (26, 6)


@pytest.mark.parametrize("shape", [(63, 200), (200, 63), (10, 10)])
def test_frame_smaller_than_needle_rejected(white_needle, shape):
    with Frame(np.zeros(shape, dtype=np.uint8)) as frame:
        with pytest.raises(InvalidDimensionsError):
            TemplateMatcher().match(frame, white_needle)


def test_same_size_frame_is_allowed(white_needle):
    with Frame(np.full((64, 64), 255, dtype=np.uint8)) as frame:
        res = TemplateMatcher().match(frame, white_needle)
    assert (res.x, res.y) == (0, 0)


def test_ties_go_to_first_row_major_alignment(monkeypatch, white_needle):
    surface = np.zeros((5, 6), dtype=np.float32)
    surface[1, 4] = 0.9
    surface[3, 0] = 0.9
    surface[1, 5] = 0.9
    monkeypatch.setattr("needlebot.vision.cv2.matchTemplate", lambda *a: surface)
    with Frame(np.zeros((68, 69), dtype=np.uint8)) as frame:
        res = TemplateMatcher().match(frame, white_needle)
    assert (res.x, res.y) == (4, 1)


def test_nan_scores_are_treated_as_zero(monkeypatch, white_needle):
    surface = np.full((2, 2), np.nan, dtype=np.float32)
    surface[1, 1] = 0.3
    monkeypatch.setattr("needlebot.vision.cv2.matchTemplate", lambda *a: surface)
    with Frame(np.zeros((65, 65), dtype=np.uint8)) as frame:
        res = TemplateMatcher().match(frame, white_needle)
    assert res == MatchResult(score=pytest.approx(0.3), x=1, y=1, width=64, height=64, name="white.png")


def test_match_does_not_touch_inputs(white_needle):
    scene = white_square_scene()
    before_frame = scene.copy()
    before_needle = white_needle.gray.copy()
    with Frame(scene) as frame:
        TemplateMatcher().match(frame, white_needle)
    np.testing.assert_array_equal(scene, before_frame)
    np.testing.assert_array_equal(white_needle.gray, before_needle)


def test_unknown_method_rejected():
    with pytest.raises(ValueError):
        TemplateMatcher(method="sqdiff")


def test_debug_snapshot_written(tmp_path, white_needle, scene):
    with Frame(scene) as frame:
        TemplateMatcher(debug_path=tmp_path / "dbg").match(frame, white_needle)
    assert list((tmp_path / "dbg").glob("match_white_*.png"))
