"""
Codec Tests
===========

Pixel conversion, diff serialization, frame storage and clip
reconstruction.
"""

import numpy as np
import pytest

from clipgrid.codec.clip import (
    CaptureState,
    ClipCodec,
    PlaybackContext,
    SequentialPlayer,
    decode_at,
    decode_sequential,
    error_raster,
    render_at,
)
from clipgrid.codec.frames import CompressedFrame, FrameKind, FrameStore, compress, decompress
from clipgrid.codec.pixels import (
    FRAME_SIZE,
    TOTAL_PIXELS,
    adjust_brightness,
    center_square,
    diff,
    to_grayscale,
)
from clipgrid.codec.serializer import apply_changes, deserialize, serialize
from clipgrid.errors import (
    DecompressionError,
    EmptyCaptureError,
    FrameNotFoundError,
    InvalidBaselineError,
    MalformedDiffError,
    MissingBaselineError,
    PrecedingBaselineMissingError,
)

from conftest import solid


def expected_frame(raster, brightness=1.20):
    return adjust_brightness(to_grayscale(raster), brightness).reshape(-1)


class TestPixels:
    """Tests for grayscale, brightness and diff extraction."""

    def test_grayscale_is_unweighted_mean(self):
        raster = np.zeros((2, 2, 3), dtype=np.uint8)
        raster[0, 0] = (10, 20, 30)
        raster[0, 1] = (1, 2, 2)
        raster[1, 0] = (255, 255, 255)

        gray = to_grayscale(raster)

        assert gray.shape == (2, 2)
        assert gray.dtype == np.uint8
        assert gray[0, 0] == 20
        assert gray[0, 1] == 2
        assert gray[1, 0] == 255
        assert gray[1, 1] == 0

    def test_grayscale_ignores_alpha(self):
        raster = np.zeros((1, 1, 4), dtype=np.uint8)
        raster[0, 0] = (30, 60, 90, 0)
        assert to_grayscale(raster)[0, 0] == 60

    def test_grayscale_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            to_grayscale(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_brightness_clamps(self):
        raster = np.array([0, 100, 200, 250], dtype=np.uint8)
        assert adjust_brightness(raster, 1.2).tolist() == [0, 120, 240, 255]

    def test_brightness_does_not_mutate_input(self):
        raster = np.array([100], dtype=np.uint8)
        adjust_brightness(raster, 2.0)
        assert raster[0] == 100

    def test_diff_threshold_is_exclusive(self):
        previous = np.array([100, 100, 100, 100], dtype=np.uint8)
        current = np.array([105, 106, 94, 95], dtype=np.uint8)

        assert diff(current, previous) == [(1, 106), (2, 94)]

    def test_diff_identical_frames_is_empty(self):
        frame = np.full(TOTAL_PIXELS, 77, dtype=np.uint8)
        assert diff(frame, frame.copy()) == []

    def test_diff_shape_mismatch(self):
        with pytest.raises(ValueError):
            diff(np.zeros(4, dtype=np.uint8), np.zeros(5, dtype=np.uint8))

    def test_center_square(self):
        raster = np.zeros((120, 200, 3), dtype=np.uint8)
        raster[:, 40:160] = 9
        square = center_square(raster)
        assert square.shape == (120, 120, 3)
        assert (square == 9).all()


class TestSerializer:
    """Tests for the 3-byte record format."""

    def test_single_record_layout(self):
        assert serialize([(42, 200)]) == bytes([42, 0, 200])

    def test_index_is_little_endian(self):
        assert serialize([(0x0102, 7)]) == bytes([0x02, 0x01, 0x07])

    def test_empty(self):
        assert serialize([]) == b""
        assert deserialize(b"") == []

    def test_round_trip_preserves_order(self):
        changes = [(25599, 255), (0, 0), (160, 13)]
        assert deserialize(serialize(changes)) == changes

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            serialize([(70000, 1)])
        with pytest.raises(ValueError):
            serialize([(1, 300)])

    def test_truncated_buffer(self):
        with pytest.raises(MalformedDiffError):
            deserialize(b"\x01\x00")

    def test_apply_changes_copies(self):
        pixels = np.zeros(4, dtype=np.uint8)
        result = apply_changes(pixels, [(1, 9), (3, 7)])

        assert result.tolist() == [0, 9, 0, 7]
        assert pixels.tolist() == [0, 0, 0, 0]

    def test_apply_changes_ignores_out_of_range(self):
        result = apply_changes(np.zeros(4, dtype=np.uint8), [(4, 9), (60000, 1)])
        assert result.tolist() == [0, 0, 0, 0]


class TestFrames:
    """Tests for CompressedFrame and FrameStore."""

    def test_compress_is_zlib(self):
        assert decompress(compress(b"abc")) == b"abc"

    def test_decompress_corrupt(self):
        with pytest.raises(DecompressionError):
            decompress(b"not zlib")

    def test_baseline_frame(self):
        pixels = np.arange(TOTAL_PIXELS, dtype=np.uint32).astype(np.uint8)
        frame = CompressedFrame.baseline(pixels)

        assert frame.kind is FrameKind.BASELINE
        assert frame.is_baseline
        assert frame.raw_length == TOTAL_PIXELS
        assert np.array_equal(frame.pixels(), pixels)

    def test_delta_frame(self):
        frame = CompressedFrame.delta(serialize([(5, 6)]))
        assert frame.kind is FrameKind.DELTA
        assert frame.raw_length == 3
        assert frame.changes() == [(5, 6)]

    def test_store_identity_lookup(self):
        a = CompressedFrame.delta(b"")
        b = CompressedFrame.delta(b"")
        store = FrameStore([a])

        assert store.index_of(a) == 0
        with pytest.raises(FrameNotFoundError):
            store.index_of(b)

    def test_empty_store_has_no_baseline(self):
        with pytest.raises(MissingBaselineError):
            FrameStore().baseline_pixels()

    def test_leading_delta_has_no_preceding_baseline(self):
        store = FrameStore([CompressedFrame.delta(b"")])
        with pytest.raises(PrecedingBaselineMissingError):
            store.baseline_pixels()

    def test_random_access_after_leading_delta(self):
        store = FrameStore([
            CompressedFrame.delta(serialize([(0, 9)])),
            CompressedFrame.baseline(np.zeros(TOTAL_PIXELS, dtype=np.uint8)),
        ])
        with pytest.raises(PrecedingBaselineMissingError):
            decode_at(store, 1)
        assert render_at(store, 1).error is not None

    def test_short_baseline_is_rejected(self):
        store = FrameStore([CompressedFrame.baseline(np.zeros(100, dtype=np.uint8))])
        with pytest.raises(InvalidBaselineError, match="expected 25600"):
            store.baseline_pixels()

    def test_store_sizes(self):
        store = FrameStore([
            CompressedFrame.baseline(np.zeros(TOTAL_PIXELS, dtype=np.uint8)),
            CompressedFrame.delta(serialize([(1, 2), (3, 4)])),
        ])
        assert store.raw_size == TOTAL_PIXELS + 6
        assert store.compressed_size < store.raw_size
        assert len(store.deltas) == 1


class TestCapture:
    """Tests for the ClipCodec capture state machine."""

    def test_first_frame_is_baseline_rest_deltas(self, moving_rasters):
        codec = ClipCodec(target_frame_count=10)
        codec.begin_capture()
        for raster in moving_rasters:
            codec.capture_frame(raster)

        frames = codec.frozen_frames()
        assert len(frames) == 10
        assert frames[0].is_baseline
        assert all(not f.is_baseline for f in frames[1:])

    def test_stops_at_target(self, moving_rasters):
        codec = ClipCodec(target_frame_count=3)
        codec.begin_capture()
        for raster in moving_rasters[:3]:
            codec.capture_frame(raster)

        assert codec.state is CaptureState.STOPPED
        with pytest.raises(RuntimeError):
            codec.capture_frame(moving_rasters[3])

    def test_manual_stop(self, moving_rasters):
        codec = ClipCodec(target_frame_count=10)
        codec.begin_capture()
        codec.capture_frame(moving_rasters[0])
        codec.capture_frame(moving_rasters[1])

        assert codec.end_capture() == 2
        assert codec.state is CaptureState.STOPPED

    def test_begin_discards_previous_session(self, moving_rasters):
        codec = ClipCodec(target_frame_count=10)
        codec.begin_capture()
        codec.capture_frame(moving_rasters[0])
        codec.begin_capture()

        assert len(codec.store) == 0
        assert codec.capture_frame(moving_rasters[1]).is_baseline

    def test_deltas_are_against_previous_frame(self):
        codec = ClipCodec(target_frame_count=3, brightness=1.0)
        codec.begin_capture()
        codec.capture_frame(solid(100))
        codec.capture_frame(solid(150))
        third = codec.capture_frame(solid(150))

        assert third.raw == b""

    def test_empty_capture(self):
        codec = ClipCodec()
        with pytest.raises(EmptyCaptureError):
            codec.frozen_frames()

    def test_summary(self, moving_rasters):
        codec = ClipCodec(target_frame_count=4)
        codec.begin_capture()
        for raster in moving_rasters[:4]:
            codec.capture_frame(raster)

        summary = codec.capture_summary()
        assert summary.frame_count == 4
        assert summary.estimated_raw_bytes == TOTAL_PIXELS + summary.raw_delta_bytes
        assert summary.raw_delta_bytes % 3 == 0

    def test_invalid_target(self):
        with pytest.raises(ValueError):
            ClipCodec(target_frame_count=0)


class TestReconstruction:
    """Tests for sequential and random-access decoding."""

    @pytest.fixture
    def codec(self, moving_rasters):
        codec = ClipCodec(target_frame_count=10)
        codec.begin_capture()
        for raster in moving_rasters:
            codec.capture_frame(raster)
        return codec

    def test_random_access_matches_source(self, codec, moving_rasters):
        for k, raster in enumerate(moving_rasters):
            assert np.array_equal(decode_at(codec.store, k), expected_frame(raster))

    def test_sequential_matches_random_access(self, codec):
        context = PlaybackContext()
        for k in range(codec.store.frame_count):
            sequential = decode_sequential(codec.store, k, context)
            assert np.array_equal(sequential, decode_at(codec.store, k))

    def test_sequential_rebuilds_out_of_order(self, codec):
        context = PlaybackContext()
        for k in range(6):
            decode_sequential(codec.store, k, context)

        jumped = decode_sequential(codec.store, 3, context)
        assert np.array_equal(jumped, decode_at(codec.store, 3))
        assert context.index == 3

    def test_frame_zero_resets_context(self, codec):
        context = PlaybackContext()
        for k in range(4):
            decode_sequential(codec.store, k, context)

        restarted = decode_sequential(codec.store, 0, context)
        assert np.array_equal(restarted, decode_at(codec.store, 0))
        assert context.index == 0

    def test_returned_rasters_are_not_mutated(self, codec):
        context = PlaybackContext()
        first = decode_sequential(codec.store, 0, context)
        snapshot = first.copy()
        decode_sequential(codec.store, 1, context)

        assert np.array_equal(first, snapshot)

    def test_out_of_range(self, codec):
        with pytest.raises(FrameNotFoundError):
            decode_at(codec.store, 10)
        with pytest.raises(FrameNotFoundError):
            decode_sequential(codec.store, -1, PlaybackContext())

    def test_player_loops(self, codec):
        player = SequentialPlayer(codec.store)
        renders = [player.step() for _ in range(11)]

        assert all(r.ok for r in renders)
        assert np.array_equal(renders[10].pixels, renders[0].pixels)
        assert player.index == 1

    def test_player_rewind(self, codec):
        player = SequentialPlayer(codec.store)
        player.step()
        player.step()
        player.rewind()

        assert player.index == 0
        assert player.context.current is None

    def test_preview_by_identity(self, codec, moving_rasters):
        frame = codec.store[4]
        assert np.array_equal(codec.preview(frame), expected_frame(moving_rasters[4]))

    def test_preview_unknown_frame(self, codec):
        with pytest.raises(FrameNotFoundError):
            codec.preview(CompressedFrame.delta(b""))

    def test_preview_delta_before_baseline(self):
        codec = ClipCodec()
        delta = CompressedFrame.delta(b"")
        codec.store.append(delta)

        with pytest.raises(PrecedingBaselineMissingError):
            codec.preview(delta)
        assert codec.render_preview(delta).error is not None


class TestRenderBoundary:
    """Tests that decode failures become an error raster."""

    @pytest.fixture
    def corrupt_store(self):
        return FrameStore([
            CompressedFrame(kind=FrameKind.BASELINE, compressed=b"garbage", raw=b""),
        ])

    def test_render_at_returns_error_raster(self, corrupt_store):
        render = render_at(corrupt_store, 0)

        assert not render.ok
        assert np.array_equal(render.pixels, error_raster())
        assert render.as_image().shape == (FRAME_SIZE, FRAME_SIZE)

    def test_player_survives_corrupt_frame(self, corrupt_store):
        player = SequentialPlayer(corrupt_store)
        first = player.step()
        second = player.step()

        assert not first.ok
        assert not second.ok
        assert player.context.current is None

    def test_error_raster_is_two_tone(self):
        raster = error_raster()
        assert raster.shape == (TOTAL_PIXELS,)
        assert set(np.unique(raster).tolist()) == {0, 255}
