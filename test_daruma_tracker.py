"""
Marker segmentation tests on synthetic frames.
Frames are 320x160 BGR so the tracker's 160x80 downscale is an exact 2x.
"""

import threading

import cv2
import numpy as np
import pytest

from daruma_tracker import (ColorBand, Config, FrameTracker, NO_POSITION, Position,
                            PositionBoard, SharedPositionSlot)

GREEN_BGR = (0, 255, 0)
BLUE_BGR = (255, 0, 0)
RED_BGR = (0, 0, 255)


def blank_frame(width=320, height=160):
    return np.zeros((height, width, 3), dtype=np.uint8)


def fill(frame, x0, y0, x1, y1, color):
    """Paint the half-open pixel box [x0, x1) x [y0, y1)"""
    frame[y0:y1, x0:x1] = color
    return frame


def assert_near(position, x, y, tolerance=1.0):
    assert position.found
    assert abs(position.x - x) <= tolerance
    assert abs(position.y - y) <= tolerance


@pytest.fixture
def tracker():
    return FrameTracker()


def test_empty_frame_gives_no_position(tracker):
    positions = tracker.update(blank_frame())

    assert set(positions) == set(ColorBand)
    for position in positions.values():
        assert position == NO_POSITION
        assert not position.found


def test_single_marker_centroid(tracker):
    # 40x40 box at full res -> pixels 20..39 x 10..29 in the working frame
    frame = fill(blank_frame(), 40, 20, 80, 60, GREEN_BGR)

    positions = tracker.update(frame)

    assert_near(positions[ColorBand.GREEN], 29.5, 19.5)
    assert positions[ColorBand.BLUE] == NO_POSITION
    assert positions[ColorBand.RED] == NO_POSITION


def test_each_band_is_tracked_independently(tracker):
    frame = blank_frame()
    fill(frame, 40, 20, 80, 60, GREEN_BGR)
    fill(frame, 140, 80, 180, 120, BLUE_BGR)
    fill(frame, 240, 40, 280, 80, RED_BGR)

    positions = tracker.update(frame)

    assert_near(positions[ColorBand.GREEN], 29.5, 19.5)
    assert_near(positions[ColorBand.BLUE], 79.5, 49.5)
    assert_near(positions[ColorBand.RED], 129.5, 29.5)


def test_largest_blob_wins(tracker):
    frame = blank_frame()
    fill(frame, 200, 100, 216, 116, BLUE_BGR)   # small
    fill(frame, 40, 20, 80, 60, BLUE_BGR)       # large

    positions = tracker.update(frame)

    assert_near(positions[ColorBand.BLUE], 29.5, 19.5)


def test_speckle_is_removed_by_opening(tracker):
    # 2x2 at full res collapses to a single working-frame pixel
    frame = fill(blank_frame(), 100, 40, 102, 42, RED_BGR)

    positions = tracker.update(frame)

    assert positions[ColorBand.RED] == NO_POSITION
    assert cv2.countNonZero(tracker.get_debug_mask(ColorBand.RED)) == 0


def test_out_of_band_colors_are_ignored(tracker):
    frame = blank_frame()
    fill(frame, 40, 20, 80, 60, (128, 128, 128))    # grey: no saturation
    fill(frame, 140, 20, 180, 60, (0, 255, 255))    # yellow: hue 30

    positions = tracker.update(frame)

    assert all(position == NO_POSITION for position in positions.values())


def test_any_input_resolution_maps_to_working_frame(tracker):
    frame = np.zeros((320, 640, 3), dtype=np.uint8)
    fill(frame, 80, 40, 160, 120, GREEN_BGR)

    position = tracker.update(frame)[ColorBand.GREEN]

    assert_near(position, 29.5, 19.5)
    assert 0 <= position.x < Config.FRAME_WIDTH
    assert 0 <= position.y < Config.FRAME_HEIGHT


def test_update_publishes_to_board():
    board = PositionBoard()
    tracker = FrameTracker(board)
    frame = fill(blank_frame(), 40, 20, 80, 60, GREEN_BGR)

    tracker.update(frame)
    assert_near(board.read(ColorBand.GREEN), 29.5, 19.5)

    # Marker leaves the view: the slot goes back to the sentinel
    tracker.update(blank_frame())
    assert board.read(ColorBand.GREEN) == NO_POSITION


def test_degenerate_contour_gives_no_position(tracker):
    # A one pixel wide line has zero enclosed area
    mask = np.zeros((Config.FRAME_HEIGHT, Config.FRAME_WIDTH), dtype=np.uint8)
    mask[10, 20:40] = 255

    assert tracker.find_candidate(mask) == NO_POSITION


def test_render_debug_view_cycles_masks_and_frame(tracker):
    frame = fill(blank_frame(), 40, 20, 80, 60, GREEN_BGR)
    tracker.update(frame)

    mask_view = tracker.render_debug_view(frame, 0)
    assert mask_view.shape == (Config.DISPLAY_HEIGHT, Config.DISPLAY_WIDTH)
    assert cv2.countNonZero(mask_view) > 0

    camera_view = tracker.render_debug_view(frame.copy(), 3)
    assert camera_view.shape == frame.shape

    # Wraps around
    assert tracker.render_debug_view(frame, 4).shape == mask_view.shape


def test_color_bands_are_fixed():
    assert [band.label for band in ColorBand] == ["green", "blue", "red"]
    assert [band.index for band in ColorBand] == [0, 1, 2]
    for band in ColorBand:
        assert np.all(band.lower <= band.upper)


def test_board_slots_are_independent():
    board = PositionBoard()
    board.publish(ColorBand.BLUE, Position(3, 4))

    assert board.read(ColorBand.BLUE) == Position(3, 4)
    assert board.read(ColorBand.GREEN) == NO_POSITION
    assert board.slot(ColorBand.BLUE) is not board.slot(ColorBand.RED)
    assert board.read_all() == {
        ColorBand.GREEN: NO_POSITION,
        ColorBand.BLUE: Position(3, 4),
        ColorBand.RED: NO_POSITION,
    }


def test_concurrent_writes_are_never_torn():
    slot = SharedPositionSlot()
    done = threading.Event()

    def writer():
        for i in range(20000):
            slot.write(Position(i, i))
        done.set()

    thread = threading.Thread(target=writer)
    thread.start()
    reads = 0
    while not done.is_set():
        position = slot.read()
        assert position.x == position.y or position == NO_POSITION
        reads += 1
    thread.join()

    assert slot.read() == Position(19999, 19999)
    assert reads > 0
