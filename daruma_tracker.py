"""
Three-Color Marker Tracking Pipeline
Segments green, blue and red markers from a live camera feed and publishes
the centroid of each marker for the Daruma-san-ga-koronda referee.

Contains the shared configuration, the color band definitions, the
lock-protected position slots and the per-frame tracker.
"""

import os
import threading
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

import cv2
import numpy as np

# =============================================================================
# CONFIGURATION & PARAMETERS
# =============================================================================

class Config:
    """Configuration parameters for marker tracking and refereeing"""

    # Video source configuration
    VIDEO_SOURCE = "demo.mp4"  # Default to demo video
    if os.getenv("USE_PI_CAMERA") == "1":
        VIDEO_SOURCE = 0  # Pi's camera index

    # Working frame dimensions (all tracking happens on this downscaled copy)
    FRAME_WIDTH = 160
    FRAME_HEIGHT = 80

    # HSV bounds per marker color (OpenCV hue scale 0-179)
    GREEN_LOWER = (50, 50, 10)
    GREEN_UPPER = (90, 255, 255)
    BLUE_LOWER = (100, 100, 10)
    BLUE_UPPER = (130, 255, 255)
    RED_LOWER = (0, 100, 30)
    RED_UPPER = (5, 255, 255)

    # Mask cleanup
    BINARY_CUTOFF = 100
    MORPH_KERNEL_SIZE = (3, 3)

    # Game protocol
    TURN_COUNT = 3              # "Daruma-san-ga-koronda" is called at most this many times
    POLL_INTERVAL = 0.5         # Seconds between position checks
    MIN_POLLS = 6               # Each round checks MIN_POLLS + randrange(POLL_SPREAD) times
    POLL_SPREAD = 10
    MOVE_THRESHOLD = 1.0        # Working-frame pixels; anything beyond jitter counts

    # Phrases (audio file stems)
    START_PHRASES = ["daruma_3", "daruma_4", "daruma_5", "daruma_7"]
    ALL_CLEAR_PHRASE = "minnanokachi_3"

    # Audio output
    AUDIO_DIR = os.getenv("DARUMA_AUDIO_DIR", "audio")
    AUDIO_EXT = ".wav"
    PLAYER_COMMAND = ("aplay", "-q")
    MIXER_CONTROL = "Master"
    MAXIMIZE_VOLUME = True

    # Debug and visualization
    DEBUG = False
    SHOW_FPS = True
    DISPLAY_WIDTH = 640
    DISPLAY_HEIGHT = 320

# =============================================================================
# COLOR BANDS & POSITIONS
# =============================================================================

class ColorBand(Enum):
    """Tracked marker colors: (slot index, display name, HSV lower, HSV upper)"""

    GREEN = (0, "green", Config.GREEN_LOWER, Config.GREEN_UPPER)
    BLUE = (1, "blue", Config.BLUE_LOWER, Config.BLUE_UPPER)
    RED = (2, "red", Config.RED_LOWER, Config.RED_UPPER)

    def __init__(self, index: int, label: str, lower: Tuple[int, int, int], upper: Tuple[int, int, int]):
        self.index = index
        self.label = label
        self.lower = np.array(lower, dtype=np.uint8)
        self.upper = np.array(upper, dtype=np.uint8)


class Position(NamedTuple):
    """Marker centroid in working-frame coordinates"""
    x: int
    y: int

    @property
    def found(self) -> bool:
        return self.x >= 0 and self.y >= 0


# Same (-1, -1) convention as a lost target: no blob matched the band
NO_POSITION = Position(-1, -1)

# Annotation colors (BGR)
BAND_DRAW_COLORS = {
    ColorBand.GREEN: (0, 255, 0),
    ColorBand.BLUE: (255, 0, 0),
    ColorBand.RED: (0, 0, 255),
}

# =============================================================================
# SHARED POSITION SLOTS
# =============================================================================

class SharedPositionSlot:
    """Latest position of one marker, guarded by its own lock"""

    def __init__(self):
        self._lock = threading.Lock()
        self._position = NO_POSITION

    def write(self, position: Position):
        with self._lock:
            self._position = position

    def read(self) -> Position:
        with self._lock:
            return self._position


class PositionBoard:
    """
    Fixed set of three independently locked slots indexed by ColorBand.
    The tracker writes one slot per band after each frame; the referee reads them.
    Different colors never contend for the same lock.
    """

    def __init__(self):
        self._slots: List[SharedPositionSlot] = [SharedPositionSlot() for _ in ColorBand]

    def slot(self, band: ColorBand) -> SharedPositionSlot:
        return self._slots[band.index]

    def publish(self, band: ColorBand, position: Position):
        self._slots[band.index].write(position)

    def read(self, band: ColorBand) -> Position:
        return self._slots[band.index].read()

    def read_all(self) -> Dict[ColorBand, Position]:
        """Read every slot, each under its own lock"""
        return {band: self._slots[band.index].read() for band in ColorBand}

# =============================================================================
# FRAME TRACKER
# =============================================================================

class FrameTracker:
    """
    Per-frame marker segmentation: downscale, HSV threshold per band,
    morphological opening, largest external contour, moment centroid.
    """

    def __init__(self, board: Optional[PositionBoard] = None):
        self.board = board if board is not None else PositionBoard()
        self.frame_count = 0

        self.frame_width = Config.FRAME_WIDTH
        self.frame_height = Config.FRAME_HEIGHT

        # Pre-allocated buffers for performance optimization
        self.small_frame = np.zeros((self.frame_height, self.frame_width, 3), dtype=np.uint8)
        self.hsv_frame = np.zeros((self.frame_height, self.frame_width, 3), dtype=np.uint8)
        self.masks = {
            band: np.zeros((self.frame_height, self.frame_width), dtype=np.uint8)
            for band in ColorBand
        }

        # Precompute morphological kernel
        self.morph_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, Config.MORPH_KERNEL_SIZE)

        self.last_positions: Dict[ColorBand, Position] = {band: NO_POSITION for band in ColorBand}

    def preprocess(self, frame: np.ndarray) -> np.ndarray:
        """
        Downscale a BGR frame to the working size and convert it to HSV.

        Args:
            frame: Raw BGR frame of any resolution

        Returns:
            HSV frame at working resolution - pre-allocated buffer
        """
        cv2.resize(frame, (self.frame_width, self.frame_height),
                   dst=self.small_frame, interpolation=cv2.INTER_LINEAR)
        cv2.cvtColor(self.small_frame, cv2.COLOR_BGR2HSV, dst=self.hsv_frame)
        return self.hsv_frame

    def compute_mask(self, hsv_frame: np.ndarray, band: ColorBand) -> np.ndarray:
        """
        Create a denoised binary mask for one color band.

        Args:
            hsv_frame: HSV converted frame
            band: Color band to extract

        Returns:
            Binary mask with band pixels as white (255) - pre-allocated buffer
        """
        mask = self.masks[band]
        cv2.inRange(hsv_frame, band.lower, band.upper, dst=mask)
        cv2.threshold(mask, Config.BINARY_CUTOFF, 255, cv2.THRESH_BINARY, dst=mask)

        # Open: removes speckle before contour extraction
        cv2.morphologyEx(mask, cv2.MORPH_OPEN, self.morph_kernel, dst=mask)
        return mask

    def find_candidate(self, mask: np.ndarray) -> Position:
        """
        Centroid of the largest external contour in the mask.

        Args:
            mask: Binary mask (uint8, 0 or 255)

        Returns:
            Centroid position, or NO_POSITION if the mask holds no usable blob
        """
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return NO_POSITION

        largest = max(contours, key=cv2.contourArea)
        moments = cv2.moments(largest)
        if moments["m00"] == 0:
            return NO_POSITION

        return Position(int(moments["m10"] / moments["m00"]),
                        int(moments["m01"] / moments["m00"]))

    def update(self, frame: np.ndarray) -> Dict[ColorBand, Position]:
        """
        Process a single frame and publish one position per band.

        Args:
            frame: Raw BGR frame

        Returns:
            Mapping of each ColorBand to its centroid (or NO_POSITION)
        """
        self.frame_count += 1
        hsv = self.preprocess(frame)

        positions = {}
        for band in ColorBand:
            mask = self.compute_mask(hsv, band)
            position = self.find_candidate(mask)
            self.board.publish(band, position)
            positions[band] = position

        self.last_positions = positions
        return positions

    def get_debug_mask(self, band: ColorBand) -> np.ndarray:
        """Get the last computed mask of a band for debug visualization"""
        return self.masks[band]

    def annotate(self, frame: np.ndarray) -> np.ndarray:
        """
        Draw the last centroids onto a frame (in-place).

        Args:
            frame: BGR frame to annotate, any resolution

        Returns:
            Same frame object with annotations added
        """
        h, w = frame.shape[:2]
        sx = w / self.frame_width
        sy = h / self.frame_height

        for row, band in enumerate(ColorBand):
            position = self.last_positions[band]
            color = BAND_DRAW_COLORS[band]
            if position.found:
                cx, cy = int(position.x * sx), int(position.y * sy)
                cv2.line(frame, (cx - 10, cy), (cx + 10, cy), color, 2)
                cv2.line(frame, (cx, cy - 10), (cx, cy + 10), color, 2)
                status = f"{band.label}: ({position.x}, {position.y})"
            else:
                status = f"{band.label}: LOST"
            cv2.putText(frame, status, (10, 20 + 20 * row), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)

        frame_text = f"Frame: {self.frame_count}"
        cv2.putText(frame, frame_text, (10, h - 10), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)
        return frame

    def render_debug_view(self, frame: np.ndarray, view: int) -> np.ndarray:
        """
        Select what to show on screen: views 0-2 are the green, blue and red
        masks scaled to the display size, view 3 is the annotated camera frame.
        """
        bands = list(ColorBand)
        view %= len(bands) + 1
        if view < len(bands):
            mask = self.masks[bands[view]]
            return cv2.resize(mask, (Config.DISPLAY_WIDTH, Config.DISPLAY_HEIGHT),
                              interpolation=cv2.INTER_LINEAR)
        return self.annotate(frame)
