#!/usr/bin/env python3
"""
Webcam / Video File Daruma-san-ga-koronda Referee
Feeds a cv2.VideoCapture source through the marker tracker and lets the
referee run sessions on demand.
"""

import argparse
import queue
import threading
import time
from queue import Queue

import cv2
from daruma_tracker import Config, FrameTracker, PositionBoard
from audio_player import AplayPhrasePlayer
from referee import RefereeController

WINDOW_NAME = "Daruma Referee"

def open_video_source(source) -> cv2.VideoCapture:
    """
    Open a camera index or a video file.
    Raises RuntimeError if the source cannot be opened.
    """
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        raise RuntimeError(f"Could not open video source: {source}")

    if isinstance(source, int):
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # Minimal buffer for low latency
        print(f"Camera opened at index {source}")
    else:
        fps = cap.get(cv2.CAP_PROP_FPS)
        width = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
        height = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
        print(f"Video properties: {fps} FPS, {width}x{height}")
    return cap

def video_capture_thread(cap: cv2.VideoCapture, frame_queue: Queue, stop_event: threading.Event,
                         frame_delay: float = 0.0):
    """
    Background thread for continuous frame capture
    Pushes frames to queue, dropping frames if queue is full.
    Puts None on the queue when the source runs dry.
    """
    print("Starting capture thread...")
    while not stop_event.is_set():
        ret, frame = cap.read()
        if not ret:
            print("End of video or failed to read frame")
            break
        try:
            frame_queue.put_nowait(frame)
        except queue.Full:
            pass  # Drop this frame to stay real-time
        if frame_delay:
            time.sleep(frame_delay)
    try:
        frame_queue.put(None, timeout=1.0)
    except queue.Full:
        pass  # Consumer already gone
    print("Capture thread stopped")

def build_referee(board: PositionBoard, audio_dir=None) -> RefereeController:
    player = AplayPhrasePlayer(audio_dir)
    if Config.MAXIMIZE_VOLUME:
        player.maximize_volume()
    return RefereeController(board, player)

def run_game_loop(frame_queue: Queue, tracker: FrameTracker, controller: RefereeController,
                  show_display: bool = True, exit_when_idle: bool = False):
    """
    Main processing loop shared by the camera front-ends.

    Every frame goes through the tracker; the referee thread picks positions
    up on its own schedule. Returns when the user quits, the frame source
    ends, or (with exit_when_idle) the current session finishes.
    """
    view = 3  # Start on the annotated camera view
    frame_count = 0
    last_fps_time = time.time()

    while True:
        try:
            frame = frame_queue.get(timeout=0.1)
        except queue.Empty:
            if exit_when_idle and not controller.is_running:
                break
            continue
        if frame is None:
            break

        tracker.update(frame)

        frame_count += 1
        if Config.SHOW_FPS and frame_count % 60 == 0:
            current_time = time.time()
            fps = 60 / (current_time - last_fps_time)
            print(f"Performance: {fps:.1f} FPS, Frame {frame_count}")
            last_fps_time = current_time

        if exit_when_idle and not controller.is_running:
            break

        if not show_display:
            continue

        cv2.imshow(WINDOW_NAME, tracker.render_debug_view(frame, view))

        key = cv2.waitKey(1) & 0xFF
        if key == ord('q'):
            print("Quit requested by user")
            break
        elif key == ord(' '):
            controller.start_session()
        elif key == ord('e'):
            controller.end_session()
        elif key == ord('v'):
            view = (view + 1) % 4
            print(f"Debug view: {['green mask', 'blue mask', 'red mask', 'camera'][view]}")
        elif key == ord('d'):
            Config.DEBUG = not Config.DEBUG
            print(f"Debug mode: {'ON' if Config.DEBUG else 'OFF'}")

def parse_arguments():
    parser = argparse.ArgumentParser(description='Daruma-san-ga-koronda referee (webcam / video file)')
    parser.add_argument('--source', type=str, help='Video file path or camera index')
    parser.add_argument('--camera', action='store_true', help='Use camera 0 instead of a video file')
    parser.add_argument('--audio-dir', type=str, help='Directory with phrase recordings')
    parser.add_argument('--no-display', action='store_true',
                        help='Run headless: start one session immediately and exit when it ends')
    parser.add_argument('--poll-interval', type=float, help='Seconds between movement checks')
    parser.add_argument('--debug', action='store_true', help='Print per-poll distances')
    return parser.parse_args()

def main():
    args = parse_arguments()

    if args.source:
        Config.VIDEO_SOURCE = int(args.source) if args.source.isdigit() else args.source
    elif args.camera:
        Config.VIDEO_SOURCE = 0
    if args.poll_interval is not None:
        Config.POLL_INTERVAL = args.poll_interval
    if args.debug:
        Config.DEBUG = True

    print("=" * 60)
    print("DARUMA-SAN-GA-KORONDA REFEREE")
    print("=" * 60)

    # Step 1: Open video source
    try:
        cap = open_video_source(Config.VIDEO_SOURCE)
    except RuntimeError as e:
        print(f"Failed to open video source: {e}")
        print("Troubleshooting:")
        print("  - Make sure no other apps are using the camera")
        print("  - Check the file path, or create one with create_demo_video.py")
        return

    # Step 2: Setup threaded frame capture
    frame_queue = Queue(maxsize=2)
    capture_stop = threading.Event()
    frame_delay = 0.0
    if not isinstance(Config.VIDEO_SOURCE, int):
        fps = cap.get(cv2.CAP_PROP_FPS) or 30
        frame_delay = 1.0 / fps  # Play files back at their own speed
    capture_thread = threading.Thread(
        target=video_capture_thread,
        args=(cap, frame_queue, capture_stop, frame_delay),
        daemon=True
    )
    capture_thread.start()

    # Step 3: Tracker and referee share the position board
    board = PositionBoard()
    tracker = FrameTracker(board)
    controller = build_referee(board, args.audio_dir)

    print(f"Processing resolution: {Config.FRAME_WIDTH}x{Config.FRAME_HEIGHT}")
    print(f"Audio directory: {controller.player.audio_dir}")
    if args.no_display:
        controller.start_session()
    else:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        print("\nControls:")
        print("  SPACE - Start a session")
        print("  'e'   - End the current session")
        print("  'v'   - Cycle debug view (green/blue/red mask, camera)")
        print("  'd'   - Toggle debug output")
        print("  'q'   - Quit")

    try:
        run_game_loop(frame_queue, tracker, controller,
                      show_display=not args.no_display, exit_when_idle=args.no_display)
    except KeyboardInterrupt:
        print("\nInterrupted by user (Ctrl+C)")
    finally:
        print("Shutting down...")
        controller.end_session()
        controller.join(timeout=2.0)
        capture_stop.set()
        cap.release()
        if not args.no_display:
            cv2.destroyAllWindows()
        print("Referee stopped. Goodbye!")

if __name__ == "__main__":
    main()
