#!/usr/bin/env python3
"""
Raspberry Pi Camera Integration for the Daruma Referee
Feeds the live Pi camera through the marker tracker; sessions are started
from the preview window or immediately in headless mode.
"""

import argparse
import queue
import threading
from queue import Queue

import cv2
from picamera2 import Picamera2
from daruma_tracker import Config, FrameTracker, PositionBoard
from main_webcam import build_referee, run_game_loop, WINDOW_NAME

def initialize_camera() -> Picamera2:
    """
    Initialize and configure Picamera2 for video streaming
    Returns configured camera instance ready for capture
    """
    print("Initializing Raspberry Pi camera...")
    picam2 = Picamera2()

    # 640x320 keeps the 2:1 aspect of the working frame; resized internally by tracker
    camera_config = picam2.create_video_configuration(
        main={"size": (640, 320), "format": "RGB888"},
        buffer_count=2
    )
    picam2.configure(camera_config)

    picam2.start()
    print("Camera initialized successfully")
    return picam2

def camera_capture_thread(picam2: Picamera2, frame_queue: Queue, stop_event: threading.Event):
    """
    Background thread for continuous frame capture
    Pushes BGR frames to queue, dropping frames if queue is full
    """
    print("Starting camera capture thread...")
    while not stop_event.is_set():
        try:
            frame_rgb = picam2.capture_array("main")
        except RuntimeError as e:
            print(f"Error in capture thread: {e}")
            break

        # Convert RGB to BGR for OpenCV compatibility
        frame_bgr = cv2.cvtColor(frame_rgb, cv2.COLOR_RGB2BGR)
        try:
            frame_queue.put_nowait(frame_bgr)
        except queue.Full:
            pass  # Drop this frame to stay real-time
    try:
        frame_queue.put(None, timeout=1.0)
    except queue.Full:
        pass

def main():
    parser = argparse.ArgumentParser(description='Daruma-san-ga-koronda referee (Pi camera)')
    parser.add_argument('--audio-dir', type=str, help='Directory with phrase recordings')
    parser.add_argument('--headless', action='store_true',
                        help='No preview window: start one session immediately and exit when it ends')
    parser.add_argument('--debug', action='store_true', help='Print per-poll distances')
    args = parser.parse_args()

    if args.debug:
        Config.DEBUG = True

    print("=" * 60)
    print("RASPBERRY PI DARUMA REFEREE")
    print("=" * 60)

    # Step 1: Initialize camera
    try:
        picam2 = initialize_camera()
    except RuntimeError as e:
        print(f"Failed to initialize camera: {e}")
        print("Make sure the camera is properly connected and enabled.")
        return

    # Step 2: Setup threaded frame capture
    frame_queue = Queue(maxsize=2)
    capture_stop = threading.Event()
    capture_thread = threading.Thread(
        target=camera_capture_thread,
        args=(picam2, frame_queue, capture_stop),
        daemon=True
    )
    capture_thread.start()

    # Step 3: Tracker and referee
    board = PositionBoard()
    tracker = FrameTracker(board)
    controller = build_referee(board, args.audio_dir)

    if args.headless:
        controller.start_session()
    else:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        print("\nControls: SPACE=start, 'e'=end session, 'v'=debug view, 'q'=quit")

    try:
        run_game_loop(frame_queue, tracker, controller,
                      show_display=not args.headless, exit_when_idle=args.headless)
    except KeyboardInterrupt:
        print("\nInterrupted by user (Ctrl+C)")
    finally:
        print("Shutting down...")
        controller.end_session()
        controller.join(timeout=2.0)
        capture_stop.set()
        picam2.stop()
        print("Camera stopped")
        if not args.headless:
            cv2.destroyAllWindows()
        print("Cleanup complete. Goodbye!")

if __name__ == "__main__":
    main()
