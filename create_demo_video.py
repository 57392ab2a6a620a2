"""
Create demo videos for trying the Daruma referee without physical markers.
Three colored markers stand still; one of them can start moving after a delay,
and one can be hidden for a while to exercise the lost-marker path.
"""

import math
import random

import cv2
import numpy as np

MARKER_COLORS = {
    "green": (0, 255, 0),
    "blue": (255, 0, 0),
    "red": (0, 0, 255),
}

def open_writer(filename, fps, width, height):
    fourcc = cv2.VideoWriter_fourcc(*'mp4v')
    out = cv2.VideoWriter(filename, fourcc, fps, (width, height))

    if not out.isOpened():
        print("Warning: Could not open video writer with mp4v, trying XVID...")
        fourcc = cv2.VideoWriter_fourcc(*'XVID')
        out = cv2.VideoWriter(filename, fourcc, fps, (width, height))

    if not out.isOpened():
        print("Error: Could not initialize video writer")
        return None
    return out

def create_referee_demo_video(filename="demo.mp4", duration=30, fps=30, mover="blue", move_after=12.0,
                              hide=None, hide_window=(4.0, 7.0)):
    """
    Render three markers on a cluttered background.

    Args:
        filename: Output video filename
        duration: Video duration in seconds
        fps: Frames per second
        mover: Marker that starts moving after move_after seconds (None = nobody moves)
        move_after: Seconds before the mover starts drifting
        hide: Marker hidden during hide_window (None = always visible)
        hide_window: (start, end) seconds of the hidden period
    """
    width, height = 1280, 640
    total_frames = duration * fps
    marker_radius = 40

    out = open_writer(filename, fps, width, height)
    if out is None:
        return

    print(f"Creating referee demo video: {filename}")
    print(f"Duration: {duration}s, FPS: {fps}, Total frames: {total_frames}")
    print(f"Mover: {mover or 'nobody'} after {move_after:.1f}s, hidden: {hide or 'nobody'}")

    homes = {
        "green": (width // 4, height // 2),
        "blue": (width // 2, height // 2),
        "red": (3 * width // 4, height // 2),
    }

    # Fixed background clutter in colors outside every marker band
    rng = random.Random(7)
    background = np.full((height, width, 3), 40, dtype=np.uint8)
    for _ in range(25):
        x, y = rng.randint(0, width), rng.randint(0, height)
        shade = rng.randint(60, 140)
        cv2.circle(background, (x, y), rng.randint(5, 30), (shade, shade, shade), -1)

    for frame_num in range(total_frames):
        t = frame_num / fps
        frame = background.copy()

        for name, (hx, hy) in homes.items():
            if hide == name and hide_window[0] <= t < hide_window[1]:
                continue
            x, y = hx, hy
            if mover == name and t >= move_after:
                drift = t - move_after
                x = int(hx + 60 * math.sin(drift))
                y = int(hy + 30 * math.sin(2 * drift))
            cv2.circle(frame, (x, y), marker_radius, MARKER_COLORS[name], -1)

        cv2.putText(frame, f"Time: {t:.1f}s", (10, 30),
                   cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 2)
        out.write(frame)

        if frame_num % (total_frames // 10) == 0:
            progress = (frame_num / total_frames) * 100
            print(f"Progress: {progress:.1f}%")

    out.release()
    print(f"Demo video created: {filename}")

def main():
    """Create demo videos for the referee"""
    import argparse

    parser = argparse.ArgumentParser(description='Create demo videos for the Daruma referee')
    parser.add_argument('--output', type=str, default='demo.mp4', help='Output filename')
    parser.add_argument('--duration', type=int, default=30, help='Video duration in seconds')
    parser.add_argument('--fps', type=int, default=30, help='Frames per second')
    parser.add_argument('--mover', choices=list(MARKER_COLORS) + ['none'], default='blue',
                        help='Marker that starts moving')
    parser.add_argument('--move-after', type=float, default=12.0, help='Seconds before the mover moves')
    parser.add_argument('--hide', choices=list(MARKER_COLORS), help='Marker hidden for a few seconds')

    args = parser.parse_args()

    mover = None if args.mover == 'none' else args.mover
    create_referee_demo_video(args.output, args.duration, args.fps, mover, args.move_after, args.hide)

    print("\nRecommended test commands:")
    print(f"  Headless session: python main_webcam.py --source {args.output} --no-display --debug")
    print(f"  With preview:     python main_webcam.py --source {args.output}")
    print("  Performance:      python benchmark_tracker.py")

if __name__ == "__main__":
    main()
