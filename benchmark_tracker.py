"""
Throughput benchmark for the three-color marker tracker
"""

import time

import cv2
import numpy as np
from daruma_tracker import ColorBand, Config, FrameTracker

def synthetic_frame(width=640, height=320, offset=0):
    """Dark frame with one green, one blue and one red square (BGR)"""
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    size = height // 5
    for i, color in enumerate([(0, 255, 0), (255, 0, 0), (0, 0, 255)]):
        x = (i + 1) * width // 4 - size // 2 + offset
        y = height // 2 - size // 2
        cv2.rectangle(frame, (x, y), (x + size, y + size), color, -1)
    return frame

def run_benchmark(video_source=None, max_frames=300):
    """Measure FrameTracker.update throughput on a video or synthetic frames"""
    cap = None
    if video_source is not None:
        cap = cv2.VideoCapture(video_source)
        if not cap.isOpened():
            print(f"Error: Could not open {video_source}")
            return None

    tracker = FrameTracker()

    print(f"Benchmark - Processing {max_frames} frames")
    print(f"Video source: {video_source or 'synthetic'}")
    print(f"Working frame size: {Config.FRAME_WIDTH}x{Config.FRAME_HEIGHT}")
    print("-" * 50)

    frame_count = 0
    found_counts = {band: 0 for band in ColorBand}
    start_time = time.time()

    while frame_count < max_frames:
        if cap is not None:
            ret, frame = cap.read()
            if not ret:
                break
        else:
            frame = synthetic_frame(offset=frame_count % 20)

        positions = tracker.update(frame)
        frame_count += 1
        for band, position in positions.items():
            if position.found:
                found_counts[band] += 1

        if frame_count % 100 == 0:
            elapsed = time.time() - start_time
            print(f"Frame {frame_count:4d}: {frame_count / elapsed:.1f} FPS")

    total_time = time.time() - start_time
    average_fps = frame_count / total_time if total_time > 0 else 0.0

    print("-" * 50)
    print(f"Processed {frame_count} frames in {total_time:.2f} seconds")
    print(f"Average FPS: {average_fps:.1f}")
    for band, count in found_counts.items():
        rate = (count / frame_count) * 100 if frame_count else 0.0
        print(f"  {band.label:5s} found in {rate:.1f}% of frames")

    # Camera delivers roughly 30 FPS; the tracker must keep up
    if average_fps >= 60:
        print("✅ Plenty of headroom for live tracking")
    elif average_fps >= 30:
        print("✅ Keeps pace with a 30 FPS camera")
    else:
        print("⚠️  Slower than camera delivery - frames will be dropped")

    if cap is not None:
        cap.release()
    return {
        'fps': average_fps,
        'frames': frame_count,
        'found': {band.label: count for band, count in found_counts.items()},
        'processing_time': total_time
    }

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Benchmark the marker tracker')
    parser.add_argument('--source', type=str, help='Video source (synthetic frames if omitted)')
    parser.add_argument('--frames', type=int, default=300, help='Number of frames to process')

    args = parser.parse_args()

    run_benchmark(args.source, args.frames)
