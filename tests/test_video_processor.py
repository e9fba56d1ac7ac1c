import os
import sys

import cv2
import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from liveness.video_processor import cleanup_temp_file, extract_frames, get_video_info


@pytest.fixture
def video_path(tmp_path):
    """A 12-frame, 10 fps MJPG clip."""
    path = str(tmp_path / "clip.avi")
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    if not writer.isOpened():
        pytest.skip("MJPG encoder not available in this OpenCV build")
    for i in range(12):
        frame = np.full((48, 64, 3), i * 20, dtype=np.uint8)
        writer.write(frame)
    writer.release()
    return path


def test_extract_frames_returns_increasing_timestamps(video_path):
    frames = extract_frames(video_path)

    assert len(frames) == 12
    timestamps = [t for t, _ in frames]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == 12
    assert frames[0][1].shape == (48, 64, 3)


def test_extract_frames_respects_max_frames(video_path):
    assert len(extract_frames(video_path, max_frames=5)) == 5


def test_get_video_info(video_path):
    info = get_video_info(video_path)

    assert info["fps"] == pytest.approx(10.0)
    assert info["width"] == 64
    assert info["height"] == 48
    assert info["duration"] == pytest.approx(info["frame_count"] / 10.0)


def test_unreadable_video_raises(tmp_path):
    with pytest.raises(ValueError):
        extract_frames(str(tmp_path / "missing.mp4"))
    with pytest.raises(ValueError):
        get_video_info(str(tmp_path / "missing.mp4"))


def test_cleanup_temp_file(video_path):
    cleanup_temp_file(video_path)
    assert not os.path.exists(video_path)

    # already gone: no error
    cleanup_temp_file(video_path)
