"""
Phrase player tests using stand-in commands instead of a sound card.
"""

import shutil
import threading
import time

import pytest

from audio_player import AplayPhrasePlayer
from referee import PlaybackStartError

needs_posix_tools = pytest.mark.skipif(
    not (shutil.which("true") and shutil.which("false") and shutil.which("sh")),
    reason="POSIX shell tools not available"
)


@pytest.fixture
def audio_dir(tmp_path):
    (tmp_path / "daruma_3.wav").write_bytes(b"RIFF")
    return tmp_path


def test_missing_file_fails_to_start(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["true"])

    with pytest.raises(PlaybackStartError) as excinfo:
        player.play("ugoita_blue")
    assert excinfo.value.phrase == "ugoita_blue"


def test_unlaunchable_player_fails_to_start(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=[str(audio_dir / "no-such-player")])

    with pytest.raises(PlaybackStartError):
        player.play("daruma_3")


@needs_posix_tools
def test_successful_playback_returns(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["true"])

    player.play("daruma_3")


@needs_posix_tools
def test_player_error_is_reported(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["false"])

    with pytest.raises(PlaybackStartError):
        player.play("daruma_3")


@needs_posix_tools
def test_stop_cuts_playback_short(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["sh", "-c", "sleep 5", "player"])
    errors = []

    def play():
        try:
            player.play("daruma_3")
        except PlaybackStartError as e:
            errors.append(e)

    thread = threading.Thread(target=play)
    start = time.time()
    thread.start()

    deadline = time.time() + 2
    while not player.is_playing and time.time() < deadline:
        time.sleep(0.01)
    player.stop()
    thread.join(timeout=3)

    assert not thread.is_alive()
    assert time.time() - start < 4
    assert errors == []


@needs_posix_tools
def test_stop_before_play_skips_the_phrase(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["sh", "-c", "sleep 3", "player"])

    player.stop()
    start = time.time()
    player.play("daruma_3")

    assert time.time() - start < 1.0
    assert not player.is_playing


@needs_posix_tools
def test_reset_rearms_a_stopped_player(audio_dir):
    # Leaves <file>.played beside the phrase each time it really runs
    player = AplayPhrasePlayer(audio_dir, command=["sh", "-c", 'touch "$1.played"', "player"])
    marker = audio_dir / "daruma_3.wav.played"

    player.stop()
    player.play("daruma_3")
    assert not marker.exists()

    player.reset()
    player.play("daruma_3")
    assert marker.exists()


def test_stop_without_playback_is_harmless(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["true"])

    player.stop()


def test_phrase_path_uses_extension(audio_dir):
    player = AplayPhrasePlayer(audio_dir, command=["true"], ext=".m4a")

    assert player.phrase_path("ugoita_all") == audio_dir / "ugoita_all.m4a"
