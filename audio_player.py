"""
Phrase playback through ALSA command line tools.
play() blocks until the phrase has finished so the referee can sequence
"speak, then watch" strictly.
"""

import subprocess
import threading
from pathlib import Path
from typing import Optional, Sequence

from daruma_tracker import Config
from referee import PlaybackStartError


class AplayPhrasePlayer:
    """
    Plays <audio_dir>/<phrase><ext> with an external player command.

    Args:
        audio_dir: Directory holding the phrase recordings
        command: Player command line; the file path is appended
        ext: Audio file extension
    """

    def __init__(self, audio_dir=None, command: Optional[Sequence[str]] = None, ext: Optional[str] = None):
        self.audio_dir = Path(audio_dir if audio_dir is not None else Config.AUDIO_DIR)
        self.command = list(command if command is not None else Config.PLAYER_COMMAND)
        self.ext = ext if ext is not None else Config.AUDIO_EXT

        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._stopped = False

    def phrase_path(self, phrase: str) -> Path:
        return self.audio_dir / f"{phrase}{self.ext}"

    def maximize_volume(self, control: Optional[str] = None) -> bool:
        """Turn the output volume all the way up. Failure is only a warning."""
        control = control or Config.MIXER_CONTROL
        try:
            result = subprocess.run(
                ["amixer", "-q", "sset", control, "100%"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL
            )
        except OSError as e:
            print(f"[WARN] Could not set volume: {e}")
            return False
        if result.returncode != 0:
            print(f"[WARN] amixer could not set {control} volume")
            return False
        return True

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def reset(self):
        """Re-arm the player after stop(); called when a new session starts"""
        with self._lock:
            self._stopped = False

    def play(self, phrase: str):
        """
        Play a phrase to completion. Returns at once without playing after
        stop() until reset() is called.

        Raises:
            PlaybackStartError: file missing, player could not be launched,
                or the player exited with an error
        """
        path = self.phrase_path(phrase)
        if not path.is_file():
            raise PlaybackStartError(phrase, f"missing audio file {path}")

        with self._lock:
            if self._stopped:
                return
            try:
                process = subprocess.Popen(
                    self.command + [str(path)],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL
                )
            except OSError as e:
                raise PlaybackStartError(phrase, str(e)) from e
            self._process = process

        try:
            returncode = process.wait()
        finally:
            with self._lock:
                self._process = None
                stopped = self._stopped

        if returncode != 0 and not stopped:
            raise PlaybackStartError(phrase, f"player exited with status {returncode}")

    def stop(self):
        """Abort the phrase currently playing and refuse new ones until reset()"""
        with self._lock:
            self._stopped = True
            if self._process is not None and self._process.poll() is None:
                self._process.terminate()
