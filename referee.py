"""
Daruma-san-ga-koronda Referee
Runs the game protocol on a background thread: call the start phrase,
snapshot marker positions, watch for movement during a random number of
polls, and announce who moved (or that everyone wins).
"""

import math
import random
import threading
from typing import Callable, Dict, FrozenSet, NamedTuple, Optional

from daruma_tracker import ColorBand, Config, Position, PositionBoard

# Phrase played for each combination of markers caught moving
OUTCOME_PHRASES: Dict[FrozenSet[ColorBand], str] = {
    frozenset({ColorBand.GREEN, ColorBand.BLUE, ColorBand.RED}): "ugoita_all",
    frozenset({ColorBand.BLUE, ColorBand.GREEN}): "ugoita_blue_green",
    frozenset({ColorBand.BLUE, ColorBand.RED}): "ugoita_blue_red",
    frozenset({ColorBand.RED, ColorBand.GREEN}): "ugoita_red_green",
    frozenset({ColorBand.BLUE}): "ugoita_blue",
    frozenset({ColorBand.GREEN}): "ugoita_green",
    frozenset({ColorBand.RED}): "ugoita_red",
}

OUTCOME_MOVED = "moved"
OUTCOME_ALL_CLEAR = "all_clear"
OUTCOME_INTERRUPTED = "interrupted"
OUTCOME_FAILED = "failed"


class PlaybackStartError(Exception):
    """An audio phrase could not be opened or started"""

    def __init__(self, phrase: str, reason: str):
        super().__init__(f"failed to play {phrase}: {reason}")
        self.phrase = phrase
        self.reason = reason


class SessionInterrupted(Exception):
    """The session was ended from outside during a wait"""


class SessionResult(NamedTuple):
    outcome: str
    moved: FrozenSet[ColorBand]
    rounds_played: int


def distance(a: Position, b: Position) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def check_move(reference: Position, current: Position,
               threshold: Optional[float] = None) -> Optional[bool]:
    """
    Has a marker moved between two observations?

    Returns None when either side is NO_POSITION: a missing marker is neither
    evidence of movement nor of standing still.
    """
    if not reference.found or not current.found:
        return None
    if threshold is None:
        threshold = Config.MOVE_THRESHOLD
    return distance(reference, current) > threshold


def outcome_phrase(moved: FrozenSet[ColorBand]) -> str:
    return OUTCOME_PHRASES[frozenset(moved)]


class RefereeEngine:
    """
    One play-through of the game. Not reusable: the controller builds a
    fresh engine for every session.

    Args:
        board: Source of the latest marker positions (anything with read_all())
        player: Phrase player with a blocking play(phrase)
        stop_event: Set from outside to end the session early
        rng: Random source for phrase and poll count choices
    """

    def __init__(self, board: PositionBoard, player, stop_event: Optional[threading.Event] = None,
                 rng: Optional[random.Random] = None):
        self.board = board
        self.player = player
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.rng = rng if rng is not None else random.Random()
        self.rounds_played = 0

    def _check_stopped(self):
        if self.stop_event.is_set():
            raise SessionInterrupted()

    def _say(self, phrase: str):
        self._check_stopped()
        print(f"Speaking: {phrase}")
        self.player.play(phrase)
        # Playback cut short by end_session() returns normally
        self._check_stopped()

    def _sleep(self, seconds: float):
        if self.stop_event.wait(seconds):
            raise SessionInterrupted()

    def _play_round(self) -> Dict[ColorBand, bool]:
        """Call the start phrase, then watch until something moves or the polls run out"""
        move_flags = {band: False for band in ColorBand}

        self._say(self.rng.choice(Config.START_PHRASES))
        reference = self.board.read_all()

        poll_count = Config.MIN_POLLS + self.rng.randrange(Config.POLL_SPREAD)
        print(f"Round {self.rounds_played}: watching for {poll_count} polls")

        for poll in range(poll_count):
            self._sleep(Config.POLL_INTERVAL)
            current = self.board.read_all()

            for band in ColorBand:
                ref = reference[band]
                now = current[band]
                if not ref.found and now.found:
                    # Marker was hidden at the snapshot; start measuring from here
                    reference[band] = now
                    continue
                moved = check_move(ref, now)
                move_flags[band] = moved is True
                if Config.DEBUG:
                    state = "n/a" if moved is None else f"{distance(ref, now):.1f}px"
                    print(f"  poll {poll + 1}/{poll_count} {band.label}: {state}")

            if any(move_flags.values()):
                break

        return move_flags

    def run(self) -> SessionResult:
        """
        Execute the whole session.

        Raises:
            SessionInterrupted: stop_event was set during a wait
            PlaybackStartError: a phrase could not be started
        """
        move_flags = {band: False for band in ColorBand}

        for _ in range(Config.TURN_COUNT):
            self.rounds_played += 1
            move_flags = self._play_round()
            if any(move_flags.values()):
                break

        moved = frozenset(band for band, flag in move_flags.items() if flag)
        if moved:
            print(f"Moved: {', '.join(sorted(band.label for band in moved))}")
            self._say(outcome_phrase(moved))
            return SessionResult(OUTCOME_MOVED, moved, self.rounds_played)

        print("Nobody moved")
        self._say(Config.ALL_CLEAR_PHRASE)
        return SessionResult(OUTCOME_ALL_CLEAR, moved, self.rounds_played)


class RefereeController:
    """
    Owns the running flag and the referee thread. start_session() is a no-op
    while a session is active; end_session() unwinds the active one.

    The player needs play(phrase), stop() and reset(). stop() stays in force
    until the next start_session() re-arms the player. on_finish runs after
    the running flag is released, so it may start the next session.
    """

    def __init__(self, board: PositionBoard, player, rng: Optional[random.Random] = None,
                 on_error: Optional[Callable[[PlaybackStartError], None]] = None,
                 on_finish: Optional[Callable[[SessionResult], None]] = None):
        self.board = board
        self.player = player
        self.rng = rng if rng is not None else random.Random()
        self.on_error = on_error
        self.on_finish = on_finish

        self._running = threading.BoundedSemaphore(1)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_result: Optional[SessionResult] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_session(self) -> bool:
        """Start a session unless one is already running. Returns True if started."""
        if not self._running.acquire(blocking=False):
            print("Session already running - ignoring start request")
            return False

        self.player.reset()
        self._stop_event = threading.Event()
        engine = RefereeEngine(self.board, self.player, self._stop_event, self.rng)
        self._thread = threading.Thread(target=self._run_session, args=(engine,),
                                        daemon=True, name="Referee")
        try:
            self._thread.start()
        except RuntimeError:
            self._running.release()
            raise
        print("Session started")
        return True

    def end_session(self):
        """Interrupt the running session, if any"""
        if not self.is_running:
            return
        print("Ending session...")
        self._stop_event.set()
        self.player.stop()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current session thread. Returns True if it has finished."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run_session(self, engine: RefereeEngine):
        try:
            try:
                result = engine.run()
            except SessionInterrupted:
                print("Session interrupted")
                result = SessionResult(OUTCOME_INTERRUPTED, frozenset(), engine.rounds_played)
            except PlaybackStartError as e:
                print(f"[ERROR] {e}")
                result = SessionResult(OUTCOME_FAILED, frozenset(), engine.rounds_played)
                if self.on_error:
                    self.on_error(e)

            self.last_result = result
            print(f"Session finished: {result.outcome} after {result.rounds_played} round(s)")
        finally:
            self._running.release()

        # Flag is already clear, so the callback may start the next session
        if self.on_finish:
            self.on_finish(result)
