#!/usr/bin/env python3
"""
  ✿  N E O N   F L O W E R  ✿
  A soil-moisture sensor loop, simulated and drawn as a flower.

  One virtual probe sits in one virtual bed. The soil dries out in a
  random walk; when it gets thirsty the valve opens, the flower flashes
  blue, then glows cyan while the water soaks in. Once the bed is wet
  enough the petals turn orange and the loop rests.

  States:
    Monitoring   yellow             moisture between the thresholds
    Activating   blinking blue      valve opening (one tick)
    Adjusting    cyan               watering in progress
    Idle         white / orange     moisture optimal
    Error        blinking red       sensor fault (sticky until restart)

  Controls:
    q         quit
    e         force a sensor error
"""

from __future__ import annotations

import curses
import enum
import signal
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

# ── Thresholds ──────────────────────────────────────────────────────────
# Water below WATERING_THRESHOLD, stop at IDLE_THRESHOLD. The gap between
# the two is the hysteresis band.
WATERING_THRESHOLD: float = 30.0
IDLE_THRESHOLD: float = 40.0
INITIAL_MOISTURE: float = 50.0
MOISTURE_MIN: float = 0.0
MOISTURE_MAX: float = 100.0

# ── Random walk ─────────────────────────────────────────────────────────
MIN_DELTA: float = 1.0
MAX_DELTA: float = 5.0
DRY_BIAS: float = 0.8  # chance a non-watering tick dries the soil

# ── Timing ──────────────────────────────────────────────────────────────
TICK_SECONDS: float = 1.0
BLINK_PERIOD: int = 2  # ticks per on/off cycle

HISTORY_LEN: int = 500

# ── Sparkline characters ────────────────────────────────────────────────
SPARKS = "▁▂▃▄▅▆▇█"

# ── Palette ─────────────────────────────────────────────────────────────
ORANGE_256: int = 214

# ── The flower ──────────────────────────────────────────────────────────
FLOWER_ART = r"""
            .--.
      .-"-:`    `:-"-.
   .-/     '.  .'     \-.
  ;__|      _::_      |__;
 /`   '.  /` \/` \  .'   `\
 |      _ \      / _      |
 \    /` '.'.  .'.' `\    /
/ '-._'.  _'./\.'_  .'_.-' \
\ .-' .'`  .'\//'.  `'. '-. /
 /    \._.'.'  '.'._./    \
 |        /      \        |
 \.__ .'  \._/\_.//  '. __./
  ;  |       ::       |  ;
   '-\     .'  '.     /-'
 jgs  '-.-:_    _:-.-'
            '--'
"""

FLOWER_LINES: list[str] = FLOWER_ART.strip("\n").splitlines()
FLOWER_WIDTH: int = max(len(line) for line in FLOWER_LINES)


# ═══════════════════════════════════════════════════════════════════════
#  Sensor states
# ═══════════════════════════════════════════════════════════════════════

class SensorState(enum.Enum):
    MONITORING = "Monitoring"
    ACTIVATING = "Activating"
    ADJUSTING = "Adjusting"
    IDLE = "Idle"
    ERROR = "Error"

    @property
    def blinks(self) -> bool:
        return self in (SensorState.ACTIVATING, SensorState.ERROR)


class InputEvent(enum.Enum):
    QUIT = "quit"
    FORCE_ERROR = "force_error"


KEY_EVENTS: dict[int, InputEvent] = {
    ord("q"): InputEvent.QUIT,
    ord("Q"): InputEvent.QUIT,
    ord("e"): InputEvent.FORCE_ERROR,
    ord("E"): InputEvent.FORCE_ERROR,
}


def key_to_event(key: int) -> InputEvent | None:
    """Translate a curses key code into an input event (None if unbound)."""
    return KEY_EVENTS.get(key)


def clamp_moisture(value: float) -> float:
    return min(max(value, MOISTURE_MIN), MOISTURE_MAX)


# ═══════════════════════════════════════════════════════════════════════
#  Moisture sources
# ═══════════════════════════════════════════════════════════════════════

class MoistureSource(Protocol):
    """Anything that can say how much the moisture moves on one tick."""

    def delta(self, watering: bool) -> float: ...


class RandomWalk:
    """Bounded random walk drawn from a numpy Generator.

    Each step moves between MIN_DELTA and MAX_DELTA points. While the
    valve is open the soil always gets wetter; otherwise it dries most
    of the time and occasionally picks up a little (dew, a passing
    shower).
    """

    def __init__(
        self,
        seed: int | None = None,
        min_delta: float = MIN_DELTA,
        max_delta: float = MAX_DELTA,
        dry_bias: float = DRY_BIAS,
    ) -> None:
        if not 0.0 <= min_delta <= max_delta:
            raise ValueError(
                f"need 0 <= min_delta <= max_delta, got {min_delta}, {max_delta}"
            )
        self._rng = np.random.default_rng(seed)
        self.min_delta = min_delta
        self.max_delta = max_delta
        self.dry_bias = dry_bias

    def delta(self, watering: bool) -> float:
        magnitude = float(self._rng.uniform(self.min_delta, self.max_delta))
        if watering:
            return magnitude
        if self._rng.random() < self.dry_bias:
            return -magnitude
        return magnitude


class ScriptedSource:
    """Replays a fixed list of deltas, then holds still (0.0)."""

    def __init__(self, deltas: list[float]) -> None:
        self._deltas = deque(deltas)

    def delta(self, watering: bool) -> float:
        if not self._deltas:
            return 0.0
        return self._deltas.popleft()


# ═══════════════════════════════════════════════════════════════════════
#  The sensor
# ═══════════════════════════════════════════════════════════════════════

class SoilMoistureSensor:
    """
    One probe, one valve, one state machine.

    Every advance() nudges the moisture by whatever the source says,
    clamps it to [0, 100] and re-evaluates the state:

      moisture >= idle threshold          -> Idle (valve closes)
      valve open                          -> Adjusting (even on a dip)
      moisture < watering threshold       -> Activating (valve opens)
      otherwise                           -> Monitoring

    Activating therefore lasts exactly one tick. Error is sticky:
    once forced, nothing moves until the process restarts.
    """

    def __init__(
        self,
        source: MoistureSource | None = None,
        moisture: float = INITIAL_MOISTURE,
        watering_threshold: float = WATERING_THRESHOLD,
        idle_threshold: float = IDLE_THRESHOLD,
    ) -> None:
        if watering_threshold > idle_threshold:
            raise ValueError(
                f"watering threshold {watering_threshold} is above "
                f"idle threshold {idle_threshold}"
            )
        self.source: MoistureSource = source if source is not None else RandomWalk()
        self.watering_threshold = watering_threshold
        self.idle_threshold = idle_threshold

        self.state: SensorState = SensorState.MONITORING
        self.moisture: float = clamp_moisture(moisture)
        self.watering: bool = False

        self.ticks: int = 0
        self.state_since: int = 0  # tick the current state was entered

        self.history: deque[float] = deque([self.moisture], maxlen=HISTORY_LEN)
        self.last_event: str = ""
        self.last_event_tick: int = 0

    # ── Transitions ─────────────────────────────────────────────────

    def advance(self) -> SensorState:
        """Run one tick. Returns the state the sensor is in afterwards."""
        self.ticks += 1
        if self.state is SensorState.ERROR:
            return self.state

        self.moisture = clamp_moisture(self.moisture + self.source.delta(self.watering))
        self.history.append(self.moisture)

        if self.moisture >= self.idle_threshold:
            self.watering = False
            new_state = SensorState.IDLE
        elif self.watering:
            new_state = SensorState.ADJUSTING
        elif self.moisture < self.watering_threshold:
            self.watering = True
            new_state = SensorState.ACTIVATING
        else:
            new_state = SensorState.MONITORING

        if new_state is not self.state:
            self._enter(new_state)
        return self.state

    def trigger_error(self) -> None:
        """Force a sensor fault, whatever the soil is doing."""
        self.watering = False
        if self.state is not SensorState.ERROR:
            self._enter(SensorState.ERROR)

    def _enter(self, new_state: SensorState) -> None:
        previous = self.state
        self.state = new_state
        self.state_since = self.ticks
        self.last_event = self._describe(previous, new_state)
        self.last_event_tick = self.ticks

    def _describe(self, previous: SensorState, new_state: SensorState) -> str:
        m = self.moisture
        if new_state is SensorState.ACTIVATING:
            return f"Moisture low ({m:.1f}%), activating..."
        if new_state is SensorState.ADJUSTING:
            return f"Watering... moisture now {m:.1f}%"
        if new_state is SensorState.IDLE:
            return f"Moisture optimal ({m:.1f}%), going idle"
        if new_state is SensorState.ERROR:
            return "Sensor error, no transitions"
        if previous is SensorState.IDLE:
            return "Moisture dropping, back to monitoring"
        return f"Monitoring moisture ({m:.1f}%)"

    # ── Accessors ───────────────────────────────────────────────────

    def current_state(self) -> SensorState:
        return self.state

    def current_moisture(self) -> float:
        return self.moisture

    def ticks_in_state(self) -> int:
        return self.ticks - self.state_since

    def sparkline(self, width: int = 24) -> str:
        h_len = len(self.history)
        if h_len < 2:
            return ""
        start = max(0, h_len - width)
        window = [self.history[i] for i in range(start, h_len)]
        lo, hi = min(window), max(window)
        n_sparks = len(SPARKS) - 1
        if hi == lo:
            return SPARKS[len(SPARKS) // 2] * len(window)
        return "".join(SPARKS[int((v - lo) / (hi - lo) * n_sparks)] for v in window)


# ═══════════════════════════════════════════════════════════════════════
#  Color management
# ═══════════════════════════════════════════════════════════════════════

# Role name -> (foreground, prefer-256 foreground or None)
ROLE_COLORS: dict[str, tuple[int, int | None]] = {
    "monitoring": (curses.COLOR_YELLOW, None),
    "activating": (curses.COLOR_BLUE, None),
    "adjusting": (curses.COLOR_CYAN, None),
    "idle_center": (curses.COLOR_WHITE, None),
    "idle_petal": (curses.COLOR_YELLOW, ORANGE_256),
    "error": (curses.COLOR_RED, None),
    "hidden": (curses.COLOR_BLACK, None),
}

STATE_ROLES: dict[SensorState, str] = {
    SensorState.MONITORING: "monitoring",
    SensorState.ACTIVATING: "activating",
    SensorState.ADJUSTING: "adjusting",
    SensorState.IDLE: "idle_petal",
    SensorState.ERROR: "error",
}


@dataclass
class ColorMap:
    """Curses color pairs keyed by role name.

    Until setup() runs every role maps to attribute 0, so the renderer can
    draw onto a fake window without a real terminal.
    """

    _attrs: dict[str, int] = field(default_factory=dict)

    def setup(self) -> None:
        if not curses.has_colors():
            return
        curses.start_color()
        curses.use_default_colors()

        rich = curses.COLORS >= 256
        max_pairs = curses.COLOR_PAIRS - 1
        for pair_id, (role, (basic, extended)) in enumerate(ROLE_COLORS.items(), 1):
            if pair_id > max_pairs:
                break
            fg = extended if rich and extended is not None else basic
            curses.init_pair(pair_id, fg, -1)
            self._attrs[role] = curses.color_pair(pair_id)

    def attr(self, role: str) -> int:
        return self._attrs.get(role, 0)


# ═══════════════════════════════════════════════════════════════════════
#  Rendering
# ═══════════════════════════════════════════════════════════════════════

def blink_visible(elapsed_ticks: int, period: int = BLINK_PERIOD) -> bool:
    """True on the first half of each blink period."""
    half = max(1, period // 2)
    return elapsed_ticks % period < half


def is_center_line(index: int, line: str) -> bool:
    """Rows of the art that make up the flower's heart."""
    return index == 11 or (7 <= index <= 9 and " / " in line)


def style_for_line(index: int, line: str, state: SensorState, elapsed_ticks: int) -> str:
    """Pick the color role for one row of the flower."""
    if state.blinks and not blink_visible(elapsed_ticks):
        return "hidden"
    if state is SensorState.IDLE and is_center_line(index, line):
        return "idle_center"
    return STATE_ROLES[state]


def _put(
    stdscr: curses.window, y: int, x: int, text: str, attr: int, max_y: int, max_x: int
) -> None:
    """addstr clipped to the screen; tiny terminals just lose the overflow."""
    if y < 0 or y >= max_y or x >= max_x:
        return
    if x < 0:
        text = text[-x:]
        x = 0
    text = text[: max_x - x - (1 if y == max_y - 1 else 0)]
    if not text:
        return
    try:
        stdscr.addstr(y, x, text, attr)
    except curses.error:
        pass


def _draw_box(
    stdscr: curses.window,
    y: int,
    x: int,
    h: int,
    w: int,
    title: str,
    max_y: int,
    max_x: int,
) -> None:
    if h < 2 or w < 2:
        return
    label = f" {title} "[: w - 2]
    top = "┌" + label + "─" * (w - 2 - len(label)) + "┐"
    _put(stdscr, y, x, top, curses.A_BOLD, max_y, max_x)
    for row in range(y + 1, y + h - 1):
        _put(stdscr, row, x, "│", 0, max_y, max_x)
        _put(stdscr, row, x + w - 1, "│", 0, max_y, max_x)
    _put(stdscr, y + h - 1, x, "└" + "─" * (w - 2) + "┘", 0, max_y, max_x)


def status_lines(sensor: SoilMoistureSensor) -> list[str]:
    return [
        f"State: {sensor.state.value}",
        f"Moisture: {sensor.moisture:.1f}%",
        f"Status: {sensor.last_event}",
    ]


def render(stdscr: curses.window, sensor: SoilMoistureSensor, cmap: ColorMap) -> None:
    """Status panel on top, flower panel below, dim status bar at the bottom."""
    max_y, max_x = stdscr.getmaxyx()
    margin = 1
    inner_w = max(FLOWER_WIDTH, *(len(s) for s in status_lines(sensor))) + 2
    box_w = min(inner_w + 2, max_x - 2 * margin)

    # ── Status panel ───────────────────────────────────────────────
    lines = status_lines(sensor)
    status_h = len(lines) + 2
    _draw_box(stdscr, margin, margin, status_h, box_w, "Agri-IoT Simulator", max_y, max_x)
    state_attr = cmap.attr(STATE_ROLES[sensor.state]) | curses.A_BOLD
    for i, text in enumerate(lines):
        attr = state_attr if i == 0 else curses.A_NORMAL
        _put(stdscr, margin + 1 + i, margin + 2, text[: box_w - 4], attr, max_y, max_x)

    # ── Flower panel ───────────────────────────────────────────────
    flower_y = margin + status_h
    flower_h = len(FLOWER_LINES) + 2
    _draw_box(stdscr, flower_y, margin, flower_h, box_w, "Neon Flower", max_y, max_x)
    pad = max(0, (box_w - 2 - FLOWER_WIDTH) // 2)
    elapsed = sensor.ticks_in_state()
    for i, line in enumerate(FLOWER_LINES):
        role = style_for_line(i, line, sensor.state, elapsed)
        attr = cmap.attr(role)
        if role != "hidden":
            attr |= curses.A_BOLD
        _put(stdscr, flower_y + 1 + i, margin + 1 + pad, line[: box_w - 2], attr,
             max_y, max_x)

    # ── Status bar ─────────────────────────────────────────────────
    left = f"  tick {sensor.ticks:,}  moisture {sensor.moisture:5.1f}%  {sensor.sparkline()}"
    right = "q quit  e error  "
    gap = max_x - len(left) - len(right)
    bar = left + " " * gap + right if gap > 0 else left
    _put(stdscr, max_y - 1, 0, bar, curses.A_DIM, max_y, max_x)


# ═══════════════════════════════════════════════════════════════════════
#  Main loop
# ═══════════════════════════════════════════════════════════════════════

def main(stdscr: curses.window, sensor: SoilMoistureSensor | None = None) -> None:
    try:
        curses.curs_set(0)
    except curses.error:
        pass  # some terminals cannot hide the cursor

    cmap = ColorMap()
    cmap.setup()

    if sensor is None:
        sensor = SoilMoistureSensor(RandomWalk())

    next_tick = time.monotonic()

    while True:
        # ── Input (waits at most until the next tick is due) ───────
        wait_ms = max(0, int((next_tick - time.monotonic()) * 1000))
        stdscr.timeout(wait_ms)
        try:
            key = stdscr.getch()
        except curses.error:
            key = -1

        event = key_to_event(key)
        if event is InputEvent.QUIT:
            break
        if event is InputEvent.FORCE_ERROR:
            sensor.trigger_error()

        # ── Simulate ───────────────────────────────────────────────
        now = time.monotonic()
        if now >= next_tick:
            sensor.advance()
            # Missed ticks are dropped; the next one is a full period away
            next_tick = max(next_tick, now) + TICK_SECONDS

        # ── Render ─────────────────────────────────────────────────
        stdscr.erase()
        render(stdscr, sensor, cmap)
        stdscr.refresh()


def _interrupt(signum: int, frame: object) -> None:
    raise KeyboardInterrupt


def run() -> int:
    """Run the simulator in the terminal. Returns the process exit status."""
    started = False

    def _session(stdscr: curses.window) -> None:
        nonlocal started
        started = True
        main(stdscr)

    signal.signal(signal.SIGTERM, _interrupt)
    try:
        curses.wrapper(_session)
    except KeyboardInterrupt:
        pass
    except curses.error as exc:
        if started:
            print(f"flower: terminal error: {exc}", file=sys.stderr)
        else:
            print(f"flower: cannot initialise terminal: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
