"""Input injection surface.

The engine never talks to the operating system directly; it drives an
``InputInjector``. Two implementations ship here:

- ``RecordingInjector`` records every call and logs it. Used for dry runs
  and tests.
- ``PynputInjector`` sends real mouse and keyboard events through the
  optional ``pynput`` package (``pip install graphrunner[input]``).

Key codes are Windows virtual-key codes as written by the graph editor
(13 = Enter, 27 = Escape, ...). Scroll deltas use the wheel convention of
120 units per notch; positive scrolls up/right.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from graphrunner.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

WHEEL_DELTA = 120


@runtime_checkable
class InputInjector(Protocol):
    """Primitive input actions the engine can perform.

    Implementations are blocking; the engine calls them from a worker thread.
    """

    def click_at(self, x: int, y: int) -> None: ...

    def right_click_at(self, x: int, y: int) -> None: ...

    def move_to(self, x: int, y: int) -> None: ...

    def scroll(self, delta: int) -> None: ...

    def scroll_horizontal(self, delta: int) -> None: ...

    def key_down(self, code: int) -> None: ...

    def key_up(self, code: int) -> None: ...

    def press_key(self, code: int) -> None: ...

    def type_text(self, text: str) -> None: ...


@dataclass
class InjectedAction:
    """One recorded injector call"""

    name: str
    args: tuple[Any, ...] = ()

    def __str__(self) -> str:
        return f"{self.name}({', '.join(repr(a) for a in self.args)})"


@dataclass
class RecordingInjector:
    """Injector that performs nothing and remembers what it was asked to do."""

    actions: list[InjectedAction] = field(default_factory=list)

    def _record(self, name: str, *args: Any) -> None:
        action = InjectedAction(name, args)
        self.actions.append(action)
        logger.info(f"[dry-run] {action}")

    def click_at(self, x: int, y: int) -> None:
        self._record("click_at", x, y)

    def right_click_at(self, x: int, y: int) -> None:
        self._record("right_click_at", x, y)

    def move_to(self, x: int, y: int) -> None:
        self._record("move_to", x, y)

    def scroll(self, delta: int) -> None:
        self._record("scroll", delta)

    def scroll_horizontal(self, delta: int) -> None:
        self._record("scroll_horizontal", delta)

    def key_down(self, code: int) -> None:
        self._record("key_down", code)

    def key_up(self, code: int) -> None:
        self._record("key_up", code)

    def press_key(self, code: int) -> None:
        self._record("press_key", code)

    def type_text(self, text: str) -> None:
        self._record("type_text", text)

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.actions]

    def clear(self) -> None:
        self.actions.clear()


class PynputInjector:
    """Real input backend built on pynput.

    Clicks move the pointer first, then press and release with a short
    settle time between the two events.
    """

    settle_seconds = 0.01

    def __init__(self):
        try:
            from pynput import keyboard, mouse
        except ImportError as e:
            raise ConfigurationError(
                "Real input injection requires the 'pynput' package",
                hint="Install it with: pip install 'graphrunner[input]', or use --dry-run.",
            ) from e

        self._mouse_mod = mouse
        self._keyboard_mod = keyboard
        self._mouse = mouse.Controller()
        self._keyboard = keyboard.Controller()

    def _click(self, x: int, y: int, button) -> None:
        self._mouse.position = (x, y)
        self._mouse.press(button)
        time.sleep(self.settle_seconds)
        self._mouse.release(button)

    def click_at(self, x: int, y: int) -> None:
        self._click(x, y, self._mouse_mod.Button.left)

    def right_click_at(self, x: int, y: int) -> None:
        self._click(x, y, self._mouse_mod.Button.right)

    def move_to(self, x: int, y: int) -> None:
        self._mouse.position = (x, y)

    def scroll(self, delta: int) -> None:
        self._mouse.scroll(0, _notches(delta))

    def scroll_horizontal(self, delta: int) -> None:
        self._mouse.scroll(_notches(delta), 0)

    def _key(self, code: int):
        return self._keyboard_mod.KeyCode.from_vk(code)

    def key_down(self, code: int) -> None:
        self._keyboard.press(self._key(code))

    def key_up(self, code: int) -> None:
        self._keyboard.release(self._key(code))

    def press_key(self, code: int) -> None:
        key = self._key(code)
        self._keyboard.press(key)
        time.sleep(self.settle_seconds)
        self._keyboard.release(key)

    def type_text(self, text: str) -> None:
        self._keyboard.type(text)


def _notches(delta: int) -> int:
    """Convert a wheel delta to whole notches; any nonzero delta moves at least one."""
    if delta == 0:
        return 0
    steps = round(delta / WHEEL_DELTA)
    if steps == 0:
        steps = 1 if delta > 0 else -1
    return steps
