"""Well-known trigger broadcasts for cross-process notifications."""

from typing import NamedTuple

TRIGGER_PAYLOAD = "Trigger"


class Signal(NamedTuple):
    """A fixed topic broadcast to a fixed port."""

    topic: str
    port: int
    payload: str = TRIGGER_PAYLOAD


SIGNALS: dict[str, Signal] = {
    "a": Signal("/signal/a", 20005),
    "b": Signal("/signal/b", 20002),
}


def get_signal(name: str) -> Signal:
    """Look up a registered signal.

    Raises:
        KeyError: If no signal has that name.
    """
    try:
        return SIGNALS[name]
    except KeyError:
        raise KeyError(
            f"Unknown signal {name!r}; known signals: {', '.join(sorted(SIGNALS))}"
        ) from None
