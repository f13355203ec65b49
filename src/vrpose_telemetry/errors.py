"""Exception taxonomy for the telemetry runtime.

None of these are fatal to the process. Callers degrade to skipping the
current tick, config line or message.
"""


class TelemetryError(Exception):
    """Base class for all telemetry errors."""


class ConfigIOError(TelemetryError):
    """The external config file could not be read or written.

    Attributes:
        path: The file that failed.
    """

    def __init__(self, path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class ConfigParseError(TelemetryError):
    """A single config line could not be applied.

    Attributes:
        line_no: 1-based line number in the file.
        line: The raw line text.
    """

    def __init__(self, line_no: int, line: str, reason: str) -> None:
        self.line_no = line_no
        self.line = line
        super().__init__(f"line {line_no}: {reason} ({line!r})")


class DecodeError(TelemetryError):
    """A wire message did not match the pose format."""


class TransportBindError(TelemetryError):
    """An outbound transport could not be created for the given endpoint.

    Attributes:
        address: Target address that was requested.
        port: Target port that was requested.
    """

    def __init__(self, address: str, port: int, message: str) -> None:
        self.address = address
        self.port = port
        super().__init__(f"Cannot bind transport to {address}:{port}: {message}")
