"""Exceptions raised by the QuickMock engine."""


class ConfigError(ValueError):
    """A route file or server config has the wrong shape."""


class NotFoundError(KeyError):
    """An unknown server, profile or resource was referenced."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable
        return str(self.args[0]) if self.args else ''


class PortInUseError(RuntimeError):
    """The requested port is already bound by another instance or process."""


class InstanceNotLoadedError(RuntimeError):
    """An operation needs a server instance, but the server was never started."""
