class GnodutyError(Exception):
    """Base class for errors raised by the monitor."""


class ConfigError(GnodutyError, ValueError):
    """Configuration file is missing required values or is malformed."""


class RpcError(GnodutyError):
    """A single endpoint failed to answer a request."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class NoUsableEndpointError(GnodutyError):
    """Every endpoint of a chain was skipped or failed."""


class ChainSetupError(GnodutyError):
    """No endpoint passed the connect checks for a chain."""
