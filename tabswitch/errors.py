"""Exception types shared by the daemon and switcher sessions."""


class TabSwitchError(Exception):
    """Base class for tabswitch errors."""


class EnvelopeError(TabSwitchError):
    """A channel message did not match any known envelope shape."""


class UnknownMethodError(TabSwitchError):
    """A request named an rpc method the responder does not serve."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"unknown rpc method: {method}")


class RemoteError(TabSwitchError):
    """The other end of the channel answered with a failure response."""

    def __init__(self, message: str, request_id: int = 0):
        self.request_id = request_id
        super().__init__(message)


class ChannelClosedError(TabSwitchError):
    """A request was sent on a channel that has been torn down."""


class ConfigError(TabSwitchError):
    """Configuration could not be loaded or failed validation."""


class DaemonRunningError(TabSwitchError):
    """Another daemon already answers on the configured socket."""
