"""Domain-specific errors for bluehandle."""


class BluehandleError(Exception):
    """Base error for bluehandle."""


class ConfigError(BluehandleError):
    """Raised when the configuration file cannot be read or validated."""


class BindingUnavailableError(BluehandleError):
    """Raised when a remote object can be neither found nor created."""


class MalformedEventError(BluehandleError):
    """Raised when a property value does not have the expected type."""


class TransportError(BluehandleError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the bus connection cannot be established."""


class TransportTimeoutError(TransportError):
    """Raised when a blocking bus call does not complete in time."""


class RemoteCallFailedError(TransportError):
    """Raised when the daemon answers a call with an error reply."""
