"""
Custom exception classes for the power box driver.
"""


class PowerBoxException(Exception):
    """Base exception for all power box driver errors."""
    pass


class NotConnectedError(PowerBoxException):
    """Raised when operation requires connection but the box is disconnected."""
    pass


class DriverError(PowerBoxException):
    """General driver error (maps to Alpaca ErrorNumber 1280)."""
    pass


class InvalidValueError(PowerBoxException):
    """Invalid parameter value (maps to Alpaca ErrorNumber 1026)."""
    pass


class IndexOutOfRangeError(InvalidValueError):
    """Feature index outside the current feature table."""
    pass


class NotWritableError(PowerBoxException):
    """Write attempted on a read-only feature (sensor or always-on port)."""
    pass


class TransportError(DriverError):
    """I/O failure on the link to the appliance."""
    pass


class SerialTimeoutError(TransportError):
    """No reply from the appliance within the read budget."""
    pass


class LinkResetError(TransportError):
    """The link went away in the middle of a reply line."""
    pass


class PortNotFoundError(TransportError):
    """Serial port does not exist."""
    pass


class PortInUseError(TransportError):
    """Serial port is already open by another application."""
    pass


class ProtocolError(DriverError):
    """Reply did not match the wire grammar (missing tag, short status, etc.)."""
    pass


class DeviceNotDetectedError(DriverError):
    """The appliance never answered the ping handshake."""
    pass
