"""Domain-specific errors for blesensor."""


class BlesensorError(Exception):
    """Base error for blesensor."""


class ProfileValidationError(BlesensorError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(BlesensorError):
    """Raised when loading profile sources fails."""


class ProfileSelectionError(BlesensorError):
    """Raised when a profile id cannot be resolved to a single target."""


class InvalidTransitionError(BlesensorError):
    """Raised when an operation is requested in a state that does not allow it."""


class SessionError(BlesensorError):
    """Base error for failures that end a sensor session."""


class RadioUnavailableError(SessionError):
    """Raised when scanning is requested while the radio is not powered on."""


class RadioLostError(SessionError):
    """Raised when the radio goes away in the middle of a session."""


class ConnectFailedError(SessionError):
    """Raised when the peripheral connection attempt fails."""


class UnsupportedCharacteristicError(SessionError):
    """Raised when the target characteristic is missing or neither readable nor notifiable."""


class SessionTimeoutError(SessionError):
    """Raised when a pending stage does not complete in time."""


class CharacteristicAccessError(SessionError):
    """Raised when reading or subscribing to the target characteristic fails."""


class DecodeError(BlesensorError):
    """Base error for payloads that cannot be decoded into a reading."""


class PayloadOutOfRangeError(DecodeError):
    """Raised when the payload does not reach the temperature field."""


class PayloadTooShortError(PayloadOutOfRangeError):
    """Raised when the payload is shorter than the minimum frame."""


class InvalidHexError(DecodeError):
    """Raised when the temperature field holds non-hexadecimal characters."""


class TransportError(BlesensorError):
    """Base transport error."""


class TransportScanError(TransportError):
    """Raised when the BLE scanner cannot be started."""
