"""Exception hierarchy for COSE message and recipient processing.

Every error raised by this package derives from :class:`CoseError`, so callers
can catch the whole family with a single ``except`` clause while still being
able to tell structural problems from key or algorithm problems.
"""

from typing import Optional


class CoseError(Exception):
    """Base class for all cose-envelope errors."""

    def __init__(self, message: str = "", detail: Optional[str] = None):
        """Initialize the exception with a message.

        Args:
            message: Human readable description of the failure
            detail: Optional extra context, appended to the message
        """
        self.message = message
        self.detail = detail
        text = message if detail is None else f"{message}: {detail}"
        super().__init__(text)


class InvalidAttribute(CoseError):
    """Raised when an attribute label cannot be used."""


class UnknownAttribute(InvalidAttribute):
    """Raised when an identifier or name is not in a registry."""


class InvalidHeader(CoseError):
    """Raised for malformed, duplicate or conflicting header entries."""


class InvalidCriticalValue(InvalidHeader):
    """Raised when the crit header is not a non-empty list of labels."""


class InvalidContentType(InvalidHeader):
    """Raised when the content type is neither a uint nor a text string."""


class InvalidKIDValue(InvalidHeader):
    """Raised when a byte-string-only header carries another type."""


class InvalidAlgorithm(CoseError):
    """Raised for a missing, unknown or incompatible algorithm."""


class InvalidKey(CoseError):
    """Raised when key material is missing or unusable."""


class InvalidKeyType(InvalidKey):
    """Raised when a key of the wrong family is supplied."""


class InvalidKeyFormat(InvalidKey):
    """Raised when a key is missing required fields or has malformed values."""


class IllegalKeyOps(InvalidKey):
    """Raised when the key operations of a key forbid the requested use."""


class UnsupportedCurve(InvalidKey):
    """Raised when a curve cannot be used for the requested operation."""


class InvalidMessage(CoseError):
    """Raised for structural violations of a message or recipient."""


class MalformedMessage(InvalidMessage):
    """Raised when decoded data does not have the expected COSE shape."""


class InvalidRecipientConfiguration(CoseError):
    """Raised when a set of recipients violates a cross-recipient rule."""


class CoseValueError(CoseError, ValueError):
    """Raised on generic precondition failures."""


class CoseNotImplemented(CoseError, NotImplementedError):
    """Raised when an operation is not supported by a recipient variant."""


class CryptoOperationError(CoseError):
    """Raised when an underlying cryptographic primitive fails."""
