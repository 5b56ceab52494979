"""cose-envelope: COSE signed, MACed and encrypted messages with recipient trees."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Hide module imports
from . import cose_encrypt, cose_mac, cose_sign1  # noqa: E402
from .algorithms import ALGORITHMS, CoseAlgorithm, algorithm_from  # noqa: E402
from .config import CoseSettings, get_settings  # noqa: E402
from .context import KDFContext, PartyInfo, SuppPubInfo, build_kdf_context  # noqa: E402
from .cose_encrypt import Enc0Message, EncMessage  # noqa: E402
from .cose_mac import Mac0Message, MacMessage  # noqa: E402
from .cose_message import CoseMessage  # noqa: E402
from .cose_sign1 import (  # noqa: E402
    KeySigner,
    KeyVerifier,
    Sign1Message,
    Signer,
    Verifier,
    cose_sign1_sign,
    cose_sign1_verify,
)
from .exceptions import (  # noqa: E402
    CoseError,
    CoseNotImplemented,
    CoseValueError,
    CryptoOperationError,
    IllegalKeyOps,
    InvalidAlgorithm,
    InvalidAttribute,
    InvalidContentType,
    InvalidCriticalValue,
    InvalidHeader,
    InvalidKey,
    InvalidKeyFormat,
    InvalidKeyType,
    InvalidKIDValue,
    InvalidMessage,
    InvalidRecipientConfiguration,
    MalformedMessage,
    UnknownAttribute,
    UnsupportedCurve,
)
from .header_container import HeaderContainer  # noqa: E402
from .headers import HEADERS, HeaderAttribute, header_from  # noqa: E402
from .keys import CoseKey, EC2Key, OKPKey, RSAKey, SymmetricKey, key_from  # noqa: E402
from .recipients import (  # noqa: E402
    CoseRecipient,
    DirectEncryption,
    DirectKeyAgreement,
    KeyAgreementWithKeyWrap,
    KeyWrap,
    RecipientKind,
    has_recipient,
    recipient_type_for,
    verify_recipients,
)
from .validation import validate_structure  # noqa: E402

del cose_encrypt, cose_mac, cose_sign1

__all__ = [
    "__version__",
    # Messages
    "CoseMessage",
    "Enc0Message",
    "EncMessage",
    "Mac0Message",
    "MacMessage",
    "Sign1Message",
    # COSE Sign1 with pluggable signers
    "cose_sign1_sign",
    "cose_sign1_verify",
    "Signer",
    "Verifier",
    "KeySigner",
    "KeyVerifier",
    # Recipient engine
    "CoseRecipient",
    "DirectEncryption",
    "DirectKeyAgreement",
    "KeyAgreementWithKeyWrap",
    "KeyWrap",
    "RecipientKind",
    "has_recipient",
    "recipient_type_for",
    "verify_recipients",
    # Registries and headers
    "ALGORITHMS",
    "HEADERS",
    "CoseAlgorithm",
    "HeaderAttribute",
    "HeaderContainer",
    "algorithm_from",
    "header_from",
    # KDF context
    "KDFContext",
    "PartyInfo",
    "SuppPubInfo",
    "build_kdf_context",
    # Keys
    "CoseKey",
    "EC2Key",
    "OKPKey",
    "RSAKey",
    "SymmetricKey",
    "key_from",
    # Configuration and validation
    "CoseSettings",
    "get_settings",
    "validate_structure",
    # Errors
    "CoseError",
    "CoseNotImplemented",
    "CoseValueError",
    "CryptoOperationError",
    "IllegalKeyOps",
    "InvalidAlgorithm",
    "InvalidAttribute",
    "InvalidContentType",
    "InvalidCriticalValue",
    "InvalidHeader",
    "InvalidKey",
    "InvalidKeyFormat",
    "InvalidKeyType",
    "InvalidKIDValue",
    "InvalidMessage",
    "InvalidRecipientConfiguration",
    "MalformedMessage",
    "UnknownAttribute",
    "UnsupportedCurve",
]
