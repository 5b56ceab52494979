"""COSE_Sign1 messages with COSE keys or pluggable signers and verifiers.

:class:`Sign1Message` signs with a COSE key and a registered signature
algorithm. The functional ``cose_sign1_sign`` / ``cose_sign1_verify`` pair
accepts signer and verifier objects instead, so the private key can live
outside the process (an HSM, a remote signing service).
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Protocol

from . import cbor_utils
from .algorithms import ALGORITHMS, SignatureAlgorithm
from .cose_message import CoseMessage
from .exceptions import CoseError, InvalidAlgorithm, InvalidKey, InvalidMessage, MalformedMessage
from .headers import ALG
from .keyparams import SIGN, VERIFY
from .keys import CoseKey

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """Protocol for COSE Sign1 signers."""

    def sign(self, message: bytes) -> bytes:
        """Sign a message and return the signature.

        Args:
            message: The encoded Sig_structure

        Returns:
            The signature bytes
        """

    @property
    def algorithm(self) -> int:
        """COSE algorithm identifier (e.g., -7 for ES256)."""


class Verifier(Protocol):
    """Protocol for COSE Sign1 verifiers."""

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature on a message.

        Args:
            message: The encoded Sig_structure
            signature: The signature to verify

        Returns:
            True if signature is valid, False otherwise
        """


def _signature_alg(label: Any) -> SignatureAlgorithm:
    alg = ALGORITHMS.from_id(label)
    if not isinstance(alg, SignatureAlgorithm):
        raise InvalidAlgorithm("Not a signature algorithm", alg.fullname)
    return alg


class KeySigner:
    """Signer backed by a COSE key."""

    def __init__(self, key: CoseKey, algorithm: Any):
        self.key = key
        self._alg = _signature_alg(algorithm)
        key.verify(CoseKey, self._alg, [SIGN])

    def sign(self, message: bytes) -> bytes:
        return self._alg.sign(self.key, message)

    @property
    def algorithm(self) -> int:
        return self._alg.identifier


class KeyVerifier:
    """Verifier backed by a COSE key."""

    def __init__(self, key: CoseKey, algorithm: Any):
        self.key = key
        self._alg = _signature_alg(algorithm)
        key.verify(CoseKey, self._alg, [VERIFY])

    def verify(self, message: bytes, signature: bytes) -> bool:
        return self._alg.verify(self.key, message, signature)


class Sign1Message(CoseMessage):
    """COSE_Sign1: a payload signed by a single signer."""

    cbor_tag = cbor_utils.COSE_SIGN1_TAG
    context = "Signature1"

    def __init__(
        self,
        phdr: Optional[Mapping] = None,
        uhdr: Optional[Mapping] = None,
        payload: Optional[bytes] = b"",
        key: Optional[CoseKey] = None,
        external_aad: bytes = b"",
        local_attrs: Optional[Mapping] = None,
        allow_unknown_attributes: Optional[bool] = None,
    ):
        super().__init__(phdr, uhdr, payload, key, external_aad, local_attrs, allow_unknown_attributes)
        self.signature = b""

    @classmethod
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "Sign1Message":
        if len(cose_obj) != 4:
            raise MalformedMessage("COSE_Sign1 must have 4 elements", f"got {len(cose_obj)}")
        if cose_obj[2] is not None and not isinstance(cose_obj[2], bytes):
            raise MalformedMessage("Payload must be a byte string or nil")
        if not isinstance(cose_obj[3], bytes):
            raise MalformedMessage("Signature must be a byte string")
        msg = cls(allow_unknown_attributes=allow_unknown_attributes)
        msg._decode_headers(cose_obj[0], cose_obj[1])
        msg.payload = cose_obj[2]
        msg.signature = cose_obj[3]
        return msg

    def _to_be_signed(self) -> bytes:
        if self.payload is None:
            raise InvalidMessage("Detached payload must be supplied before signing or verifying")
        return self._structure(self.payload)

    def _alg_and_key(self, op: Any) -> tuple:
        alg = self.alg
        if alg is None:
            raise InvalidAlgorithm("Sign1 message carries no algorithm")
        alg = _signature_alg(alg)
        if self.key is None:
            raise InvalidKey("No signing key")
        self.key.verify(CoseKey, alg, [op])
        return alg, self.key

    def compute_signature(self) -> bytes:
        """Sign the message with its key and store the signature."""
        alg, key = self._alg_and_key(SIGN)
        self.signature = alg.sign(key, self._to_be_signed())
        logger.debug("Signed COSE_Sign1 with %s", alg.fullname)
        return self.signature

    def verify_signature(self) -> bool:
        """Check the stored signature with the message key.

        Returns:
            True if the signature verifies, False otherwise
        """
        alg, key = self._alg_and_key(VERIFY)
        return alg.verify(key, self._to_be_signed(), self.signature)

    def encode(self, tag: bool = True, sign: bool = True) -> bytes:
        signature = self.compute_signature() if sign else self.signature
        return self._wrap([self.phdr_encoded, self.uhdr_encoded, self.payload, signature], tag)


def cose_sign1_sign(
    payload: bytes,
    signer: Signer,
    protected_header: Optional[Mapping] = None,
    unprotected_header: Optional[Mapping] = None,
    external_aad: bytes = b"",
) -> bytes:
    """Create a COSE Sign1 message.

    Args:
        payload: The payload to sign
        signer: A signer object that implements the sign method
        protected_header: Protected header parameters (will be integrity protected)
        unprotected_header: Unprotected header parameters
        external_aad: External additional authenticated data

    Returns:
        CBOR-encoded COSE Sign1 message with tag 18
    """
    msg = Sign1Message(protected_header, unprotected_header, payload, external_aad=external_aad)
    if ALG not in msg.headers:
        msg.headers.set_protected(ALG, signer.algorithm)
    msg.signature = signer.sign(msg._to_be_signed())
    return msg.encode(sign=False)


def cose_sign1_verify(
    cose_sign1_message: bytes,
    verifier: Verifier,
    external_aad: bytes = b"",
) -> tuple[bool, Optional[bytes]]:
    """Verify a COSE Sign1 message.

    Args:
        cose_sign1_message: CBOR-encoded COSE Sign1 message, tagged or untagged
        verifier: A verifier object that implements the verify method
        external_aad: External additional authenticated data used during signing

    Returns:
        Tuple of (verification_result, payload if verified successfully)
    """
    try:
        msg = Sign1Message.decode(cose_sign1_message)
    except CoseError as exc:
        logger.debug("Rejecting COSE_Sign1: %s", exc)
        return False, None

    msg.external_aad = external_aad
    if msg.payload is None:
        return False, None
    if verifier.verify(msg._to_be_signed(), msg.signature):
        return True, msg.payload
    return False, None

