"""COSE_Encrypt0 and COSE_Encrypt messages (RFC 9052, section 5)."""

import logging
import secrets
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from . import cbor_utils
from .algorithms import AeadAlgorithm
from .cose_message import CoseMessage
from .exceptions import CoseValueError, InvalidAlgorithm, InvalidKey, InvalidMessage, MalformedMessage
from .headers import IV, PARTIAL_IV
from .keyparams import ALG as KEY_ALG
from .keyparams import DECRYPT, ENCRYPT, KEY_OPS_PARAM
from .keys import CoseKey, SymmetricKey
from .recipients import (
    CoseRecipient,
    RecipientKind,
    attach_recipient,
    find_path,
    has_recipient,
    next_uid,
    verify_recipients,
)

logger = logging.getLogger(__name__)


class EncCommon(CoseMessage):
    """AEAD handling shared by the two encrypted message types."""

    def _aead(self) -> AeadAlgorithm:
        alg = self.alg
        if not isinstance(alg, AeadAlgorithm):
            name = alg.fullname if alg is not None else "none"
            raise InvalidAlgorithm("Content encryption requires an AEAD algorithm", name)
        return alg

    def _nonce(self, key: CoseKey) -> bytes:
        """Return the IV header, or the partial IV folded into the key's base IV."""
        iv = self.get_attr(IV)
        if iv is not None:
            return iv
        partial_iv = self.get_attr(PARTIAL_IV)
        if partial_iv is None:
            raise InvalidMessage("Message carries neither an IV nor a partial IV")
        base_iv = key.base_iv
        if not base_iv:
            raise InvalidKey("Partial IV requires a key with a base IV")
        if len(partial_iv) > len(base_iv):
            raise CoseValueError("Partial IV is longer than the base IV")
        padded = partial_iv.rjust(len(base_iv), b"\x00")
        return bytes(a ^ b for a, b in zip(padded, base_iv))

    def _content_key(self, key: Optional[CoseKey], op: Any) -> CoseKey:
        if key is None:
            raise InvalidKey("No content encryption key")
        key.verify(SymmetricKey, self._aead(), [op])
        return key

    def _seal(self, key: CoseKey) -> bytes:
        if self.payload is None:
            raise InvalidMessage("Nothing to encrypt")
        alg = self._aead()
        aad = self._structure()
        return alg.encrypt(key.k, self._nonce(key), self.payload, aad)

    def _open(self, key: CoseKey) -> bytes:
        if self.payload is None:
            raise InvalidMessage("Detached ciphertext must be supplied as the payload")
        alg = self._aead()
        return alg.decrypt(key.k, self._nonce(key), self.payload, self._structure())


class Enc0Message(EncCommon):
    """COSE_Encrypt0: a message encrypted under a key both parties already hold.

    ``payload`` holds the plaintext when building a message and the
    ciphertext after decoding.
    """

    cbor_tag = cbor_utils.COSE_ENCRYPT0_TAG
    context = "Encrypt0"

    @classmethod
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "Enc0Message":
        if len(cose_obj) != 3:
            raise MalformedMessage("COSE_Encrypt0 must have 3 elements", f"got {len(cose_obj)}")
        msg = cls(allow_unknown_attributes=allow_unknown_attributes)
        msg._decode_headers(cose_obj[0], cose_obj[1])
        if cose_obj[2] is not None and not isinstance(cose_obj[2], bytes):
            raise MalformedMessage("Ciphertext must be a byte string or nil")
        msg.payload = cose_obj[2]
        return msg

    def encrypt(self) -> bytes:
        """Encrypt the payload with the message key.

        Returns:
            Ciphertext with the authentication tag appended
        """
        return self._seal(self._content_key(self.key, ENCRYPT))

    def decrypt(self) -> bytes:
        """Decrypt the payload with the message key.

        Raises:
            CryptoOperationError: If authentication fails
        """
        return self._open(self._content_key(self.key, DECRYPT))

    def encode(self, tag: bool = True, encrypt: bool = True) -> bytes:
        """Encode the message, encrypting the payload unless ``encrypt`` is False."""
        ciphertext = self.encrypt() if encrypt else self.payload
        return self._wrap([self.phdr_encoded, self.uhdr_encoded, ciphertext], tag)


class EncMessage(EncCommon):
    """COSE_Encrypt: a message whose CEK is established through recipients.

    When encoding, the CEK is the message ``key`` if set, otherwise the key a
    direct recipient derives, otherwise a fresh random key that every
    wrapping recipient wraps.
    """

    cbor_tag = cbor_utils.COSE_ENCRYPT_TAG
    context = "Encrypt"
    recipient_context = "Enc_Recipient"

    def __init__(
        self,
        phdr: Optional[Mapping] = None,
        uhdr: Optional[Mapping] = None,
        payload: Optional[bytes] = b"",
        key: Optional[CoseKey] = None,
        external_aad: bytes = b"",
        recipients: Optional[Sequence[CoseRecipient]] = None,
        local_attrs: Optional[Mapping] = None,
        allow_unknown_attributes: Optional[bool] = None,
    ):
        super().__init__(phdr, uhdr, payload, key, external_aad, local_attrs, allow_unknown_attributes)
        self.uid = next_uid()
        self._recipients: list[CoseRecipient] = []
        for recipient in recipients or []:
            self.add_recipient(recipient)

    @property
    def recipients(self) -> tuple:
        return tuple(self._recipients)

    def add_recipient(self, recipient: CoseRecipient) -> None:
        attach_recipient(self.uid, self._recipients, recipient, self.recipient_context)

    @classmethod
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "EncMessage":
        if len(cose_obj) != 4:
            raise MalformedMessage("COSE_Encrypt must have 4 elements", f"got {len(cose_obj)}")
        msg = cls(allow_unknown_attributes=allow_unknown_attributes)
        msg._decode_headers(cose_obj[0], cose_obj[1])
        if cose_obj[2] is not None and not isinstance(cose_obj[2], bytes):
            raise MalformedMessage("Ciphertext must be a byte string or nil")
        msg.payload = cose_obj[2]
        if not isinstance(cose_obj[3], list) or not cose_obj[3]:
            raise MalformedMessage("COSE_Encrypt needs a non-empty recipients array")
        for recipient in cose_obj[3]:
            msg.add_recipient(
                CoseRecipient.create_recipient(recipient, allow_unknown_attributes, cls.recipient_context)
            )
        return msg

    def _establish_cek(self) -> SymmetricKey:
        alg = self._aead()
        if self.key is not None:
            return self._content_key(self.key, ENCRYPT)

        cek = None
        for recipient in self._recipients:
            cek = recipient.compute_cek(alg, "encrypt")
            if cek is not None:
                break
        if cek is None:
            if any(r.kind == RecipientKind.DIRECT_ENCRYPTION for r in self._recipients):
                raise InvalidKey("Direct encryption needs the shared key set as the message key")
            cek = SymmetricKey(secrets.token_bytes(alg.key_length), {KEY_ALG: alg, KEY_OPS_PARAM: [ENCRYPT]})
            logger.debug("Generated fresh %s CEK", alg.fullname)

        for recipient in self._recipients:
            if recipient.kind in (RecipientKind.KEY_WRAP, RecipientKind.KEY_AGREEMENT_WITH_KEY_WRAP):
                recipient.payload = cek.k
        return cek

    def encrypt(self, cek: Optional[CoseKey] = None) -> bytes:
        """Encrypt the payload.

        Args:
            cek: Content encryption key; established through the recipients
                when omitted
        """
        if cek is None:
            verify_recipients(self._recipients)
            cek = self._establish_cek()
        return self._seal(self._content_key(cek, ENCRYPT))

    def decrypt(self, recipient: CoseRecipient) -> bytes:
        """Decrypt the payload using the key held by one recipient of the tree.

        Each recipient on the path from the top level down to ``recipient``
        yields the key of its parent, and the top-level recipient yields the
        CEK. Intermediate recipients keep the keys derived for them.

        Args:
            recipient: A recipient of this message holding its key material

        Raises:
            CoseValueError: If the recipient is not part of this message
            InvalidRecipientConfiguration: If the recipient set is invalid
            CryptoOperationError: If unwrapping or authentication fails
        """
        if not has_recipient(recipient, self._recipients):
            raise CoseValueError("Recipient is not part of this message")
        verify_recipients(self._recipients)
        path = find_path(recipient, self._recipients)
        for depth in range(len(path) - 1, 0, -1):
            parent, child = path[depth - 1], path[depth]
            parent.key = child.compute_cek(parent.alg, "decrypt")
        cek = path[0].compute_cek(self._aead(), "decrypt")
        logger.debug("Resolved CEK through %d recipient(s)", len(path))
        return self._open(self._content_key(cek, DECRYPT))

    def encode(self, tag: bool = True, encrypt: bool = True) -> bytes:
        """Encode the message.

        With ``encrypt`` the payload is encrypted and every recipient runs its
        key establishment; otherwise payload and recipients are emitted as
        they are.
        """
        if not self._recipients:
            raise InvalidMessage("COSE_Encrypt needs at least one recipient")
        if encrypt:
            verify_recipients(self._recipients)
            cek = self._establish_cek()
            payload = self._seal(cek)
            recipients = [r.encode(self.alg) for r in self._recipients]
        else:
            payload = self.payload
            recipients = [r.encode() for r in self._recipients]
        return self._wrap([self.phdr_encoded, self.uhdr_encoded, payload, recipients], tag)
