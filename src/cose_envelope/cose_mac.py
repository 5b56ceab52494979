"""COSE_Mac0 and COSE_Mac messages (RFC 9052, section 6)."""

import logging
import secrets
from collections.abc import Mapping, Sequence
from typing import Optional

from . import cbor_utils
from .algorithms import HmacAlgorithm
from .cose_message import CoseMessage
from .exceptions import CoseValueError, InvalidAlgorithm, InvalidKey, InvalidMessage, MalformedMessage
from .keyparams import ALG as KEY_ALG
from .keyparams import KEY_OPS_PARAM, MAC_CREATE, MAC_VERIFY
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


def _check_payload(cose_obj: list) -> None:
    if cose_obj[2] is not None and not isinstance(cose_obj[2], bytes):
        raise MalformedMessage("Payload must be a byte string or nil")
    if not isinstance(cose_obj[3], bytes):
        raise MalformedMessage("Authentication tag must be a byte string")


class MacCommon(CoseMessage):
    """Tag computation shared by the two MACed message types."""

    auth_tag: bytes = b""

    def _hmac(self) -> HmacAlgorithm:
        alg = self.alg
        if not isinstance(alg, HmacAlgorithm):
            name = alg.fullname if alg is not None else "none"
            raise InvalidAlgorithm("MAC messages require an HMAC algorithm", name)
        return alg

    def _mac_key(self, key: Optional[CoseKey], op) -> CoseKey:
        if key is None:
            raise InvalidKey("No MAC key")
        key.verify(SymmetricKey, self._hmac(), [op])
        return key

    def _to_be_maced(self) -> bytes:
        if self.payload is None:
            raise InvalidMessage("Detached payload must be supplied before computing the tag")
        return self._structure(self.payload)

    def _compute(self, key: CoseKey) -> bytes:
        return self._hmac().compute_tag(key.k, self._to_be_maced())

    def _verify(self, key: CoseKey) -> bool:
        return self._hmac().verify_tag(key.k, self._to_be_maced(), self.auth_tag)


class Mac0Message(MacCommon):
    """COSE_Mac0: a MACed message under a key both parties already hold."""

    cbor_tag = cbor_utils.COSE_MAC0_TAG
    context = "MAC0"

    @classmethod
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "Mac0Message":
        if len(cose_obj) != 4:
            raise MalformedMessage("COSE_Mac0 must have 4 elements", f"got {len(cose_obj)}")
        _check_payload(cose_obj)
        msg = cls(allow_unknown_attributes=allow_unknown_attributes)
        msg._decode_headers(cose_obj[0], cose_obj[1])
        msg.payload = cose_obj[2]
        msg.auth_tag = cose_obj[3]
        return msg

    def compute_tag(self) -> bytes:
        """Compute the tag with the message key and store it."""
        self.auth_tag = self._compute(self._mac_key(self.key, MAC_CREATE))
        return self.auth_tag

    def verify_tag(self) -> bool:
        """Check the stored tag with the message key."""
        return self._verify(self._mac_key(self.key, MAC_VERIFY))

    def encode(self, tag: bool = True, mac: bool = True) -> bytes:
        auth_tag = self.compute_tag() if mac else self.auth_tag
        return self._wrap([self.phdr_encoded, self.uhdr_encoded, self.payload, auth_tag], tag)


class MacMessage(MacCommon):
    """COSE_Mac: a MACed message whose key is established through recipients."""

    cbor_tag = cbor_utils.COSE_MAC_TAG
    context = "MAC"
    recipient_context = "Mac_Recipient"

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
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "MacMessage":
        if len(cose_obj) != 5:
            raise MalformedMessage("COSE_Mac must have 5 elements", f"got {len(cose_obj)}")
        _check_payload(cose_obj)
        msg = cls(allow_unknown_attributes=allow_unknown_attributes)
        msg._decode_headers(cose_obj[0], cose_obj[1])
        msg.payload = cose_obj[2]
        msg.auth_tag = cose_obj[3]
        if not isinstance(cose_obj[4], list) or not cose_obj[4]:
            raise MalformedMessage("COSE_Mac needs a non-empty recipients array")
        for recipient in cose_obj[4]:
            msg.add_recipient(
                CoseRecipient.create_recipient(recipient, allow_unknown_attributes, cls.recipient_context)
            )
        return msg

    def _establish_key(self) -> CoseKey:
        alg = self._hmac()
        if self.key is not None:
            return self._mac_key(self.key, MAC_CREATE)

        mac_key = None
        for recipient in self._recipients:
            mac_key = recipient.compute_cek(alg, "encrypt")
            if mac_key is not None:
                break
        if mac_key is None:
            if any(r.kind == RecipientKind.DIRECT_ENCRYPTION for r in self._recipients):
                raise InvalidKey("Direct MAC needs the shared key set as the message key")
            mac_key = SymmetricKey(secrets.token_bytes(alg.key_length), {KEY_ALG: alg, KEY_OPS_PARAM: [MAC_CREATE]})
            logger.debug("Generated fresh %s key", alg.fullname)

        for recipient in self._recipients:
            if recipient.kind in (RecipientKind.KEY_WRAP, RecipientKind.KEY_AGREEMENT_WITH_KEY_WRAP):
                recipient.payload = mac_key.k
        return mac_key

    def compute_tag(self) -> bytes:
        """Compute the tag with a key established through the recipients."""
        verify_recipients(self._recipients)
        self.auth_tag = self._compute(self._establish_key())
        return self.auth_tag

    def verify_tag(self, recipient: CoseRecipient) -> bool:
        """Check the tag using the key held by one recipient of the tree.

        Raises:
            CoseValueError: If the recipient is not part of this message
        """
        if not has_recipient(recipient, self._recipients):
            raise CoseValueError("Recipient is not part of this message")
        verify_recipients(self._recipients)
        path = find_path(recipient, self._recipients)
        for depth in range(len(path) - 1, 0, -1):
            parent, child = path[depth - 1], path[depth]
            parent.key = child.compute_cek(parent.alg, "decrypt")
        mac_key = path[0].compute_cek(self._hmac(), "decrypt")
        return self._verify(mac_key)

    def encode(self, tag: bool = True, mac: bool = True) -> bytes:
        if not self._recipients:
            raise InvalidMessage("COSE_Mac needs at least one recipient")
        if mac:
            auth_tag = self.compute_tag()
            recipients = [r.encode(self.alg) for r in self._recipients]
        else:
            auth_tag = self.auth_tag
            recipients = [r.encode() for r in self._recipients]
        return self._wrap([self.phdr_encoded, self.uhdr_encoded, self.payload, auth_tag, recipients], tag)
