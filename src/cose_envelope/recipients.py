"""COSE_recipient structures and content-encryption-key establishment.

A recipient describes how one party obtains the CEK of an encrypted or MACed
message. Four kinds exist, selected by the recipient algorithm:

* :class:`DirectEncryption` - the CEK is a pre-shared key, optionally run
  through HKDF (``DIRECT``, ``DIRECT_HKDF_*``)
* :class:`DirectKeyAgreement` - ECDH plus HKDF yields the CEK directly
  (``ECDH_*_HKDF_*``)
* :class:`KeyAgreementWithKeyWrap` - ECDH plus HKDF yields a KEK that wraps
  the CEK (``ECDH_*_A*KW``)
* :class:`KeyWrap` - a pre-shared KEK or an RSA key wraps the CEK
  (``A*KW``, ``RSAES_OAEP_*``)

Recipients form a tree. Every node has a process-unique ``uid`` and records
the uid of the node it is attached to, so membership checks and cycle checks
compare uids rather than object identity.
"""

import enum
import itertools
import logging
import secrets
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, ClassVar, Optional, Union

from .algorithms import (
    ALGORITHMS,
    DIRECT,
    AesKwAlgorithm,
    CoseAlgorithm,
    DirectAlgorithm,
    DirectHkdfAlgorithm,
    EcdhHkdfAlgorithm,
    RsaOaepAlgorithm,
)
from .config import get_settings
from .context import KDFContext, build_kdf_context
from .cose_message import CoseBase
from .exceptions import (
    CoseNotImplemented,
    CoseValueError,
    InvalidAlgorithm,
    InvalidKey,
    InvalidKeyType,
    InvalidMessage,
    InvalidRecipientConfiguration,
    MalformedMessage,
)
from .header_container import HeaderContainer
from .headers import ALG, EPHEMERAL_KEY, SALT, STATIC_KEY
from .keyparams import ALG as KEY_ALG
from .keyparams import DECRYPT, ENCRYPT, KEY_OPS_PARAM, UNWRAP, WRAP
from .keys import CoseKey, EC2Key, OKPKey, RSAKey, SymmetricKey

logger = logging.getLogger(__name__)

NESTED_CONTEXT = "Rec_Recipient"

_uids = itertools.count(1)


def next_uid() -> int:
    """Return a fresh node identifier for a recipient tree."""
    return next(_uids)


class RecipientKind(enum.Enum):
    DIRECT_ENCRYPTION = "DirectEncryption"
    DIRECT_KEY_AGREEMENT = "DirectKeyAgreement"
    KEY_AGREEMENT_WITH_KEY_WRAP = "KeyAgreementWithKeyWrap"
    KEY_WRAP = "KeyWrap"


def _check_ops(ops: str) -> str:
    if ops not in ("encrypt", "decrypt"):
        raise CoseValueError("ops must be 'encrypt' or 'decrypt'", repr(ops))
    return ops


def _cek(key_bytes: bytes, target_alg: Any, ops: str) -> SymmetricKey:
    key_op = ENCRYPT if ops == "encrypt" else DECRYPT
    return SymmetricKey(key_bytes, {KEY_ALG: target_alg, KEY_OPS_PARAM: [key_op]})


def attach_recipient(parent_uid: int, children: list, recipient: Any, context: str) -> None:
    """Attach a recipient below a node, refusing re-insertion and cycles.

    Args:
        parent_uid: Identifier of the node that will own the recipient
        children: The owning node's list of recipients
        recipient: The recipient to attach
        context: Context tag the recipient takes in its new position

    Raises:
        InvalidRecipientConfiguration: If the recipient is already attached
            somewhere, is the parent itself, or contains the parent
    """
    if not isinstance(recipient, CoseRecipient):
        raise InvalidRecipientConfiguration("Not a recipient", type(recipient).__name__)
    if recipient.parent_uid is not None:
        raise InvalidRecipientConfiguration("Recipient already belongs to another structure")
    if recipient.uid == parent_uid or any(node.uid == parent_uid for node in walk(recipient.recipients)):
        raise InvalidRecipientConfiguration("Recipient tree would contain a cycle")
    recipient.parent_uid = parent_uid
    recipient.context = context
    children.append(recipient)


def walk(recipients: Sequence["CoseRecipient"]) -> Iterator["CoseRecipient"]:
    """Yield every recipient of a tree, depth first."""
    for recipient in recipients:
        yield recipient
        yield from walk(recipient.recipients)


def has_recipient(target: "CoseRecipient", recipients: Sequence["CoseRecipient"]) -> bool:
    """Return True if ``target`` is a node anywhere in the recipient tree."""
    return target.uid in {node.uid for node in walk(recipients)}


def find_path(target: "CoseRecipient", recipients: Sequence["CoseRecipient"]) -> Optional[list]:
    """Return the recipients from a top-level node down to ``target``, or None."""
    for recipient in recipients:
        if recipient.uid == target.uid:
            return [recipient]
        below = find_path(target, recipient.recipients)
        if below is not None:
            return [recipient, *below]
    return None


def recipient_type_for(algorithm: Any) -> Optional[type]:
    """Map a recipient algorithm to the recipient class that handles it.

    Returns:
        The recipient class, or None for algorithms no recipient handles
    """
    alg = ALGORITHMS.get(algorithm)
    if isinstance(alg, (DirectAlgorithm, DirectHkdfAlgorithm)):
        return DirectEncryption
    if isinstance(alg, EcdhHkdfAlgorithm):
        if alg.key_wrap_func == DIRECT:
            return DirectKeyAgreement
        return KeyAgreementWithKeyWrap
    if isinstance(alg, (AesKwAlgorithm, RsaOaepAlgorithm)):
        return KeyWrap
    return None


def verify_recipients(recipients: Sequence["CoseRecipient"]) -> None:
    """Check the rules that span one recipient set, top-level or nested.

    A direct-encryption or direct-key-agreement recipient binds the CEK
    itself, so it must be the only recipient.

    Raises:
        InvalidRecipientConfiguration: If the rule is violated
    """
    single_only = (RecipientKind.DIRECT_ENCRYPTION, RecipientKind.DIRECT_KEY_AGREEMENT)
    for recipient in recipients:
        if recipient.kind in single_only and len(recipients) > 1:
            raise InvalidRecipientConfiguration(
                f"{recipient.kind.value} must be the only recipient", f"found {len(recipients)}"
            )


class CoseRecipient(CoseBase):
    """Base recipient: headers, payload, key and nested recipients.

    Args:
        phdr: Protected header values
        uhdr: Unprotected header values
        payload: Wrapped CEK on the wire; for wrapping recipients built
            locally, the CEK to wrap
        key: Key used by this recipient (shared key, KEK, private key)
        recipients: Nested recipients
        context: Context tag, ``"Rec_Recipient"`` when nested
        local_attrs: Inputs that are never serialized
        allow_unknown_attributes: Keep unregistered header labels
    """

    kind: ClassVar[Optional[RecipientKind]] = None

    def __init__(
        self,
        phdr: Optional[Mapping] = None,
        uhdr: Optional[Mapping] = None,
        payload: Optional[bytes] = b"",
        key: Optional[CoseKey] = None,
        recipients: Optional[Sequence["CoseRecipient"]] = None,
        context: str = "",
        local_attrs: Optional[Mapping] = None,
        allow_unknown_attributes: Optional[bool] = None,
    ):
        super().__init__(
            phdr=phdr,
            uhdr=uhdr,
            payload=payload,
            key=key,
            local_attrs=local_attrs,
            allow_unknown_attributes=allow_unknown_attributes,
        )
        self.uid = next_uid()
        self.parent_uid: Optional[int] = None
        self.context = context
        self._recipients: list[CoseRecipient] = []
        for recipient in recipients or []:
            self.add_recipient(recipient)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} uid={self.uid} alg={self.alg} "
            f"context={self.context!r} recipients={len(self._recipients)}>"
        )

    # -- tree --------------------------------------------------------------

    @property
    def recipients(self) -> tuple:
        return tuple(self._recipients)

    def add_recipient(self, recipient: "CoseRecipient") -> None:
        """Attach a nested recipient."""
        attach_recipient(self.uid, self._recipients, recipient, NESTED_CONTEXT)

    # -- decode / encode ---------------------------------------------------

    @classmethod
    def create_recipient(
        cls,
        cose_obj: Any,
        allow_unknown_attributes: Optional[bool] = None,
        context: str = "",
        depth: int = 1,
    ) -> "CoseRecipient":
        """Decode a COSE_recipient array into the recipient class its algorithm selects.

        Args:
            cose_obj: ``[protected, unprotected, payload, ? recipients]``
            allow_unknown_attributes: Keep unregistered header labels
            context: Context tag for the decoded recipient
            depth: Nesting level of this structure, 1 for top-level recipients

        Raises:
            InvalidMessage: If the array has fewer than 3 elements
            InvalidAlgorithm: If no algorithm is present or it selects no recipient kind
        """
        _check_shape(cose_obj)
        headers = HeaderContainer.decode(cose_obj[0], cose_obj[1], allow_unknown_attributes)
        alg = headers.protected.get(ALG)
        if alg is None:
            alg = headers.unprotected.get(ALG)
        if alg is None:
            raise InvalidAlgorithm("Recipient carries no algorithm")
        recipient_cls = recipient_type_for(alg)
        if recipient_cls is None:
            raise InvalidAlgorithm("Algorithm cannot be used by a recipient", alg.fullname)
        logger.debug("Recipient at depth %d uses %s (%s)", depth, alg.fullname, recipient_cls.__name__)
        return recipient_cls.from_cose_obj(cose_obj, allow_unknown_attributes, context, depth)

    @classmethod
    def from_cose_obj(
        cls,
        cose_obj: Any,
        allow_unknown_attributes: Optional[bool] = None,
        context: str = "",
        depth: int = 1,
    ) -> "CoseRecipient":
        """Decode a COSE_recipient array into this recipient class.

        Raises:
            InvalidMessage: If the array has fewer than 3 elements
            MalformedMessage: If an element has the wrong type or the tree is
                nested deeper than the configured limit
            InvalidRecipientConfiguration: If a nested recipient set mixes a
                direct recipient with others
        """
        _check_shape(cose_obj)
        max_depth = get_settings().max_recipient_depth
        if depth > max_depth:
            raise MalformedMessage("Recipient nesting exceeds the configured limit", str(max_depth))

        recipient = cls(context=context, allow_unknown_attributes=allow_unknown_attributes)
        recipient._decode_headers(cose_obj[0], cose_obj[1])
        payload = cose_obj[2]
        if payload is not None and not isinstance(payload, bytes):
            raise MalformedMessage("Recipient payload must be a byte string or nil")
        recipient.payload = payload

        if len(cose_obj) == 4:
            nested = cose_obj[3]
            if not isinstance(nested, list) or not nested:
                raise MalformedMessage("Nested recipients must be a non-empty array")
            for child in nested:
                recipient.add_recipient(
                    CoseRecipient.create_recipient(child, allow_unknown_attributes, NESTED_CONTEXT, depth + 1)
                )
            verify_recipients(recipient._recipients)
        recipient._validate_decoded()
        return recipient

    def _validate_decoded(self) -> None:
        """Hook for structural checks of the decoded recipient kind."""

    def encode(self, target_alg: Any = None) -> list:
        """Encode the recipient as a COSE_recipient array.

        Without ``target_alg`` the stored payload is emitted unchanged, which
        is the exact inverse of :meth:`from_cose_obj`. With ``target_alg`` the
        recipient first performs its key establishment for that algorithm.
        """
        payload = self.payload if target_alg is None else self._payload_for(ALGORITHMS.from_id(target_alg))
        recipient = [self.phdr_encoded, self.uhdr_encoded, payload]
        if self._recipients:
            child_target = None if target_alg is None else self.alg
            recipient.append([child.encode(child_target) for child in self._recipients])
        return recipient

    def _payload_for(self, target_alg: CoseAlgorithm) -> Optional[bytes]:
        return self.payload

    # -- key establishment -------------------------------------------------

    def get_kdf_context(self, algorithm: Any) -> KDFContext:
        """Build the KDF context binding a derived key to this recipient.

        Raises:
            InvalidAlgorithm: If ``algorithm`` has no fixed key length
        """
        return build_kdf_context(ALGORITHMS.from_id(algorithm), self.headers, self.local_attrs)

    def compute_cek(self, target_alg: Any, ops: str) -> Optional[SymmetricKey]:
        """Return the key this recipient contributes for ``target_alg``.

        Args:
            target_alg: Algorithm of the key being established (the content
                algorithm, or the parent's algorithm when nested)
            ops: ``"encrypt"`` or ``"decrypt"``
        """
        raise CoseNotImplemented(f"{type(self).__name__} does not compute a CEK")

    def encrypt(self, target_alg: Any) -> bytes:
        raise CoseNotImplemented(f"{type(self).__name__} does not wrap keys")

    def decrypt(self, target_alg: Any) -> bytes:
        raise CoseNotImplemented(f"{type(self).__name__} does not unwrap keys")

    def _recipient_alg(self) -> CoseAlgorithm:
        alg = self.alg
        if alg is None:
            raise InvalidAlgorithm(f"{type(self).__name__} has no algorithm")
        return alg


def _check_shape(cose_obj: Any) -> None:
    if not isinstance(cose_obj, (list, tuple)) or len(cose_obj) < 3:
        raise InvalidMessage("A recipient must have at least 3 elements")
    if len(cose_obj) > 4:
        raise MalformedMessage("A recipient has at most 4 elements")


class DirectEncryption(CoseRecipient):
    """The CEK is a pre-shared key, used as-is or run through HKDF."""

    kind = RecipientKind.DIRECT_ENCRYPTION

    def _validate_decoded(self) -> None:
        alg = self._recipient_alg()
        if self.payload:
            raise MalformedMessage("Direct encryption recipient must have an empty payload")
        if self._recipients:
            raise MalformedMessage("Direct encryption recipient cannot have nested recipients")
        if alg == DIRECT and self.phdr:
            raise MalformedMessage("Protected header must be empty for DIRECT")

    def compute_cek(self, target_alg: Any, ops: str) -> Optional[SymmetricKey]:
        _check_ops(ops)
        alg = self._recipient_alg()
        target = ALGORITHMS.from_id(target_alg)
        if isinstance(alg, DirectHkdfAlgorithm):
            return self._derive(alg, target, ops)
        if ops == "encrypt":
            # The shared key is supplied to the message out of band
            return None
        if self.key is None:
            raise InvalidKey("Direct encryption recipient has no shared key")
        self.key.verify(SymmetricKey, None, None)
        logger.debug("Direct CEK for %s", target.fullname)
        return _cek(self.key.k, target, ops)

    def _derive(self, alg: DirectHkdfAlgorithm, target: CoseAlgorithm, ops: str) -> SymmetricKey:
        if self.key is None:
            raise InvalidKey("Direct HKDF recipient has no shared secret")
        self.key.verify(SymmetricKey, None, None)
        context = self.get_kdf_context(target)
        logger.debug("Deriving %s CEK with %s", target.fullname, alg.fullname)
        return _cek(alg.derive(self.key.k, self.get_attr(SALT), context), target, ops)


class _AgreementRecipient(CoseRecipient):
    """Shared ECDH handling for the two key-agreement recipient kinds."""

    def setup_ephemeral_key(self, peer_key: CoseKey, optional_params: Optional[Mapping] = None) -> None:
        """Generate an ephemeral key on the peer's curve and publish its public part.

        The generated key becomes this recipient's key; its public part,
        without the private component, goes into the unprotected header.

        Raises:
            InvalidMessage: If an ephemeral key is already present
            InvalidKeyType: If the peer key is not an EC2 or OKP key
        """
        if EPHEMERAL_KEY in self.headers:
            raise InvalidMessage("Unrelated ephemeral key already present")
        if isinstance(peer_key, EC2Key):
            ephemeral: CoseKey = EC2Key.generate_key(peer_key.crv, optional_params)
        elif isinstance(peer_key, OKPKey):
            ephemeral = OKPKey.generate_key(peer_key.crv, optional_params)
        else:
            raise InvalidKeyType("Key agreement requires an EC2 or OKP peer key")
        self.key = ephemeral
        self.headers.set_unprotected(EPHEMERAL_KEY, ephemeral.public_key())
        logger.debug("Generated ephemeral key on %s", peer_key.crv.fullname)

    def _agreement_alg(self) -> EcdhHkdfAlgorithm:
        alg = self._recipient_alg()
        if not isinstance(alg, EcdhHkdfAlgorithm):
            raise InvalidAlgorithm(f"{alg.fullname} is not a key agreement algorithm")
        return alg

    def _peer_for_encrypt(self, alg: EcdhHkdfAlgorithm) -> CoseKey:
        peer = self.local_attrs.get(STATIC_KEY)
        if peer is None:
            raise InvalidKey("Key agreement needs the receiver's static key")
        if alg.ephemeral and EPHEMERAL_KEY not in self.headers:
            if self.key is None:
                self.setup_ephemeral_key(peer)
            else:
                # caller-supplied ephemeral key
                if not isinstance(self.key, (EC2Key, OKPKey)):
                    raise InvalidKeyType("Key agreement requires an EC2 or OKP sender key")
                self.headers.set_unprotected(EPHEMERAL_KEY, self.key.public_key())
        elif self.key is None:
            raise InvalidKey(f"{alg.fullname} needs the sender's private key")
        return peer

    def _peer_for_decrypt(self, alg: EcdhHkdfAlgorithm) -> CoseKey:
        if alg.ephemeral:
            peer = self.get_attr(EPHEMERAL_KEY)
            if peer is None:
                raise InvalidMessage("Ephemeral key missing from the recipient header")
        else:
            peer = self.local_attrs.get(STATIC_KEY)
            if peer is None:
                peer = self.get_attr(STATIC_KEY)
            if peer is None:
                raise InvalidMessage("Static key of the sender is missing")
        if self.key is None:
            raise InvalidKey("Key agreement needs the receiver's private key")
        return peer

    def _agree(self, alg: EcdhHkdfAlgorithm, peer: CoseKey, key_alg: CoseAlgorithm) -> bytes:
        if type(peer) is not type(self.key) or peer.crv != self.key.crv:
            raise InvalidKeyType("Local and peer keys must be on the same curve")
        return alg.derive_kek(
            peer.crv,
            private_key=self.key,
            public_key=peer,
            context=self.get_kdf_context(key_alg),
            salt=self.get_attr(SALT),
        )


class DirectKeyAgreement(_AgreementRecipient):
    """ECDH plus HKDF derives the CEK; no key wrap step."""

    kind = RecipientKind.DIRECT_KEY_AGREEMENT

    def _validate_decoded(self) -> None:
        alg = self._agreement_alg()
        if self.payload:
            raise MalformedMessage("Direct key agreement recipient must have an empty payload")
        if self._recipients:
            raise MalformedMessage("Direct key agreement recipient cannot have nested recipients")
        if alg.ephemeral and EPHEMERAL_KEY not in self.headers:
            raise MalformedMessage(f"{alg.fullname} recipient must carry an ephemeral key")

    def compute_cek(self, target_alg: Any, ops: str) -> SymmetricKey:
        """Run the key agreement and return the derived CEK.

        On ``"encrypt"`` an ES algorithm publishes an ephemeral key unless the
        header already carries one: the recipient's own key when set,
        otherwise a freshly generated one.
        """
        _check_ops(ops)
        alg = self._agreement_alg()
        target = ALGORITHMS.from_id(target_alg)
        peer = self._peer_for_encrypt(alg) if ops == "encrypt" else self._peer_for_decrypt(alg)
        logger.debug("Direct key agreement %s for %s (%s)", alg.fullname, target.fullname, ops)
        return _cek(self._agree(alg, peer, target), target, ops)

    def _payload_for(self, target_alg: CoseAlgorithm) -> Optional[bytes]:
        alg = self._agreement_alg()
        if alg.ephemeral and EPHEMERAL_KEY not in self.headers:
            self.compute_cek(target_alg, "encrypt")
        return b""


class KeyAgreementWithKeyWrap(_AgreementRecipient):
    """ECDH plus HKDF derives a KEK that wraps the CEK."""

    kind = RecipientKind.KEY_AGREEMENT_WITH_KEY_WRAP

    def _validate_decoded(self) -> None:
        self._agreement_alg()
        if self.payload:
            raise MalformedMessage("Key agreement with key wrap recipient must have an empty payload")

    def _wrap_alg(self, alg: EcdhHkdfAlgorithm) -> AesKwAlgorithm:
        if not isinstance(alg.key_wrap_func, AesKwAlgorithm):
            raise InvalidAlgorithm(f"{alg.fullname} does not pair with a key wrap algorithm")
        return alg.key_wrap_func

    def compute_cek(self, target_alg: Any, ops: str) -> Optional[SymmetricKey]:
        _check_ops(ops)
        target = ALGORITHMS.from_id(target_alg)
        if ops == "encrypt":
            if not self.payload:
                return None
            return _cek(self.payload, target, ops)
        return _cek(self.decrypt(target), target, ops)

    def encrypt(self, target_alg: Any) -> bytes:
        """Wrap the CEK held in the payload with a KEK from the key agreement.

        Raises:
            InvalidAlgorithm: If the recipient algorithm is not an ECDH key-wrap variant
            InvalidKey: If the receiver's static key is not set
        """
        alg = self._agreement_alg()
        wrap_alg = self._wrap_alg(alg)
        peer = self._peer_for_encrypt(alg)
        kek = SymmetricKey(self._agree(alg, peer, wrap_alg), {KEY_ALG: wrap_alg, KEY_OPS_PARAM: [WRAP]})
        logger.debug("Wrapping CEK with %s", alg.fullname)
        return wrap_alg.key_wrap(kek.k, self.payload or b"")

    def decrypt(self, target_alg: Any) -> bytes:
        """Unwrap the CEK with a KEK from the key agreement.

        Raises:
            InvalidMessage: If the peer key the algorithm needs is missing
        """
        alg = self._agreement_alg()
        wrap_alg = self._wrap_alg(alg)
        peer = self._peer_for_decrypt(alg)
        kek = SymmetricKey(
            self._agree(alg, peer, wrap_alg),
            {KEY_ALG: wrap_alg, KEY_OPS_PARAM: [DECRYPT, UNWRAP]},
        )
        kek.verify(SymmetricKey, wrap_alg, [UNWRAP])
        logger.debug("Unwrapping CEK with %s", alg.fullname)
        return wrap_alg.key_unwrap(kek.k, self.payload or b"")

    def _payload_for(self, target_alg: CoseAlgorithm) -> Optional[bytes]:
        return self.encrypt(target_alg)


class KeyWrap(CoseRecipient):
    """A pre-shared KEK (AES key wrap) or an RSA key (RSAES-OAEP) wraps the CEK.

    Without its own key, the KEK comes from the nested recipients.
    """

    kind = RecipientKind.KEY_WRAP

    def _validate_decoded(self) -> None:
        alg = self._recipient_alg()
        if not self.payload:
            raise MalformedMessage("Key wrap recipient must carry a wrapped key")
        if isinstance(alg, AesKwAlgorithm) and self.phdr:
            raise MalformedMessage("Protected header must be empty for AES key wrap")

    def get_kdf_context(self, algorithm: Any) -> KDFContext:
        raise CoseNotImplemented("Key wrap recipients do not derive keys")

    def _wrap_alg(self) -> Union[AesKwAlgorithm, RsaOaepAlgorithm]:
        alg = self._recipient_alg()
        if not isinstance(alg, (AesKwAlgorithm, RsaOaepAlgorithm)):
            raise InvalidAlgorithm(f"{alg.fullname} is not a key wrap algorithm")
        return alg

    def compute_cek(self, target_alg: Any, ops: str) -> Optional[SymmetricKey]:
        _check_ops(ops)
        target = ALGORITHMS.from_id(target_alg)
        if ops == "encrypt":
            if not self.payload:
                return None
            return _cek(self.payload, target, ops)
        return _cek(self.decrypt(target), target, ops)

    def _compute_kek(self, alg: AesKwAlgorithm, ops: str) -> SymmetricKey:
        if self.key is not None:
            wanted = [WRAP, ENCRYPT] if ops == "encrypt" else [UNWRAP, DECRYPT]
            self.key.verify(SymmetricKey, alg, wanted)
            return self.key
        if not self._recipients:
            raise InvalidKey("Key wrap recipient has neither a KEK nor nested recipients")
        verify_recipients(self._recipients)

        if ops == "encrypt":
            first = self._recipients[0]
            if first.kind in (RecipientKind.DIRECT_KEY_AGREEMENT, RecipientKind.DIRECT_ENCRYPTION):
                kek = first.compute_cek(alg, "encrypt")
                if kek is None:
                    raise InvalidKey("Nested direct recipient produced no KEK")
                return kek
            kek = SymmetricKey(secrets.token_bytes(alg.key_length), {KEY_ALG: alg, KEY_OPS_PARAM: [WRAP]})
            for child in self._recipients:
                child.payload = kek.k
            logger.debug("Distributing fresh %s KEK to %d nested recipients", alg.fullname, len(self._recipients))
            return kek

        for child in self._recipients:
            if child.key is not None:
                logger.debug("Recovering KEK through nested %s", type(child).__name__)
                return child.compute_cek(alg, "decrypt")
        raise InvalidKey("No nested recipient holds a key")

    def encrypt(self, target_alg: Any) -> bytes:
        """Wrap the CEK held in the payload.

        Raises:
            CoseValueError: If the CEK length is not valid for AES key wrap
        """
        alg = self._wrap_alg()
        cek = self.payload or b""
        if isinstance(alg, RsaOaepAlgorithm):
            if not isinstance(self.key, RSAKey):
                raise InvalidKeyType(f"{alg.fullname} requires an RSA key")
            return alg.key_wrap(self.key, cek)
        kek = self._compute_kek(alg, "encrypt")
        return alg.key_wrap(kek.k, cek)

    def decrypt(self, target_alg: Any) -> bytes:
        """Unwrap the CEK held in the payload."""
        alg = self._wrap_alg()
        wrapped = self.payload or b""
        if isinstance(alg, RsaOaepAlgorithm):
            if not isinstance(self.key, RSAKey):
                raise InvalidKeyType(f"{alg.fullname} requires an RSA key")
            return alg.key_unwrap(self.key, wrapped)
        kek = self._compute_kek(alg, "decrypt")
        return alg.key_unwrap(kek.k, wrapped)

    def _payload_for(self, target_alg: CoseAlgorithm) -> Optional[bytes]:
        return self.encrypt(target_alg)
