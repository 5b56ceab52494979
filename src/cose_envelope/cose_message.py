"""Common base for COSE messages and recipient structures."""

import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Optional

from . import cbor_utils
from .exceptions import CoseNotImplemented, MalformedMessage
from .header_container import HeaderContainer
from .headers import ALG, HEADERS
from .keys import CoseKey

logger = logging.getLogger(__name__)


class LocalAttributes(dict):
    """Per-structure inputs that are never serialized.

    Keys are resolved through the header registry and values pass through the
    attribute's validator, so ``attrs[-998]`` and ``attrs[SUPP_PUB_OTHER]``
    address the same entry.
    """

    def __init__(self, values: Optional[Mapping] = None):
        super().__init__()
        for label, value in (values or {}).items():
            self[label] = value

    def __setitem__(self, label: Any, value: Any) -> None:
        attribute = HEADERS.from_id(label)
        super().__setitem__(attribute, attribute.parse_value(value))

    def __getitem__(self, label: Any) -> Any:
        return super().__getitem__(HEADERS.from_id(label))

    def __contains__(self, label: object) -> bool:
        attribute = HEADERS.get(label)
        return attribute is not None and super().__contains__(attribute)

    def get(self, label: Any, default: Any = None) -> Any:
        attribute = HEADERS.get(label)
        if attribute is None:
            return default
        return super().get(attribute, default)


class CoseBase:
    """Headers, payload, key and local attributes of a COSE structure.

    Args:
        phdr: Protected header values
        uhdr: Unprotected header values
        payload: Payload or ciphertext bytes
        key: Key used to process the structure
        external_aad: Externally supplied data bound into the integrity check
        local_attrs: Inputs that are never serialized (static peer key,
            supplementary KDF context fields)
        allow_unknown_attributes: Keep unregistered header labels
    """

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
        self.headers = HeaderContainer(phdr, uhdr, allow_unknown_attributes)
        self.payload = payload
        self.key = key
        self.external_aad = external_aad
        self.local_attrs = LocalAttributes(local_attrs)

    @property
    def phdr(self) -> Mapping:
        return self.headers.protected

    @property
    def uhdr(self) -> Mapping:
        return self.headers.unprotected

    @property
    def phdr_encoded(self) -> bytes:
        return self.headers.encode_protected()

    @property
    def uhdr_encoded(self) -> dict:
        return self.headers.encode_unprotected()

    def get_attr(self, label: Any, default: Any = None) -> Any:
        """Look up a header value, protected header first."""
        return self.headers.get(label, default)

    @property
    def alg(self) -> Any:
        return self.headers.get(ALG)

    def _decode_headers(self, phdr: Any, uhdr: Any) -> None:
        self.headers = HeaderContainer.decode(phdr, uhdr, self.headers.allow_unknown_attributes)


class CoseMessage(CoseBase):
    """Base class of the tagged COSE message types.

    Subclasses set ``cbor_tag`` and ``context`` and implement
    ``from_cose_obj`` and ``encode``.
    """

    cbor_tag: ClassVar[int] = 0
    context: ClassVar[str] = ""

    _message_types: ClassVar[dict[int, type]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__dict__.get("cbor_tag"):
            CoseMessage._message_types[cls.cbor_tag] = cls

    @classmethod
    def decode(cls, data: bytes, allow_unknown_attributes: Optional[bool] = None) -> "CoseMessage":
        """Decode a COSE message.

        On the base class the CBOR tag selects the message type; on a subclass
        the tag is optional but must match when present.

        Raises:
            MalformedMessage: If the data is not a COSE message of the expected type
        """
        try:
            decoded = cbor_utils.decode(data)
        except cbor_utils.CBORDecodeError as exc:
            raise MalformedMessage("Message is not valid CBOR") from exc

        if cbor_utils.is_tag(decoded):
            tag = cbor_utils.get_tag_number(decoded)
            message_cls = CoseMessage._message_types.get(tag)
            if message_cls is None:
                raise MalformedMessage("Unsupported COSE tag", str(tag))
            if cls is not CoseMessage and message_cls is not cls:
                raise MalformedMessage(f"Expected tag {cls.cbor_tag}, got {tag}")
            cose_obj = cbor_utils.get_tag_value(decoded)
        elif cls is CoseMessage:
            raise MalformedMessage("Untagged message; decode with a concrete message class")
        else:
            message_cls = cls
            cose_obj = decoded

        if not isinstance(cose_obj, list):
            raise MalformedMessage("COSE message must be an array")
        logger.debug("Decoding %s", message_cls.__name__)
        return message_cls.from_cose_obj(cose_obj, allow_unknown_attributes)

    @classmethod
    def from_cose_obj(cls, cose_obj: list, allow_unknown_attributes: Optional[bool] = None) -> "CoseMessage":
        raise CoseNotImplemented(f"{cls.__name__} cannot be decoded")

    def encode(self, tag: bool = True) -> bytes:
        raise CoseNotImplemented(f"{type(self).__name__} cannot be encoded")

    def _wrap(self, message: list, tag: bool) -> bytes:
        if tag:
            return cbor_utils.encode(cbor_utils.create_tag(self.cbor_tag, message))
        return cbor_utils.encode(message)

    def _structure(self, *fields: Any) -> bytes:
        # Enc_structure / MAC_structure / Sig_structure
        return cbor_utils.encode([self.context, self.phdr_encoded, self.external_aad, *fields])
