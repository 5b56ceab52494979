"""Protected and unprotected header maps of a COSE structure."""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Optional, Union

from . import cbor_utils
from .attributes import CoseAttribute
from .config import get_settings
from .exceptions import InvalidHeader, MalformedMessage, UnknownAttribute
from .headers import HEADERS, HeaderAttribute
from .keys import CoseKey

logger = logging.getLogger(__name__)

Label = Union[int, str, HeaderAttribute]


def encode_value(value: Any) -> Any:
    """Convert a header value to its CBOR data model form."""
    if isinstance(value, CoseAttribute):
        return value.identifier
    if isinstance(value, CoseKey):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def _label_id(label: Any) -> Any:
    return label.identifier if isinstance(label, CoseAttribute) else label


def _sort_key(label: Any) -> tuple:
    # Integer labels first in ascending order, then text labels
    ident = _label_id(label)
    if isinstance(ident, int):
        return (0, ident, "")
    return (1, 0, ident)


def parse_header_map(header: Mapping, allow_unknown_attributes: Optional[bool] = None) -> dict:
    """Validate the labels and values of a decoded header map.

    Args:
        header: Decoded CBOR map
        allow_unknown_attributes: Keep unregistered labels verbatim instead of
            rejecting them; defaults to the configured setting

    Returns:
        A new dict keyed by header attributes (or raw labels when unknown
        labels are allowed), with every value passed through its validator

    Raises:
        UnknownAttribute: If a label is not registered and unknown labels are
            not allowed
        InvalidHeader: If a value fails validation
    """
    if allow_unknown_attributes is None:
        allow_unknown_attributes = get_settings().allow_unknown_attributes
    if not isinstance(header, Mapping):
        raise InvalidHeader("Header must be a map", type(header).__name__)
    parsed: dict = {}
    for label, value in header.items():
        attribute = HEADERS.get(label)
        if attribute is None:
            if not allow_unknown_attributes or isinstance(label, bool) or not isinstance(label, (int, str)):
                raise UnknownAttribute("Unknown header label", repr(label))
            parsed[label] = value
            continue
        if attribute.local:
            raise InvalidHeader(f"{attribute.fullname} cannot be carried in a header")
        parsed[attribute] = attribute.parse_value(value)
    return parsed


class HeaderContainer:
    """A protected and an unprotected header map.

    The protected map is serialized to a byte string on demand and the bytes
    are cached until the map changes. A container built from decoded bytes
    returns exactly those bytes again, so signatures and MACs computed by
    another implementation still verify.
    """

    def __init__(
        self,
        protected: Optional[Mapping] = None,
        unprotected: Optional[Mapping] = None,
        allow_unknown_attributes: Optional[bool] = None,
    ):
        if allow_unknown_attributes is None:
            allow_unknown_attributes = get_settings().allow_unknown_attributes
        self.allow_unknown_attributes = allow_unknown_attributes
        self._protected: dict = {}
        self._unprotected: dict = {}
        self._encoded_protected: Optional[bytes] = None
        if protected:
            self.update_protected(protected)
        if unprotected:
            self.update_unprotected(unprotected)

    @classmethod
    def decode(
        cls,
        protected: bytes,
        unprotected: Mapping,
        allow_unknown_attributes: Optional[bool] = None,
    ) -> "HeaderContainer":
        """Build a container from the first two elements of a COSE array.

        Raises:
            MalformedMessage: If the protected header is not a byte string
                holding a CBOR map
            InvalidHeader: If a label appears in both maps
        """
        container = cls(allow_unknown_attributes=allow_unknown_attributes)
        if not isinstance(protected, bytes):
            raise MalformedMessage("Protected header must be a byte string")
        if not isinstance(unprotected, Mapping):
            raise MalformedMessage("Unprotected header must be a map")
        container._protected = container.parse(protected)
        container._unprotected = parse_header_map(unprotected, container.allow_unknown_attributes)
        overlap = set(container._protected) & set(container._unprotected)
        if overlap:
            names = ", ".join(sorted(str(label) for label in overlap))
            raise InvalidHeader("Header labels present in both maps", names)
        container._encoded_protected = protected
        return container

    def parse(self, data: bytes) -> dict:
        """Decode and validate a serialized protected header."""
        if data == b"":
            return {}
        try:
            decoded = cbor_utils.decode(data)
        except cbor_utils.CBORDecodeError as exc:
            raise MalformedMessage("Protected header is not valid CBOR") from exc
        if not isinstance(decoded, Mapping):
            raise MalformedMessage("Protected header must encode a map")
        return parse_header_map(decoded, self.allow_unknown_attributes)

    # -- label handling ----------------------------------------------------

    def _attribute(self, label: Label) -> Any:
        attribute = HEADERS.get(label)
        if attribute is not None:
            return attribute
        if self.allow_unknown_attributes and isinstance(label, (int, str)) and not isinstance(label, bool):
            return label
        raise UnknownAttribute("Unknown header label", repr(label))

    def _checked(self, label: Label, value: Any, other: dict) -> tuple:
        attribute = self._attribute(label)
        if isinstance(attribute, HeaderAttribute):
            if attribute.local:
                raise InvalidHeader(f"{attribute.fullname} is a local attribute")
            value = attribute.parse_value(value)
        if attribute in other:
            raise InvalidHeader(f"{attribute} is already set in the other header map")
        return attribute, value

    # -- views -------------------------------------------------------------

    @property
    def protected(self) -> Mapping:
        return MappingProxyType(self._protected)

    @property
    def unprotected(self) -> Mapping:
        return MappingProxyType(self._unprotected)

    def get(self, label: Label, default: Any = None) -> Any:
        """Look up a header value, protected map first.

        Raises:
            InvalidHeader: If both maps carry the label with different values
        """
        attribute = self._attribute(label)
        in_protected = attribute in self._protected
        in_unprotected = attribute in self._unprotected
        if in_protected and in_unprotected and self._protected[attribute] != self._unprotected[attribute]:
            raise InvalidHeader(f"Conflicting values for {attribute} in protected and unprotected header")
        if in_protected:
            return self._protected[attribute]
        if in_unprotected:
            return self._unprotected[attribute]
        return default

    def __contains__(self, label: object) -> bool:
        attribute = HEADERS.get(label) or label
        return attribute in self._protected or attribute in self._unprotected

    # -- mutation ----------------------------------------------------------

    def set_protected(self, label: Label, value: Any) -> None:
        attribute, value = self._checked(label, value, self._unprotected)
        self._protected[attribute] = value
        self._encoded_protected = None

    def set_unprotected(self, label: Label, value: Any) -> None:
        attribute, value = self._checked(label, value, self._protected)
        self._unprotected[attribute] = value

    def update_protected(self, values: Mapping) -> None:
        for label, value in values.items():
            self.set_protected(label, value)

    def update_unprotected(self, values: Mapping) -> None:
        for label, value in values.items():
            self.set_unprotected(label, value)

    # -- serialization -----------------------------------------------------

    def protected_map(self) -> dict:
        """The protected header as a CBOR map in canonical label order."""
        return {
            _label_id(label): encode_value(self._protected[label])
            for label in sorted(self._protected, key=_sort_key)
        }

    def encode_protected(self) -> bytes:
        """Serialize the protected header.

        Returns:
            An empty byte string when the map is empty, otherwise the CBOR map
            with integer labels ascending, then text labels
        """
        if self._encoded_protected is None:
            self._encoded_protected = cbor_utils.encode(self.protected_map()) if self._protected else b""
        return self._encoded_protected

    def encode_unprotected(self) -> dict:
        """The unprotected header as a CBOR map."""
        return {
            _label_id(label): encode_value(self._unprotected[label])
            for label in sorted(self._unprotected, key=_sort_key)
        }

    def __repr__(self) -> str:
        prot = {str(k): v for k, v in self._protected.items()}
        unprot = {str(k): v for k, v in self._unprotected.items()}
        return f"<HeaderContainer protected={prot} unprotected={unprot}>"
