"""Registered COSE labels and the registries that resolve them.

Header parameters, algorithms, key types, key parameters, key operations and
curves are all identified on the wire by a small signed integer and by a
canonical upper-case name in code. This module provides the shared descriptor
base class and a lookup table that resolves either form to the single
registered descriptor.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Generic, Iterator, Optional, TypeVar, Union

from .exceptions import CoseError, UnknownAttribute

_SEPARATORS = str.maketrans({"-": "_", "+": "_", "/": "_"})
_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Normalize a label name for case-insensitive lookup.

    Whitespace is removed, letters are upper-cased and the separators
    ``-``, ``+`` and ``/`` become ``_``, so ``"ECDH-ES+HKDF-256"`` and
    ``"ecdh_es_hkdf_256"`` both become ``"ECDH_ES_HKDF_256"``.

    Args:
        name: The name to normalize

    Returns:
        The normalized name
    """
    return _WHITESPACE.sub("", name).upper().translate(_SEPARATORS)


@dataclass(frozen=True, eq=False)
class CoseAttribute:
    """A registered label: integer identifier plus canonical name.

    Equality, hashing and ordering use only the identifier, scoped to the
    label family, so a header ``ALG`` (1) never equals the key parameter
    ``KTY`` (1).
    """

    family: ClassVar[str] = "attribute"

    identifier: int
    fullname: str
    value_parser: Optional[Callable[[Any], Any]] = field(default=None, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CoseAttribute):
            return NotImplemented
        return self.family == other.family and self.identifier == other.identifier

    def __hash__(self) -> int:
        return hash((self.family, self.identifier))

    def __lt__(self, other: "CoseAttribute") -> bool:
        if not isinstance(other, CoseAttribute) or other.family != self.family:
            return NotImplemented
        return self.identifier < other.identifier

    def __int__(self) -> int:
        return self.identifier

    def __str__(self) -> str:
        return self.fullname

    def parse_value(self, value: Any) -> Any:
        """Run the value validator attached to this attribute, if any."""
        if self.value_parser is None:
            return value
        return self.value_parser(value)


A = TypeVar("A", bound=CoseAttribute)


class AttributeRegistry(Generic[A]):
    """Immutable-after-import table of descriptors for one label family.

    Args:
        kind: The descriptor base class accepted by this registry
        error: Exception raised when a lookup fails
    """

    def __init__(self, kind: type, error: type = UnknownAttribute):
        self.kind = kind
        self.error = error
        self._by_id: dict[int, A] = {}
        self._by_name: dict[str, A] = {}

    def register(self, attribute: A) -> A:
        """Add a descriptor to the registry and return it."""
        if not isinstance(attribute, self.kind):
            raise TypeError(f"{attribute!r} is not a {self.kind.__name__}")
        name = normalize_name(attribute.fullname)
        if attribute.identifier in self._by_id or name in self._by_name:
            raise CoseError(f"Duplicate {self.kind.family} registration", attribute.fullname)
        self._by_id[attribute.identifier] = attribute
        self._by_name[name] = attribute
        return attribute

    def from_id(self, label: Union[int, str, A]) -> A:
        """Resolve an identifier, a name or a descriptor to the registered descriptor.

        Args:
            label: Integer identifier, case-insensitive name or descriptor

        Returns:
            The registered descriptor

        Raises:
            The registry's error class when nothing matches
        """
        if isinstance(label, bool):
            raise self.error(f"Invalid {self.kind.family} label", repr(label))
        if isinstance(label, int):
            try:
                return self._by_id[label]
            except KeyError:
                raise self.error(f"Unknown {self.kind.family} identifier", str(label)) from None
        if isinstance(label, str):
            return self.from_name(label)
        if isinstance(label, self.kind):
            return self.from_id(label.identifier)
        raise self.error(f"Cannot resolve {self.kind.family} from {type(label).__name__}")

    def from_name(self, name: str) -> A:
        """Resolve a case-insensitive name to the registered descriptor."""
        try:
            return self._by_name[normalize_name(name)]
        except KeyError:
            raise self.error(f"Unknown {self.kind.family} name", name) from None

    def get(self, label: Any) -> Optional[A]:
        """Like :meth:`from_id` but return None instead of raising."""
        try:
            return self.from_id(label)
        except self.error:
            return None

    def __contains__(self, label: object) -> bool:
        return self.get(label) is not None

    def __iter__(self) -> Iterator[A]:
        return iter(sorted(self._by_id.values(), key=lambda a: a.identifier))

    def __len__(self) -> int:
        return len(self._by_id)
