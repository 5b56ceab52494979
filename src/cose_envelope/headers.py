"""COSE header parameters (RFC 9052 section 3.1, RFC 9053 section 6, RFC 9360).

Each header attribute carries a value validator that runs whenever a value is
assigned to a header map or parsed from the wire. Validators either return the
normalized value (an algorithm descriptor for ``ALG``, a key object for
``EPHEMERAL_KEY``) or raise; they never coerce an invalid value.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from .algorithms import ALGORITHMS
from .attributes import AttributeRegistry, CoseAttribute
from .exceptions import (
    InvalidContentType,
    InvalidCriticalValue,
    InvalidHeader,
    InvalidKIDValue,
    UnknownAttribute,
)
from .keys import key_from


@dataclass(frozen=True, eq=False)
class HeaderAttribute(CoseAttribute):
    """A registered header parameter.

    ``local`` attributes are never serialized; they carry per-recipient
    inputs such as the static receiver key.
    """

    family: ClassVar[str] = "header"

    local: bool = False


def is_bstr(value: Any) -> bytes:
    if not isinstance(value, bytes):
        raise InvalidKIDValue("Value must be a byte string", type(value).__name__)
    return value


def crit_is_array(value: Any) -> list:
    if not isinstance(value, (list, tuple)) or len(value) < 1:
        raise InvalidCriticalValue("crit must be a non-empty array")
    labels = []
    for label in value:
        if isinstance(label, HeaderAttribute):
            label = label.identifier
        if isinstance(label, bool) or not isinstance(label, (int, str)):
            raise InvalidCriticalValue("crit entries must be integers or text strings", repr(label))
        labels.append(label)
    return labels


def content_type_is_uint_or_tstr(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidContentType("Content type must be an unsigned integer or text string", repr(value))
    if isinstance(value, int) and value < 0:
        raise InvalidContentType("Content type must be an unsigned integer or text string", str(value))
    return value


def parse_algorithm(value: Any) -> Any:
    return ALGORITHMS.from_id(value)


def parse_key(value: Any) -> Any:
    if not isinstance(value, Mapping) and not hasattr(value, "to_dict"):
        raise InvalidHeader("Expected a COSE_Key", type(value).__name__)
    return key_from(value)


def _bstr(value: Any) -> bytes:
    if not isinstance(value, bytes):
        raise InvalidHeader("Value must be a byte string", type(value).__name__)
    return value


def _bstr_or_int(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (bytes, int)):
        raise InvalidHeader("Value must be a byte string or integer", type(value).__name__)
    return value


def _bstr_or_list(value: Any) -> Any:
    if isinstance(value, bytes):
        return value
    if isinstance(value, (list, tuple)) and value and all(isinstance(v, bytes) for v in value):
        return list(value)
    raise InvalidHeader("Value must be a byte string or a non-empty array of byte strings")


def _x5t(value: Any) -> list:
    if not isinstance(value, (list, tuple)) or len(value) != 2 or not isinstance(value[1], bytes):
        raise InvalidHeader("x5t must be [hash-alg, bstr]")
    return [ALGORITHMS.from_id(value[0]), value[1]]


def _tstr(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidHeader("Value must be a text string", type(value).__name__)
    return value


HEADERS: AttributeRegistry[HeaderAttribute] = AttributeRegistry(HeaderAttribute, UnknownAttribute)
_reg = HEADERS.register

RESERVED = _reg(HeaderAttribute(0, "RESERVED"))
ALG = _reg(HeaderAttribute(1, "ALG", parse_algorithm))
CRITICAL = _reg(HeaderAttribute(2, "CRITICAL", crit_is_array))
CONTENT_TYPE = _reg(HeaderAttribute(3, "CONTENT_TYPE", content_type_is_uint_or_tstr))
KID = _reg(HeaderAttribute(4, "KID", is_bstr))
IV = _reg(HeaderAttribute(5, "IV", is_bstr))
PARTIAL_IV = _reg(HeaderAttribute(6, "PARTIAL_IV", is_bstr))
COUNTER_SIGN = _reg(HeaderAttribute(7, "COUNTER_SIGN"))
COUNTER_SIGN0 = _reg(HeaderAttribute(9, "COUNTER_SIGN0", is_bstr))
KID_CONTEXT = _reg(HeaderAttribute(10, "KID_CONTEXT", is_bstr))
X5_BAG = _reg(HeaderAttribute(32, "X5_BAG", _bstr_or_list))
X5_CHAIN = _reg(HeaderAttribute(33, "X5_CHAIN", _bstr_or_list))
X5_T = _reg(HeaderAttribute(34, "X5_T", _x5t))
X5_U = _reg(HeaderAttribute(35, "X5_U", _tstr))

# Key agreement parameters (RFC 9053, section 6.3 and 6.4)
EPHEMERAL_KEY = _reg(HeaderAttribute(-1, "EPHEMERAL_KEY", parse_key))
STATIC_KEY = _reg(HeaderAttribute(-2, "STATIC_KEY", parse_key))
STATIC_KEY_ID = _reg(HeaderAttribute(-3, "STATIC_KEY_ID", _bstr))
SALT = _reg(HeaderAttribute(-20, "SALT", _bstr))
PARTY_U_ID = _reg(HeaderAttribute(-21, "PARTY_U_ID", _bstr))
PARTY_U_NONCE = _reg(HeaderAttribute(-22, "PARTY_U_NONCE", _bstr_or_int))
PARTY_U_OTHER = _reg(HeaderAttribute(-23, "PARTY_U_OTHER", _bstr))
PARTY_V_ID = _reg(HeaderAttribute(-24, "PARTY_V_ID", _bstr))
PARTY_V_NONCE = _reg(HeaderAttribute(-25, "PARTY_V_NONCE", _bstr_or_int))
PARTY_V_OTHER = _reg(HeaderAttribute(-26, "PARTY_V_OTHER", _bstr))

# Local-only inputs to the KDF context
SUPP_PUB_OTHER = _reg(HeaderAttribute(-998, "SUPP_PUB_OTHER", _bstr, local=True))
SUPP_PRIV_OTHER = _reg(HeaderAttribute(-999, "SUPP_PRIV_OTHER", _bstr, local=True))

del _reg


def header_from(label: Any) -> HeaderAttribute:
    """Resolve an identifier, name or descriptor to a registered header attribute.

    Raises:
        UnknownAttribute: If the label is not registered
    """
    return HEADERS.from_id(label)
