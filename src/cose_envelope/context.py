"""COSE_KDF_Context construction (RFC 9053, section 5.2).

    COSE_KDF_Context = [
        AlgorithmID : int / tstr,
        PartyUInfo : [ identity, nonce, other ],
        PartyVInfo : [ identity, nonce, other ],
        SuppPubInfo : [ keyDataLength : uint, protected : bstr, ? other : bstr ],
        ? SuppPrivInfo : bstr
    ]

The encoded context is the ``info`` input of HKDF; field order and presence
must match exactly for two parties to derive the same key.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from . import cbor_utils
from .algorithms import CoseAlgorithm
from .exceptions import CoseValueError, InvalidAlgorithm
from .header_container import HeaderContainer
from .headers import (
    PARTY_U_ID,
    PARTY_U_NONCE,
    PARTY_U_OTHER,
    PARTY_V_ID,
    PARTY_V_NONCE,
    PARTY_V_OTHER,
    SUPP_PRIV_OTHER,
    SUPP_PUB_OTHER,
)

VALID_KEY_DATA_LENGTHS = (16, 24, 32, 48, 64)


@dataclass
class PartyInfo:
    """Identity, nonce and other information of one party. Each field may be None."""

    identity: Optional[bytes] = None
    nonce: Union[bytes, int, None] = None
    other: Optional[bytes] = None

    def encode(self) -> list:
        return [self.identity, self.nonce, self.other]


@dataclass
class SuppPubInfo:
    """Supplementary public information.

    Attributes:
        key_data_length: Length of the derived key in bytes; encoded in bits
        protected: Serialized protected header of the recipient
        other: Optional extra public context
    """

    key_data_length: int
    protected: bytes = b""
    other: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.key_data_length not in VALID_KEY_DATA_LENGTHS:
            raise CoseValueError("Not a valid key data length", str(self.key_data_length))

    def encode(self) -> list:
        info: list = [self.key_data_length * 8, self.protected]
        if self.other:
            info.append(self.other)
        return info


@dataclass
class KDFContext:
    """The full context bound into a derived key."""

    algorithm: CoseAlgorithm
    supp_pub_info: SuppPubInfo
    party_u_info: PartyInfo = field(default_factory=PartyInfo)
    party_v_info: PartyInfo = field(default_factory=PartyInfo)
    supp_priv_info: bytes = b""

    @property
    def key_data_length(self) -> int:
        return self.supp_pub_info.key_data_length

    def to_list(self) -> list:
        context = [
            self.algorithm.identifier,
            self.party_u_info.encode(),
            self.party_v_info.encode(),
            self.supp_pub_info.encode(),
        ]
        if self.supp_priv_info:
            context.append(self.supp_priv_info)
        return context

    def encode(self) -> bytes:
        """Encode the context as CBOR."""
        return cbor_utils.encode(self.to_list())


def _lookup(headers: HeaderContainer, local_attrs: Mapping, attribute: Any) -> Any:
    value = headers.get(attribute)
    if value is None:
        value = local_attrs.get(attribute)
    return value


def build_kdf_context(
    algorithm: CoseAlgorithm,
    headers: HeaderContainer,
    local_attrs: Optional[Mapping] = None,
) -> KDFContext:
    """Assemble the KDF context for a recipient.

    Party information is read from the recipient headers (protected first,
    then unprotected) and falls back to the local attributes. SuppPubInfo
    binds the recipient's serialized protected header and the algorithm's
    key length.

    Args:
        algorithm: Algorithm of the derived key (the content algorithm for
            direct key agreement, the key-wrap algorithm otherwise)
        headers: The recipient headers
        local_attrs: Recipient local attributes

    Returns:
        The assembled context

    Raises:
        InvalidAlgorithm: If the algorithm has no fixed key length
    """
    if algorithm.key_length is None:
        raise InvalidAlgorithm(f"{algorithm.fullname} has no fixed key length for key derivation")
    local_attrs = local_attrs or {}

    party_u = PartyInfo(
        identity=_lookup(headers, local_attrs, PARTY_U_ID),
        nonce=_lookup(headers, local_attrs, PARTY_U_NONCE),
        other=_lookup(headers, local_attrs, PARTY_U_OTHER),
    )
    party_v = PartyInfo(
        identity=_lookup(headers, local_attrs, PARTY_V_ID),
        nonce=_lookup(headers, local_attrs, PARTY_V_NONCE),
        other=_lookup(headers, local_attrs, PARTY_V_OTHER),
    )
    supp_pub = SuppPubInfo(
        key_data_length=algorithm.key_length,
        protected=headers.encode_protected(),
        other=local_attrs.get(SUPP_PUB_OTHER),
    )
    return KDFContext(
        algorithm=algorithm,
        supp_pub_info=supp_pub,
        party_u_info=party_u,
        party_v_info=party_v,
        supp_priv_info=local_attrs.get(SUPP_PRIV_OTHER, b""),
    )
