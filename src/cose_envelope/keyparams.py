"""COSE key types, key operations and key parameters (RFC 9052 section 7, RFC 9053 section 7)."""

from dataclasses import dataclass
from typing import Any, ClassVar

from .algorithms import ALGORITHMS
from .attributes import AttributeRegistry, CoseAttribute
from .curves import CURVES
from .exceptions import IllegalKeyOps, InvalidKeyFormat, InvalidKeyType


@dataclass(frozen=True, eq=False)
class KeyType(CoseAttribute):
    family: ClassVar[str] = "key type"


KEY_TYPES: AttributeRegistry[KeyType] = AttributeRegistry(KeyType, InvalidKeyType)

KTY_OKP = KEY_TYPES.register(KeyType(1, "OKP"))
KTY_EC2 = KEY_TYPES.register(KeyType(2, "EC2"))
KTY_RSA = KEY_TYPES.register(KeyType(3, "RSA"))
KTY_SYMMETRIC = KEY_TYPES.register(KeyType(4, "SYMMETRIC"))


@dataclass(frozen=True, eq=False)
class KeyOp(CoseAttribute):
    family: ClassVar[str] = "key operation"


KEY_OPS: AttributeRegistry[KeyOp] = AttributeRegistry(KeyOp, IllegalKeyOps)

SIGN = KEY_OPS.register(KeyOp(1, "SIGN"))
VERIFY = KEY_OPS.register(KeyOp(2, "VERIFY"))
ENCRYPT = KEY_OPS.register(KeyOp(3, "ENCRYPT"))
DECRYPT = KEY_OPS.register(KeyOp(4, "DECRYPT"))
WRAP = KEY_OPS.register(KeyOp(5, "WRAP"))
UNWRAP = KEY_OPS.register(KeyOp(6, "UNWRAP"))
DERIVE_KEY = KEY_OPS.register(KeyOp(7, "DERIVE_KEY"))
DERIVE_BITS = KEY_OPS.register(KeyOp(8, "DERIVE_BITS"))
MAC_CREATE = KEY_OPS.register(KeyOp(9, "MAC_CREATE"))
MAC_VERIFY = KEY_OPS.register(KeyOp(10, "MAC_VERIFY"))


def _bytes(value: Any) -> bytes:
    if not isinstance(value, bytes):
        raise InvalidKeyFormat("Key parameter must be a byte string", type(value).__name__)
    return value


def _key_type(value: Any) -> KeyType:
    return KEY_TYPES.from_id(value)


def _algorithm(value: Any) -> Any:
    return ALGORITHMS.from_id(value)


def _key_ops(value: Any) -> list:
    if not isinstance(value, (list, tuple)):
        raise IllegalKeyOps("key_ops must be a list")
    return [KEY_OPS.from_id(op) for op in value]


def _curve(value: Any) -> Any:
    return CURVES.from_id(value)


@dataclass(frozen=True, eq=False)
class KeyParam(CoseAttribute):
    """A key parameter label.

    Parameters of different key types share identifiers (``-1`` is ``crv``
    for EC2 and ``n`` for RSA), so each key type owns its own registry and
    ``family`` is set per key type.
    """

    family: ClassVar[str] = "key parameter"


@dataclass(frozen=True, eq=False)
class CommonKeyParam(KeyParam):
    family: ClassVar[str] = "common key parameter"


@dataclass(frozen=True, eq=False)
class EC2KeyParam(KeyParam):
    family: ClassVar[str] = "EC2 key parameter"


@dataclass(frozen=True, eq=False)
class OKPKeyParam(KeyParam):
    family: ClassVar[str] = "OKP key parameter"


@dataclass(frozen=True, eq=False)
class RSAKeyParam(KeyParam):
    family: ClassVar[str] = "RSA key parameter"


@dataclass(frozen=True, eq=False)
class SymmetricKeyParam(KeyParam):
    family: ClassVar[str] = "symmetric key parameter"


COMMON_PARAMS: AttributeRegistry[KeyParam] = AttributeRegistry(CommonKeyParam, InvalidKeyFormat)
EC2_PARAMS: AttributeRegistry[KeyParam] = AttributeRegistry(EC2KeyParam, InvalidKeyFormat)
OKP_PARAMS: AttributeRegistry[KeyParam] = AttributeRegistry(OKPKeyParam, InvalidKeyFormat)
RSA_PARAMS: AttributeRegistry[KeyParam] = AttributeRegistry(RSAKeyParam, InvalidKeyFormat)
SYMMETRIC_PARAMS: AttributeRegistry[KeyParam] = AttributeRegistry(SymmetricKeyParam, InvalidKeyFormat)

# Common parameters
KTY = COMMON_PARAMS.register(CommonKeyParam(1, "KTY", _key_type))
KID = COMMON_PARAMS.register(CommonKeyParam(2, "KID", _bytes))
ALG = COMMON_PARAMS.register(CommonKeyParam(3, "ALG", _algorithm))
KEY_OPS_PARAM = COMMON_PARAMS.register(CommonKeyParam(4, "KEY_OPS", _key_ops))
BASE_IV = COMMON_PARAMS.register(CommonKeyParam(5, "BASE_IV", _bytes))

# EC2
EC2_CRV = EC2_PARAMS.register(EC2KeyParam(-1, "CRV", _curve))
EC2_X = EC2_PARAMS.register(EC2KeyParam(-2, "X", _bytes))
EC2_Y = EC2_PARAMS.register(EC2KeyParam(-3, "Y"))
EC2_D = EC2_PARAMS.register(EC2KeyParam(-4, "D", _bytes))

# OKP
OKP_CRV = OKP_PARAMS.register(OKPKeyParam(-1, "CRV", _curve))
OKP_X = OKP_PARAMS.register(OKPKeyParam(-2, "X", _bytes))
OKP_D = OKP_PARAMS.register(OKPKeyParam(-4, "D", _bytes))

# RSA
RSA_N = RSA_PARAMS.register(RSAKeyParam(-1, "N", _bytes))
RSA_E = RSA_PARAMS.register(RSAKeyParam(-2, "E", _bytes))
RSA_D = RSA_PARAMS.register(RSAKeyParam(-3, "D", _bytes))
RSA_P = RSA_PARAMS.register(RSAKeyParam(-4, "P", _bytes))
RSA_Q = RSA_PARAMS.register(RSAKeyParam(-5, "Q", _bytes))
RSA_DP = RSA_PARAMS.register(RSAKeyParam(-6, "DP", _bytes))
RSA_DQ = RSA_PARAMS.register(RSAKeyParam(-7, "DQ", _bytes))
RSA_QINV = RSA_PARAMS.register(RSAKeyParam(-8, "QINV", _bytes))
RSA_OTHER = RSA_PARAMS.register(RSAKeyParam(-9, "OTHER"))
RSA_R_I = RSA_PARAMS.register(RSAKeyParam(-10, "R_I", _bytes))
RSA_D_I = RSA_PARAMS.register(RSAKeyParam(-11, "D_I", _bytes))
RSA_T_I = RSA_PARAMS.register(RSAKeyParam(-12, "T_I", _bytes))

# Symmetric
SYMMETRIC_K = SYMMETRIC_PARAMS.register(SymmetricKeyParam(-1, "K", _bytes))
