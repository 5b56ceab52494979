"""COSE key objects.

A key is a parameter store keyed by key-parameter descriptors. Values pass
through the parameter's validator on assignment, structurally required
parameters cannot be deleted, and each key type converts to and from the
matching ``cryptography`` key objects.
"""

import secrets
from collections.abc import Iterator, Mapping
from typing import Any, ClassVar, Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa, x448, x25519

from . import cbor_utils
from .algorithms import ALGORITHMS, CoseAlgorithm
from .attributes import AttributeRegistry, CoseAttribute
from .curves import CURVES, ED448, ED25519, X448, X25519, CoseCurve, curve_for_cryptography
from .exceptions import (
    IllegalKeyOps,
    InvalidAlgorithm,
    InvalidKey,
    InvalidKeyFormat,
    InvalidKeyType,
    UnsupportedCurve,
)
from .keyparams import (
    ALG,
    BASE_IV,
    COMMON_PARAMS,
    DECRYPT,
    DERIVE_BITS,
    DERIVE_KEY,
    EC2_CRV,
    EC2_D,
    EC2_PARAMS,
    EC2_X,
    EC2_Y,
    ENCRYPT,
    KEY_OPS,
    KEY_OPS_PARAM,
    KEY_TYPES,
    KID,
    KTY,
    KTY_EC2,
    KTY_OKP,
    KTY_RSA,
    KTY_SYMMETRIC,
    MAC_CREATE,
    MAC_VERIFY,
    OKP_CRV,
    OKP_D,
    OKP_PARAMS,
    OKP_X,
    RSA_D,
    RSA_DP,
    RSA_DQ,
    RSA_E,
    RSA_N,
    RSA_P,
    RSA_PARAMS,
    RSA_Q,
    RSA_QINV,
    SIGN,
    SYMMETRIC_K,
    SYMMETRIC_PARAMS,
    UNWRAP,
    VERIFY,
    WRAP,
    CommonKeyParam,
    KeyOp,
    KeyParam,
    KeyType,
)

_OKP_PUBLIC = {
    X25519: x25519.X25519PublicKey,
    X448: x448.X448PublicKey,
    ED25519: ed25519.Ed25519PublicKey,
    ED448: ed448.Ed448PublicKey,
}


def _int_to_bytes(value: int, length: Optional[int] = None) -> bytes:
    if length is None:
        length = max(1, (value.bit_length() + 7) // 8)
    return value.to_bytes(length, byteorder="big")


def _bytes_to_int(value: bytes) -> int:
    return int.from_bytes(value, byteorder="big")


class CoseKey:
    """Base class for COSE keys.

    Subclasses set ``key_type``, the type-specific ``param_registry``, the
    parameters that may never be deleted and the key operations the key type
    can be used for.
    """

    key_type: ClassVar[KeyType]
    param_registry: ClassVar[AttributeRegistry]
    required_params: ClassVar[tuple] = ()
    allowed_ops: ClassVar[tuple] = ()
    private_params: ClassVar[tuple] = ()

    _registry: ClassVar[dict[int, type]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "key_type" in cls.__dict__:
            CoseKey._registry[cls.key_type.identifier] = cls

    def __init__(self, optional_params: Optional[Mapping] = None):
        self._store: dict[KeyParam, Any] = {KTY: self.key_type}
        for label, value in (optional_params or {}).items():
            self[label] = value

    # -- parameter store ---------------------------------------------------

    def _param(self, label: Union[int, str, KeyParam]) -> KeyParam:
        if isinstance(label, CommonKeyParam):
            return COMMON_PARAMS.from_id(label)
        if isinstance(label, KeyParam):
            return self.param_registry.from_id(label)
        if isinstance(label, int) and not isinstance(label, bool):
            registry = COMMON_PARAMS if label > 0 else self.param_registry
            return registry.from_id(label)
        if isinstance(label, str):
            found = COMMON_PARAMS.get(label)
            return found if found is not None else self.param_registry.from_id(label)
        raise InvalidKeyFormat("Invalid key parameter label", repr(label))

    def __getitem__(self, label: Union[int, str, KeyParam]) -> Any:
        return self._store[self._param(label)]

    def __setitem__(self, label: Union[int, str, KeyParam], value: Any) -> None:
        param = self._param(label)
        value = param.parse_value(value)
        if param == KTY and value != self.key_type:
            raise InvalidKeyType(f"Cannot change key type of a {self.key_type.fullname} key")
        if param == KEY_OPS_PARAM:
            for op in value:
                if op not in self.allowed_ops:
                    raise IllegalKeyOps(f"{op.fullname} is not allowed for {self.key_type.fullname} keys")
        self._store[param] = value

    def __delitem__(self, label: Union[int, str, KeyParam]) -> None:
        param = self._param(label)
        if param == KTY or param in self.required_params:
            raise InvalidKey(f"Cannot delete required parameter {param.fullname}")
        del self._store[param]

    def __contains__(self, label: object) -> bool:
        try:
            return self._param(label) in self._store  # type: ignore[arg-type]
        except InvalidKeyFormat:
            return False

    def __iter__(self) -> Iterator[KeyParam]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def get(self, label: Union[int, str, KeyParam], default: Any = None) -> Any:
        try:
            return self[label]
        except KeyError:
            return default

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CoseKey):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        kid = self.kid
        hidden = [p.fullname for p in self.private_params if p in self._store]
        return f"<{type(self).__name__} kid={kid!r} private={hidden}>"

    # -- common parameters -------------------------------------------------

    @property
    def kid(self) -> Optional[bytes]:
        return self._store.get(KID)

    @kid.setter
    def kid(self, value: bytes) -> None:
        self[KID] = value

    @property
    def alg(self) -> Optional[CoseAlgorithm]:
        return self._store.get(ALG)

    @alg.setter
    def alg(self, value: Any) -> None:
        self[ALG] = value

    @property
    def key_ops(self) -> list[KeyOp]:
        return self._store.get(KEY_OPS_PARAM, [])

    @key_ops.setter
    def key_ops(self, value: list) -> None:
        self[KEY_OPS_PARAM] = value

    @property
    def base_iv(self) -> bytes:
        return self._store.get(BASE_IV, b"")

    @base_iv.setter
    def base_iv(self, value: bytes) -> None:
        self[BASE_IV] = value

    # -- checks ------------------------------------------------------------

    def verify(self, key_type: type, algorithm: Any = None, ops: Optional[list] = None) -> None:
        """Check that this key may be used for an operation.

        Args:
            key_type: Required key class
            algorithm: Algorithm the key is about to be used with
            ops: Key operations the caller is about to perform; at least one
                must be permitted when the key restricts its operations

        Raises:
            InvalidKeyType: If the key is not an instance of ``key_type``
            InvalidAlgorithm: If the key is bound to a different algorithm
            IllegalKeyOps: If none of ``ops`` is permitted
        """
        if not isinstance(self, key_type):
            raise InvalidKeyType(f"Expected a {key_type.__name__}, got {type(self).__name__}")
        if algorithm is not None and self.alg is not None and self.alg != ALGORITHMS.from_id(algorithm):
            raise InvalidAlgorithm(f"Key is bound to {self.alg.fullname}", str(algorithm))
        if ops and self.key_ops:
            wanted = [op if isinstance(op, KeyOp) else KEY_OPS.from_id(op) for op in ops]
            if not any(op in self.key_ops for op in wanted):
                raise IllegalKeyOps(
                    "Key operations do not permit this use",
                    ", ".join(op.fullname for op in wanted),
                )

    def _validate(self) -> None:
        for param in self.required_params:
            if param not in self._store:
                raise InvalidKeyFormat(f"{type(self).__name__} is missing {param.fullname}")

    # -- serialization -----------------------------------------------------

    def to_dict(self) -> dict[int, Any]:
        """Return the key as a COSE_Key map with integer labels."""
        return {param.identifier: _encode_value(value) for param, value in self._store.items()}

    def encode(self) -> bytes:
        """Encode the key as a CBOR COSE_Key."""
        return cbor_utils.encode(self.to_dict())

    @classmethod
    def _from_params(cls, params: Mapping) -> "CoseKey":
        key = cls.__new__(cls)
        CoseKey.__init__(key, params)
        key._validate()
        return key

    @classmethod
    def from_dict(cls, cose_key: Mapping) -> "CoseKey":
        """Build a key of the right type from a COSE_Key map.

        Args:
            cose_key: Mapping with integer or name labels

        Returns:
            An instance of the subclass matching the ``kty`` entry

        Raises:
            InvalidKeyFormat: If ``kty`` is missing
            InvalidKeyType: If ``kty`` is unknown or does not match ``cls``
        """
        params = dict(cose_key)
        kty_label = next((label for label in (1, "KTY", "kty", KTY) if label in params), None)
        if kty_label is None:
            raise InvalidKeyFormat("COSE_Key is missing kty")
        kty = KEY_TYPES.from_id(params.pop(kty_label))
        key_cls = CoseKey._registry.get(kty.identifier)
        if key_cls is None:
            raise InvalidKeyType("Unsupported key type", kty.fullname)
        if cls is not CoseKey and not issubclass(key_cls, cls):
            raise InvalidKeyType(f"Expected {cls.__name__}, got {key_cls.__name__}")
        return key_cls._from_params(params)

    @classmethod
    def decode(cls, data: bytes) -> "CoseKey":
        """Decode a CBOR COSE_Key."""
        decoded = cbor_utils.decode(data)
        if not isinstance(decoded, dict):
            raise InvalidKeyFormat("COSE_Key must be a CBOR map")
        return cls.from_dict(decoded)

    def copy(self) -> "CoseKey":
        return type(self)._from_params({p: v for p, v in self._store.items() if p != KTY})

    def public_key(self) -> "CoseKey":
        """Return a copy of the key without its private components."""
        public = self.copy()
        for param in self.private_params:
            if param in public._store:
                del public._store[param]
        return public

    def to_cryptography_private(self) -> Any:
        raise InvalidKeyType(f"{type(self).__name__} has no asymmetric private key")

    def to_cryptography_public(self) -> Any:
        raise InvalidKeyType(f"{type(self).__name__} has no asymmetric public key")


def _encode_value(value: Any) -> Any:
    if isinstance(value, CoseAttribute):
        return value.identifier
    if isinstance(value, list):
        return [_encode_value(v) for v in value]
    return value


class SymmetricKey(CoseKey):
    """Symmetric key (kty 4)."""

    key_type = KTY_SYMMETRIC
    param_registry = SYMMETRIC_PARAMS
    required_params = (SYMMETRIC_K,)
    allowed_ops = (ENCRYPT, DECRYPT, WRAP, UNWRAP, MAC_CREATE, MAC_VERIFY, DERIVE_KEY, DERIVE_BITS)
    valid_lengths = (16, 24, 32, 48, 64)

    def __init__(self, k: bytes, optional_params: Optional[Mapping] = None):
        super().__init__(optional_params)
        self.k = k

    @property
    def k(self) -> bytes:
        return self._store[SYMMETRIC_K]

    @k.setter
    def k(self, value: bytes) -> None:
        self[SYMMETRIC_K] = value

    def __setitem__(self, label: Union[int, str, KeyParam], value: Any) -> None:
        if self._param(label) == SYMMETRIC_K and (
            not isinstance(value, bytes) or len(value) not in self.valid_lengths
        ):
            size = len(value) if isinstance(value, bytes) else type(value).__name__
            raise InvalidKeyFormat("Symmetric key length must be 16, 24, 32, 48 or 64 bytes", str(size))
        super().__setitem__(label, value)

    @classmethod
    def generate_key(cls, key_len: int, optional_params: Optional[Mapping] = None) -> "SymmetricKey":
        """Generate a random symmetric key of ``key_len`` bytes."""
        return cls(secrets.token_bytes(key_len), optional_params)


class EC2Key(CoseKey):
    """Elliptic curve key with x/y coordinates (kty 2)."""

    key_type = KTY_EC2
    param_registry = EC2_PARAMS
    required_params = (EC2_CRV,)
    allowed_ops = (SIGN, VERIFY, DERIVE_KEY, DERIVE_BITS)
    private_params = (EC2_D,)

    def __init__(
        self,
        crv: Any,
        x: Optional[bytes] = None,
        y: Optional[bytes] = None,
        d: Optional[bytes] = None,
        optional_params: Optional[Mapping] = None,
    ):
        super().__init__(optional_params)
        self[EC2_CRV] = crv
        if x is not None:
            self[EC2_X] = x
        if y is not None:
            self[EC2_Y] = y
        if d is not None:
            self[EC2_D] = d
        self._validate()

    def _validate(self) -> None:
        super()._validate()
        if self.crv.key_type != KTY_EC2.identifier:
            raise UnsupportedCurve(f"{self.crv.fullname} is not an EC2 curve")
        if EC2_D not in self._store and (EC2_X not in self._store or EC2_Y not in self._store):
            raise InvalidKeyFormat("EC2 key needs either d or both x and y")

    @property
    def crv(self) -> CoseCurve:
        return self._store[EC2_CRV]

    @property
    def x(self) -> bytes:
        return self._store.get(EC2_X, b"")

    @property
    def y(self) -> bytes:
        return self._store.get(EC2_Y, b"")

    @property
    def d(self) -> bytes:
        return self._store.get(EC2_D, b"")

    def to_cryptography_private(self) -> ec.EllipticCurvePrivateKey:
        if not self.d:
            raise InvalidKey("EC2 key has no private component")
        return ec.derive_private_key(_bytes_to_int(self.d), self.crv.curve_obj())

    def to_cryptography_public(self) -> ec.EllipticCurvePublicKey:
        if self.x and isinstance(self.y, bytes) and self.y:
            numbers = ec.EllipticCurvePublicNumbers(
                _bytes_to_int(self.x), _bytes_to_int(self.y), self.crv.curve_obj()
            )
            return numbers.public_key()
        return self.to_cryptography_private().public_key()

    @classmethod
    def from_cryptography_key(
        cls, key: Union[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey], optional_params: Optional[Mapping] = None
    ) -> "EC2Key":
        """Build an EC2 key from a cryptography EC key."""
        curve = curve_for_cryptography(key.curve)
        size = curve.size
        if isinstance(key, ec.EllipticCurvePrivateKey):
            d = _int_to_bytes(key.private_numbers().private_value, size)
            public_numbers = key.public_key().public_numbers()
        else:
            d = None
            public_numbers = key.public_numbers()
        return cls(
            crv=curve,
            x=_int_to_bytes(public_numbers.x, size),
            y=_int_to_bytes(public_numbers.y, size),
            d=d,
            optional_params=optional_params,
        )

    @classmethod
    def generate_key(cls, crv: Any, optional_params: Optional[Mapping] = None) -> "EC2Key":
        """Generate a fresh EC2 key pair on ``crv``."""
        curve = CURVES.from_id(crv)
        if curve.key_type != KTY_EC2.identifier:
            raise UnsupportedCurve(f"{curve.fullname} is not an EC2 curve")
        return cls.from_cryptography_key(ec.generate_private_key(curve.curve_obj()), optional_params)


class OKPKey(CoseKey):
    """Octet key pair for X25519, X448, Ed25519 and Ed448 (kty 1)."""

    key_type = KTY_OKP
    param_registry = OKP_PARAMS
    required_params = (OKP_CRV,)
    allowed_ops = (SIGN, VERIFY, DERIVE_KEY, DERIVE_BITS)
    private_params = (OKP_D,)

    def __init__(
        self,
        crv: Any,
        x: Optional[bytes] = None,
        d: Optional[bytes] = None,
        optional_params: Optional[Mapping] = None,
    ):
        super().__init__(optional_params)
        self[OKP_CRV] = crv
        if x is not None:
            self[OKP_X] = x
        if d is not None:
            self[OKP_D] = d
        self._validate()

    def _validate(self) -> None:
        super()._validate()
        if self.crv.key_type != KTY_OKP.identifier:
            raise UnsupportedCurve(f"{self.crv.fullname} is not an OKP curve")
        if OKP_X not in self._store and OKP_D not in self._store:
            raise InvalidKeyFormat("OKP key needs x or d")

    @property
    def crv(self) -> CoseCurve:
        return self._store[OKP_CRV]

    @property
    def x(self) -> bytes:
        return self._store.get(OKP_X, b"")

    @property
    def d(self) -> bytes:
        return self._store.get(OKP_D, b"")

    def to_cryptography_private(self) -> Any:
        if not self.d:
            raise InvalidKey("OKP key has no private component")
        return self.crv.curve_obj.from_private_bytes(self.d)

    def to_cryptography_public(self) -> Any:
        if self.x:
            return _OKP_PUBLIC[self.crv].from_public_bytes(self.x)
        return self.to_cryptography_private().public_key()

    @classmethod
    def from_cryptography_key(cls, key: Any, optional_params: Optional[Mapping] = None) -> "OKPKey":
        """Build an OKP key from a cryptography X25519/X448/Ed25519/Ed448 key."""
        curve = curve_for_cryptography(key)
        if hasattr(key, "private_bytes_raw"):
            return cls(
                crv=curve,
                x=key.public_key().public_bytes_raw(),
                d=key.private_bytes_raw(),
                optional_params=optional_params,
            )
        return cls(crv=curve, x=key.public_bytes_raw(), optional_params=optional_params)

    @classmethod
    def generate_key(cls, crv: Any, optional_params: Optional[Mapping] = None) -> "OKPKey":
        """Generate a fresh OKP key pair on ``crv``."""
        curve = CURVES.from_id(crv)
        if curve.key_type != KTY_OKP.identifier:
            raise UnsupportedCurve(f"{curve.fullname} is not an OKP curve")
        return cls.from_cryptography_key(curve.curve_obj.generate(), optional_params)


class RSAKey(CoseKey):
    """RSA key (kty 3)."""

    key_type = KTY_RSA
    param_registry = RSA_PARAMS
    required_params = (RSA_N, RSA_E)
    allowed_ops = (SIGN, VERIFY, ENCRYPT, DECRYPT, WRAP, UNWRAP)
    private_params = (RSA_D, RSA_P, RSA_Q, RSA_DP, RSA_DQ, RSA_QINV)

    def __init__(
        self,
        n: bytes,
        e: bytes,
        d: Optional[bytes] = None,
        p: Optional[bytes] = None,
        q: Optional[bytes] = None,
        dp: Optional[bytes] = None,
        dq: Optional[bytes] = None,
        qinv: Optional[bytes] = None,
        optional_params: Optional[Mapping] = None,
    ):
        super().__init__(optional_params)
        self[RSA_N] = n
        self[RSA_E] = e
        for param, value in ((RSA_D, d), (RSA_P, p), (RSA_Q, q), (RSA_DP, dp), (RSA_DQ, dq), (RSA_QINV, qinv)):
            if value is not None:
                self[param] = value

    def _param_int(self, param: KeyParam) -> int:
        try:
            return _bytes_to_int(self._store[param])
        except KeyError:
            raise InvalidKey(f"RSA key is missing {param.fullname}") from None

    def to_cryptography_private(self) -> rsa.RSAPrivateKey:
        public_numbers = rsa.RSAPublicNumbers(self._param_int(RSA_E), self._param_int(RSA_N))
        return rsa.RSAPrivateNumbers(
            p=self._param_int(RSA_P),
            q=self._param_int(RSA_Q),
            d=self._param_int(RSA_D),
            dmp1=self._param_int(RSA_DP),
            dmq1=self._param_int(RSA_DQ),
            iqmp=self._param_int(RSA_QINV),
            public_numbers=public_numbers,
        ).private_key()

    def to_cryptography_public(self) -> rsa.RSAPublicKey:
        return rsa.RSAPublicNumbers(self._param_int(RSA_E), self._param_int(RSA_N)).public_key()

    @classmethod
    def from_cryptography_key(
        cls, key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey], optional_params: Optional[Mapping] = None
    ) -> "RSAKey":
        """Build an RSA key from a cryptography RSA key."""
        if isinstance(key, rsa.RSAPrivateKey):
            priv = key.private_numbers()
            pub = priv.public_numbers
            return cls(
                n=_int_to_bytes(pub.n),
                e=_int_to_bytes(pub.e),
                d=_int_to_bytes(priv.d),
                p=_int_to_bytes(priv.p),
                q=_int_to_bytes(priv.q),
                dp=_int_to_bytes(priv.dmp1),
                dq=_int_to_bytes(priv.dmq1),
                qinv=_int_to_bytes(priv.iqmp),
                optional_params=optional_params,
            )
        pub = key.public_numbers()
        return cls(n=_int_to_bytes(pub.n), e=_int_to_bytes(pub.e), optional_params=optional_params)

    @classmethod
    def generate_key(cls, key_bits: int = 2048, optional_params: Optional[Mapping] = None) -> "RSAKey":
        """Generate a fresh RSA key pair."""
        return cls.from_cryptography_key(
            rsa.generate_private_key(public_exponent=65537, key_size=key_bits), optional_params
        )


def key_from(value: Any) -> CoseKey:
    """Accept a key object or a COSE_Key map and return a key object."""
    if isinstance(value, CoseKey):
        return value
    if isinstance(value, Mapping):
        return CoseKey.from_dict(value)
    raise InvalidKeyFormat("Expected a COSE key", type(value).__name__)
