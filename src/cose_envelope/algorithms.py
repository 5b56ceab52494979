"""COSE algorithm registry and algorithm family behavior.

Each registered algorithm is a descriptor carrying its identifier, canonical
name and the family parameters (key length, hash, paired key-wrap algorithm).
The family classes call into ``cryptography`` for the actual primitive and
translate primitive failures into :class:`CryptoOperationError`.

Asymmetric operations take COSE key objects from :mod:`cose_envelope.keys`
and use their ``to_cryptography_private()`` / ``to_cryptography_public()``
accessors; symmetric operations take raw key bytes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import constant_time, hashes, hmac
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa, utils
from cryptography.hazmat.primitives.ciphers.aead import AESCCM, AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap, aes_key_wrap

from .attributes import AttributeRegistry, CoseAttribute
from .exceptions import (
    CoseNotImplemented,
    CoseValueError,
    CryptoOperationError,
    InvalidAlgorithm,
    InvalidKeyType,
    UnsupportedCurve,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CoseAlgorithm(CoseAttribute):
    """Base descriptor for every registered algorithm."""

    family: ClassVar[str] = "algorithm"

    # Key length in bytes, None when the algorithm has no fixed length
    key_length: Optional[int] = None
    hash_cls: Any = field(default=None, repr=False)


def _check_key_length(alg: CoseAlgorithm, key: bytes) -> None:
    if alg.key_length is not None and len(key) != alg.key_length:
        raise CoseValueError(
            f"{alg.fullname} requires a {alg.key_length}-byte key", f"got {len(key)} bytes"
        )


# ---------------------------------------------------------------------------
# Content encryption
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class AeadAlgorithm(CoseAlgorithm):
    """Base class for AEAD content-encryption algorithms."""

    nonce_length: int = 12
    tag_length: int = 16

    def _cipher(self, key: bytes) -> Any:
        raise CoseNotImplemented(f"{self.fullname} does not implement this operation")

    def encrypt(self, key: bytes, nonce: bytes, data: bytes, aad: bytes) -> bytes:
        """Encrypt and authenticate data.

        Args:
            key: Raw content-encryption key
            nonce: Nonce of ``nonce_length`` bytes
            data: Plaintext
            aad: Additional authenticated data (the Enc_structure)

        Returns:
            Ciphertext with the authentication tag appended
        """
        _check_key_length(self, key)
        if len(nonce) != self.nonce_length:
            raise CoseValueError(f"{self.fullname} requires a {self.nonce_length}-byte nonce")
        return self._cipher(key).encrypt(nonce, data, aad)

    def decrypt(self, key: bytes, nonce: bytes, ciphertext: bytes, aad: bytes) -> bytes:
        """Decrypt and verify data.

        Raises:
            CryptoOperationError: If the authentication tag does not verify
        """
        _check_key_length(self, key)
        if len(nonce) != self.nonce_length:
            raise CoseValueError(f"{self.fullname} requires a {self.nonce_length}-byte nonce")
        try:
            return self._cipher(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag as exc:
            raise CryptoOperationError("Decryption failed", self.fullname) from exc


@dataclass(frozen=True, eq=False)
class AesGcmAlgorithm(AeadAlgorithm):
    """AES-GCM with a 96-bit nonce and 128-bit tag."""

    def _cipher(self, key: bytes) -> AESGCM:
        return AESGCM(key)


@dataclass(frozen=True, eq=False)
class AesCcmAlgorithm(AeadAlgorithm):
    """AES-CCM with the nonce and tag lengths fixed by the identifier."""

    def _cipher(self, key: bytes) -> AESCCM:
        return AESCCM(key, tag_length=self.tag_length)


# ---------------------------------------------------------------------------
# MAC
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class HmacAlgorithm(CoseAlgorithm):
    """HMAC with an optionally truncated tag."""

    tag_length: int = 32

    def compute_tag(self, key: bytes, data: bytes) -> bytes:
        """Compute the (truncated) HMAC tag over data."""
        mac = hmac.HMAC(key, self.hash_cls())
        mac.update(data)
        return mac.finalize()[: self.tag_length]

    def verify_tag(self, key: bytes, data: bytes, tag: bytes) -> bool:
        """Check a tag in constant time."""
        mac = hmac.HMAC(key, self.hash_cls())
        mac.update(data)
        expected = mac.finalize()[: self.tag_length]
        return constant_time.bytes_eq(expected, tag)


# ---------------------------------------------------------------------------
# Key wrap and key transport
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class AesKwAlgorithm(CoseAlgorithm):
    """AES key wrap (RFC 3394)."""

    def _check(self, kek: bytes, data: bytes) -> None:
        _check_key_length(self, kek)
        if len(data) < 16:
            raise CoseValueError("Key wrap data must be at least 16 bytes", f"got {len(data)}")
        if len(data) % 8 != 0:
            raise CoseValueError("Key wrap data must be a multiple of 8 bytes", f"got {len(data)}")

    def key_wrap(self, kek: bytes, data: bytes) -> bytes:
        """Wrap a key with a key-encryption key.

        Raises:
            CoseValueError: If the data is shorter than 16 bytes, not a multiple
                of 8 bytes, or the KEK has the wrong length
        """
        self._check(kek, data)
        return aes_key_wrap(kek, data)

    def key_unwrap(self, kek: bytes, data: bytes) -> bytes:
        """Unwrap a wrapped key.

        Raises:
            CryptoOperationError: If the integrity check fails
        """
        self._check(kek, data)
        try:
            return aes_key_unwrap(kek, data)
        except InvalidUnwrap as exc:
            raise CryptoOperationError("Key unwrap failed", self.fullname) from exc


@dataclass(frozen=True, eq=False)
class RsaOaepAlgorithm(CoseAlgorithm):
    """RSAES-OAEP key transport."""

    def _padding(self) -> padding.OAEP:
        return padding.OAEP(mgf=padding.MGF1(self.hash_cls()), algorithm=self.hash_cls(), label=None)

    def key_wrap(self, key: Any, data: bytes) -> bytes:
        """Encrypt the CEK to an RSA public key."""
        return _rsa_public(key).encrypt(data, self._padding())

    def key_unwrap(self, key: Any, data: bytes) -> bytes:
        """Decrypt the CEK with an RSA private key."""
        try:
            return _rsa_private(key).decrypt(data, self._padding())
        except ValueError as exc:
            raise CryptoOperationError("RSA-OAEP decryption failed") from exc


# ---------------------------------------------------------------------------
# Direct and key agreement
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class DirectAlgorithm(CoseAlgorithm):
    """Direct use of a shared symmetric key as the CEK."""


@dataclass(frozen=True, eq=False)
class DirectHkdfAlgorithm(CoseAlgorithm):
    """Shared secret plus HKDF yields the CEK directly."""

    def derive(self, secret: bytes, salt: Optional[bytes], context: Any) -> bytes:
        """Derive key bytes from a shared secret.

        Args:
            secret: The pre-shared secret
            salt: Optional HKDF salt
            context: A KDF context exposing ``encode()`` and ``key_data_length``

        Returns:
            ``context.key_data_length`` bytes of key material
        """
        return HKDF(
            algorithm=self.hash_cls(),
            length=context.key_data_length,
            salt=salt,
            info=context.encode(),
        ).derive(secret)


@dataclass(frozen=True, eq=False)
class EcdhHkdfAlgorithm(CoseAlgorithm):
    """ECDH key agreement followed by HKDF.

    ``key_wrap_func`` is the paired AES key-wrap algorithm, or DIRECT for the
    variants whose HKDF output is the CEK itself. ``ephemeral`` separates the
    ES (ephemeral-static) from the SS (static-static) variants.
    """

    key_wrap_func: Optional[CoseAlgorithm] = None
    ephemeral: bool = True

    def derive_kek(
        self, curve: Any, private_key: Any, public_key: Any, context: Any, salt: Optional[bytes] = None
    ) -> bytes:
        """Run ECDH then HKDF over the encoded KDF context.

        Args:
            curve: The COSE curve both keys are on
            private_key: Local EC2 or OKP key holding the private component
            public_key: Peer EC2 or OKP key
            context: KDF context exposing ``encode()`` and ``key_data_length``
            salt: Optional HKDF salt

        Returns:
            Derived key bytes
        """
        if getattr(curve, "usage", "") == "signature":
            raise UnsupportedCurve(f"{curve.fullname} cannot be used for key agreement")
        priv = private_key.to_cryptography_private()
        pub = public_key.to_cryptography_public()
        try:
            if isinstance(priv, ec.EllipticCurvePrivateKey):
                shared = priv.exchange(ec.ECDH(), pub)
            else:
                shared = priv.exchange(pub)
        except (ValueError, TypeError) as exc:
            raise CryptoOperationError("Key agreement failed", self.fullname) from exc
        logger.debug("ECDH agreement on %s for %s", curve.fullname, self.fullname)
        return HKDF(
            algorithm=self.hash_cls(),
            length=context.key_data_length,
            salt=salt,
            info=context.encode(),
        ).derive(shared)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class SignatureAlgorithm(CoseAlgorithm):
    """Base class for signature algorithms."""

    def sign(self, key: Any, data: bytes) -> bytes:
        raise CoseNotImplemented(f"{self.fullname} does not implement this operation")

    def verify(self, key: Any, data: bytes, signature: bytes) -> bool:
        raise CoseNotImplemented(f"{self.fullname} does not implement this operation")


@dataclass(frozen=True, eq=False)
class EcdsaAlgorithm(SignatureAlgorithm):
    """ECDSA with COSE raw ``r || s`` signatures."""

    def sign(self, key: Any, data: bytes) -> bytes:
        priv = key.to_cryptography_private()
        if not isinstance(priv, ec.EllipticCurvePrivateKey):
            raise InvalidKeyType(f"{self.fullname} requires an EC2 key")
        signature_der = priv.sign(data, ec.ECDSA(self.hash_cls()))

        # Convert DER to raw (r||s) format for COSE
        size = (priv.curve.key_size + 7) // 8
        r, s = utils.decode_dss_signature(signature_der)
        return r.to_bytes(size, byteorder="big") + s.to_bytes(size, byteorder="big")

    def verify(self, key: Any, data: bytes, signature: bytes) -> bool:
        pub = key.to_cryptography_public()
        if not isinstance(pub, ec.EllipticCurvePublicKey):
            raise InvalidKeyType(f"{self.fullname} requires an EC2 key")
        size = (pub.curve.key_size + 7) // 8
        if len(signature) != 2 * size:
            return False
        r = int.from_bytes(signature[:size], byteorder="big")
        s = int.from_bytes(signature[size:], byteorder="big")
        try:
            pub.verify(utils.encode_dss_signature(r, s), data, ec.ECDSA(self.hash_cls()))
            return True
        except InvalidSignature:
            return False


@dataclass(frozen=True, eq=False)
class EdDsaAlgorithm(SignatureAlgorithm):
    """EdDSA over Ed25519 or Ed448."""

    def sign(self, key: Any, data: bytes) -> bytes:
        return key.to_cryptography_private().sign(data)

    def verify(self, key: Any, data: bytes, signature: bytes) -> bool:
        try:
            key.to_cryptography_public().verify(signature, data)
            return True
        except InvalidSignature:
            return False


@dataclass(frozen=True, eq=False)
class RsaSignatureAlgorithm(SignatureAlgorithm):
    """RSASSA-PSS or RSASSA-PKCS1-v1_5."""

    pss: bool = True

    def _padding(self) -> Any:
        if self.pss:
            return padding.PSS(mgf=padding.MGF1(self.hash_cls()), salt_length=self.hash_cls.digest_size)
        return padding.PKCS1v15()

    def sign(self, key: Any, data: bytes) -> bytes:
        return _rsa_private(key).sign(data, self._padding(), self.hash_cls())

    def verify(self, key: Any, data: bytes, signature: bytes) -> bool:
        try:
            _rsa_public(key).verify(signature, data, self._padding(), self.hash_cls())
            return True
        except InvalidSignature:
            return False


def _rsa_private(key: Any) -> Any:
    priv = key.to_cryptography_private()
    if not isinstance(priv, rsa.RSAPrivateKey):
        raise InvalidKeyType("RSA operation requires an RSA key")
    return priv


def _rsa_public(key: Any) -> Any:
    pub = key.to_cryptography_public()
    if not isinstance(pub, rsa.RSAPublicKey):
        raise InvalidKeyType("RSA operation requires an RSA key")
    return pub


# ---------------------------------------------------------------------------
# Hashes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class HashAlgorithm(CoseAlgorithm):
    """Hash function with optional output truncation."""

    digest_length: Optional[int] = None

    def compute_hash(self, data: bytes) -> bytes:
        if self.hash_cls in (hashes.SHAKE128, hashes.SHAKE256):
            h = hashes.Hash(self.hash_cls(digest_size=self.digest_length))
        else:
            h = hashes.Hash(self.hash_cls())
        h.update(data)
        digest = h.finalize()
        if self.digest_length is not None:
            return digest[: self.digest_length]
        return digest


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ALGORITHMS: AttributeRegistry[CoseAlgorithm] = AttributeRegistry(CoseAlgorithm, InvalidAlgorithm)
_reg = ALGORITHMS.register

# AES-GCM (RFC 9053, section 4.1)
A128GCM = _reg(AesGcmAlgorithm(1, "A128GCM", key_length=16))
A192GCM = _reg(AesGcmAlgorithm(2, "A192GCM", key_length=24))
A256GCM = _reg(AesGcmAlgorithm(3, "A256GCM", key_length=32))

# AES-CCM (RFC 9053, section 4.2): CCM-L-M-K, nonce = 15 - L/8 bytes
AES_CCM_16_64_128 = _reg(AesCcmAlgorithm(10, "AES_CCM_16_64_128", key_length=16, nonce_length=13, tag_length=8))
AES_CCM_16_64_256 = _reg(AesCcmAlgorithm(11, "AES_CCM_16_64_256", key_length=32, nonce_length=13, tag_length=8))
AES_CCM_64_64_128 = _reg(AesCcmAlgorithm(12, "AES_CCM_64_64_128", key_length=16, nonce_length=7, tag_length=8))
AES_CCM_64_64_256 = _reg(AesCcmAlgorithm(13, "AES_CCM_64_64_256", key_length=32, nonce_length=7, tag_length=8))
AES_CCM_16_128_128 = _reg(
    AesCcmAlgorithm(30, "AES_CCM_16_128_128", key_length=16, nonce_length=13, tag_length=16)
)
AES_CCM_16_128_256 = _reg(
    AesCcmAlgorithm(31, "AES_CCM_16_128_256", key_length=32, nonce_length=13, tag_length=16)
)
AES_CCM_64_128_128 = _reg(AesCcmAlgorithm(32, "AES_CCM_64_128_128", key_length=16, nonce_length=7, tag_length=16))
AES_CCM_64_128_256 = _reg(AesCcmAlgorithm(33, "AES_CCM_64_128_256", key_length=32, nonce_length=7, tag_length=16))

# HMAC (RFC 9053, section 3.1)
HMAC_256_64 = _reg(HmacAlgorithm(4, "HMAC_256_64", key_length=32, hash_cls=hashes.SHA256, tag_length=8))
HMAC_256 = _reg(HmacAlgorithm(5, "HMAC_256", key_length=32, hash_cls=hashes.SHA256, tag_length=32))
HMAC_384 = _reg(HmacAlgorithm(6, "HMAC_384", key_length=48, hash_cls=hashes.SHA384, tag_length=48))
HMAC_512 = _reg(HmacAlgorithm(7, "HMAC_512", key_length=64, hash_cls=hashes.SHA512, tag_length=64))

# AES key wrap (RFC 9053, section 6.2.1)
A128KW = _reg(AesKwAlgorithm(-3, "A128KW", key_length=16))
A192KW = _reg(AesKwAlgorithm(-4, "A192KW", key_length=24))
A256KW = _reg(AesKwAlgorithm(-5, "A256KW", key_length=32))

# Direct (RFC 9053, sections 6.1 and 6.3)
DIRECT = _reg(DirectAlgorithm(-6, "DIRECT"))
DIRECT_HKDF_SHA_256 = _reg(DirectHkdfAlgorithm(-10, "DIRECT_HKDF_SHA_256", hash_cls=hashes.SHA256))
DIRECT_HKDF_SHA_512 = _reg(DirectHkdfAlgorithm(-11, "DIRECT_HKDF_SHA_512", hash_cls=hashes.SHA512))

# ECDH (RFC 9053, section 6.3.1 and 6.4)
ECDH_ES_HKDF_256 = _reg(EcdhHkdfAlgorithm(-25, "ECDH_ES_HKDF_256", hash_cls=hashes.SHA256, key_wrap_func=DIRECT))
ECDH_ES_HKDF_512 = _reg(EcdhHkdfAlgorithm(-26, "ECDH_ES_HKDF_512", hash_cls=hashes.SHA512, key_wrap_func=DIRECT))
ECDH_SS_HKDF_256 = _reg(
    EcdhHkdfAlgorithm(-27, "ECDH_SS_HKDF_256", hash_cls=hashes.SHA256, key_wrap_func=DIRECT, ephemeral=False)
)
ECDH_SS_HKDF_512 = _reg(
    EcdhHkdfAlgorithm(-28, "ECDH_SS_HKDF_512", hash_cls=hashes.SHA512, key_wrap_func=DIRECT, ephemeral=False)
)
ECDH_ES_A128KW = _reg(EcdhHkdfAlgorithm(-29, "ECDH_ES_A128KW", hash_cls=hashes.SHA256, key_wrap_func=A128KW))
ECDH_ES_A192KW = _reg(EcdhHkdfAlgorithm(-30, "ECDH_ES_A192KW", hash_cls=hashes.SHA256, key_wrap_func=A192KW))
ECDH_ES_A256KW = _reg(EcdhHkdfAlgorithm(-31, "ECDH_ES_A256KW", hash_cls=hashes.SHA256, key_wrap_func=A256KW))
ECDH_SS_A128KW = _reg(
    EcdhHkdfAlgorithm(-32, "ECDH_SS_A128KW", hash_cls=hashes.SHA256, key_wrap_func=A128KW, ephemeral=False)
)
ECDH_SS_A192KW = _reg(
    EcdhHkdfAlgorithm(-33, "ECDH_SS_A192KW", hash_cls=hashes.SHA256, key_wrap_func=A192KW, ephemeral=False)
)
ECDH_SS_A256KW = _reg(
    EcdhHkdfAlgorithm(-34, "ECDH_SS_A256KW", hash_cls=hashes.SHA256, key_wrap_func=A256KW, ephemeral=False)
)

# Signatures (RFC 9053 section 2, RFC 8230, RFC 8812)
ES256 = _reg(EcdsaAlgorithm(-7, "ES256", hash_cls=hashes.SHA256))
ES384 = _reg(EcdsaAlgorithm(-35, "ES384", hash_cls=hashes.SHA384))
ES512 = _reg(EcdsaAlgorithm(-36, "ES512", hash_cls=hashes.SHA512))
EDDSA = _reg(EdDsaAlgorithm(-8, "EDDSA"))
PS256 = _reg(RsaSignatureAlgorithm(-37, "PS256", hash_cls=hashes.SHA256))
PS384 = _reg(RsaSignatureAlgorithm(-38, "PS384", hash_cls=hashes.SHA384))
PS512 = _reg(RsaSignatureAlgorithm(-39, "PS512", hash_cls=hashes.SHA512))
RS256 = _reg(RsaSignatureAlgorithm(-257, "RS256", hash_cls=hashes.SHA256, pss=False))
RS384 = _reg(RsaSignatureAlgorithm(-258, "RS384", hash_cls=hashes.SHA384, pss=False))
RS512 = _reg(RsaSignatureAlgorithm(-259, "RS512", hash_cls=hashes.SHA512, pss=False))
RS1 = _reg(RsaSignatureAlgorithm(-65535, "RS1", hash_cls=hashes.SHA1, pss=False))

# RSAES-OAEP (RFC 8230, section 3)
RSAES_OAEP_SHA_1 = _reg(RsaOaepAlgorithm(-40, "RSAES_OAEP_SHA_1", hash_cls=hashes.SHA1))
RSAES_OAEP_SHA_256 = _reg(RsaOaepAlgorithm(-41, "RSAES_OAEP_SHA_256", hash_cls=hashes.SHA256))
RSAES_OAEP_SHA_512 = _reg(RsaOaepAlgorithm(-42, "RSAES_OAEP_SHA_512", hash_cls=hashes.SHA512))

# Hashes (RFC 9054)
SHA_1 = _reg(HashAlgorithm(-14, "SHA_1", hash_cls=hashes.SHA1))
SHA_256_64 = _reg(HashAlgorithm(-15, "SHA_256_64", hash_cls=hashes.SHA256, digest_length=8))
SHA_256 = _reg(HashAlgorithm(-16, "SHA_256", hash_cls=hashes.SHA256))
SHA_512_256 = _reg(HashAlgorithm(-17, "SHA_512_256", hash_cls=hashes.SHA512_256))
SHAKE128 = _reg(HashAlgorithm(-18, "SHAKE128", hash_cls=hashes.SHAKE128, digest_length=32))
SHA_384 = _reg(HashAlgorithm(-43, "SHA_384", hash_cls=hashes.SHA384))
SHA_512 = _reg(HashAlgorithm(-44, "SHA_512", hash_cls=hashes.SHA512))
SHAKE256 = _reg(HashAlgorithm(-45, "SHAKE256", hash_cls=hashes.SHAKE256, digest_length=64))

del _reg


def algorithm_from(label: Any) -> CoseAlgorithm:
    """Resolve an identifier, name or descriptor to a registered algorithm.

    Raises:
        InvalidAlgorithm: If the algorithm is not registered
    """
    return ALGORITHMS.from_id(label)
