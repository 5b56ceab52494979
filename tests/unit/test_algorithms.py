"""Unit tests for algorithm descriptors and the primitives behind them."""

import hashlib
import hmac

import pytest

from cose_envelope.algorithms import (
    A128GCM,
    A128KW,
    A192KW,
    A256GCM,
    A256KW,
    AES_CCM_16_64_128,
    DIRECT_HKDF_SHA_256,
    ECDH_ES_A128KW,
    ECDH_ES_HKDF_256,
    ECDH_SS_HKDF_256,
    EDDSA,
    ES256,
    ES384,
    HMAC_256,
    HMAC_256_64,
    PS256,
    RS256,
    RSAES_OAEP_SHA_256,
    SHA_256,
    SHA_256_64,
    algorithm_from,
)
from cose_envelope.context import KDFContext, SuppPubInfo
from cose_envelope.curves import ED25519, P_256, P_384, X25519
from cose_envelope.exceptions import CoseValueError, CryptoOperationError, InvalidKeyType, UnsupportedCurve
from cose_envelope.keys import EC2Key, OKPKey, RSAKey


@pytest.fixture(scope="module")
def rsa_key() -> RSAKey:
    """A 2048-bit RSA key pair."""
    return RSAKey.generate_key(2048)


class TestAead:
    """Test cases for AES-GCM and AES-CCM."""

    @pytest.mark.unit
    @pytest.mark.parametrize("alg,nonce_len", [(A128GCM, 12), (A256GCM, 12), (AES_CCM_16_64_128, 13)])
    def test_encrypt_decrypt(self, alg, nonce_len):
        """Ciphertext decrypts back to the plaintext with the same AAD."""
        key = bytes(alg.key_length)
        nonce = b"\x01" * nonce_len
        ciphertext = alg.encrypt(key, nonce, b"hello", b"aad")
        assert ciphertext != b"hello"
        assert alg.decrypt(key, nonce, ciphertext, b"aad") == b"hello"

    @pytest.mark.unit
    def test_tag_mismatch(self):
        """Changing the AAD makes decryption fail with a crypto error."""
        key = bytes(16)
        ciphertext = A128GCM.encrypt(key, bytes(12), b"hello", b"aad")
        with pytest.raises(CryptoOperationError):
            A128GCM.decrypt(key, bytes(12), ciphertext, b"other")

    @pytest.mark.unit
    def test_wrong_key_length(self):
        """Key length must match the algorithm."""
        with pytest.raises(CoseValueError):
            A128GCM.encrypt(bytes(32), bytes(12), b"", b"")

    @pytest.mark.unit
    def test_wrong_nonce_length(self):
        """Nonce length must match the algorithm."""
        with pytest.raises(ValueError):
            AES_CCM_16_64_128.encrypt(bytes(16), bytes(12), b"", b"")


class TestHmac:
    """Test cases for HMAC tags."""

    @pytest.mark.unit
    def test_matches_stdlib(self):
        """HMAC 256/256 matches hmac.new with SHA-256."""
        key = b"k" * 32
        expected = hmac.new(key, b"data", hashlib.sha256).digest()
        assert HMAC_256.compute_tag(key, b"data") == expected
        assert HMAC_256.verify_tag(key, b"data", expected)

    @pytest.mark.unit
    def test_truncated(self):
        """HMAC 256/64 keeps the first 8 bytes."""
        key = b"k" * 32
        tag = HMAC_256_64.compute_tag(key, b"data")
        assert len(tag) == 8
        assert HMAC_256_64.verify_tag(key, b"data", tag)
        assert not HMAC_256_64.verify_tag(key, b"other", tag)


class TestKeyWrap:
    """Test cases for AES key wrap preconditions."""

    @pytest.mark.unit
    @pytest.mark.parametrize("alg", [A128KW, A192KW, A256KW])
    def test_round_trip(self, alg):
        """Wrapping then unwrapping returns the key."""
        kek = bytes(alg.key_length)
        cek = b"\x42" * 16
        wrapped = alg.key_wrap(kek, cek)
        assert len(wrapped) == 24
        assert alg.key_unwrap(kek, wrapped) == cek

    @pytest.mark.unit
    @pytest.mark.parametrize("alg", [A128KW, A192KW, A256KW])
    def test_short_data(self, alg):
        """Data shorter than 16 bytes is rejected with a ValueError."""
        with pytest.raises(ValueError):
            alg.key_wrap(bytes(alg.key_length), b"\x00" * 8)

    @pytest.mark.unit
    @pytest.mark.parametrize("alg", [A128KW, A192KW, A256KW])
    def test_not_multiple_of_eight(self, alg):
        """Data whose length is not a multiple of 8 is rejected with a ValueError."""
        with pytest.raises(ValueError):
            alg.key_wrap(bytes(alg.key_length), b"\x00" * 20)

    @pytest.mark.unit
    def test_wrong_kek_length(self):
        """The KEK length must match the algorithm."""
        with pytest.raises(CoseValueError):
            A256KW.key_wrap(bytes(16), bytes(16))

    @pytest.mark.unit
    def test_unwrap_with_wrong_kek(self):
        """The integrity check fails under a different KEK."""
        wrapped = A128KW.key_wrap(bytes(16), bytes(16))
        with pytest.raises(CryptoOperationError):
            A128KW.key_unwrap(b"\x01" * 16, wrapped)

    @pytest.mark.unit
    def test_rsa_oaep(self, rsa_key):
        """RSAES-OAEP encrypts to the public key and decrypts with the private key."""
        wrapped = RSAES_OAEP_SHA_256.key_wrap(rsa_key.public_key(), b"\x07" * 16)
        assert RSAES_OAEP_SHA_256.key_unwrap(rsa_key, wrapped) == b"\x07" * 16


class TestKeyDerivation:
    """Test cases for HKDF-based derivation."""

    @pytest.mark.unit
    def test_direct_hkdf_length(self):
        """Direct HKDF produces the context's key length."""
        context = KDFContext(A128GCM, SuppPubInfo(16))
        key = DIRECT_HKDF_SHA_256.derive(b"secret", None, context)
        assert len(key) == 16
        assert key == DIRECT_HKDF_SHA_256.derive(b"secret", None, context)
        assert key != DIRECT_HKDF_SHA_256.derive(b"secret", b"salt", context)

    @pytest.mark.unit
    @pytest.mark.parametrize("curve", [P_256, P_384])
    def test_ecdh_both_sides_agree(self, curve):
        """Sender and receiver derive the same key on EC2 curves."""
        alice = EC2Key.generate_key(curve)
        bob = EC2Key.generate_key(curve)
        context = KDFContext(A128GCM, SuppPubInfo(16))
        k1 = ECDH_ES_HKDF_256.derive_kek(curve, alice, bob.public_key(), context)
        k2 = ECDH_ES_HKDF_256.derive_kek(curve, bob, alice.public_key(), context)
        assert k1 == k2
        assert len(k1) == 16

    @pytest.mark.unit
    def test_ecdh_x25519(self):
        """X25519 agreement works through OKP keys."""
        alice = OKPKey.generate_key(X25519)
        bob = OKPKey.generate_key(X25519)
        context = KDFContext(A128KW, SuppPubInfo(16))
        k1 = ECDH_ES_A128KW.derive_kek(X25519, alice, bob.public_key(), context)
        k2 = ECDH_ES_A128KW.derive_kek(X25519, bob, alice.public_key(), context)
        assert k1 == k2

    @pytest.mark.unit
    def test_signature_curve_rejected(self):
        """Ed25519 keys cannot be used for key agreement."""
        key = OKPKey.generate_key(ED25519)
        with pytest.raises(UnsupportedCurve):
            ECDH_SS_HKDF_256.derive_kek(ED25519, key, key, KDFContext(A128GCM, SuppPubInfo(16)))


class TestSignatures:
    """Test cases for signature algorithms."""

    @pytest.mark.unit
    @pytest.mark.parametrize("alg,curve,size", [(ES256, P_256, 64), (ES384, P_384, 96)])
    def test_ecdsa_raw_signature(self, alg, curve, size):
        """ECDSA signatures are raw r||s of twice the coordinate size."""
        key = EC2Key.generate_key(curve)
        signature = alg.sign(key, b"message")
        assert len(signature) == size
        assert alg.verify(key.public_key(), b"message", signature)
        assert not alg.verify(key.public_key(), b"tampered", signature)

    @pytest.mark.unit
    def test_ecdsa_wrong_length_signature(self):
        """A signature of the wrong length fails verification."""
        key = EC2Key.generate_key(P_256)
        assert not ES256.verify(key, b"message", b"\x00" * 10)

    @pytest.mark.unit
    def test_eddsa(self):
        """EdDSA signs and verifies with Ed25519 keys."""
        key = OKPKey.generate_key(ED25519)
        signature = EDDSA.sign(key, b"message")
        assert EDDSA.verify(key.public_key(), b"message", signature)
        assert not EDDSA.verify(key.public_key(), b"other", signature)

    @pytest.mark.unit
    @pytest.mark.parametrize("alg", [PS256, RS256])
    def test_rsa(self, alg, rsa_key):
        """RSA-PSS and RSA PKCS#1 v1.5 sign and verify."""
        signature = alg.sign(rsa_key, b"message")
        assert alg.verify(rsa_key.public_key(), b"message", signature)
        assert not alg.verify(rsa_key.public_key(), b"other", signature)

    @pytest.mark.unit
    def test_ecdsa_rejects_okp_key(self):
        """ECDSA needs an EC2 key."""
        with pytest.raises(InvalidKeyType):
            ES256.sign(OKPKey.generate_key(ED25519), b"message")


class TestHashes:
    """Test cases for hash algorithms."""

    @pytest.mark.unit
    def test_sha256(self):
        """SHA-256 matches hashlib."""
        assert SHA_256.compute_hash(b"abc") == hashlib.sha256(b"abc").digest()

    @pytest.mark.unit
    def test_truncated_sha256(self):
        """SHA-256/64 keeps the first 8 bytes."""
        assert SHA_256_64.compute_hash(b"abc") == hashlib.sha256(b"abc").digest()[:8]


class TestLookup:
    """Test cases for algorithm lookup."""

    @pytest.mark.unit
    def test_algorithm_from_forms(self):
        """Algorithms resolve from id, name and descriptor."""
        assert algorithm_from(-25) is ECDH_ES_HKDF_256
        assert algorithm_from("ECDH-ES+HKDF-256") is ECDH_ES_HKDF_256
        assert algorithm_from(ECDH_ES_HKDF_256) is ECDH_ES_HKDF_256

    @pytest.mark.unit
    def test_key_agreement_pairing(self):
        """ECDH key-wrap variants point at their AES key wrap algorithm."""
        assert ECDH_ES_A128KW.key_wrap_func is A128KW
        assert ECDH_ES_HKDF_256.ephemeral
        assert not ECDH_SS_HKDF_256.ephemeral
