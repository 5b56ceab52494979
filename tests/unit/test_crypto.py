"""Interoperability of COSE keys and signatures with fido2."""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from fido2.cose import ES256 as Fido2ES256
from fido2.cose import EdDSA as Fido2EdDSA

from cose_envelope.algorithms import EDDSA, ES256
from cose_envelope.curves import P_256
from cose_envelope.keys import EC2Key, OKPKey, key_from


class TestFido2Keys:
    """COSE_Key maps produced by fido2 load as key objects and back."""

    @pytest.mark.unit
    def test_es256_map(self):
        """A fido2 ES256 public key is an EC2 key bound to ES256."""
        private = ec.generate_private_key(ec.SECP256R1())
        fido_key = Fido2ES256.from_cryptography_key(private.public_key())

        key = key_from(dict(fido_key))
        assert isinstance(key, EC2Key)
        assert key.crv is P_256
        assert key.alg is ES256
        assert key == EC2Key.from_cryptography_key(private.public_key(), {3: -7})

    @pytest.mark.unit
    def test_our_public_key_matches_fido2(self):
        """Our public COSE_Key map equals the one fido2 builds from the same key."""
        key = EC2Key.generate_key(P_256)
        fido_key = Fido2ES256.from_cryptography_key(key.to_cryptography_public())
        ours = key.public_key().to_dict()
        assert ours[-2] == fido_key[-2]
        assert ours[-3] == fido_key[-3]
        assert ours[1] == fido_key[1]


class TestFido2Signatures:
    """Signatures cross-verify between fido2 and cose-envelope."""

    @pytest.mark.unit
    def test_our_es256_verifies_in_fido2(self):
        """A raw r||s ES256 signature verifies in fido2 once DER encoded."""
        key = EC2Key.generate_key(P_256)
        signature = ES256.sign(key, b"message")
        der = encode_dss_signature(
            int.from_bytes(signature[:32], "big"),
            int.from_bytes(signature[32:], "big"),
        )
        fido_key = Fido2ES256.from_cryptography_key(key.to_cryptography_public())
        fido_key.verify(b"message", der)

    @pytest.mark.unit
    def test_fido2_eddsa_key_verifies_ours(self):
        """An Ed25519 key loaded from fido2 verifies an EdDSA signature."""
        private = ed25519.Ed25519PrivateKey.generate()
        fido_key = Fido2EdDSA.from_cryptography_key(private.public_key())

        key = key_from(dict(fido_key))
        assert isinstance(key, OKPKey)
        signature = private.sign(b"message")
        assert EDDSA.verify(key, b"message", signature)
        assert not EDDSA.verify(key, b"other", signature)
