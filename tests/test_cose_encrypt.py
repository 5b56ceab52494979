"""Tests for COSE_Encrypt0 and COSE_Encrypt messages."""

import cbor2
import pytest

from cose_envelope import (
    CoseMessage,
    CoseValueError,
    CryptoOperationError,
    DirectEncryption,
    DirectKeyAgreement,
    Enc0Message,
    EncMessage,
    InvalidAlgorithm,
    InvalidKey,
    InvalidMessage,
    InvalidRecipientConfiguration,
    KeyAgreementWithKeyWrap,
    KeyWrap,
    MalformedMessage,
    RSAKey,
    SymmetricKey,
)
from cose_envelope.algorithms import (
    A128GCM,
    A128KW,
    A256GCM,
    A256KW,
    AES_CCM_16_64_128,
    DIRECT,
    ECDH_ES_A128KW,
    ECDH_ES_HKDF_256,
    ECDH_SS_A128KW,
    HMAC_256,
    RSAES_OAEP_SHA_256,
)
from cose_envelope.headers import ALG, EPHEMERAL_KEY, IV, KID, PARTIAL_IV, STATIC_KEY
from cose_envelope.keyparams import BASE_IV

PLAINTEXT = b"This is the content."


class TestEnc0Message:
    """Tests for single-recipient encryption under a shared key."""

    @pytest.mark.integration
    @pytest.mark.parametrize("alg,iv_len", [(A128GCM, 12), (AES_CCM_16_64_128, 13)])
    def test_encrypt_decode_decrypt(self, alg, iv_len) -> None:
        """Test a full encode, decode and decrypt cycle."""
        key = SymmetricKey(bytes(range(16)))
        msg = Enc0Message(phdr={ALG: alg}, uhdr={IV: b"\x02" * iv_len}, payload=PLAINTEXT, key=key)

        encoded = msg.encode()
        assert cbor2.loads(encoded).tag == 16, "Encrypt0 messages carry tag 16"

        decoded = CoseMessage.decode(encoded)
        assert isinstance(decoded, Enc0Message)
        assert decoded.payload != PLAINTEXT, "Decoded payload is the ciphertext"
        decoded.key = key
        assert decoded.decrypt() == PLAINTEXT

    @pytest.mark.integration
    def test_partial_iv_with_base_iv(self) -> None:
        """Test that a partial IV is folded into the key's base IV."""
        key = SymmetricKey(bytes(16), {BASE_IV: b"\x89\xf5\x2f\x65\xa1\xc5\x80\x93\x3b\x52\x61\xa7"})
        msg = Enc0Message(phdr={ALG: A128GCM}, uhdr={PARTIAL_IV: b"\x61\xa7"}, payload=PLAINTEXT, key=key)
        encoded = msg.encode()

        # Same nonce spelled out as a full IV
        full_iv = b"\x89\xf5\x2f\x65\xa1\xc5\x80\x93\x3b\x52\x00\x00"
        reference = Enc0Message(phdr={ALG: A128GCM}, uhdr={IV: full_iv}, payload=PLAINTEXT, key=key)
        assert cbor2.loads(encoded).value[2] == reference.encrypt()

        decoded = Enc0Message.decode(encoded)
        decoded.key = key
        assert decoded.decrypt() == PLAINTEXT

    @pytest.mark.integration
    def test_partial_iv_without_base_iv(self) -> None:
        """Test that a partial IV needs a key with a base IV."""
        msg = Enc0Message(
            phdr={ALG: A128GCM}, uhdr={PARTIAL_IV: b"\x01"}, payload=PLAINTEXT, key=SymmetricKey(bytes(16))
        )
        with pytest.raises(InvalidKey):
            msg.encrypt()

    @pytest.mark.integration
    def test_missing_nonce(self) -> None:
        """Test that a message without IV or partial IV cannot be encrypted."""
        msg = Enc0Message(phdr={ALG: A128GCM}, payload=PLAINTEXT, key=SymmetricKey(bytes(16)))
        with pytest.raises(InvalidMessage):
            msg.encrypt()

    @pytest.mark.integration
    def test_external_aad_is_bound(self) -> None:
        """Test that decryption fails when the external AAD differs."""
        key = SymmetricKey(bytes(16))
        msg = Enc0Message(
            phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, key=key, external_aad=b"aad"
        )
        decoded = Enc0Message.decode(msg.encode())
        decoded.key = key
        with pytest.raises(CryptoOperationError):
            decoded.decrypt()
        decoded.external_aad = b"aad"
        assert decoded.decrypt() == PLAINTEXT

    @pytest.mark.integration
    def test_non_aead_algorithm(self) -> None:
        """Test that a MAC algorithm cannot encrypt."""
        msg = Enc0Message(phdr={ALG: HMAC_256}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, key=SymmetricKey(bytes(32)))
        with pytest.raises(InvalidAlgorithm):
            msg.encrypt()

    @pytest.mark.integration
    def test_wrong_element_count(self) -> None:
        """Test that an Encrypt0 array must have three elements."""
        with pytest.raises(MalformedMessage):
            Enc0Message.decode(cbor2.dumps(cbor2.CBORTag(16, [b"", {}, b"", b""])))

    @pytest.mark.integration
    def test_untagged_decode(self) -> None:
        """Test that a concrete class decodes an untagged array."""
        key = SymmetricKey(bytes(16))
        msg = Enc0Message(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, key=key)
        decoded = Enc0Message.decode(msg.encode(tag=False))
        decoded.key = key
        assert decoded.decrypt() == PLAINTEXT
        with pytest.raises(MalformedMessage):
            CoseMessage.decode(msg.encode(tag=False))


class TestEncMessageDirect:
    """Tests for COSE_Encrypt with direct recipients."""

    @pytest.mark.integration
    def test_direct_shared_key(self, shared_key_32) -> None:
        """Test direct encryption with a pre-shared key."""
        msg = EncMessage(
            phdr={ALG: A256GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            key=shared_key_32,
            recipients=[DirectEncryption(uhdr={ALG: DIRECT, KID: b"our-secret"})],
        )
        encoded = msg.encode()

        decoded = CoseMessage.decode(encoded)
        assert isinstance(decoded, EncMessage)
        recipient = decoded.recipients[0]
        assert isinstance(recipient, DirectEncryption)
        assert recipient.context == "Enc_Recipient"
        recipient.key = shared_key_32
        assert decoded.decrypt(recipient) == PLAINTEXT

    @pytest.mark.integration
    def test_direct_without_message_key(self) -> None:
        """Test that direct encryption needs the shared key as the message key."""
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[DirectEncryption(uhdr={ALG: DIRECT})],
        )
        with pytest.raises(InvalidKey):
            msg.encode()

    @pytest.mark.integration
    @pytest.mark.parametrize("receiver_fixture", ["p256_receiver", "x25519_receiver"])
    def test_direct_key_agreement(self, receiver_fixture, request) -> None:
        """Test ECDH-ES direct key agreement on EC2 and OKP curves."""
        receiver_key = request.getfixturevalue(receiver_fixture)
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[
                DirectKeyAgreement(
                    phdr={ALG: ECDH_ES_HKDF_256},
                    uhdr={KID: b"receiver"},
                    local_attrs={STATIC_KEY: receiver_key.public_key()},
                )
            ],
        )
        encoded = msg.encode()

        decoded = EncMessage.decode(encoded)
        recipient = decoded.recipients[0]
        assert isinstance(recipient, DirectKeyAgreement)
        assert EPHEMERAL_KEY in recipient.headers, "Ephemeral public key is published"
        recipient.key = receiver_key
        assert decoded.decrypt(recipient) == PLAINTEXT

    @pytest.mark.integration
    def test_two_direct_recipients_rejected(self, shared_key_32) -> None:
        """Test that direct recipients cannot be combined with others."""
        msg = EncMessage(
            phdr={ALG: A256GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            key=shared_key_32,
            recipients=[
                DirectEncryption(uhdr={ALG: DIRECT}),
                KeyWrap(uhdr={ALG: A128KW}, key=SymmetricKey(bytes(16))),
            ],
        )
        with pytest.raises(InvalidRecipientConfiguration):
            msg.encode()


class TestEncMessageKeyWrap:
    """Tests for COSE_Encrypt with wrapping recipients."""

    @pytest.mark.integration
    def test_aes_key_wrap_to_several_recipients(self) -> None:
        """Test that every key wrap recipient can recover the same random CEK."""
        alice = SymmetricKey(bytes(range(16)))
        bob = SymmetricKey(bytes(range(32)))
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[
                KeyWrap(uhdr={ALG: A128KW, KID: b"alice"}, key=alice),
                KeyWrap(uhdr={ALG: A256KW, KID: b"bob"}, key=bob),
            ],
        )
        encoded = msg.encode()

        decoded = EncMessage.decode(encoded)
        first, second = decoded.recipients
        assert len(first.payload) == 24
        first.key = alice
        second.key = bob
        assert decoded.decrypt(first) == PLAINTEXT
        assert decoded.decrypt(second) == PLAINTEXT

    @pytest.mark.integration
    def test_wrong_kek(self) -> None:
        """Test that unwrapping with another KEK fails."""
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[KeyWrap(uhdr={ALG: A128KW}, key=SymmetricKey(bytes(16)))],
        )
        decoded = EncMessage.decode(msg.encode())
        decoded.recipients[0].key = SymmetricKey(b"\x01" * 16)
        with pytest.raises(CryptoOperationError):
            decoded.decrypt(decoded.recipients[0])

    @pytest.mark.integration
    def test_rsa_oaep(self) -> None:
        """Test RSAES-OAEP key transport."""
        rsa_key = RSAKey.generate_key(2048)
        msg = EncMessage(
            phdr={ALG: A256GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[KeyWrap(phdr={ALG: RSAES_OAEP_SHA_256}, key=rsa_key.public_key())],
        )
        decoded = EncMessage.decode(msg.encode())
        decoded.recipients[0].key = rsa_key
        assert decoded.decrypt(decoded.recipients[0]) == PLAINTEXT

    @pytest.mark.integration
    def test_key_agreement_with_key_wrap(self, p256_receiver) -> None:
        """Test ECDH-ES + A128KW; the receiver rebuilds the recipient from the wire fields."""
        sender = KeyAgreementWithKeyWrap(
            phdr={ALG: ECDH_ES_A128KW},
            local_attrs={STATIC_KEY: p256_receiver.public_key()},
        )
        msg = EncMessage(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, recipients=[sender])
        encoded = msg.encode()
        wire = cbor2.loads(encoded).value

        # A wrapped key in this recipient kind is refused by the decoder
        with pytest.raises(MalformedMessage):
            EncMessage.decode(encoded)

        receiver = KeyAgreementWithKeyWrap(
            phdr={ALG: ECDH_ES_A128KW},
            uhdr={EPHEMERAL_KEY: sender.get_attr(EPHEMERAL_KEY)},
            payload=wire[3][0][2],
            key=p256_receiver,
        )
        received = EncMessage(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=wire[2], recipients=[receiver])
        assert received.decrypt(receiver) == PLAINTEXT

    @pytest.mark.integration
    def test_static_static_key_wrap(self, p256_receiver, p256_sender) -> None:
        """Test ECDH-SS + A128KW with both static keys known locally."""
        sender = KeyAgreementWithKeyWrap(
            phdr={ALG: ECDH_SS_A128KW},
            key=p256_sender,
            local_attrs={STATIC_KEY: p256_receiver.public_key()},
        )
        msg = EncMessage(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, recipients=[sender])
        wire = cbor2.loads(msg.encode()).value

        receiver = KeyAgreementWithKeyWrap(
            phdr={ALG: ECDH_SS_A128KW},
            payload=wire[3][0][2],
            key=p256_receiver,
            local_attrs={STATIC_KEY: p256_sender.public_key()},
        )
        received = EncMessage(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=wire[2], recipients=[receiver])
        assert received.decrypt(receiver) == PLAINTEXT

    @pytest.mark.integration
    def test_nested_key_wrap_over_direct_key_agreement(self, p256_receiver) -> None:
        """Test a two-layer tree: the nested agreement yields the KEK that unwraps the CEK."""
        leaf = DirectKeyAgreement(
            phdr={ALG: ECDH_ES_HKDF_256},
            local_attrs={STATIC_KEY: p256_receiver.public_key()},
        )
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[KeyWrap(uhdr={ALG: A128KW}, recipients=[leaf])],
        )
        decoded = EncMessage.decode(msg.encode())

        top = decoded.recipients[0]
        nested = top.recipients[0]
        assert nested.context == "Rec_Recipient"
        nested.key = p256_receiver
        assert decoded.decrypt(nested) == PLAINTEXT
        assert top.key is not None, "The path decrypt leaves the recovered KEK on the parent"

    @pytest.mark.integration
    def test_recipient_from_another_message(self) -> None:
        """Test that decrypt refuses a recipient that is not in the tree."""
        kek = SymmetricKey(bytes(16))
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[KeyWrap(uhdr={ALG: A128KW}, key=kek)],
        )
        decoded = EncMessage.decode(msg.encode())
        stranger = KeyWrap(uhdr={ALG: A128KW}, payload=b"\x00" * 24, key=kek)
        with pytest.raises(CoseValueError):
            decoded.decrypt(stranger)


class TestEncMessageStructure:
    """Structural checks of COSE_Encrypt."""

    @pytest.mark.integration
    def test_needs_recipients(self) -> None:
        """Test that a COSE_Encrypt without recipients cannot be encoded."""
        msg = EncMessage(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, key=SymmetricKey(bytes(16)))
        with pytest.raises(InvalidMessage):
            msg.encode()

    @pytest.mark.integration
    def test_empty_recipients_array(self) -> None:
        """Test that a decoded COSE_Encrypt must list at least one recipient."""
        with pytest.raises(MalformedMessage):
            EncMessage.decode(cbor2.dumps(cbor2.CBORTag(96, [b"", {}, b"", []])))

    @pytest.mark.integration
    def test_wrong_tag(self) -> None:
        """Test that a concrete class refuses another message tag."""
        msg = Enc0Message(phdr={ALG: A128GCM}, uhdr={IV: bytes(12)}, payload=PLAINTEXT, key=SymmetricKey(bytes(16)))
        with pytest.raises(MalformedMessage):
            EncMessage.decode(msg.encode())

    @pytest.mark.integration
    def test_encode_without_encrypting_is_inverse_of_decode(self) -> None:
        """Test that re-encoding a decoded message reproduces the input bytes."""
        msg = EncMessage(
            phdr={ALG: A128GCM},
            uhdr={IV: bytes(12)},
            payload=PLAINTEXT,
            recipients=[KeyWrap(uhdr={ALG: A128KW}, key=SymmetricKey(bytes(16)))],
        )
        encoded = msg.encode()
        assert EncMessage.decode(encoded).encode(encrypt=False) == encoded
