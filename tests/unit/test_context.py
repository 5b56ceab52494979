"""Unit tests for COSE_KDF_Context construction."""

import cbor2
import pytest

from cose_envelope.algorithms import A128GCM, A192KW, A256GCM, ECDH_ES_HKDF_256, HMAC_512
from cose_envelope.context import KDFContext, PartyInfo, SuppPubInfo, build_kdf_context
from cose_envelope.exceptions import CoseValueError, InvalidAlgorithm
from cose_envelope.header_container import HeaderContainer
from cose_envelope.headers import (
    ALG,
    PARTY_U_ID,
    PARTY_U_NONCE,
    PARTY_U_OTHER,
    PARTY_V_ID,
    PARTY_V_NONCE,
    PARTY_V_OTHER,
    SUPP_PRIV_OTHER,
    SUPP_PUB_OTHER,
)
from cose_envelope.recipients import DirectKeyAgreement


class TestContextParts:
    """Test cases for the context building blocks."""

    @pytest.mark.unit
    def test_empty_party_info(self):
        """Unset party fields encode as nil."""
        assert PartyInfo().encode() == [None, None, None]

    @pytest.mark.unit
    def test_key_data_length_in_bits(self):
        """SuppPubInfo carries the key length in bits."""
        assert SuppPubInfo(32, b"\xa0").encode() == [256, b"\xa0"]
        assert SuppPubInfo(16, b"", b"other").encode() == [128, b"", b"other"]

    @pytest.mark.unit
    @pytest.mark.parametrize("length", [0, 8, 20, 128])
    def test_invalid_key_data_length(self, length):
        """Key data lengths outside the supported set are rejected."""
        with pytest.raises(CoseValueError):
            SuppPubInfo(length)

    @pytest.mark.unit
    def test_encode_layout(self):
        """The encoded context is the CBOR array [alg, U, V, pub, ?priv]."""
        context = KDFContext(A128GCM, SuppPubInfo(16, b""), PartyInfo(b"u"), PartyInfo(b"v"))
        assert cbor2.loads(context.encode()) == [1, [b"u", None, None], [b"v", None, None], [128, b""]]
        context.supp_priv_info = b"secret"
        assert cbor2.loads(context.encode())[4] == b"secret"


class TestBuildKdfContext:
    """Test cases for assembling the context from headers and local attributes."""

    @pytest.mark.unit
    def test_headers_and_local_attributes(self):
        """Party fields come from headers, supplementary fields from local attributes."""
        headers = HeaderContainer({ALG: ECDH_ES_HKDF_256}, {PARTY_U_ID: b"alice", PARTY_V_NONCE: 7})
        context = build_kdf_context(A192KW, headers, {SUPP_PUB_OTHER: b"pub", SUPP_PRIV_OTHER: b"priv"})
        assert context.algorithm is A192KW
        assert context.key_data_length == 24
        assert context.party_u_info == PartyInfo(b"alice", None, None)
        assert context.party_v_info == PartyInfo(None, 7, None)
        assert context.supp_pub_info.protected == headers.encode_protected()
        assert context.supp_pub_info.other == b"pub"
        assert context.supp_priv_info == b"priv"

    @pytest.mark.unit
    def test_algorithm_without_key_length(self):
        """Algorithms with no fixed key length cannot be derived for."""
        with pytest.raises(InvalidAlgorithm):
            build_kdf_context(ECDH_ES_HKDF_256, HeaderContainer())

    @pytest.mark.unit
    def test_hmac_key_length(self):
        """MAC algorithms use their own key length."""
        assert build_kdf_context(HMAC_512, HeaderContainer()).key_data_length == 64


class TestDirectKeyAgreementContext:
    """End-to-end: the KDF context of a direct key agreement recipient."""

    @pytest.mark.unit
    def test_context_echoes_inputs(self):
        """Every party field and supplementary field is echoed exactly."""
        recipient = DirectKeyAgreement(
            phdr={ALG: "ECDH-ES+HKDF-256"},
            uhdr={
                PARTY_U_ID: b"party-u-id",
                PARTY_U_NONCE: b"party-u-nonce",
                PARTY_U_OTHER: b"party-u-other",
                PARTY_V_ID: b"party-v-id",
                PARTY_V_NONCE: b"party-v-nonce",
                PARTY_V_OTHER: b"party-v-other",
            },
            local_attrs={SUPP_PUB_OTHER: b"supp-pub-other", SUPP_PRIV_OTHER: b"supp-priv-other"},
        )
        assert recipient.alg is ECDH_ES_HKDF_256

        context = recipient.get_kdf_context(A256GCM)

        assert context.supp_pub_info.key_data_length == A256GCM.key_length
        assert context.party_u_info.identity == b"party-u-id"
        assert context.party_u_info.nonce == b"party-u-nonce"
        assert context.party_u_info.other == b"party-u-other"
        assert context.party_v_info.identity == b"party-v-id"
        assert context.party_v_info.nonce == b"party-v-nonce"
        assert context.party_v_info.other == b"party-v-other"
        assert context.supp_pub_info.other == b"supp-pub-other"
        assert context.supp_priv_info == b"supp-priv-other"
        assert context.supp_pub_info.protected == recipient.phdr_encoded

    @pytest.mark.unit
    def test_context_by_algorithm_name(self):
        """The target algorithm may be given by name."""
        recipient = DirectKeyAgreement(phdr={ALG: ECDH_ES_HKDF_256})
        assert recipient.get_kdf_context("A128GCM").key_data_length == 16
