"""Unit tests for CBOR helpers and diagnostic notation."""

import pytest

from cose_envelope import cbor_utils, edn_utils


class TestCborUtils:
    """Test cases for the cbor2 wrapper."""

    @pytest.mark.unit
    def test_tag_helpers(self):
        """Tags are created and inspected through the wrapper."""
        tag = cbor_utils.create_tag(cbor_utils.COSE_SIGN1_TAG, [b"", {}, b"", b""])
        assert cbor_utils.is_tag(tag)
        assert cbor_utils.is_tag(tag, 18)
        assert not cbor_utils.is_tag(tag, 16)
        assert not cbor_utils.is_tag([1, 2])
        assert cbor_utils.get_tag_number(tag) == 18
        assert cbor_utils.get_tag_value(tag) == [b"", {}, b"", b""]

    @pytest.mark.unit
    def test_decode_error(self):
        """Invalid CBOR raises the wrapped decode error."""
        with pytest.raises(cbor_utils.CBORDecodeError):
            cbor_utils.decode(b"\x82\x01")

    @pytest.mark.unit
    def test_map_keeps_insertion_order(self):
        """Maps are encoded in the order their keys were inserted."""
        assert cbor_utils.encode({4: 1, 1: 2}) == bytes.fromhex("a204010102")


class TestDiagnosticNotation:
    """Test cases for EDN rendering."""

    @pytest.mark.unit
    def test_cbor_to_diag(self):
        """Byte strings render as hex literals."""
        diag = edn_utils.cbor_to_diag(cbor_utils.encode([1, b"\x01\x02"]))
        assert "h'0102'" in diag

    @pytest.mark.unit
    def test_diag_to_cbor(self):
        """Diagnostic notation parses back to CBOR."""
        assert edn_utils.diag_to_cbor("[1, -7]") == cbor_utils.encode([1, -7])

    @pytest.mark.unit
    def test_empty_protected_header(self):
        """An empty protected header renders as an empty byte string."""
        assert edn_utils.header_diag(b"") == "h''"
        assert "-7" in edn_utils.header_diag(cbor_utils.encode({1: -7}))

    @pytest.mark.unit
    def test_to_diag(self):
        """Python objects render through their CBOR encoding."""
        assert "16" in edn_utils.to_diag({5: 16})
