"""CBOR diagnostic notation for COSE structures, backed by cbor-diag."""

from typing import Any

import cbor_diag  # type: ignore[import-untyped]

from . import cbor_utils


def cbor_to_diag(cbor_data: bytes) -> str:
    """Convert CBOR data to diagnostic notation.

    Args:
        cbor_data: CBOR encoded bytes

    Returns:
        Diagnostic notation string
    """
    return cbor_diag.cbor2diag(cbor_data)  # type: ignore[no-any-return]


def diag_to_cbor(diag_str: str) -> bytes:
    """Convert diagnostic notation to CBOR data.

    Useful for writing test vectors in the notation RFC 9052 examples use.
    """
    return cbor_diag.diag2cbor(diag_str)  # type: ignore[no-any-return]


def to_diag(obj: Any) -> str:
    """Render a Python object (a decoded COSE array, a header map) as diagnostic notation."""
    return cbor_to_diag(cbor_utils.encode(obj))


def header_diag(protected: bytes) -> str:
    """Render a serialized protected header, ``h''`` when empty."""
    if not protected:
        return "h''"
    return cbor_to_diag(protected)
