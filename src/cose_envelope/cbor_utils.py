"""CBOR utilities module.

This module provides a unified interface for CBOR operations, isolating the
underlying CBOR library implementation from the COSE layers built on top.

Currently uses cbor2 as the underlying implementation.
"""

from typing import Any, Union

import cbor2

# Type aliases for CBOR special values
CBORTag = cbor2.CBORTag
CBORDecodeError = cbor2.CBORDecodeError


def encode(obj: Any) -> bytes:
    """Encode an object to CBOR bytes.

    Maps keep their insertion order; callers that need a deterministic
    layout order the keys before encoding.

    Args:
        obj: The object to encode

    Returns:
        CBOR-encoded bytes
    """
    return cbor2.dumps(obj)


def decode(data: bytes) -> Any:
    """Decode CBOR bytes to an object.

    Args:
        data: CBOR-encoded bytes

    Returns:
        The decoded object

    Raises:
        CBORDecodeError: If the data is not valid CBOR
    """
    return cbor2.loads(data)


def create_tag(tag: int, value: Any) -> CBORTag:
    """Create a CBOR tag.

    Args:
        tag: The tag number
        value: The tagged value

    Returns:
        A CBOR tag object
    """
    return CBORTag(tag, value)


def is_tag(obj: Any, tag_number: Union[int, None] = None) -> bool:
    """Check if an object is a CBOR tag.

    Args:
        obj: The object to check
        tag_number: Optional specific tag number to check for

    Returns:
        True if the object is a CBOR tag (and matches tag_number if specified)
    """
    if not isinstance(obj, CBORTag):
        return False
    if tag_number is not None:
        return obj.tag == tag_number
    return True


def get_tag_number(obj: CBORTag) -> int:
    """Get the tag number from a CBOR tag."""
    return obj.tag


def get_tag_value(obj: CBORTag) -> Any:
    """Get the tagged value from a CBOR tag."""
    return obj.value


# COSE message tags (RFC 9052, section 2)
COSE_ENCRYPT0_TAG = 16
COSE_MAC0_TAG = 17
COSE_SIGN1_TAG = 18
COSE_ENCRYPT_TAG = 96
COSE_MAC_TAG = 97
