"""CDDL validation of encoded COSE structures."""

import logging
from functools import lru_cache
from typing import Any

import pycddl

from . import cbor_utils, edn_utils
from .cddl_schemas import SCHEMAS
from .exceptions import CoseValueError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _schema(structure: str) -> pycddl.Schema:
    try:
        cddl = SCHEMAS[structure]
    except KeyError:
        raise CoseValueError("No CDDL schema for structure", structure) from None
    return pycddl.Schema(cddl)


def validate_structure(data: bytes, structure: str) -> bool:
    """Validate CBOR data against the CDDL of a COSE structure.

    Args:
        data: CBOR encoded structure
        structure: One of ``COSE_recipient``, ``COSE_Encrypt0``,
            ``COSE_Encrypt``, ``COSE_Mac0``, ``COSE_Mac``, ``COSE_Sign1``,
            ``COSE_Key``

    Returns:
        True if the data matches the schema

    Raises:
        CoseValueError: If the structure name is unknown
    """
    schema = _schema(structure)
    try:
        schema.validate_cbor(data)
    except pycddl.ValidationError as exc:
        logger.debug("%s failed CDDL validation: %s", structure, exc)
        return False
    return True


def validate_object(obj: Any, structure: str) -> bool:
    """Encode a Python object and validate it against a COSE structure."""
    return validate_structure(cbor_utils.encode(obj), structure)


class CDDLValidator:
    """Validator bound to one COSE structure."""

    def __init__(self, structure: str):
        self.structure = structure
        # Compile eagerly so an unknown name fails at construction
        _schema(structure)

    def validate(self, cbor_data: bytes) -> bool:
        return validate_structure(cbor_data, self.structure)

    def explain(self, cbor_data: bytes) -> str:
        """Describe why data fails validation, or return an empty string."""
        try:
            _schema(self.structure).validate_cbor(cbor_data)
        except pycddl.ValidationError as exc:
            return f"{exc}\n{edn_utils.cbor_to_diag(cbor_data)}"
        return ""
