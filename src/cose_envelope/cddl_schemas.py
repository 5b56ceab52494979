"""CDDL schemas for COSE message and recipient structures (RFC 9052)."""

# Definitions shared by every structure. The protected header is carried as a
# byte string; its contents are checked by the header parser, not by CDDL.
COMMON_CDDL = """
header_map = { * label => any }
label = int / tstr

COSE_recipient = [
    protected: bstr,
    unprotected: header_map,
    ciphertext: bstr / nil,
    ? recipients: [+ COSE_recipient]
]
"""

COSE_RECIPIENT_CDDL = """
recipient = COSE_recipient
"""

COSE_ENCRYPT0_CDDL = """
COSE_Encrypt0_message = COSE_Encrypt0_Tagged / COSE_Encrypt0

COSE_Encrypt0_Tagged = #6.16(COSE_Encrypt0)

COSE_Encrypt0 = [
    protected: bstr,
    unprotected: header_map,
    ciphertext: bstr / nil
]
"""

COSE_ENCRYPT_CDDL = """
COSE_Encrypt_message = COSE_Encrypt_Tagged / COSE_Encrypt

COSE_Encrypt_Tagged = #6.96(COSE_Encrypt)

COSE_Encrypt = [
    protected: bstr,
    unprotected: header_map,
    ciphertext: bstr / nil,
    recipients: [+ COSE_recipient]
]
"""

COSE_MAC0_CDDL = """
COSE_Mac0_message = COSE_Mac0_Tagged / COSE_Mac0

COSE_Mac0_Tagged = #6.17(COSE_Mac0)

COSE_Mac0 = [
    protected: bstr,
    unprotected: header_map,
    payload: bstr / nil,
    tag: bstr
]
"""

COSE_MAC_CDDL = """
COSE_Mac_message = COSE_Mac_Tagged / COSE_Mac

COSE_Mac_Tagged = #6.97(COSE_Mac)

COSE_Mac = [
    protected: bstr,
    unprotected: header_map,
    payload: bstr / nil,
    tag: bstr,
    recipients: [+ COSE_recipient]
]
"""

COSE_SIGN1_CDDL = """
COSE_Sign1_message = COSE_Sign1_Tagged / COSE_Sign1

COSE_Sign1_Tagged = #6.18(COSE_Sign1)

COSE_Sign1 = [
    protected: bstr,
    unprotected: header_map,
    payload: bstr / nil,
    signature: bstr
]
"""

COSE_KEY_CDDL = """
COSE_Key = {
    1 => tstr / int,
    ? 2 => bstr,
    ? 3 => tstr / int,
    ? 4 => [+ (tstr / int)],
    ? 5 => bstr,
    * label => any
}
"""

# Structure name -> schema whose first rule is that structure
SCHEMAS = {
    "COSE_recipient": COSE_RECIPIENT_CDDL + COMMON_CDDL,
    "COSE_Encrypt0": COSE_ENCRYPT0_CDDL + COMMON_CDDL,
    "COSE_Encrypt": COSE_ENCRYPT_CDDL + COMMON_CDDL,
    "COSE_Mac0": COSE_MAC0_CDDL + COMMON_CDDL,
    "COSE_Mac": COSE_MAC_CDDL + COMMON_CDDL,
    "COSE_Sign1": COSE_SIGN1_CDDL + COMMON_CDDL,
    "COSE_Key": COSE_KEY_CDDL + COMMON_CDDL,
}
