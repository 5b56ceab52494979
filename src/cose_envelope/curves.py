"""COSE elliptic curves (RFC 9053, section 7.1)."""

from dataclasses import dataclass, field
from typing import Any, ClassVar

from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, x448, x25519

from .attributes import AttributeRegistry, CoseAttribute
from .exceptions import UnsupportedCurve

# Key type identifiers the curves belong to
KTY_OKP = 1
KTY_EC2 = 2


@dataclass(frozen=True, eq=False)
class CoseCurve(CoseAttribute):
    """A registered curve.

    ``curve_obj`` is the cryptography curve class for EC2 curves, or the
    private key class for OKP curves.
    """

    family: ClassVar[str] = "curve"

    key_type: int = KTY_EC2
    size: int = 0
    curve_obj: Any = field(default=None, repr=False)
    # "agreement" or "signature" for OKP curves
    usage: str = ""


CURVES: AttributeRegistry[CoseCurve] = AttributeRegistry(CoseCurve, UnsupportedCurve)

P_256 = CURVES.register(CoseCurve(1, "P_256", key_type=KTY_EC2, size=32, curve_obj=ec.SECP256R1))
P_384 = CURVES.register(CoseCurve(2, "P_384", key_type=KTY_EC2, size=48, curve_obj=ec.SECP384R1))
P_521 = CURVES.register(CoseCurve(3, "P_521", key_type=KTY_EC2, size=66, curve_obj=ec.SECP521R1))
X25519 = CURVES.register(
    CoseCurve(4, "X25519", key_type=KTY_OKP, size=32, curve_obj=x25519.X25519PrivateKey, usage="agreement")
)
X448 = CURVES.register(
    CoseCurve(5, "X448", key_type=KTY_OKP, size=56, curve_obj=x448.X448PrivateKey, usage="agreement")
)
ED25519 = CURVES.register(
    CoseCurve(6, "ED25519", key_type=KTY_OKP, size=32, curve_obj=ed25519.Ed25519PrivateKey, usage="signature")
)
ED448 = CURVES.register(
    CoseCurve(7, "ED448", key_type=KTY_OKP, size=57, curve_obj=ed448.Ed448PrivateKey, usage="signature")
)
SECP256K1 = CURVES.register(CoseCurve(8, "SECP256K1", key_type=KTY_EC2, size=32, curve_obj=ec.SECP256K1))


def curve_for_cryptography(curve: Any) -> CoseCurve:
    """Map a cryptography EC curve instance (or OKP key) to its COSE curve.

    Args:
        curve: An ``ec.EllipticCurve`` instance, or an OKP key object

    Returns:
        The matching COSE curve

    Raises:
        UnsupportedCurve: If no COSE curve matches
    """
    for candidate in CURVES:
        if candidate.key_type == KTY_EC2 and isinstance(curve, candidate.curve_obj):
            return candidate
    okp_types = {
        X25519: (x25519.X25519PrivateKey, x25519.X25519PublicKey),
        X448: (x448.X448PrivateKey, x448.X448PublicKey),
        ED25519: (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey),
        ED448: (ed448.Ed448PrivateKey, ed448.Ed448PublicKey),
    }
    for candidate, types in okp_types.items():
        if isinstance(curve, types):
            return candidate
    raise UnsupportedCurve("No COSE curve for", type(curve).__name__)
