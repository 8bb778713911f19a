"""
Constants for elliptic curve cryptography.
"""

# SECP256K1 constants
# Field prime (P value), used to check that a public key lies on the curve
SECP256K1_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

# Curve equation y^2 = x^3 + B (A is zero)
SECP256K1_B = 7

# Byte sizes of the encodings carried in a signed message envelope
SIGNATURE_SIZE = 64
COMPRESSED_PUBLIC_KEY_SIZE = 33

# Accepted recovery ids: raw (0/1) and Ethereum style (27/28)
RECOVERY_IDS = (0, 1, 27, 28)
