import json

from eth_account import Account as EthAccount
from eth_utils import keccak, to_checksum_address, is_address

# Coprocessor key pair (signs input proofs for client-made ciphertexts)
COPROCESSOR_SK_HEX = "5b1a9c6e07f3d2a48c19e6b0f27d4a3e8c61f05b9d2e7a4c13f8b06e9d2a5c71"

# KMS signer keys (sign public decryption results)
KMS_SIGNER_SK_HEXES = [
    "2f8d4c1b9e6a07d35c82f1e4b96a0d7c3e58b2f19a4d6c0e7b13f58a2c9d4e61",
    "7c3e9a15d2b84f06e1a93c7d58b20f4e6a1d9c3b75e08f2a4d6b1c9e3f7a0d52",
    "a4d17e3c9b2f05e86d1c4a7b39e20f5d8c6a1b4e7f93d02c5e8a1b6d4f9c3e07",
]
KMS_THRESHOLD = 2

# Registry contract address, derived from a fixed label
REGISTRY_CONTRACT_LABEL = b"DriverInsuranceRegistry/v1"
REGISTRY_CONTRACT_ADDRESS = to_checksum_address(keccak(REGISTRY_CONTRACT_LABEL)[-20:])

# Paillier modulus length used by the FHE network
PAILLIER_KEY_LENGTH = 2048

# euint32
UINT32_MOD = 1 << 32

# Discount formula
MILEAGE_RATE_NUM = 5
MILEAGE_RATE_DEN = 1000
SPEEDING_PENALTY = 2
AGE_BONUS_THRESHOLD = 30
AGE_BONUS = 5
VEHICLE_VALUE_THRESHOLD = 20000
VEHICLE_VALUE_BONUS = 3


# ==========================================================
# Utility functions
# ==========================================================
def turn_hex_str_to_bytes(s) -> bytes:
    """
    Convert bytes or a hex string (with or without 0x prefix) into bytes.
    Raise ValueError if the input is an invalid hex string.
    """
    if isinstance(s, (bytes, bytearray)):
        return bytes(s)

    if not isinstance(s, str):
        raise TypeError("turn_hex_str_to_bytes only accepts str or bytes")

    s2 = s.strip()
    if s2.startswith(("0x", "0X")):
        s2 = s2[2:]
    if len(s2) % 2 != 0:
        raise ValueError("hex string length must be even")
    try:
        return bytes.fromhex(s2)
    except ValueError as e:
        raise ValueError("invalid hex string: " + repr(e))


def to_0x_hex(b) -> str:
    """
    Return a 0x-prefixed lowercase hex string for bytes or a hex string.
    """
    return "0x" + turn_hex_str_to_bytes(b).hex()


def get_hash(data) -> str:
    """
    Compute keccak256 and return 0x-prefixed hex string.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return "0x" + keccak(data).hex()


def canonical_json_bytes(obj) -> bytes:
    """
    Canonical JSON encoding used for signed payloads and block headers.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode()


def normalize_address(addr) -> str:
    """
    Validate an address and return its checksum form.
    """
    if not isinstance(addr, str) or not is_address(addr):
        raise ValueError("invalid address: " + repr(addr))
    return to_checksum_address(addr)


def address_of_sk(sk_hex: str) -> str:
    """
    Return the checksum address controlled by a secret key hex string.
    """
    return EthAccount.from_key(turn_hex_str_to_bytes(sk_hex)).address


def wrap_uint32(value: int) -> int:
    """
    Reduce an integer into the euint32 range (wraps modulo 2**32).
    """
    return int(value) % UINT32_MOD


def short_hex(h, prefix_len=8):
    """
    Return a shortened hex string like 0xabcd12...9f0a.
    If h is bytes or bytearray, convert to hex string first.
    If h is not a string or hex string is already short, return as-is.
    """
    if isinstance(h, (bytes, bytearray)):
        s = "0x" + bytes(h).hex()
    else:
        s = h

    if not isinstance(s, str):
        return s

    if len(s) <= prefix_len * 2:
        return s

    head = s[:prefix_len]
    tail = s[-4:]
    return head + "..." + tail


def tx_signing_digest(application_type, payload, contract_address) -> bytes:
    """
    Digest a wallet signs for a state-changing request. The "signature" field
    itself is excluded; the contract address and request type are bound in.
    """
    body = {}
    for k in payload:
        if k != "signature":
            body[k] = payload[k]
    msg = {
        "application_type": application_type,
        "contract": contract_address,
        "payload": body,
    }
    return keccak(canonical_json_bytes(msg))
