# wrappers/paillier_wrapper.py
# Thin wrapper over python-paillier (module name: phe).
#
# Key conventions:
#   - Plaintexts are euint32 values: ints in [0, 2**32).
#   - Ciphertexts travel as {"c": <decimal str>, "exp": <int>} so they can be
#     put into JSON envelopes unchanged.
#   - Decryption reduces modulo 2**32, so a negative intermediate decrypts to
#     its wrapped unsigned value.

from phe import paillier

from tools import PAILLIER_KEY_LENGTH, UINT32_MOD, wrap_uint32


def generate_keypair(n_length=PAILLIER_KEY_LENGTH):
    """Generate a Paillier public/private keypair."""
    pub, priv = paillier.generate_paillier_keypair(n_length=n_length)
    return pub, priv


def check_uint32(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError("euint32 value must be int")
    if value < 0 or value >= UINT32_MOD:
        raise ValueError("euint32 value out of range: " + str(value))
    return value


def encrypt_uint32(public_key, value) -> paillier.EncryptedNumber:
    """Encrypt a euint32 plaintext."""
    return public_key.encrypt(check_uint32(value))


def decrypt_uint32(private_key, enc) -> int:
    """Decrypt and wrap into the euint32 range."""
    return wrap_uint32(private_key.decrypt(enc))


def serialize_ciphertext(enc) -> dict:
    return {
        "c": str(enc.ciphertext()),
        "exp": enc.exponent,
    }


def deserialize_ciphertext(public_key, data) -> paillier.EncryptedNumber:
    """
    Rebuild an EncryptedNumber from its serialized form.
    Raise ValueError on malformed input.
    """
    try:
        c = int(data["c"])
        exp = int(data["exp"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError("malformed ciphertext: " + repr(e))
    if c <= 0 or c >= public_key.nsquare:
        raise ValueError("ciphertext out of range")
    return paillier.EncryptedNumber(public_key, c, exp)
