#!/usr/bin/env python3
# tests/wrapper_api_tests/paillier_tests.py
#
# Paillier wrapper tests.
#
# Goals:
#   - euint32 range is enforced on encryption.
#   - serialized ciphertexts survive a JSON envelope.
#   - malformed serialized ciphertexts are refused.

import json
import os
import sys

# Add project root to sys.path
THIS_FILE = os.path.abspath(__file__)
THIS_DIR = os.path.dirname(THIS_FILE)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from tools import UINT32_MOD
from wrappers.paillier_wrapper import (
    decrypt_uint32,
    deserialize_ciphertext,
    encrypt_uint32,
    generate_keypair,
    serialize_ciphertext,
)


def test_uint32_range():
    print("=== euint32 range ===")
    pub, priv = generate_keypair(n_length=512)
    assert decrypt_uint32(priv, encrypt_uint32(pub, 0)) == 0
    assert decrypt_uint32(priv, encrypt_uint32(pub, UINT32_MOD - 1)) == UINT32_MOD - 1

    with pytest.raises(ValueError):
        encrypt_uint32(pub, -1)
    with pytest.raises(ValueError):
        encrypt_uint32(pub, UINT32_MOD)
    with pytest.raises(TypeError):
        encrypt_uint32(pub, "12")
    with pytest.raises(TypeError):
        encrypt_uint32(pub, True)


def test_serialized_ciphertext_through_json():
    print("\n=== ciphertext through a JSON envelope ===")
    pub, priv = generate_keypair(n_length=512)
    wire = json.dumps({"ct": serialize_ciphertext(encrypt_uint32(pub, 31337))})
    enc = deserialize_ciphertext(pub, json.loads(wire)["ct"])
    assert decrypt_uint32(priv, enc) == 31337


def test_malformed_ciphertext():
    print("\n=== malformed ciphertexts ===")
    pub, _ = generate_keypair(n_length=512)
    for bad in ({}, {"c": "abc", "exp": 0}, {"c": "0", "exp": 0}, {"c": str(pub.nsquare), "exp": 0}, None):
        with pytest.raises(ValueError):
            deserialize_ciphertext(pub, bad)


def main() -> None:
    test_uint32_range()
    test_serialized_ciphertext_through_json()
    test_malformed_ciphertext()
    print("=== all Paillier wrapper tests finished ===")


if __name__ == "__main__":
    main()
