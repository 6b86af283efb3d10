#!/usr/bin/env python3
# demo/demo2_bad.py
#
# Demo 2 (BAD): requests the registry must reject
#
#   1) Carol registers twice                  -> ProfileAlreadyExists
#   2) Dave submits a swapped input proof     -> InvalidCiphertext
#   3) Erin submits a tampered clear value    -> SignatureCheckFailed
#   4) Erin settles, then tries again         -> AlreadyVerified
#
# Every rejected request leaves the registry state exactly as it was.

import asyncio
import os
import sys

# Add project root to sys.path
THIS_FILE = os.path.abspath(__file__)
THIS_DIR = os.path.dirname(THIS_FILE)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from demo.demo1_good import build_demo_network, connect_driver
from wrappers.kms_wrapper import encode_clear_values
from wrappers.paillier_wrapper import encrypt_uint32, serialize_ciphertext
from tools import to_0x_hex


# ---------------------------------------------------
# Helper: build a signed raw envelope for a wallet
# ---------------------------------------------------
def build_signed_envelope(registry, wallet, application_type, fields, nonce=None):
    """
    Build a request envelope signed by `wallet`, bypassing the client
    bindings so tests can tamper with any field.
    """
    if nonce is None:
        nonce = registry.get_nonce(wallet.address) + 1
    payload = dict(fields)
    payload["sender"] = wallet.address
    payload["nonce"] = nonce
    payload["signature"] = wallet.sign_payload(application_type, payload, registry.contract_address)
    return {"application_type": application_type, "payload": payload}


def make_inputs(network, wallet, mileage, speeding):
    """
    Encrypt and register two inputs for `wallet` directly with the executor.
    Returns (enc_mileage, enc_speeding), each {"handle", "proof"}.
    """
    executor = network["executor"]
    contract = network["registry"].contract_address
    out = []
    for v in (mileage, speeding):
        enc = encrypt_uint32(executor.public_key, v)
        out.append(executor.register_input(serialize_ciphertext(enc), contract, wallet.address))
    return out[0], out[1]


def create_fields(enc_m, enc_s, age=25, vehicle_value=10000, base_premium=1000):
    return {
        "encrypted_mileage": enc_m["handle"],
        "mileage_proof": enc_m["proof"],
        "encrypted_speeding": enc_s["handle"],
        "speeding_proof": enc_s["proof"],
        "age": age,
        "vehicle_value": vehicle_value,
        "base_premium": base_premium,
    }


def tampered_clear_values(value):
    return to_0x_hex(encode_clear_values([value]))


async def run_demo():
    network = build_demo_network()
    registry = network["registry"]

    print("\n=== Scenario 1: create twice ===")
    carol, _ = await connect_driver(network)
    assert await carol.create_policy("Carol", 70, 1000)
    ok = await carol.create_policy("Carol again", 90, 1000)
    print("  second create ok =", ok, "| status =", carol.status["message"])

    print("\n=== Scenario 2: swapped input proofs ===")
    dave, dave_wallet = await connect_driver(network)
    enc_m, enc_s = make_inputs(network, dave_wallet, 1000, 1)
    fields = create_fields(enc_m, enc_s)
    fields["mileage_proof"], fields["speeding_proof"] = fields["speeding_proof"], fields["mileage_proof"]
    res = registry.deal_with_request(build_signed_envelope(registry, dave_wallet, "CreateProfile", fields))
    print("  response:", res)

    print("\n=== Scenario 3: tampered clear value ===")
    erin, erin_wallet = await connect_driver(network)
    assert await erin.create_policy("Erin", 60, 1000)
    handle = await erin.contract_read.get_encrypted_value(erin_wallet.address)
    bundle = network["kms"].public_decrypt([handle])
    res = registry.deal_with_request(build_signed_envelope(registry, erin_wallet, "VerifyDecryption", {
        "abi_encoded_clear_values": tampered_clear_values(99),
        "decryption_proof": bundle["decryption_proof"],
    }))
    print("  response:", res)

    print("\n=== Scenario 4: settle twice ===")
    print("  compute ->", await erin.compute_discount())
    res = registry.deal_with_request(build_signed_envelope(registry, erin_wallet, "VerifyDecryption", {
        "abi_encoded_clear_values": bundle["abi_encoded_clear_values"],
        "decryption_proof": bundle["decryption_proof"],
    }))
    print("  response:", res)

    print()
    print(registry.blockchain)


def main():
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
