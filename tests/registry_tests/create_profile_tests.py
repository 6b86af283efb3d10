#!/usr/bin/env python3
# tests/registry_tests/create_profile_tests.py
#
# CreateProfile tests.
#
# Goals:
#   - Scenario 1: a valid request stores the profile, grants the contract
#     access, marks both handles publicly decryptable, emits ProfileCreated.
#   - Scenario 2: a second create from the same address -> ProfileAlreadyExists.
#   - Scenario 3: swapped / foreign input proofs -> InvalidCiphertext.
#   - Scenario 4: bad signature, wrong nonce, bad plaintext fields -> BadRequest.
#   - Scenario 5: a signed proof over a non-euint32 ciphertext -> InvalidCiphertext.
# Every rejection must leave profiles, address list, nonces and chain untouched.

import os
import sys

# Add project root to sys.path
THIS_FILE = os.path.abspath(__file__)
THIS_DIR = os.path.dirname(THIS_FILE)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from phe import paillier

from client.wallet import Wallet
from demo.demo1_good import build_demo_network
from demo.demo2_bad import build_signed_envelope, create_fields, make_inputs
from errors import ErrorKind
from tools import COPROCESSOR_SK_HEX, turn_hex_str_to_bytes
from wrappers.fhe_executor_wrapper import input_proof_digest

FIXED_TIME = 1_700_000_000


def _snapshot(registry):
    return (
        {a: p.get_self_hash() for a, p in registry.profile_map.items()},
        list(registry.list_of_addresses),
        dict(registry.nonces),
        len(registry.blockchain.lst_of_blocks),
    )


def _network():
    return build_demo_network(clock=lambda: FIXED_TIME)


def test_create_profile_ok():
    print("=== Scenario 1: valid CreateProfile ===")
    net = _network()
    registry = net["registry"]
    w = Wallet()

    enc_m, enc_s = make_inputs(net, w, 18000, 3)
    fields = create_fields(enc_m, enc_s, age=41, vehicle_value=25000, base_premium=1500)
    fields["name"] = "Daily commute"
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", fields))
    print("  response:", res)

    assert res["ok"] is True
    assert res["driver"] == w.address
    assert registry.list_of_addresses == [w.address]
    assert registry.get_nonce(w.address) == 1

    p = registry.get_profile(w.address)
    assert p.encrypted_mileage == enc_m["handle"]
    assert p.encrypted_speeding_events == enc_s["handle"]
    assert (p.public_age, p.public_vehicle_value, p.base_premium) == (41, 25000, 1500)
    assert p.timestamp == FIXED_TIME
    assert p.name == "Daily commute"
    assert p.is_verified is False and p.decrypted_discount == 0 and p.settlement is None

    ex = net["executor"]
    for h in (enc_m["handle"], enc_s["handle"]):
        assert ex.is_allowed(h, registry.contract_address)
        assert ex.is_publicly_decryptable(h)

    events = registry.blockchain.get_events("ProfileCreated")
    assert events == [{"event": "ProfileCreated", "driver": w.address, "timestamp": FIXED_TIME}]


def test_create_profile_twice():
    print("\n=== Scenario 2: CreateProfile twice ===")
    net = _network()
    registry = net["registry"]
    w = Wallet()

    enc_m, enc_s = make_inputs(net, w, 100, 0)
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m, enc_s)))
    assert res["ok"] is True
    before = _snapshot(registry)

    enc_m2, enc_s2 = make_inputs(net, w, 200, 1)
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m2, enc_s2)))
    print("  response:", res)
    assert res["ok"] is False
    assert res["err"] == ErrorKind.PROFILE_ALREADY_EXISTS
    assert _snapshot(registry) == before


def test_create_profile_invalid_ciphertext():
    print("\n=== Scenario 3: invalid input proofs ===")
    net = _network()
    registry = net["registry"]
    w = Wallet()
    mallory = Wallet()
    before = _snapshot(registry)

    enc_m, enc_s = make_inputs(net, w, 100, 0)
    swapped = create_fields(enc_m, enc_s)
    swapped["mileage_proof"], swapped["speeding_proof"] = swapped["speeding_proof"], swapped["mileage_proof"]
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", swapped))
    print("  swapped proofs:", res)
    assert res["ok"] is False and res["err"] == ErrorKind.INVALID_CIPHERTEXT

    # inputs bound to w replayed by another sender
    res = registry.deal_with_request(build_signed_envelope(registry, mallory, "CreateProfile", create_fields(enc_m, enc_s)))
    print("  replayed inputs:", res)
    assert res["ok"] is False and res["err"] == ErrorKind.INVALID_CIPHERTEXT

    unknown = create_fields(enc_m, enc_s)
    unknown["encrypted_speeding"] = "0x" + "ee" * 32
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", unknown))
    assert res["ok"] is False and res["err"] == ErrorKind.INVALID_CIPHERTEXT

    assert _snapshot(registry) == before


def test_create_profile_out_of_range_ciphertext():
    """
    A ciphertext outside the euint32 range that somehow carries a valid
    coprocessor signature is still refused at CreateProfile, and the
    registry never reaches ComputeDiscount with it.
    """
    print("\n=== Scenario 5: out-of-range ciphertext with a signed proof ===")
    net = _network()
    registry = net["registry"]
    ex = net["executor"]
    pub = ex.public_key
    w = Wallet()

    overflow_seed = ((pub.max_int + 1000) * pow(5, -1, pub.n)) % pub.n
    bad_handle = ex._store(paillier.EncryptedNumber(pub, pub.raw_encrypt(overflow_seed), 0))
    digest = input_proof_digest(bad_handle, registry.contract_address, w.address)
    signed = EthAccount.from_key(turn_hex_str_to_bytes(COPROCESSOR_SK_HEX)).sign_message(encode_defunct(primitive=digest))
    bad_proof = "0x" + bytes(signed.signature).hex()

    _, enc_s = make_inputs(net, w, 3, 0)
    before = _snapshot(registry)
    res = registry.deal_with_request(build_signed_envelope(
        registry, w, "CreateProfile", create_fields({"handle": bad_handle, "proof": bad_proof}, enc_s)))
    print("  response:", res)
    assert res["ok"] is False and res["err"] == ErrorKind.INVALID_CIPHERTEXT
    assert _snapshot(registry) == before

    res = registry.deal_with_request(build_signed_envelope(registry, w, "ComputeDiscount", {}))
    assert res["ok"] is False and res["err"] == ErrorKind.PROFILE_NOT_FOUND


def test_create_profile_bad_requests():
    print("\n=== Scenario 4: malformed CreateProfile requests ===")
    net = _network()
    registry = net["registry"]
    w = Wallet()
    other = Wallet()
    enc_m, enc_s = make_inputs(net, w, 100, 0)
    before = _snapshot(registry)

    # signed by someone else
    env = build_signed_envelope(registry, other, "CreateProfile", create_fields(enc_m, enc_s))
    env["payload"]["sender"] = w.address
    res = registry.deal_with_request(env)
    assert res["err"] == ErrorKind.BAD_REQUEST

    # field changed after signing
    env = build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m, enc_s))
    env["payload"]["base_premium"] = 1
    res = registry.deal_with_request(env)
    assert res["err"] == ErrorKind.BAD_REQUEST

    # replayed / skipped nonce
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m, enc_s), nonce=5))
    assert res["err"] == ErrorKind.BAD_REQUEST

    # negative plaintext field
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m, enc_s, age=-1)))
    assert res["err"] == ErrorKind.BAD_REQUEST

    # missing field
    fields = create_fields(enc_m, enc_s)
    del fields["speeding_proof"]
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", fields))
    assert res["err"] == ErrorKind.BAD_REQUEST

    res = registry.deal_with_request({"payload": {}})
    assert res["err"] == ErrorKind.BAD_REQUEST
    res = registry.deal_with_request({"application_type": "DeleteProfile", "payload": {}})
    assert res["err"] == ErrorKind.BAD_REQUEST

    assert _snapshot(registry) == before

    # the untouched inputs still work afterwards
    res = registry.deal_with_request(build_signed_envelope(registry, w, "CreateProfile", create_fields(enc_m, enc_s)))
    assert res["ok"] is True


def main() -> None:
    test_create_profile_ok()
    test_create_profile_twice()
    test_create_profile_invalid_ciphertext()
    test_create_profile_out_of_range_ciphertext()
    test_create_profile_bad_requests()
    print("=== all CreateProfile tests finished ===")


if __name__ == "__main__":
    main()
