#!/usr/bin/env python3
# demo/demo1_good.py
#
# Demo 1 (GOOD): two drivers, two settlement paths
#
# Overview:
#   Alice and Bob each connect a wallet, encrypt their driving data and
#   register a policy with the registry.
#     1) Alice settles through the verify path: the KMS publicly decrypts
#        her score handle, she submits clear value + proof, the registry
#        checks the KMS signatures and stores the value.
#     2) Bob settles through the compute path: the registry evaluates the
#        discount formula on his encrypted mileage / speeding events and
#        stores the decrypted result.
#   Finally both premium views are printed and the chain is verified.

import asyncio
import os
import sys

# Add project root to sys.path
THIS_FILE = os.path.abspath(__file__)
THIS_DIR = os.path.dirname(THIS_FILE)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Project imports
from client.core import ClientSession
from client.premium_view import derive_premium_view, summarize_policies
from client.wallet import Wallet
from registry.core import Registry
from wrappers.fhe_executor_wrapper import FheExecutor
from wrappers.fhe_instance_wrapper import FheInstance
from wrappers.kms_wrapper import Kms
from wrappers.paillier_wrapper import generate_keypair

# Small modulus keeps the demo and the tests fast; production uses
# tools.PAILLIER_KEY_LENGTH.
DEMO_KEY_LENGTH = 512

ALICE_SK_HEX = "0x8f2a55949038a9610f50fb23b5883af3b4ecb3c3bb792cbcefbd1542c692be63"
BOB_SK_HEX = "0xc87509a1c067bbde78beb793e6fa76530b6382a4c0241e5e4a9ec0a0f44dc0d3"


# ---------------------------------------------------
# Helper: build executor + KMS + registry
# ---------------------------------------------------
def build_demo_network(n_length=DEMO_KEY_LENGTH, clock=None):
    """
    Build a fresh FHE network and registry. Returns a dict with
    "executor", "kms" and "registry".
    """
    pub, priv = generate_keypair(n_length=n_length)
    executor = FheExecutor(pub, priv)
    kms = Kms(executor)
    registry = Registry(executor, kms, clock=clock)
    return {"executor": executor, "kms": kms, "registry": registry}


# ---------------------------------------------------
# Helper: a connected client session for one wallet
# ---------------------------------------------------
async def connect_driver(network, private_key_hex=None, approve=None):
    """
    Create a wallet and a ClientSession bound to the network, and connect.
    Returns (session, wallet).
    """
    wallet = Wallet(private_key_hex, approve=approve)
    fhe = FheInstance(network["executor"], network["kms"])
    session = ClientSession(network["registry"], fhe)
    await session.connect(wallet)
    return session, wallet


def print_policy(session, addr):
    policy = session.get_policy(addr)
    if policy is None:
        print("  (no policy for", addr, ")")
        return
    view = derive_premium_view(policy, session.decrypted_cache.get(addr))
    print(f"  {policy['name']} | driver={addr} verified={policy['is_verified']} "
          f"settlement={policy['settlement']}")
    print(f"    base_premium={view['base_premium']} final_discount={view['final_discount']} "
          f"risk_level={view['risk_level']} safety_score={view['safety_score']}")


async def run_demo():
    network = build_demo_network()
    registry = network["registry"]

    print("\n=== Step 1: Alice registers a policy and settles through the verify path ===")
    alice, alice_wallet = await connect_driver(network, ALICE_SK_HEX)
    ok = await alice.create_policy("Alice commute", "82", "1200", speeding_events=1, age=34)
    assert ok, alice.status
    value = await alice.request_decryption(alice_wallet.address)
    print("  Alice decrypted score =", value)
    print_policy(alice, alice_wallet.address)
    registry.get_profile(alice_wallet.address).debug_print("[DEMO] Alice on-chain profile")

    print("\n=== Step 2: Bob registers a policy and settles through the compute path ===")
    bob, bob_wallet = await connect_driver(network, BOB_SK_HEX)
    ok = await bob.create_policy("Bob weekend", 24000, 900, speeding_events=10, age=45, vehicle_value=35000)
    assert ok, bob.status
    discount = await bob.compute_discount()
    print("  Bob on-chain discount =", discount)
    print_policy(bob, bob_wallet.address)
    registry.get_profile(bob_wallet.address).debug_print("[DEMO] Bob on-chain profile")

    print("\n=== Step 3: dashboard ===")
    await alice.load_policies()
    print("  ", summarize_policies(alice.policies, registry.now()))
    for ev in registry.blockchain.get_events():
        print("   event:", ev)

    print()
    print(registry.blockchain)


def main():
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
