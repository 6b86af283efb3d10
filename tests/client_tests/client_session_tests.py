#!/usr/bin/env python3
# tests/client_tests/client_session_tests.py
#
# ClientSession tests (async, driven with asyncio.run).
#
# Goals:
#   - connect / create / decrypt happy path and the verified fast path;
#   - user rejection and transport failures are reported through status;
#   - load_policies skips failing entries and keeps the old list when the
#     address list itself cannot be fetched;
#   - a settlement that lands while a decryption is in flight is reported
#     as success without a new value;
#   - re-entrancy guards (FHE init, decryption) and disconnect teardown.

import asyncio
import os
import sys

# Add project root to sys.path
THIS_FILE = os.path.abspath(__file__)
THIS_DIR = os.path.dirname(THIS_FILE)
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from client.core import ClientSession
from client.wallet import Wallet
from demo.demo1_good import build_demo_network, connect_driver
from driver_profile import SettlementMethod
from wrappers.fhe_instance_wrapper import FheInstance


class FlakyRegistry:
    """
    Transport stand-in in front of a real registry: raises for selected
    calls the way a dropped RPC connection would.
    """

    def __init__(self, inner):
        self.inner = inner
        self.bad_profile_addr = None
        self.fail_list = False

    def deal_with_request(self, envelope):
        app_type = envelope["application_type"]
        if app_type == "GetProfile" and envelope["payload"].get("addr") == self.bad_profile_addr:
            raise ConnectionError("rpc connection dropped")
        if app_type == "GetAllDriverAddresses" and self.fail_list:
            raise ConnectionError("rpc connection dropped")
        return self.inner.deal_with_request(envelope)


class RacingFheInstance(FheInstance):
    """
    Runs `before_submit` right before the decryption bundle is fetched, to
    let another settlement land first.
    """

    def __init__(self, executor, kms):
        super().__init__(executor, kms)
        self.before_submit = None

    async def request_verified_decryption(self, handles, contract_address, submit_callback):
        if self.before_submit is not None:
            await self.before_submit()
        return await super().request_verified_decryption(handles, contract_address, submit_callback)


class BrokenFheInstance(FheInstance):
    async def initialize(self):
        raise RuntimeError("public key fetch failed")


def test_connect_create_and_decrypt():
    print("=== connect, create, decrypt ===")

    async def run():
        net = build_demo_network()
        session, wallet = await connect_driver(net)
        assert session.is_connected
        assert session.fhe.is_initialized
        assert session.contract_address == net["registry"].contract_address
        assert session.policies == []

        ok = await session.create_policy("My car", "82", "1,200", speeding_events=2, age=34)
        assert ok is True
        assert session.status["status"] == "success"
        assert session.status["message"] == "Insurance policy created successfully!"
        assert session.is_creating is False

        policy = session.get_policy(wallet.address)
        assert policy["name"] == "My car"
        assert policy["base_premium"] == 1200
        assert policy["public_age"] == 34
        assert policy["is_verified"] is False

        value = await session.request_decryption(wallet.address)
        assert value == 82
        assert session.decrypted_cache[wallet.address] == 82
        assert session.status["message"] == "Data decrypted and verified successfully!"
        assert session.get_policy(wallet.address)["is_verified"] is True
        assert session.get_policy(wallet.address)["settlement"]["method"] == SettlementMethod.EXTERNAL_VERIFY

        # second call: stored value, no new transaction
        blocks = len(net["registry"].blockchain.lst_of_blocks)
        assert await session.request_decryption(wallet.address) == 82
        assert session.status["message"] == "Data already verified on-chain"
        assert len(net["registry"].blockchain.lst_of_blocks) == blocks
        assert session.is_decrypting is False

    asyncio.run(run())


def test_other_session_sees_new_policy():
    print("\n=== policies visible across sessions ===")

    async def run():
        net = build_demo_network()
        signed = []
        alice, alice_wallet = await connect_driver(
            net, approve=lambda app_type, payload: signed.append(app_type) or True)
        bob, bob_wallet = await connect_driver(net)
        assert await alice.create_policy("Alice", 70, 1000)
        assert await bob.create_policy("Bob", 40, 800)

        await alice.load_policies()
        assert [p["driver_address"] for p in alice.policies] == [alice_wallet.address, bob_wallet.address]

        # someone else's unverified policy: nothing is signed or submitted
        blocks = len(net["registry"].blockchain.lst_of_blocks)
        assert await alice.request_decryption(bob_wallet.address) is None
        assert alice.status["status"] == "error"
        assert alice.status["message"] == "Only the policy owner can verify its decryption"
        assert signed == ["CreateProfile"]
        assert len(net["registry"].blockchain.lst_of_blocks) == blocks
        assert net["registry"].get_profile(bob_wallet.address).is_verified is False
        assert alice.is_decrypting is False

        # once Bob settles, Alice reads the stored value
        assert await bob.request_decryption(bob_wallet.address) == 40
        assert await alice.request_decryption(bob_wallet.address) == 40
        assert alice.status["message"] == "Data already verified on-chain"

    asyncio.run(run())


def test_user_rejects_signing():
    print("\n=== user rejects the transaction ===")

    async def run():
        net = build_demo_network()
        session, wallet = await connect_driver(net, approve=lambda app_type, payload: False)
        ok = await session.create_policy("Rejected", 90, 1000)
        assert ok is False
        assert session.status == {"visible": True, "status": "error", "message": "Transaction rejected by user"}
        assert net["registry"].get_profile(wallet.address) is None
        assert session.is_creating is False

    asyncio.run(run())


def test_create_twice_reports_revert():
    async def run():
        net = build_demo_network()
        session, _ = await connect_driver(net)
        assert await session.create_policy("First", 60, 1000)
        assert await session.create_policy("Second", 60, 1000) is False
        assert session.status["message"].startswith("Submission failed: ")
        assert "ProfileAlreadyExists" in session.status["message"]
        assert len(session.policies) == 1

    asyncio.run(run())


def test_load_policies_partial_and_total_failure():
    print("\n=== load_policies with failing reads ===")

    async def run():
        net = build_demo_network()
        wallets = []
        for i in range(3):
            s, w = await connect_driver(net)
            assert await s.create_policy("driver %d" % i, 50 + i, 1000)
            wallets.append(w)

        flaky = FlakyRegistry(net["registry"])
        flaky.bad_profile_addr = wallets[1].address
        session = ClientSession(flaky, FheInstance(net["executor"], net["kms"]))
        await session.connect(Wallet())

        assert [p["driver_address"] for p in session.policies] == [wallets[0].address, wallets[2].address]
        assert session.status["visible"] is False

        flaky.fail_list = True
        before = list(session.policies)
        await session.load_policies()
        assert session.policies == before
        assert session.status["status"] == "error"
        assert session.status["message"] == "Failed to load data"
        assert session.is_refreshing is False

    asyncio.run(run())


def test_decryption_race_with_compute():
    """
    The profile is settled through ComputeDiscount after the client checked
    it but before its VerifyDecryption lands.
    """
    print("\n=== decryption races a compute settlement ===")

    async def run():
        net = build_demo_network()
        fhe = RacingFheInstance(net["executor"], net["kms"])
        session = ClientSession(net["registry"], fhe)
        wallet = Wallet()
        await session.connect(wallet)
        assert await session.create_policy("Racer", 24000, 1000, speeding_events=10, age=45, vehicle_value=35000)

        fhe.before_submit = session.contract_write.compute_discount
        value = await session.request_decryption(wallet.address)

        assert value is None
        assert session.status["status"] == "success"
        assert session.status["message"] == "Data is already verified on-chain"
        policy = session.get_policy(wallet.address)
        assert policy["is_verified"] is True
        assert policy["decrypted_discount"] == 108
        assert policy["settlement"]["method"] == SettlementMethod.COMPUTE
        assert session.is_decrypting is False

    asyncio.run(run())


def test_compute_discount_via_session():
    print("\n=== compute_discount through the session ===")

    async def run():
        net = build_demo_network()
        session, wallet = await connect_driver(net)
        assert await session.create_policy("Bob", 24000, 900, speeding_events=10, age=45, vehicle_value=35000)

        assert await session.compute_discount() == 108
        assert session.decrypted_cache[wallet.address] == 108
        assert session.get_policy(wallet.address)["is_verified"] is True

        assert await session.compute_discount() is None
        assert session.status["status"] == "error"
        assert "AlreadyVerified" in session.status["message"]

    asyncio.run(run())


def test_fhe_init_guard():
    print("\n=== FHE initialization guard ===")

    async def run():
        net = build_demo_network()
        session = ClientSession(net["registry"], FheInstance(net["executor"], net["kms"]))
        assert await session.ensure_fhe_initialized() is False

        session.wallet = Wallet()
        session.fhe_initializing = True
        assert await session.ensure_fhe_initialized() is False
        assert session.fhe.is_initialized is False

        session.fhe_initializing = False
        assert await session.ensure_fhe_initialized() is True
        assert await session.ensure_fhe_initialized() is True

        broken = ClientSession(net["registry"], BrokenFheInstance(net["executor"], net["kms"]))
        await broken.connect(Wallet())
        assert broken.status["status"] == "error"
        assert broken.status["message"].startswith("FHE initialization failed")
        assert broken.fhe_initializing is False
        assert await broken.create_policy("No FHE", 80, 1000) is False
        assert broken.status["message"].startswith("Submission failed: ")

    asyncio.run(run())


def test_decryption_busy_flag_and_errors():
    async def run():
        net = build_demo_network()
        session, wallet = await connect_driver(net)
        assert await session.create_policy("Busy", 77, 1000)

        session.is_decrypting = True
        assert await session.request_decryption(wallet.address) is None
        assert net["registry"].get_profile(wallet.address).is_verified is False
        session.is_decrypting = False

        assert await session.request_decryption(Wallet().address) is None
        assert session.status["status"] == "error"
        assert session.is_decrypting is False

    asyncio.run(run())


def test_availability_and_disconnect():
    print("\n=== availability and disconnect ===")

    async def run():
        net = build_demo_network()
        session = ClientSession(net["registry"], FheInstance(net["executor"], net["kms"]))
        assert await session.test_availability() is False
        assert session.status["message"] == "Please connect wallet first"

        await session.connect(Wallet())
        assert await session.test_availability() is True
        assert session.status["message"] == "Contract is available and ready!"
        session.clear_status()
        assert session.status["visible"] is False

        assert await session.create_policy("Leaving", 60, 1000)
        session.decrypted_cache["x"] = 1
        await session.disconnect()

        assert session.is_connected is False
        assert session.contract_read is None and session.contract_write is None
        assert session.contract_address == ""
        assert session.policies == [] and session.decrypted_cache == {}
        assert session.status["visible"] is False
        assert await session.request_decryption(Wallet().address) is None

    asyncio.run(run())


def main() -> None:
    test_connect_create_and_decrypt()
    test_other_session_sees_new_policy()
    test_user_rejects_signing()
    test_create_twice_reports_revert()
    test_load_policies_partial_and_total_failure()
    test_decryption_race_with_compute()
    test_compute_discount_via_session()
    test_fhe_init_guard()
    test_decryption_busy_flag_and_errors()
    test_availability_and_disconnect()
    print("=== all client session tests finished ===")


if __name__ == "__main__":
    main()
