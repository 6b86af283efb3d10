# wrappers/fhe_instance_wrapper.py
# Client-side FHE instance (the browser SDK counterpart).
#
# Usage:
#   inst = FheInstance(executor, kms)
#   await inst.initialize()
#   enc = await inst.encrypt(contract_addr, user_addr, 87)
#       -> {"handle": "0x..", "proof": "0x.."}
#   res = await inst.request_verified_decryption([handle], contract_addr, submit)
#       -> {"clear_values": {handle: int}, "abi_encoded_clear_values": .., "decryption_proof": ..}
#
# request_verified_decryption awaits submit(abi_encoded_clear_values, decryption_proof)
# before returning, so a failing submission propagates to the caller.

import asyncio

from tools import normalize_address, short_hex
from wrappers.paillier_wrapper import encrypt_uint32, serialize_ciphertext


class FheInstance:
    def __init__(self, executor, kms):
        self._executor = executor
        self._kms = kms
        self.public_key = None
        self.is_initialized = False

    async def initialize(self):
        """
        Fetch the network public key. Calling it again is a no-op.
        """
        if self.is_initialized:
            return
        await asyncio.sleep(0)
        self.public_key = self._executor.public_key
        self.is_initialized = True
        print("[FHE] instance initialized.")

    def _require_initialized(self):
        if not self.is_initialized:
            raise RuntimeError("FHE instance not initialized. Call initialize() first.")

    async def encrypt(self, contract_address, user_address, value):
        self._require_initialized()
        contract_address = normalize_address(contract_address)
        user_address = normalize_address(user_address)

        enc = encrypt_uint32(self.public_key, value)
        await asyncio.sleep(0)
        res = self._executor.register_input(serialize_ciphertext(enc), contract_address, user_address)

        print("[FHE] value encrypted for", short_hex(user_address), "handle =", short_hex(res["handle"]))
        return {"handle": res["handle"], "proof": res["proof"]}

    async def request_verified_decryption(self, handles, contract_address, submit_callback):
        self._require_initialized()
        normalize_address(contract_address)

        await asyncio.sleep(0)
        result = self._kms.public_decrypt(list(handles))

        print("[FHE] decryption bundle received, submitting proof on-chain...")
        await submit_callback(result["abi_encoded_clear_values"], result["decryption_proof"])

        return result
