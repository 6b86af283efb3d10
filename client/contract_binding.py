#!/usr/bin/env python3
# client/contract_binding.py
# Async contract bindings for the registry.
#
#   RegistryReadOnly   : read operations, no wallet needed.
#   RegistryWithSigner : adds the state-changing operations; each request is
#                        stamped with sender + next nonce and signed by the wallet.
#
# Error mapping:
#   {"ok": False, "err": kind}        -> ContractRevert(kind, msg)
#   exception raised by the transport -> NetworkOrRpcFailure
#   wallet refuses to sign            -> UserRejectedSigning (propagated)

import asyncio

from errors import ContractRevert, ErrorKind, NetworkOrRpcFailure


class RegistryReadOnly:
    def __init__(self, registry):
        self._registry = registry
        self._contract_address = None

    async def _call(self, application_type, payload):
        envelope = {
            "application_type": application_type,
            "payload": payload,
        }
        await asyncio.sleep(0)
        try:
            resp = self._registry.deal_with_request(envelope)
        except Exception as e:
            print("[CLIENT][RPC][ERROR]", application_type, "transport failure:", e)
            raise NetworkOrRpcFailure(f"{application_type} call failed: {e}") from e

        if not isinstance(resp, dict) or "ok" not in resp:
            raise NetworkOrRpcFailure(f"{application_type} returned a malformed response")
        if not resp["ok"]:
            raise ContractRevert(resp.get("err", ErrorKind.BAD_REQUEST), resp.get("msg", ""))
        return resp

    async def get_address(self):
        if self._contract_address is None:
            resp = await self._call("GetContractAddress", {})
            self._contract_address = resp["contract_address"]
        return self._contract_address

    async def is_available(self):
        resp = await self._call("IsAvailable", {})
        return resp["available"]

    async def get_all_driver_addresses(self):
        resp = await self._call("GetAllDriverAddresses", {})
        return resp["addresses"]

    async def get_profile(self, addr):
        resp = await self._call("GetProfile", {"addr": addr})
        return resp["profile"]

    async def get_encrypted_value(self, addr):
        resp = await self._call("GetEncryptedValue", {"addr": addr})
        return resp["handle"]

    async def get_encrypted_values(self, addr):
        resp = await self._call("GetEncryptedValues", {"addr": addr})
        return {
            "encrypted_mileage": resp["encrypted_mileage"],
            "encrypted_speeding_events": resp["encrypted_speeding_events"],
        }

    async def get_nonce(self, addr):
        resp = await self._call("GetNonce", {"addr": addr})
        return resp["nonce"]


class RegistryWithSigner(RegistryReadOnly):
    def __init__(self, registry, wallet):
        super().__init__(registry)
        self.wallet = wallet

    async def _send(self, application_type, fields):
        contract_address = await self.get_address()
        nonce = await self.get_nonce(self.wallet.address)

        payload = dict(fields)
        payload["sender"] = self.wallet.address
        payload["nonce"] = nonce + 1
        payload["signature"] = self.wallet.sign_payload(application_type, payload, contract_address)

        print("[CLIENT][TX] sending", application_type, "from", self.wallet.address, "nonce =", nonce + 1)
        return await self._call(application_type, payload)

    async def create_profile(
        self,
        encrypted_mileage,
        mileage_proof,
        encrypted_speeding,
        speeding_proof,
        age,
        vehicle_value,
        base_premium,
        name="",
        description="",
    ):
        return await self._send("CreateProfile", {
            "encrypted_mileage": encrypted_mileage,
            "mileage_proof": mileage_proof,
            "encrypted_speeding": encrypted_speeding,
            "speeding_proof": speeding_proof,
            "age": age,
            "vehicle_value": vehicle_value,
            "base_premium": base_premium,
            "name": name,
            "description": description,
        })

    async def compute_discount(self):
        return await self._send("ComputeDiscount", {})

    async def verify_decryption(self, abi_encoded_clear_values, decryption_proof):
        return await self._send("VerifyDecryption", {
            "abi_encoded_clear_values": abi_encoded_clear_values,
            "decryption_proof": decryption_proof,
        })
