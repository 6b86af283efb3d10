# ================================
# registry/core.py
# Driver insurance registry contract and request dispatching.
# Includes support for:
#   - CreateProfile / ComputeDiscount / VerifyDecryption
#   - GetProfile / GetAllDriverAddresses / GetEncryptedValue(s)
#   - GetNonce / IsAvailable / GetContractAddress
# ================================

import time

from blockchain import Blockchain, Block
from errors import ErrorKind
from tools import REGISTRY_CONTRACT_ADDRESS, get_hash, canonical_json_bytes, normalize_address

from .handle_create_profile import handle_create_profile
from .handle_compute_discount import handle_compute_discount
from .handle_verify_decryption import handle_verify_decryption
from .handle_get_profile_info import (
    handle_get_all_driver_addresses,
    handle_get_contract_address,
    handle_get_encrypted_value,
    handle_get_encrypted_values,
    handle_get_nonce,
    handle_get_profile,
    handle_is_available,
)
from .utils import _make_bad_response, _truncate_long_hex_in_obj


class Registry:
    """
    Registry holds on-chain state for:
      - one DriverProfile per driver address,
      - the append-only list of registered addresses,
      - per-sender transaction nonces,
      - an internal blockchain of committed blocks.

    Encrypted arithmetic, input-proof checks and decryption are delegated to
    the injected executor and KMS.

    Requests are received as envelopes with an application_type and payload,
    and dispatched to dedicated handlers. State-changing handlers return
    a new_block that is committed into the internal blockchain.
    """

    def __init__(self, executor, kms, contract_address=REGISTRY_CONTRACT_ADDRESS, clock=None):
        print("[REGISTRY] Initializing Registry instance...")

        self.executor = executor
        self.kms = kms
        self.contract_address = normalize_address(contract_address)
        self._clock = clock if clock is not None else time.time

        # Profiles
        self.profile_map = {}
        self.list_of_addresses = []

        # sender -> last accepted nonce
        self.nonces = {}

        self.blockchain = Blockchain()

        print("[REGISTRY] Registry initialization finished, contract =", self.contract_address)

    def now(self):
        return int(self._clock())

    # -----------------------------------------------------------
    # Profile state
    # -----------------------------------------------------------
    def get_profile(self, addr):
        return self.profile_map.get(addr)

    def add_profile(self, profile):
        addr = profile.driver_address
        if addr in self.profile_map:
            raise ValueError("profile already exists for " + addr)
        self.profile_map[addr] = profile
        self.list_of_addresses.append(addr)

    def get_nonce(self, addr):
        return self.nonces.get(addr, 0)

    def state_root(self):
        """
        Hash over all profiles in registration order.
        """
        leaves = [self.profile_map[a].get_self_hash() for a in self.list_of_addresses]
        return get_hash(canonical_json_bytes(leaves))

    # -----------------------------------------------------------
    # Commit a new block into the internal blockchain
    # -----------------------------------------------------------
    def _commit_new_block(self, blk_dict):
        tx = blk_dict["tx"]
        sender = tx["sender"]
        self.nonces[sender] = self.get_nonce(sender) + 1

        blk = Block(
            state_root=self.state_root(),
            timestamp=self.now(),
            lst_of_txs=[tx],
            lst_of_events=blk_dict["events"],
        )
        self.blockchain.append_block(blk)
        print("[REGISTRY] new_block committed at height", blk.height, ", tx =", _truncate_long_hex_in_obj(tx))

    def _dispatch_and_commit_if_ok(self, handler, payload):
        res = handler(self, payload)
        if res.get("ok") and "new_block" in res:
            self._commit_new_block(res.pop("new_block"))
        return res

    # -----------------------------------------------------------
    # Request dispatcher
    # -----------------------------------------------------------
    def deal_with_request(self, envelope):
        """
        Dispatch an incoming request envelope based on application_type.
        """
        try:
            app_type = envelope["application_type"]
            payload = envelope.get("payload", {})
        except (KeyError, TypeError, AttributeError):
            print("[REGISTRY][ERROR] malformed envelope.")
            return _make_bad_response(ErrorKind.BAD_REQUEST, "malformed envelope")

        print("\n[REGISTRY] New request received, application_type =", app_type)

        if app_type in WRITE_HANDLERS:
            return self._dispatch_and_commit_if_ok(WRITE_HANDLERS[app_type], payload)

        if app_type in READ_HANDLERS:
            return READ_HANDLERS[app_type](self, payload)

        print("[REGISTRY][ERROR] Unknown application_type:", app_type)
        return _make_bad_response(ErrorKind.BAD_REQUEST, "unknown application_type")


WRITE_HANDLERS = {
    "CreateProfile": handle_create_profile,
    "ComputeDiscount": handle_compute_discount,
    "VerifyDecryption": handle_verify_decryption,
}

READ_HANDLERS = {
    "GetProfile": handle_get_profile,
    "GetAllDriverAddresses": handle_get_all_driver_addresses,
    "GetEncryptedValue": handle_get_encrypted_value,
    "GetEncryptedValues": handle_get_encrypted_values,
    "GetNonce": handle_get_nonce,
    "IsAvailable": handle_is_available,
    "GetContractAddress": handle_get_contract_address,
}
