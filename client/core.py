#!/usr/bin/env python3
# client/core.py
# ClientSession: bridges user actions to registry calls and the FHE instance,
# and keeps the local view (policies, status, caches) in line with chain state.

import re

from errors import ContractRevert, ErrorKind, RegistryError, UserRejectedSigning
from tools import normalize_address, short_hex

from .contract_binding import RegistryReadOnly, RegistryWithSigner

DEFAULT_DESCRIPTION = "Encrypted Driving Behavior Insurance Policy"


def parse_int_field(value) -> int:
    """
    Sanitise a numeric form field the way the policy form does: keep digits
    only, and treat an empty result as 0.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return max(0, value)
    digits = re.sub(r"[^\d]", "", str(value if value is not None else ""))
    if not digits:
        return 0
    return int(digits)


class ClientSession:
    """
    One session per connected wallet.

      - connect(wallet) / disconnect() set up and tear down the whole session
        context: wallet, contract bindings, FHE instance state, loaded policies.
      - Every public action catches its own errors and reports them through
        self.status = {"visible", "status": "pending"|"success"|"error", "message"}.
      - fhe_initializing and is_decrypting are the re-entrancy guards.
    """

    def __init__(self, registry, fhe_instance):
        self._registry = registry
        self.fhe = fhe_instance

        self.wallet = None
        self.contract_read = None
        self.contract_write = None
        self.contract_address = ""

        self.policies = []
        self.decrypted_cache = {}

        self.fhe_initializing = False
        self.is_refreshing = False
        self.is_creating = False
        self.is_decrypting = False

        self.status = {"visible": False, "status": "pending", "message": ""}

    # ---------------- status ----------------
    def _set_status(self, status, message):
        self.status = {"visible": True, "status": status, "message": message}
        print(f"[CLIENT][STATUS][{status}]", message)

    def clear_status(self):
        self.status = {"visible": False, "status": "pending", "message": ""}

    @property
    def is_connected(self):
        return self.wallet is not None

    def _require_connected(self):
        if not self.is_connected:
            self._set_status("error", "Please connect wallet first")
            return False
        return True

    # ---------------- session lifecycle ----------------
    async def connect(self, wallet):
        """
        Attach a wallet, initialise the FHE instance once, then load the
        registry view.
        """
        if self.is_connected:
            await self.disconnect()

        self.wallet = wallet
        self.contract_read = RegistryReadOnly(self._registry)
        self.contract_write = RegistryWithSigner(self._registry, wallet)
        print("[CLIENT] wallet connected:", wallet.address)

        await self.ensure_fhe_initialized()

        await self.load_policies()
        try:
            self.contract_address = await self.contract_read.get_address()
        except RegistryError as e:
            print("[CLIENT][ERROR] failed to read contract address:", e)

    async def disconnect(self):
        print("[CLIENT] wallet disconnected:", self.wallet.address if self.wallet else None)
        self.wallet = None
        self.contract_read = None
        self.contract_write = None
        self.contract_address = ""
        self.policies = []
        self.decrypted_cache = {}
        self.fhe_initializing = False
        self.is_refreshing = False
        self.is_creating = False
        self.is_decrypting = False
        self.clear_status()

    async def ensure_fhe_initialized(self):
        """
        Initialise the FHE instance if needed. Returns True once initialised.
        A call made while another initialisation is in flight returns False
        immediately instead of starting a second one.
        """
        if not self.is_connected:
            return False
        if self.fhe.is_initialized:
            return True
        if self.fhe_initializing:
            print("[CLIENT][FHE] initialization already in flight, skipping.")
            return False

        self.fhe_initializing = True
        try:
            print("[CLIENT][FHE] initializing FHE instance after wallet connection...")
            await self.fhe.initialize()
            print("[CLIENT][FHE] FHE instance initialized.")
            return True
        except Exception as e:
            print("[CLIENT][FHE][ERROR] initialization failed:", e)
            self._set_status("error", "FHE initialization failed. Please check your wallet connection.")
            return False
        finally:
            self.fhe_initializing = False

    # ---------------- reads ----------------
    async def load_policies(self):
        """
        Fetch all registered drivers, then each profile. A failing profile
        fetch skips that entry; a failing list fetch keeps the old list and
        reports an error. Returns the (possibly unchanged) policy list.
        """
        if not self.is_connected:
            return self.policies

        self.is_refreshing = True
        try:
            addresses = await self.contract_read.get_all_driver_addresses()

            policies = []
            for addr in addresses:
                try:
                    policies.append(await self.contract_read.get_profile(addr))
                except RegistryError as e:
                    print("[CLIENT][LoadPolicies][WARN] skipping", addr, "->", e)
            self.policies = policies
            print("[CLIENT][LoadPolicies] loaded", len(policies), "of", len(addresses), "policies.")
        except RegistryError as e:
            print("[CLIENT][LoadPolicies][ERROR] failed to list drivers:", e)
            self._set_status("error", "Failed to load data")
        finally:
            self.is_refreshing = False
        return self.policies

    async def test_availability(self):
        if not self._require_connected():
            return False
        try:
            await self.contract_read.is_available()
        except RegistryError as e:
            print("[CLIENT][Availability][ERROR]", e)
            self._set_status("error", "Availability check failed")
            return False
        self._set_status("success", "Contract is available and ready!")
        return True

    def get_policy(self, addr):
        for p in self.policies:
            if p["driver_address"] == addr:
                return p
        return None

    # ---------------- create ----------------
    async def create_policy(
        self,
        name,
        raw_score,
        base_premium,
        speeding_events=0,
        age=0,
        vehicle_value=0,
        description=DEFAULT_DESCRIPTION,
    ):
        """
        Encrypt the driving score (and speeding count) for this contract and
        wallet, then submit CreateProfile. Returns True on success.
        """
        if not self._require_connected():
            return False

        self.is_creating = True
        self._set_status("pending", "Creating insurance policy with FHE...")
        try:
            if not await self.ensure_fhe_initialized():
                raise RuntimeError("FHE instance is not ready")

            score = parse_int_field(raw_score)
            contract_address = await self.contract_read.get_address()
            user_address = self.wallet.address

            enc_score = await self.fhe.encrypt(contract_address, user_address, score)
            enc_speeding = await self.fhe.encrypt(contract_address, user_address, parse_int_field(speeding_events))

            await self.contract_write.create_profile(
                enc_score["handle"],
                enc_score["proof"],
                enc_speeding["handle"],
                enc_speeding["proof"],
                parse_int_field(age),
                parse_int_field(vehicle_value),
                parse_int_field(base_premium),
                name=str(name),
                description=description,
            )
        except UserRejectedSigning:
            self._set_status("error", "Transaction rejected by user")
            return False
        except Exception as e:
            print("[CLIENT][CreatePolicy][ERROR]", e)
            self._set_status("error", "Submission failed: " + (str(e) or "Unknown error"))
            return False
        finally:
            self.is_creating = False

        self._set_status("success", "Insurance policy created successfully!")
        await self.load_policies()
        return True

    # ---------------- settle ----------------
    async def compute_discount(self):
        """
        Ask the registry to compute and settle the connected driver's
        discount. Returns the settled discount, or None on failure.
        """
        if not self._require_connected():
            return None
        try:
            resp = await self.contract_write.compute_discount()
        except UserRejectedSigning:
            self._set_status("error", "Transaction rejected by user")
            return None
        except RegistryError as e:
            print("[CLIENT][ComputeDiscount][ERROR]", e)
            self._set_status("error", "Discount computation failed: " + str(e))
            return None

        discount = resp["discount"]
        self.decrypted_cache[self.wallet.address] = discount
        self._set_status("success", "Discount computed on-chain: " + str(discount))
        await self.load_policies()
        return discount

    async def request_decryption(self, addr):
        """
        Return the cleartext score for a policy.

          - already verified on-chain: the stored value, no crypto work;
          - another driver's unverified policy: refused before anything
            is decrypted or signed;
          - otherwise: public decryption + proof, submitted through
            VerifyDecryption, then the clear value;
          - a concurrent settlement (AlreadyVerified revert) counts as
            success with no new value and returns None.
        Returns None on any failure or while another decryption is running.
        """
        if not self._require_connected():
            return None
        if self.is_decrypting:
            print("[CLIENT][Decrypt] a decryption is already in flight.")
            return None

        self.is_decrypting = True
        try:
            addr = normalize_address(addr)
            profile = await self.contract_read.get_profile(addr)
            if profile["is_verified"]:
                value = profile["decrypted_discount"] or 0
                self.decrypted_cache[addr] = value
                self._set_status("success", "Data already verified on-chain")
                return value

            # VerifyDecryption settles the sender's own profile only
            if addr != self.wallet.address:
                print("[CLIENT][Decrypt][ERROR] policy", addr, "is not owned by", self.wallet.address)
                self._set_status("error", "Only the policy owner can verify its decryption")
                return None

            if not await self.ensure_fhe_initialized():
                raise RuntimeError("FHE instance is not ready")

            contract_address = await self.contract_read.get_address()
            handle = await self.contract_read.get_encrypted_value(addr)
            print("[CLIENT][Decrypt] requesting verified decryption of", short_hex(handle))

            async def submit(abi_encoded_clear_values, decryption_proof):
                await self.contract_write.verify_decryption(abi_encoded_clear_values, decryption_proof)

            self._set_status("pending", "Verifying decryption on-chain...")
            result = await self.fhe.request_verified_decryption([handle], contract_address, submit)
            value = int(result["clear_values"][handle])
            self.decrypted_cache[addr] = value

            await self.load_policies()
            self._set_status("success", "Data decrypted and verified successfully!")
            return value
        except ContractRevert as e:
            if e.kind == ErrorKind.ALREADY_VERIFIED:
                self._set_status("success", "Data is already verified on-chain")
                await self.load_policies()
                return None
            print("[CLIENT][Decrypt][ERROR]", e)
            self._set_status("error", "Decryption failed: " + str(e))
            return None
        except UserRejectedSigning:
            self._set_status("error", "Transaction rejected by user")
            return None
        except Exception as e:
            print("[CLIENT][Decrypt][ERROR]", e)
            self._set_status("error", "Decryption failed: " + (str(e) or "Unknown error"))
            return None
        finally:
            self.is_decrypting = False
