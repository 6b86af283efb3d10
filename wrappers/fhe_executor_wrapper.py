# wrappers/fhe_executor_wrapper.py
# FHE executor (coprocessor) binding used by the registry contract.
#
# The executor keeps every ciphertext in a store keyed by a bytes32 handle
# (0x-prefixed hex). Contracts only ever hold handles. Access to a handle is
# controlled by an ACL:
#   - allow(handle, addr) grants an address the right to compute on / decrypt it;
#   - make_publicly_decryptable(handle) lets the KMS release its cleartext to anyone.
#
# Arithmetic follows euint32 semantics: every result wraps modulo 2**32 and
# division by a plaintext truncates. Paillier is only additively homomorphic,
# so add / sub / scalar mul / scalar add are evaluated on ciphertexts, and the
# executor then re-encrypts the wrapped result under its key. Scalar division
# has no additive form and is evaluated the same way.

from eth_abi import encode as abi_encode
from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from eth_utils import keccak

from tools import (
    COPROCESSOR_SK_HEX,
    UINT32_MOD,
    get_hash,
    normalize_address,
    short_hex,
    turn_hex_str_to_bytes,
    wrap_uint32,
)
from wrappers.paillier_wrapper import (
    decrypt_uint32,
    deserialize_ciphertext,
)


def input_proof_digest(handle, contract_address, user_address) -> bytes:
    """
    Digest signed by the coprocessor for an input ciphertext:
        keccak256(abi.encode(bytes32 handle, address contract, address user))
    """
    encoded = abi_encode(
        ["bytes32", "address", "address"],
        [
            turn_hex_str_to_bytes(handle),
            normalize_address(contract_address),
            normalize_address(user_address),
        ],
    )
    return keccak(encoded)


class FheExecutor:
    def __init__(self, public_key, private_key, signer_sk_hex=COPROCESSOR_SK_HEX):
        self.public_key = public_key
        self._private_key = private_key

        self._signer = EthAccount.from_key(turn_hex_str_to_bytes(signer_sk_hex))
        self.signer_address = self._signer.address

        # handle -> EncryptedNumber
        self._ciphertexts = {}
        # handle -> set of checksum addresses
        self._acl = {}
        self._publicly_decryptable = set()
        self._counter = 0

        print("[EXECUTOR] FHE executor ready, coprocessor signer =", self.signer_address)

    # ---------------- handles ----------------
    def _store(self, enc):
        self._counter += 1
        seed = str(enc.ciphertext(be_secure=False)) + ":" + str(self._counter)
        handle = get_hash(seed)
        self._ciphertexts[handle] = enc
        self._acl[handle] = set()
        return handle

    def has_handle(self, handle) -> bool:
        return isinstance(handle, str) and handle.lower() in self._ciphertexts

    def _is_uint32_ciphertext(self, enc) -> bool:
        """
        True if enc is an integer encoding (exponent 0) of a value in
        [0, 2**32). Negative values are encoded as n - x and fail the bound.
        """
        if enc.exponent != 0:
            return False
        plain = self._private_key.raw_decrypt(enc.ciphertext(be_secure=False))
        return 0 <= plain < UINT32_MOD

    # ---------------- inputs ----------------
    def register_input(self, ciphertext, contract_address, user_address):
        """
        Accept a client-made ciphertext and return its handle plus an input
        proof binding (handle, contract, user), signed by the coprocessor.
        Raise ValueError if the ciphertext is malformed or does not hold a
        euint32 value.
        """
        enc = deserialize_ciphertext(self.public_key, ciphertext)
        if not self._is_uint32_ciphertext(enc):
            print("[EXECUTOR][ERROR] input is not a euint32 ciphertext, refused.")
            raise ValueError("ciphertext does not encrypt a euint32 value")
        handle = self._store(enc)

        digest = input_proof_digest(handle, contract_address, user_address)
        signed = self._signer.sign_message(encode_defunct(primitive=digest))
        proof = "0x" + bytes(signed.signature).hex()

        print("[EXECUTOR] input registered, handle =", short_hex(handle))
        return {"handle": handle, "proof": proof}

    def verify_input(self, handle, proof, contract_address, user_address) -> bool:
        """
        Check an input proof. On success the contract is allowed on the handle.
        """
        if not self.has_handle(handle):
            print("[EXECUTOR][ERROR] unknown input handle:", short_hex(handle))
            return False
        handle = handle.lower()

        if not self._is_uint32_ciphertext(self._ciphertexts[handle]):
            print("[EXECUTOR][ERROR] stored input is not a euint32 value:", short_hex(handle))
            return False

        try:
            digest = input_proof_digest(handle, contract_address, user_address)
            signer = EthAccount.recover_message(
                encode_defunct(primitive=digest),
                signature=turn_hex_str_to_bytes(proof),
            )
        except Exception as e:
            print("[EXECUTOR][ERROR] input proof could not be recovered:", e)
            return False

        if signer != self.signer_address:
            print("[EXECUTOR][ERROR] input proof not signed by coprocessor, got", signer)
            return False

        self.allow(handle, contract_address)
        return True

    # ---------------- ACL ----------------
    def allow(self, handle, address):
        if not self.has_handle(handle):
            raise KeyError("unknown handle: " + str(handle))
        self._acl[handle.lower()].add(normalize_address(address))

    def is_allowed(self, handle, address) -> bool:
        if not self.has_handle(handle):
            return False
        return normalize_address(address) in self._acl[handle.lower()]

    def make_publicly_decryptable(self, handle):
        if not self.has_handle(handle):
            raise KeyError("unknown handle: " + str(handle))
        self._publicly_decryptable.add(handle.lower())

    def is_publicly_decryptable(self, handle) -> bool:
        return isinstance(handle, str) and handle.lower() in self._publicly_decryptable

    # ---------------- euint32 arithmetic ----------------
    def _operand(self, handle, caller):
        if not self.is_allowed(handle, caller):
            raise PermissionError(
                "caller " + str(caller) + " is not allowed on handle " + short_hex(handle)
            )
        return self._ciphertexts[handle.lower()]

    def _result(self, enc, caller):
        """
        Wrap an intermediate ciphertext into the euint32 range, store it and
        allow the caller on the new handle.
        """
        wrapped = wrap_uint32(self._private_key.decrypt(enc))
        handle = self._store(self.public_key.encrypt(wrapped))
        self.allow(handle, caller)
        return handle

    def add(self, lhs, rhs, caller):
        return self._result(self._operand(lhs, caller) + self._operand(rhs, caller), caller)

    def sub(self, lhs, rhs, caller):
        return self._result(self._operand(lhs, caller) - self._operand(rhs, caller), caller)

    def add_scalar(self, handle, k, caller):
        return self._result(self._operand(handle, caller) + int(k), caller)

    def mul_scalar(self, handle, k, caller):
        return self._result(self._operand(handle, caller) * int(k), caller)

    def div_scalar(self, handle, k, caller):
        k = int(k)
        if k <= 0:
            raise ValueError("division by non-positive scalar")
        value = decrypt_uint32(self._private_key, self._operand(handle, caller))
        return self._result(self.public_key.encrypt(value // k), caller)

    # ---------------- KMS access ----------------
    def decrypt(self, handle) -> int:
        """
        Plaintext of a stored handle. Only the KMS calls this; it enforces
        the ACL / public-decryption rules before releasing anything.
        """
        if not self.has_handle(handle):
            raise KeyError("unknown handle: " + str(handle))
        return decrypt_uint32(self._private_key, self._ciphertexts[handle.lower()])
