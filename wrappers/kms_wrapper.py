# wrappers/kms_wrapper.py
# Key management service (KMS) binding.
#
# The KMS releases cleartexts of executor handles and attests them:
#   - public_decrypt(handles): for publicly decryptable handles, returns the
#     clear values, their ABI encoding (one uint256 per handle) and a
#     decryption proof signed by the KMS signer set;
#   - check_signatures(...): the verification primitive contracts call with
#     the proof they receive;
#   - decrypt_for_contract(handle, contract): the on-chain request path; the
#     contract must be allowed on the handle.
#
# Proof layout:
#   byte 0           : number of signatures (k)
#   bytes 1..65*k    : k signatures (r || s || v, 65 bytes each)
# Each signature is an EIP-191 signature over
#   keccak256(abi.encode(bytes32[] handles, bytes abi_encoded_clear_values))

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from eth_utils import keccak

from tools import (
    KMS_SIGNER_SK_HEXES,
    KMS_THRESHOLD,
    short_hex,
    to_0x_hex,
    turn_hex_str_to_bytes,
)

SIGNATURE_LEN = 65


def encode_clear_values(values) -> bytes:
    return abi_encode(["uint256"] * len(values), [int(v) for v in values])


def decode_clear_values(abi_encoded, count):
    """
    Decode `count` uint256 clear values. Raise ValueError on malformed data.
    """
    data = turn_hex_str_to_bytes(abi_encoded)
    try:
        return list(abi_decode(["uint256"] * count, data))
    except Exception as e:
        raise ValueError("malformed clear values: " + repr(e))


def decryption_digest(handles, abi_encoded_clear_values) -> bytes:
    handle_bytes = [turn_hex_str_to_bytes(h) for h in handles]
    encoded = abi_encode(
        ["bytes32[]", "bytes"],
        [handle_bytes, turn_hex_str_to_bytes(abi_encoded_clear_values)],
    )
    return keccak(encoded)


def split_decryption_proof(proof):
    """
    Split a decryption proof into its list of 65-byte signatures.
    Raise ValueError if the layout is inconsistent.
    """
    raw = turn_hex_str_to_bytes(proof)
    if len(raw) < 1:
        raise ValueError("empty decryption proof")
    count = raw[0]
    if len(raw) != 1 + count * SIGNATURE_LEN:
        raise ValueError("decryption proof length does not match signature count")

    sigs = []
    i = 0
    while i < count:
        start = 1 + i * SIGNATURE_LEN
        sigs.append(raw[start:start + SIGNATURE_LEN])
        i += 1
    return sigs


class Kms:
    def __init__(self, executor, signer_sk_hexes=None, threshold=KMS_THRESHOLD):
        if signer_sk_hexes is None:
            signer_sk_hexes = KMS_SIGNER_SK_HEXES
        if threshold < 1 or threshold > len(signer_sk_hexes):
            raise ValueError("KMS threshold must be within 1..number of signers")

        self.executor = executor
        self.threshold = threshold
        self._signers = [EthAccount.from_key(turn_hex_str_to_bytes(sk)) for sk in signer_sk_hexes]
        self.signer_addresses = [s.address for s in self._signers]

        print("[KMS] KMS ready,", len(self._signers), "signers, threshold =", self.threshold)

    # ---------------- decryption ----------------
    def public_decrypt(self, handles):
        """
        Decrypt publicly decryptable handles and attest the result.
        Raise PermissionError if any handle is not publicly decryptable.
        """
        if not handles:
            raise ValueError("no handles to decrypt")

        for h in handles:
            if not self.executor.is_publicly_decryptable(h):
                raise PermissionError("handle is not publicly decryptable: " + short_hex(h))

        clear_values = {}
        ordered = []
        for h in handles:
            v = self.executor.decrypt(h)
            clear_values[h] = v
            ordered.append(v)

        abi_encoded = encode_clear_values(ordered)
        proof = self._sign_decryption(handles, abi_encoded)

        print("[KMS] public decryption done for", len(handles), "handle(s).")
        return {
            "clear_values": clear_values,
            "abi_encoded_clear_values": to_0x_hex(abi_encoded),
            "decryption_proof": proof,
        }

    def decrypt_for_contract(self, handle, contract_address) -> int:
        """
        On-chain decryption request. The contract must be allowed on the handle.
        """
        if not self.executor.is_allowed(handle, contract_address):
            raise PermissionError("contract is not allowed on handle: " + short_hex(handle))
        value = self.executor.decrypt(handle)
        print("[KMS] decryption request served for", short_hex(handle))
        return value

    def _sign_decryption(self, handles, abi_encoded) -> str:
        digest = decryption_digest(handles, abi_encoded)
        msg = encode_defunct(primitive=digest)
        parts = [bytes([len(self._signers)])]
        for signer in self._signers:
            parts.append(bytes(signer.sign_message(msg).signature))
        return to_0x_hex(b"".join(parts))

    # ---------------- verification ----------------
    def check_signatures(self, handles, abi_encoded_clear_values, decryption_proof) -> bool:
        """
        Verify a decryption proof: at least `threshold` distinct KMS signers
        must have signed (handles, abi_encoded_clear_values).
        """
        try:
            sigs = split_decryption_proof(decryption_proof)
            digest = decryption_digest(handles, abi_encoded_clear_values)
        except (TypeError, ValueError) as e:
            print("[KMS][ERROR] malformed decryption proof:", e)
            return False

        msg = encode_defunct(primitive=digest)
        seen = set()
        for sig in sigs:
            try:
                signer = EthAccount.recover_message(msg, signature=sig)
            except Exception as e:
                print("[KMS][WARN] skipping unrecoverable signature:", e)
                continue
            if signer in self.signer_addresses:
                seen.add(signer)

        if len(seen) < self.threshold:
            print("[KMS][ERROR] only", len(seen), "valid KMS signatures, need", self.threshold)
            return False
        return True
