# registry/handle_verify_decryption.py
# Handle VerifyDecryption requests (caller = driver).
#
# The driver submits a KMS-attested cleartext of the profile's score handle
# (encrypted_mileage, the value the client encrypts from the driving score).
# Checks, in order, before anything is written:
#   - sender signature / nonce
#   - profile exists                               -> ProfileNotFound
#   - profile not settled yet                      -> AlreadyVerified
#   - KMS signatures over ([handle], clear values) -> SignatureCheckFailed
#   - clear value decodes to a uint32              -> SignatureCheckFailed

from driver_profile import SettlementMethod
from errors import ErrorKind
from tools import UINT32_MOD
from wrappers.kms_wrapper import decode_clear_values

from .utils import _make_bad_response, _make_ok_response, _require_fields, authenticate_sender

LOG_TAG = "[REGISTRY][VerifyDecryption]"


def handle_verify_decryption(registry, payload):
    print(LOG_TAG, "start handling VerifyDecryption request.")

    sender, err = authenticate_sender(registry, "VerifyDecryption", payload, LOG_TAG)
    if err is not None:
        return err

    err = _require_fields(payload, ["abi_encoded_clear_values", "decryption_proof"], "VerifyDecryption")
    if err is not None:
        print(LOG_TAG, "[ERROR]", err["msg"])
        return err

    profile = registry.get_profile(sender)
    if profile is None:
        print(LOG_TAG, "[ERROR] no profile for", sender)
        return _make_bad_response(ErrorKind.PROFILE_NOT_FOUND, "profile not found")
    if profile.is_verified:
        print(LOG_TAG, "[ERROR] profile already verified for", sender)
        return _make_bad_response(ErrorKind.ALREADY_VERIFIED, "Data already verified")

    handles = [profile.encrypted_mileage]
    clear_blob = payload["abi_encoded_clear_values"]
    proof = payload["decryption_proof"]

    if not registry.kms.check_signatures(handles, clear_blob, proof):
        print(LOG_TAG, "[ERROR] KMS signature check failed.")
        return _make_bad_response(ErrorKind.SIGNATURE_CHECK_FAILED, "invalid decryption proof")

    try:
        value = decode_clear_values(clear_blob, len(handles))[0]
    except ValueError as e:
        print(LOG_TAG, "[ERROR] clear values could not be decoded:", e)
        return _make_bad_response(ErrorKind.SIGNATURE_CHECK_FAILED, "undecodable clear values")
    if value >= UINT32_MOD:
        print(LOG_TAG, "[ERROR] clear value out of euint32 range.")
        return _make_bad_response(ErrorKind.SIGNATURE_CHECK_FAILED, "clear value out of range")

    height = registry.blockchain.next_height()
    profile.settle(value, SettlementMethod.EXTERNAL_VERIFY, height)
    print(LOG_TAG, "decryption verified for", sender, ", value =", value)

    event = {"event": "DecryptionVerified", "driver": sender, "value": value}
    new_block = {
        "tx": {"tx_type": "VerifyDecryption", "sender": sender, "payload": payload},
        "events": [event],
    }
    return _make_ok_response(new_block, driver=sender, value=value)
