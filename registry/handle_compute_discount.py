# registry/handle_compute_discount.py
# Handle ComputeDiscount requests (caller = driver).
#
# Encrypted part, on euint32 handles:
#   mileage_discount = mileage * 5 / 1000
#   speeding_penalty = speeding * 2
#   net              = mileage_discount - speeding_penalty   (wraps mod 2**32)
# Plaintext bonuses are added as scalars:
#   +5 if age > 30, +3 if vehicle value > 20000
# The final handle is decrypted through the KMS request path and the cleartext
# is stored on the profile. The result is therefore public once settled.

from driver_profile import SettlementMethod
from errors import ErrorKind
from tools import (
    AGE_BONUS,
    AGE_BONUS_THRESHOLD,
    MILEAGE_RATE_DEN,
    MILEAGE_RATE_NUM,
    SPEEDING_PENALTY,
    VEHICLE_VALUE_BONUS,
    VEHICLE_VALUE_THRESHOLD,
    short_hex,
)

from .utils import _make_bad_response, _make_ok_response, authenticate_sender

LOG_TAG = "[REGISTRY][ComputeDiscount]"


def plaintext_bonus(age, vehicle_value):
    bonus = 0
    if age > AGE_BONUS_THRESHOLD:
        bonus += AGE_BONUS
    if vehicle_value > VEHICLE_VALUE_THRESHOLD:
        bonus += VEHICLE_VALUE_BONUS
    return bonus


def compute_encrypted_discount(executor, profile, contract):
    """
    Evaluate the discount formula on the profile's handles and return the
    handle of the result. The contract must be allowed on both inputs.
    """
    scaled = executor.mul_scalar(profile.encrypted_mileage, MILEAGE_RATE_NUM, contract)
    mileage_discount = executor.div_scalar(scaled, MILEAGE_RATE_DEN, contract)
    speeding_penalty = executor.mul_scalar(profile.encrypted_speeding_events, SPEEDING_PENALTY, contract)
    net = executor.sub(mileage_discount, speeding_penalty, contract)

    bonus = plaintext_bonus(profile.public_age, profile.public_vehicle_value)
    if bonus:
        net = executor.add_scalar(net, bonus, contract)
    return net


def handle_compute_discount(registry, payload):
    print(LOG_TAG, "start handling ComputeDiscount request.")

    sender, err = authenticate_sender(registry, "ComputeDiscount", payload, LOG_TAG)
    if err is not None:
        return err

    profile = registry.get_profile(sender)
    if profile is None:
        print(LOG_TAG, "[ERROR] no profile for", sender)
        return _make_bad_response(ErrorKind.PROFILE_NOT_FOUND, "profile not found")
    if profile.is_verified:
        print(LOG_TAG, "[ERROR] profile already verified for", sender)
        return _make_bad_response(ErrorKind.ALREADY_VERIFIED, "Data already verified")

    contract = registry.contract_address
    result_handle = compute_encrypted_discount(registry.executor, profile, contract)
    print(LOG_TAG, "encrypted discount computed, handle =", short_hex(result_handle))

    discount = registry.kms.decrypt_for_contract(result_handle, contract)

    height = registry.blockchain.next_height()
    profile.settle(discount, SettlementMethod.COMPUTE, height)
    print(LOG_TAG, "discount settled for", sender, "=", discount)

    event = {"event": "DiscountComputed", "driver": sender, "discount": discount}
    new_block = {
        "tx": {"tx_type": "ComputeDiscount", "sender": sender, "payload": payload},
        "events": [event],
    }
    return _make_ok_response(new_block, driver=sender, discount=discount, result_handle=result_handle)
