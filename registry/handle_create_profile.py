# registry/handle_create_profile.py
# Handle CreateProfile requests.
#
# Order of checks (nothing is written before all of them pass):
#   1. envelope fields, sender signature and nonce;
#   2. no profile exists yet for the sender            -> ProfileAlreadyExists
#   3. plaintext fields are non-negative ints          -> BadRequest
#   4. both input proofs verify against the executor   -> InvalidCiphertext
# Then the profile is stored, the contract is allowed on both handles, both
# handles are marked publicly decryptable and a ProfileCreated event is emitted.

from driver_profile import DriverProfile
from errors import ErrorKind
from tools import short_hex

from .utils import (
    _is_non_negative_int,
    _make_bad_response,
    _make_ok_response,
    _require_fields,
    authenticate_sender,
)

LOG_TAG = "[REGISTRY][CreateProfile]"

REQUIRED_FIELDS = [
    "encrypted_mileage",
    "mileage_proof",
    "encrypted_speeding",
    "speeding_proof",
    "age",
    "vehicle_value",
    "base_premium",
]


def handle_create_profile(registry, payload):
    print(LOG_TAG, "start handling CreateProfile request.")

    sender, err = authenticate_sender(registry, "CreateProfile", payload, LOG_TAG)
    if err is not None:
        return err

    err = _require_fields(payload, REQUIRED_FIELDS, "CreateProfile")
    if err is not None:
        print(LOG_TAG, "[ERROR]", err["msg"])
        return err

    if registry.get_profile(sender) is not None:
        print(LOG_TAG, "[ERROR] profile already exists for", sender)
        return _make_bad_response(ErrorKind.PROFILE_ALREADY_EXISTS, "profile already exists")

    age = payload["age"]
    vehicle_value = payload["vehicle_value"]
    base_premium = payload["base_premium"]
    for field_name, v in (("age", age), ("vehicle_value", vehicle_value), ("base_premium", base_premium)):
        if not _is_non_negative_int(v):
            print(LOG_TAG, "[ERROR]", field_name, "is not a non-negative int.")
            return _make_bad_response(ErrorKind.BAD_REQUEST, f"{field_name} must be a non-negative int")

    name = payload.get("name", "")
    description = payload.get("description", "")
    if not isinstance(name, str) or not isinstance(description, str):
        return _make_bad_response(ErrorKind.BAD_REQUEST, "name and description must be strings")

    mileage_handle = payload["encrypted_mileage"]
    speeding_handle = payload["encrypted_speeding"]
    contract = registry.contract_address

    print(LOG_TAG, "verifying input proofs for", short_hex(mileage_handle), "and", short_hex(speeding_handle))
    if not registry.executor.verify_input(mileage_handle, payload["mileage_proof"], contract, sender):
        print(LOG_TAG, "[ERROR] mileage ciphertext rejected.")
        return _make_bad_response(ErrorKind.INVALID_CIPHERTEXT, "invalid encrypted mileage")
    if not registry.executor.verify_input(speeding_handle, payload["speeding_proof"], contract, sender):
        print(LOG_TAG, "[ERROR] speeding ciphertext rejected.")
        return _make_bad_response(ErrorKind.INVALID_CIPHERTEXT, "invalid encrypted speeding events")

    mileage_handle = mileage_handle.lower()
    speeding_handle = speeding_handle.lower()

    timestamp = registry.now()
    profile = DriverProfile(
        driver_address=sender,
        encrypted_mileage=mileage_handle,
        encrypted_speeding_events=speeding_handle,
        public_age=age,
        public_vehicle_value=vehicle_value,
        base_premium=base_premium,
        timestamp=timestamp,
        name=name,
        description=description,
    )

    for h in (mileage_handle, speeding_handle):
        registry.executor.allow(h, contract)
        registry.executor.make_publicly_decryptable(h)

    registry.add_profile(profile)
    print(LOG_TAG, "profile stored for", sender, ", total drivers =", len(registry.list_of_addresses))

    event = {"event": "ProfileCreated", "driver": sender, "timestamp": timestamp}
    new_block = {
        "tx": {"tx_type": "CreateProfile", "sender": sender, "payload": payload},
        "events": [event],
    }
    return _make_ok_response(new_block, driver=sender, timestamp=timestamp)
