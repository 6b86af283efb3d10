# registry/handle_get_profile_info.py
# Read-only requests. None of these touch registry state.
#
# Return semantics:
#   - GetProfile          -> {"ok": True, "profile": {...}}  / ProfileNotFound
#   - GetAllDriverAddresses -> {"ok": True, "addresses": [...]} (registration order)
#   - GetEncryptedValue   -> {"ok": True, "handle": <score handle>} / ProfileNotFound
#   - GetEncryptedValues  -> {"ok": True, "encrypted_mileage": .., "encrypted_speeding_events": ..}
#   - GetNonce            -> {"ok": True, "nonce": int}
#   - IsAvailable         -> {"ok": True, "available": True}
#   - GetContractAddress  -> {"ok": True, "contract_address": ..}

from errors import ErrorKind
from tools import normalize_address

from .utils import _make_bad_response, _make_ok_response, _require_fields


def _lookup(registry, payload, app_type):
    """
    Resolve payload["addr"] into (profile, None) or (None, error_dict).
    """
    err = _require_fields(payload, ["addr"], app_type)
    if err is not None:
        return None, err
    try:
        addr = normalize_address(payload["addr"])
    except ValueError:
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "addr is not a valid address")

    profile = registry.get_profile(addr)
    if profile is None:
        print(f"[REGISTRY][{app_type}] profile not found:", addr)
        return None, _make_bad_response(ErrorKind.PROFILE_NOT_FOUND, "profile not found")
    return profile, None


def handle_get_profile(registry, payload):
    profile, err = _lookup(registry, payload, "GetProfile")
    if err is not None:
        return err
    return _make_ok_response(profile=profile.to_dict())


def handle_get_all_driver_addresses(registry, payload):
    return _make_ok_response(addresses=list(registry.list_of_addresses))


def handle_get_encrypted_value(registry, payload):
    profile, err = _lookup(registry, payload, "GetEncryptedValue")
    if err is not None:
        return err
    return _make_ok_response(handle=profile.encrypted_mileage)


def handle_get_encrypted_values(registry, payload):
    profile, err = _lookup(registry, payload, "GetEncryptedValues")
    if err is not None:
        return err
    return _make_ok_response(
        encrypted_mileage=profile.encrypted_mileage,
        encrypted_speeding_events=profile.encrypted_speeding_events,
    )


def handle_get_nonce(registry, payload):
    err = _require_fields(payload, ["addr"], "GetNonce")
    if err is not None:
        return err
    try:
        addr = normalize_address(payload["addr"])
    except ValueError:
        return _make_bad_response(ErrorKind.BAD_REQUEST, "addr is not a valid address")
    return _make_ok_response(nonce=registry.get_nonce(addr))


def handle_is_available(registry, payload):
    return _make_ok_response(available=True)


def handle_get_contract_address(registry, payload):
    return _make_ok_response(contract_address=registry.contract_address)
