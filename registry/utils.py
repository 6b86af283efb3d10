# registry/utils.py

from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct

from errors import ErrorKind
from tools import normalize_address, short_hex, turn_hex_str_to_bytes, tx_signing_digest


def _make_bad_response(kind, msg):
    return {"ok": False, "err": kind, "msg": msg}


def _make_ok_response(new_block=None, **fields):
    res = {"ok": True}
    res.update(fields)
    if new_block is not None:
        res["new_block"] = new_block
    return res


def _truncate_long_hex_in_obj(obj, max_len=80):
    if isinstance(obj, dict):
        return {k: _truncate_long_hex_in_obj(obj[k], max_len) for k in obj}

    if isinstance(obj, list):
        return [_truncate_long_hex_in_obj(x, max_len) for x in obj]

    if isinstance(obj, str):
        s = obj.strip()
        if len(s) > max_len:
            return short_hex(s)
        return s

    return obj


def _require_fields(payload, fields, app_type):
    """
    Return None if every field is present, otherwise a BadRequest response.
    """
    if not isinstance(payload, dict):
        return _make_bad_response(ErrorKind.BAD_REQUEST, f"{app_type} payload must be a dict")
    for f in fields:
        if f not in payload:
            return _make_bad_response(ErrorKind.BAD_REQUEST, f"missing field in {app_type} payload: {f}")
    return None


def _is_non_negative_int(v):
    return isinstance(v, int) and not isinstance(v, bool) and v >= 0


def authenticate_sender(registry, app_type, payload, log_tag):
    """
    Shared check for every state-changing request:

    - payload carries sender / nonce / signature;
    - the signature over tx_signing_digest recovers to sender;
    - nonce == registry nonce of sender + 1.

    Return (sender_checksum, None) on success, or (None, error_dict).
    """
    err = _require_fields(payload, ["sender", "nonce", "signature"], app_type)
    if err is not None:
        print(log_tag, "[ERROR]", err["msg"])
        return None, err

    try:
        sender = normalize_address(payload["sender"])
    except ValueError as e:
        print(log_tag, "[ERROR] bad sender:", e)
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "sender is not a valid address")

    nonce = payload["nonce"]
    if not _is_non_negative_int(nonce):
        print(log_tag, "[ERROR] nonce is not a non-negative int.")
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "nonce must be int")

    try:
        digest = tx_signing_digest(app_type, payload, registry.contract_address)
    except (TypeError, ValueError) as e:
        print(log_tag, "[ERROR] payload is not JSON-encodable:", e)
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "payload is not JSON-encodable")

    try:
        recovered = EthAccount.recover_message(
            encode_defunct(primitive=digest),
            signature=turn_hex_str_to_bytes(payload["signature"]),
        )
    except Exception as e:
        print(log_tag, "[ERROR] transaction signature could not be recovered:", e)
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "bad transaction signature")

    if recovered != sender:
        print(log_tag, "[ERROR] transaction signature does not match sender.")
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "transaction signature does not match sender")

    expected_nonce = registry.get_nonce(sender) + 1
    if nonce != expected_nonce:
        print(log_tag, "[ERROR] nonce mismatch, expected", expected_nonce, "got", nonce)
        return None, _make_bad_response(ErrorKind.BAD_REQUEST, "nonce mismatch")

    return sender, None
