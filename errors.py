# errors.py
# Error kinds shared by the registry responses and the client bindings.
#
# Registry handlers report failures as {"ok": False, "err": <kind>, "msg": ...};
# the client bindings turn those responses into the exceptions below.


class ErrorKind:
    PROFILE_NOT_FOUND = "ProfileNotFound"
    PROFILE_ALREADY_EXISTS = "ProfileAlreadyExists"
    ALREADY_VERIFIED = "AlreadyVerified"
    INVALID_CIPHERTEXT = "InvalidCiphertext"
    SIGNATURE_CHECK_FAILED = "SignatureCheckFailed"
    USER_REJECTED_SIGNING = "UserRejectedSigning"
    NETWORK_OR_RPC_FAILURE = "NetworkOrRpcFailure"
    BAD_REQUEST = "BadRequest"


class RegistryError(Exception):
    kind = None

    def __init__(self, msg=""):
        super().__init__(msg)
        self.msg = msg


class ContractRevert(RegistryError):
    """
    A registry call was rejected; no state was changed.
    `kind` is one of the ErrorKind values reported by the registry.
    """

    def __init__(self, kind, msg=""):
        super().__init__(f"{kind}: {msg}" if msg else kind)
        self.kind = kind
        self.msg = msg


class UserRejectedSigning(RegistryError):
    kind = ErrorKind.USER_REJECTED_SIGNING


class NetworkOrRpcFailure(RegistryError):
    kind = ErrorKind.NETWORK_OR_RPC_FAILURE
