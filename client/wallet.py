#!/usr/bin/env python3
# client/wallet.py
# Local wallet: holds one secp256k1 key and signs registry requests.
#
# approve(application_type, payload) models the user's confirmation prompt;
# returning False rejects the signature request.

from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct

from errors import UserRejectedSigning
from tools import turn_hex_str_to_bytes, tx_signing_digest


class Wallet:
    def __init__(self, private_key_hex=None, approve=None):
        if private_key_hex is None:
            self._acct = EthAccount.create()
        else:
            self._acct = EthAccount.from_key(turn_hex_str_to_bytes(private_key_hex))
        self.address = self._acct.address
        self.approve = approve
        print("[WALLET] wallet ready, address =", self.address)

    def sign_payload(self, application_type, payload, contract_address) -> str:
        """
        Sign a request payload (without its "signature" field) and return the
        65-byte signature as 0x-hex. Raise UserRejectedSigning if the user
        declines.
        """
        if self.approve is not None and not self.approve(application_type, payload):
            print("[WALLET] user rejected signing of", application_type)
            raise UserRejectedSigning("user rejected transaction")

        digest = tx_signing_digest(application_type, payload, contract_address)
        signed = self._acct.sign_message(encode_defunct(primitive=digest))
        return "0x" + bytes(signed.signature).hex()
