# driver_profile.py
# DriverProfile class definition
from tools import get_hash, canonical_json_bytes, short_hex


class SettlementMethod:
    COMPUTE = "Compute"
    EXTERNAL_VERIFY = "ExternalVerify"

    ALL = (COMPUTE, EXTERNAL_VERIFY)


class DriverProfile:
    """
    DriverProfile (one per driver address)

    Design notes:
      - driver_address, the two ciphertext handles, the plaintext fields and
        timestamp are set once at creation and never change afterwards.
      - decrypted_discount stays 0 until the profile is settled.
      - settle() is the only mutation: it writes the result, flips
        is_verified from False to True and records how the result was
        obtained (settlement = {"method": ..., "block_height": ...}).
      - get_self_hash() is the leaf used for the registry state root.
    """

    def __init__(
        self,
        driver_address,
        encrypted_mileage,
        encrypted_speeding_events,
        public_age,
        public_vehicle_value,
        base_premium,
        timestamp,
        name="",
        description="",
    ):
        self.driver_address = driver_address
        self.encrypted_mileage = encrypted_mileage
        self.encrypted_speeding_events = encrypted_speeding_events
        self.public_age = public_age
        self.public_vehicle_value = public_vehicle_value
        self.base_premium = base_premium
        self.timestamp = timestamp
        self.name = name
        self.description = description

        self.decrypted_discount = 0
        self.is_verified = False
        self.settlement = None

    def settle(self, value, method, block_height):
        """
        Record the settled discount. Raise RuntimeError if already settled.
        """
        if self.is_verified:
            raise RuntimeError("profile already settled")
        if method not in SettlementMethod.ALL:
            raise ValueError("unknown settlement method: " + str(method))
        self.decrypted_discount = int(value)
        self.is_verified = True
        self.settlement = {"method": method, "block_height": block_height}

    def to_dict(self):
        return {
            "driver_address": self.driver_address,
            "name": self.name,
            "description": self.description,
            "encrypted_mileage": self.encrypted_mileage,
            "encrypted_speeding_events": self.encrypted_speeding_events,
            "public_age": self.public_age,
            "public_vehicle_value": self.public_vehicle_value,
            "base_premium": self.base_premium,
            "timestamp": self.timestamp,
            "decrypted_discount": self.decrypted_discount,
            "is_verified": self.is_verified,
            "settlement": dict(self.settlement) if self.settlement else None,
        }

    def get_self_hash(self):
        return get_hash(canonical_json_bytes(self.to_dict()))

    def debug_print(self, tag: str = "[PROFILE]") -> None:
        if self.settlement is None:
            settled_s = "None"
        else:
            settled_s = "%s @ block %s" % (self.settlement["method"], self.settlement["block_height"])

        print(tag)
        print(f"  driver       = {self.driver_address}")
        print(f"  name         = {self.name}")
        print(f"  mileage      = {short_hex(self.encrypted_mileage)}")
        print(f"  speeding     = {short_hex(self.encrypted_speeding_events)}")
        print(f"  age          = {self.public_age}")
        print(f"  vehicle      = {self.public_vehicle_value}")
        print(f"  premium      = {self.base_premium}")
        print(f"  timestamp    = {self.timestamp}")
        print(f"  discount     = {self.decrypted_discount}")
        print(f"  verified     = {self.is_verified}")
        print(f"  settlement   = {settled_s}")
