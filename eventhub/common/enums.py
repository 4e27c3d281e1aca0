import enum


class CallerRole(str, enum.Enum):
    USER = "user"
    VENDOR = "vendor"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    ACT_AS_USER = "act_as_user"
    ACT_AS_VENDOR = "act_as_vendor"
    ADMINISTER = "administer"


ROLE_CAPABILITIES: dict[CallerRole, frozenset[Capability]] = {
    CallerRole.ADMIN: frozenset(Capability),
    CallerRole.VENDOR: frozenset({Capability.ACT_AS_VENDOR}),
    CallerRole.USER: frozenset({Capability.ACT_AS_USER}),
}


class VendorRole(str, enum.Enum):
    PHOTOGRAPHER = "photographer"
    CATERER = "caterer"
    DECORATOR = "decorator"
    MUSICIAN = "musician"
    DJ = "dj"

    @classmethod
    def parse(cls, value: str) -> "VendorRole":
        """Case-insensitive lookup; raises ValueError for unknown roles."""
        return cls(value.strip().lower())


class NegotiationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class VendorAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class RequestFilter(str, enum.Enum):
    ALL = "all"
    OPEN = "open"
    ACCEPTED = "accepted"


class ProgressStep(str, enum.Enum):
    BOOKED = "Vendor booked"
    ARRIVED = "Vendor arrived"
    DEPARTED = "Vendor departed"


class RetractionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    ABANDONED = "abandoned"
