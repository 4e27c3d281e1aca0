import uuid
from dataclasses import dataclass

from eventhub.common.enums import ROLE_CAPABILITIES, CallerRole, Capability
from eventhub.common.exceptions import PermissionDeniedError


@dataclass(frozen=True)
class Caller:
    """Identity asserted by the bearer token of the current request."""

    id: uuid.UUID
    role: CallerRole

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES[self.role]

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @property
    def is_admin(self) -> bool:
        return self.can(Capability.ADMINISTER)

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise PermissionDeniedError(
                f"This action requires the '{capability.value}' capability"
            )
