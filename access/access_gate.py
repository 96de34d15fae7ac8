"""Authorization checks for generating and deleting occurrences."""
import logging
from typing import Iterable, Optional

from processor.models import Actor, Record

logger = logging.getLogger(__name__)

CREATE_EVENT = 'create event content'
CREATE_RECURRING = 'create recurring events'
EDIT_ANY_EVENT = 'edit any event content'
EDIT_OWN_EVENT = 'edit own event content'
DELETE_ANY_EVENT = 'delete any event content'
DELETE_OWN_EVENT = 'delete own event content'
VIEW_UNPUBLISHED = 'view unpublished content'
VIEW_FIELD_PREFIX = 'view field '


class CapabilityAccessControl:
    """Access control backed by the capability set carried on each actor."""

    def __init__(self, restricted_fields: Optional[Iterable[str]] = None):
        """
        Initialize access control.

        Args:
            restricted_fields: Field names whose view requires the
                ``view field <name>`` capability
        """
        self.restricted_fields = frozenset(restricted_fields or ())

    def has_capability(self, actor: Actor, capability: str) -> bool:
        return capability in actor.capabilities

    def check_access(self, actor: Actor, record: Record, operation: str) -> bool:
        """
        Check whether ``actor`` may perform ``operation`` on ``record``.

        Args:
            actor: Acting user
            record: Target record
            operation: One of 'view', 'update', 'delete'

        Returns:
            True if allowed; unknown operations are denied
        """
        is_owner = bool(record.owner_id) and record.owner_id == actor.actor_id

        if operation == 'view':
            return (
                record.published
                or is_owner
                or self.has_capability(actor, VIEW_UNPUBLISHED)
            )
        if operation == 'update':
            return self.has_capability(actor, EDIT_ANY_EVENT) or (
                is_owner and self.has_capability(actor, EDIT_OWN_EVENT)
            )
        if operation == 'delete':
            return self.has_capability(actor, DELETE_ANY_EVENT) or (
                is_owner and self.has_capability(actor, DELETE_OWN_EVENT)
            )
        return False

    def check_field_access(
        self,
        actor: Actor,
        record: Record,
        field_name: str,
        operation: str
    ) -> bool:
        if not self.check_access(actor, record, operation):
            return False
        if field_name in self.restricted_fields:
            return self.has_capability(actor, VIEW_FIELD_PREFIX + field_name)
        return True


class AccessGate:
    """
    Gate in front of occurrence generation, field copying and deletion.

    In permissive mode (``strict=False``) every check passes.
    """

    def __init__(self, access_control: CapabilityAccessControl, strict: bool = True):
        self.access_control = access_control
        self.strict = strict

    def can_generate(self, actor: Actor, record: Record) -> bool:
        """
        Check that ``actor`` may generate occurrences for ``record``.

        Requires the create-event capability, update access on the record
        and the create-recurring-events capability. Any missing one denies.
        """
        if not self.strict:
            return True

        if not self.access_control.has_capability(actor, CREATE_EVENT):
            logger.debug(f"Actor {actor.actor_id} lacks '{CREATE_EVENT}'")
            return False

        if not self.access_control.check_access(actor, record, 'update'):
            logger.debug(
                f"Actor {actor.actor_id} may not update record {record.record_id}"
            )
            return False

        if not self.access_control.has_capability(actor, CREATE_RECURRING):
            logger.debug(f"Actor {actor.actor_id} lacks '{CREATE_RECURRING}'")
            return False

        return True

    def can_create(self, actor: Actor) -> bool:
        if not self.strict:
            return True
        return self.access_control.has_capability(actor, CREATE_EVENT)

    def can_copy_field(self, actor: Actor, record: Record, field_name: str) -> bool:
        if not self.strict:
            return True
        return self.access_control.check_field_access(actor, record, field_name, 'view')

    def can_delete(self, actor: Actor, occurrence: Record) -> bool:
        if not self.strict:
            return True
        return self.access_control.check_access(actor, occurrence, 'delete')
