# planning/visibility.py
"""
Who may read (or edit) another user's monthly planning.

Evaluated on every request, never cached: confirmation can flip between two
calls.
"""
import logging
from typing import Iterable, Optional, Set

from planning import settings
from planning.calendar_math import parse_month
from planning.clock import Clock
from planning.confirmation import PlanningConfirmation
from planning.errors import Forbidden
from planning.month_state import is_month_editable
from planning.planning_store import PlanningStore

logger = logging.getLogger("planning_backend")


class VisibilityGate:
    def __init__(self, store: PlanningStore, confirmation: PlanningConfirmation, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.confirmation = confirmation
        self.clock = clock or confirmation.clock

    # -----------------------
    # Predicates
    # -----------------------

    def is_supervisor_link(self, viewer_id: str, owner_id: str, scope: Optional[str] = None) -> bool:
        return self.store.is_supervisor_of(viewer_id, owner_id, scope)

    def is_month_confirmed(self, owner_id: str, month: str) -> bool:
        return self.confirmation.is_confirmed(owner_id, month)

    # -----------------------
    # Gate
    # -----------------------

    def can_view(
        self,
        viewer_role: str,
        viewer_id: str,
        owner_id: str,
        month: str,
        scope: Optional[str] = None,
    ) -> bool:
        parse_month(month)

        if str(viewer_id) == str(owner_id):
            return True
        if settings.is_elevated(viewer_role):
            return True
        if settings.is_supervisor_role(viewer_role):
            linked = self.is_supervisor_link(viewer_id, owner_id, scope)
            confirmed = self.is_month_confirmed(owner_id, month)
            return linked and confirmed
        return False

    def require_view(
        self,
        viewer_role: str,
        viewer_id: str,
        owner_id: str,
        month: str,
        scope: Optional[str] = None,
    ) -> None:
        if not self.can_view(viewer_role, viewer_id, owner_id, month, scope):
            logger.info(f"view denied: viewer={viewer_id} ({viewer_role}) owner={owner_id} month={month}")
            raise Forbidden(
                f"Planning for {month} is not visible to this user",
                owner_id=str(owner_id),
                month=month,
            )

    def visible_months(
        self,
        viewer_role: str,
        viewer_id: str,
        owner_id: str,
        months: Iterable[str],
        scope: Optional[str] = None,
    ) -> Set[str]:
        return {m for m in set(months) if self.can_view(viewer_role, viewer_id, owner_id, m, scope)}

    def can_edit(
        self,
        actor_role: str,
        actor_id: str,
        owner_id: str,
        month: str,
        opened_months: Iterable[str] = (),
    ) -> bool:
        """Edits need an editable month (current or future-open) and the owner or an admin."""
        if not is_month_editable(month, opened_months, self.clock):
            return False
        return str(actor_id) == str(owner_id) or settings.is_elevated(actor_role)
