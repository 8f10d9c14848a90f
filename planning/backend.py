# planning/backend.py

import datetime as dt
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planning.calendar_aggregator import CalendarAggregator
from planning.calendar_math import current_month, days_of_week, month_of_date, month_of_week
from planning.clock import SYSTEM_CLOCK, Clock
from planning.confirmation import PlanningConfirmation
from planning.db_connection import Connection
from planning.errors import InvalidFormat, PlanningError
from planning.open_month_registry import OpenMonthRegistry
from planning.planning_store import PlanningStore
from planning.visibility import VisibilityGate

logger = logging.getLogger("planning_backend")

GENERIC_ERROR = {
    "status": "error",
    "error": "internal_error",
    "message": "Internal error",
}


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


class Backend:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if session_factory is None:
            connection = Connection()
            connection.create_all()
            session_factory = connection.build_db_session_factory()
        self.SessionFactory = session_factory
        self.clock = clock or SYSTEM_CLOCK

        self.store = PlanningStore(self.SessionFactory)
        self.registry = OpenMonthRegistry(self.SessionFactory, self.store, self.clock)
        self.confirmation = PlanningConfirmation(self.SessionFactory, self.store, self.clock)
        self.aggregator = CalendarAggregator(self.store, self.clock)
        self.gate = VisibilityGate(self.store, self.confirmation, self.clock)

        self._handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Any]] = {
            "open_month": self.handle_open_month,
            "list_months": self.handle_list_months,
            "confirm_planning": self.handle_confirm_planning,
            "unconfirm_planning": self.handle_unconfirm_planning,
            "planning_status": self.handle_planning_status,
            "supervisees": self.handle_supervisees,
            "month_view": self.handle_month_view,
            "week_view": self.handle_week_view,
            "day_view": self.handle_day_view,
            "month_summary": self.handle_month_summary,
            "can_view": self.handle_can_view,
        }

    def process_request(self, request_data: dict) -> dict:
        return self._process_request_data(request_data)

    def _process_request_data(self, request_data: dict) -> dict:
        """
        Core request handling logic.
        Takes a parsed request dict and returns the response dict.
        Expected failures come back as {"status": "error", "error": <tag>, ...};
        nothing raised by a handler escapes from here.
        """
        request_data = request_data or {}
        request_type = request_data.get("type")

        try:
            preview = json.dumps(request_data, indent=2)
        except (TypeError, ValueError):
            preview = str(request_data)
        logger.debug(f"process_request request {preview}")

        handler = self._handlers.get(request_type)
        if handler is None:
            return {
                "status": "error",
                "error": "unknown_request",
                "message": f"Unknown request type: {request_type}",
            }

        identity = {
            "user_id": str(request_data.get("user_id") or ""),
            "role": str(request_data.get("role") or "USER").upper(),
            "scope": request_data.get("scope"),
        }
        payload = request_data.get("payload") or {}

        try:
            if not identity["user_id"]:
                raise InvalidFormat("Missing user_id in request")
            if not isinstance(payload, dict):
                raise InvalidFormat("Request payload must be a JSON object")

            data = handler(identity, payload)
            response = {
                "status": "success",
                "message": "",
                "data": to_jsonable(data),
            }
        except PlanningError as e:
            logger.info(f"{request_type} rejected: {e.code}: {e.message}")
            response = e.to_response()
        except SQLAlchemyError:
            logger.exception(f"Storage failure while processing {request_type}")
            response = dict(GENERIC_ERROR)
        except Exception:
            logger.exception(f"Unexpected failure while processing {request_type}")
            response = dict(GENERIC_ERROR)

        try:
            preview = json.dumps(response, indent=2)
        except (TypeError, ValueError):
            preview = str(response)
        logger.debug(f"response {preview}")

        return response

    # -----------------------
    # Helpers
    # -----------------------

    def _owner(self, identity: dict, payload: dict) -> str:
        return str(payload.get("owner_id") or identity["user_id"])

    def _month_or_current(self, payload: dict):
        # only an absent month means the current one
        month = payload.get("month")
        return current_month(self.clock) if month is None else month

    def _gate(self, identity: dict, owner_id: str, month: str) -> None:
        # every read of someone else's planning goes through the gate
        if owner_id != identity["user_id"]:
            self.gate.require_view(identity["role"], identity["user_id"], owner_id, month, identity["scope"])

    # -----------------------
    # Handlers
    # -----------------------

    def handle_open_month(self, identity: dict, payload: dict) -> dict:
        return self.registry.open_month(identity["user_id"], payload.get("month"))

    def handle_list_months(self, identity: dict, payload: dict) -> dict:
        return self.registry.list_months(identity["user_id"])

    def handle_confirm_planning(self, identity: dict, payload: dict) -> dict:
        return self.confirmation.confirm(identity["user_id"], payload.get("month"), company_id=identity["scope"])

    def handle_unconfirm_planning(self, identity: dict, payload: dict) -> dict:
        return self.confirmation.unconfirm(
            identity["user_id"],
            identity["role"],
            payload.get("month"),
            target_user_id=payload.get("target_user_id"),
        )

    def handle_planning_status(self, identity: dict, payload: dict) -> dict:
        owner_id = self._owner(identity, payload)
        month = payload.get("month")
        self._gate(identity, owner_id, month)
        return self.confirmation.status(owner_id, month, company_id=identity["scope"])

    def handle_supervisees(self, identity: dict, payload: dict) -> list:
        return self.confirmation.supervisees_with_status(
            identity["user_id"],
            identity["role"],
            self._month_or_current(payload),
            identity["scope"],
        )

    def handle_month_view(self, identity: dict, payload: dict):
        owner_id = self._owner(identity, payload)
        month = self._month_or_current(payload)
        self._gate(identity, owner_id, month)
        return self.aggregator.month_view(owner_id, month)

    def handle_week_view(self, identity: dict, payload: dict):
        owner_id = self._owner(identity, payload)
        week = payload.get("week")
        self._gate(identity, owner_id, month_of_week(week))

        visible = None
        if owner_id != identity["user_id"]:
            # the days of the week that spill into another month need that month's clearance too
            visible = self.gate.visible_months(
                identity["role"],
                identity["user_id"],
                owner_id,
                {month_of_date(d) for d in days_of_week(week)},
                identity["scope"],
            )
        return self.aggregator.week_view(owner_id, week, visible_months=visible)

    def handle_day_view(self, identity: dict, payload: dict):
        owner_id = self._owner(identity, payload)
        date = payload.get("date")
        self._gate(identity, owner_id, month_of_date(date))
        return self.aggregator.day_view(owner_id, date)

    def handle_month_summary(self, identity: dict, payload: dict):
        owner_id = self._owner(identity, payload)
        month = payload.get("month")
        self._gate(identity, owner_id, month)
        return self.aggregator.month_summary(owner_id, month)

    def handle_can_view(self, identity: dict, payload: dict) -> dict:
        owner_id = self._owner(identity, payload)
        month = payload.get("month")
        allowed = self.gate.can_view(identity["role"], identity["user_id"], owner_id, month, identity["scope"])
        return {"owner_id": owner_id, "month": month, "can_view": allowed}
