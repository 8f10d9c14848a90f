# planning/settings.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, FrozenSet
import os

import commentjson
from dotenv import load_dotenv

load_dotenv()

# --- Configuration ---
PLANNING_TZ          = os.getenv("PLANNING_TZ", "UTC")
PLANNING_POLICY_PATH = os.getenv("PLANNING_POLICY_PATH")

DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "planning")
DB_USER             = os.environ.get("DB_USER", "postgres")
DB_PASSWORD         = os.environ.get("DB_PASSWORD", "")
DATABASE_URL        = os.environ.get("DATABASE_URL", "")

IS_LOCAL_DB = (DB_HOST == "localhost")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_POLICY: Dict[str, Any] = {
    "ELEVATED_ROLES": ["ADMIN", "SUPERADMIN"],
    "SUPERVISOR_ROLES": ["SUPERVISOR"],
    "INITIAL_GOAL_STATUS": "CREATED",
    "COMPLETED_TASK_STATUS": "COMPLETED",
}


def load_policy(path: str | os.PathLike | None = None) -> Dict[str, Any]:
    """
    Load the role/status policy from a JSON-with-comments file.
    Without a path the built-in defaults are returned.
    Fails fast if the file or a required key is missing.
    """
    if not path:
        return dict(DEFAULT_POLICY)

    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Planning policy file not found at '{cfg_path}'.")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    for key in ("ELEVATED_ROLES", "SUPERVISOR_ROLES"):
        if key not in data or not isinstance(data[key], list):
            raise ValueError(f"Planning policy missing or invalid key: {key}")
    for key in ("INITIAL_GOAL_STATUS", "COMPLETED_TASK_STATUS"):
        if key in data and not isinstance(data[key], str):
            raise ValueError(f"Planning policy invalid key: {key}")

    policy = dict(DEFAULT_POLICY)
    policy.update(data)
    return policy


_POLICY = load_policy(PLANNING_POLICY_PATH)
ELEVATED_ROLES: FrozenSet[str] = frozenset(str(r).upper() for r in _POLICY["ELEVATED_ROLES"])
SUPERVISOR_ROLES: FrozenSet[str] = frozenset(str(r).upper() for r in _POLICY["SUPERVISOR_ROLES"])
INITIAL_GOAL_STATUS: str = _POLICY["INITIAL_GOAL_STATUS"]
COMPLETED_TASK_STATUS: str = _POLICY["COMPLETED_TASK_STATUS"]


def is_elevated(role: str | None) -> bool:
    return (role or "").upper() in ELEVATED_ROLES


def is_supervisor_role(role: str | None) -> bool:
    return (role or "").upper() in SUPERVISOR_ROLES
