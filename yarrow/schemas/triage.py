"""Structured triage decision returned by the reasoning service."""

import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


CATEGORIES = ("plumbing", "electrical", "heating", "appliance", "structural", "pest", "general")
SEVERITIES = ("low", "normal", "high", "urgent")
ACTION_TYPES = ("update_ticket_status", "request_photos", "escalate_to_agent")

ActionType = Literal["update_ticket_status", "request_photos", "escalate_to_agent"]


class ProposedAction(BaseModel):
    """One state-changing instruction proposed by the assistant."""

    type: ActionType
    action_id: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("action_id", mode="before")
    @classmethod
    def strip_action_id(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("params", mode="before")
    @classmethod
    def default_params(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


class TriageDecision(BaseModel):
    """Everything one AI turn decides.

    ``category`` and ``severity`` are coerced into their enums rather than
    rejected, since a usable reply is worth more than a perfect label.
    Malformed actions are dropped one by one for the same reason.
    """

    reply: str = Field(..., min_length=1)
    category: str = "general"
    severity: str = "normal"
    next_actions: list[str] = Field(default_factory=list)
    escalate: bool = False
    reason: str = ""
    summary_update: Optional[str] = None
    actions: list[ProposedAction] = Field(default_factory=list)

    # Not part of the model output
    model: Optional[str] = Field(default=None, exclude=True)
    fallback: bool = Field(default=False, exclude=True)

    @field_validator("reply", mode="before")
    @classmethod
    def strip_reply(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in CATEGORIES else "general"

    @field_validator("severity", mode="before")
    @classmethod
    def coerce_severity(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in SEVERITIES else "normal"

    @field_validator("next_actions", mode="before")
    @classmethod
    def coerce_next_actions(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if not isinstance(v, list):
            return []
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("escalate", mode="before")
    @classmethod
    def coerce_escalate(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @field_validator("reason", mode="before")
    @classmethod
    def coerce_reason(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("summary_update", mode="before")
    @classmethod
    def blank_summary_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        value = str(v).strip()
        return value or None

    @field_validator("actions", mode="before")
    @classmethod
    def keep_valid_actions(cls, v: Any) -> list[ProposedAction]:
        if not isinstance(v, list):
            return []
        kept = []
        for raw in v:
            if not isinstance(raw, dict):
                logger.warning("Dropping non-object action proposal")
                continue
            if raw.get("type") not in ACTION_TYPES:
                logger.warning("Dropping action with unknown type %r", raw.get("type"))
                continue
            try:
                kept.append(ProposedAction.model_validate(raw))
            except ValidationError as e:
                fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
                logger.warning("Dropping malformed %s action (%s)", raw.get("type"), ", ".join(fields))
        return kept


FALLBACK_REPLY = "I will help troubleshoot this issue. Could you share more detail or a photo?"


def fallback_decision(reason: str) -> TriageDecision:
    """Well-formed decision used whenever the reasoning call is unusable."""
    return TriageDecision(
        reply=FALLBACK_REPLY,
        category="general",
        severity="normal",
        next_actions=[
            "share a short video or photo",
            "describe any noises, smells, or error codes",
        ],
        escalate=False,
        reason=reason,
        summary_update="Assistant joined the conversation to help with troubleshooting.",
        actions=[],
        fallback=True,
    )
