"""Message meta variants.

Every message carries exactly one of three shapes in its ``meta`` column:

- ``PlainMeta`` for human-authored messages (optionally pointing at an image)
- ``AiClassificationMeta`` for the assistant's reply of a turn
- ``ActionAuditMeta`` for the outcome of one proposed action

The store keeps plain JSON. ``dump_meta``/``load_meta`` are the only places
that translate between the two, so code above the store can match on the
variant type instead of probing dict keys.
"""

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


OUTCOME_OK = "ok"
OUTCOME_SKIPPED_INVALID_STATUS = "skipped_invalid_status"
OUTCOME_FAILED = "failed"

ActionOutcome = Literal["ok", "skipped_invalid_status", "failed"]


class PlainMeta(BaseModel):
    kind: Literal["plain"] = "plain"
    image_url: Optional[str] = None


class AiClassificationMeta(BaseModel):
    kind: Literal["ai_classification"] = "ai_classification"
    category: str
    severity: str
    next_actions: list[str] = Field(default_factory=list)
    escalate: bool = False
    reason: str = ""
    summary_update: Optional[str] = None
    model: Optional[str] = None
    fallback: bool = False


class ActionAuditMeta(BaseModel):
    kind: Literal["action_audit"] = "action_audit"
    action_type: str
    action_id: str
    params: dict[str, Any] = Field(default_factory=dict)
    outcome: ActionOutcome
    error: Optional[str] = None


MessageMeta = Annotated[
    Union[PlainMeta, AiClassificationMeta, ActionAuditMeta],
    Field(discriminator="kind"),
]

_meta_adapter = TypeAdapter(MessageMeta)


def dump_meta(meta: Optional[MessageMeta]) -> dict[str, Any]:
    """Serialize a variant for storage."""
    if meta is None:
        meta = PlainMeta()
    return meta.model_dump(mode="json", exclude_none=True)


def _infer_kind(raw: dict[str, Any]) -> str:
    if "action_id" in raw or "outcome" in raw:
        return "action_audit"
    if "category" in raw or "severity" in raw:
        return "ai_classification"
    return "plain"


def load_meta(raw: Optional[dict[str, Any]]) -> MessageMeta:
    """Parse stored JSON back into a variant.

    Rows written before meta was tagged have no ``kind``; they are classified
    by their keys. Anything that still fails validation degrades to
    ``PlainMeta`` so a bad row never breaks rendering a conversation.
    """
    if not raw:
        return PlainMeta()
    data = dict(raw)
    data.setdefault("kind", _infer_kind(data))
    try:
        return _meta_adapter.validate_python(data)
    except ValidationError as e:
        logger.warning("Unreadable message meta (kind=%s): %s", data.get("kind"), e.error_count())
        return PlainMeta(image_url=data.get("image_url") if isinstance(data.get("image_url"), str) else None)
