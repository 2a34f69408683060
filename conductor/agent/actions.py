"""Structured actions proposed by the model, and the parser that extracts them.

The model may embed one ``<actions>...</actions>`` block anywhere in its reply,
holding either a JSON array of actions or an ``{"actions": [...]}`` envelope.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ACTIONS_START = "<actions>"
ACTIONS_END = "</actions>"
ACTIONS_PATTERN = re.compile(re.escape(ACTIONS_START) + r"([\s\S]*?)" + re.escape(ACTIONS_END))


class ActionType(str, Enum):
    CREATE_TODO_TASK = "createTodoTask"
    UPDATE_TODO_TASK = "updateTodoTask"
    DELETE_TODO_TASK = "deleteTodoTask"
    CREATE_CALENDAR_EVENT = "createCalendarEvent"
    CREATE_REMINDER = "createReminder"
    COMPLETE_REMINDER = "completeReminder"
    CREATE_GOAL = "createGoal"
    COMPLETE_GOAL = "completeGoal"
    UPDATE_GOAL = "updateGoal"
    SEND_EMAIL = "sendEmail"
    WEB_TASK = "webTask"


def _payload_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


class HumanStepKind(str, Enum):
    LOGIN = "login"
    CAPTCHA = "captcha"
    TWO_FACTOR = "twoFactor"
    CONSENT = "consent"
    MANUAL_CHECK = "manualCheck"


class HumanStep(BaseModel):
    kind: HumanStepKind
    instructions: str = ""


class ActionRequest(BaseModel):
    """One proposed side effect.

    ``payload`` stays a loose string map here; each handler converts it to
    its own typed parameters.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ActionType
    title: str = ""
    requires_user_approval: bool = Field(default=True, alias="requiresUserApproval")
    human_steps: Optional[list[HumanStep]] = Field(default=None, alias="humanSteps")
    payload: dict[str, str] = Field(default_factory=dict)

    @field_validator("payload", mode="before")
    @classmethod
    def _stringify_payload(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _payload_value(v) for k, v in value.items() if v is not None}
        return value

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ActionEnvelope(BaseModel):
    actions: list[ActionRequest]
    notes: Optional[str] = None


class ExecutedAction(BaseModel):
    """Durable record of an action that actually ran."""

    model_config = ConfigDict(populate_by_name=True)

    action_id: str = Field(alias="actionId")
    type: ActionType
    title: str = ""
    approved: bool
    executed_at: datetime = Field(alias="executedAt")

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class ParsedResponse:
    clean_text: str
    actions: list[ActionRequest] = field(default_factory=list)


def _decode_actions(raw: str) -> list[ActionRequest]:
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        logger.debug("Action block could not be decoded: %s", e)
        return []

    if isinstance(data, list):
        try:
            return [ActionRequest.model_validate(item) for item in data]
        except ValidationError as e:
            logger.debug("Action array failed validation: %s", e)
            return []

    try:
        return ActionEnvelope.model_validate(data).actions
    except ValidationError as e:
        logger.debug("Action envelope failed validation: %s", e)
        return []


def parse_actions(text: str) -> ParsedResponse:
    """Split a model reply into user-facing text and proposed actions.

    Never raises. Without an action block the text comes back unchanged.
    """
    match = ACTIONS_PATTERN.search(text)
    if match is None:
        return ParsedResponse(clean_text=text)

    actions = _decode_actions(match.group(1).strip())
    clean_text = ACTIONS_PATTERN.sub("", text).strip()
    return ParsedResponse(clean_text=clean_text, actions=actions)
