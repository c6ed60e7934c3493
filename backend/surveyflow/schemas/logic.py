"""
Condition, action and logic rule schemas.

Conditions and actions are closed tagged unions, discriminated by
``operator`` and ``type``. Every JSON payload is validated here before the
evaluator sees it, so the evaluator can switch exhaustively.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    model_validator,
)

from surveyflow.core.exceptions import ValidationError
from surveyflow.models.survey import LogicType


# ============================================================================
# Enums
# ============================================================================

class ConditionOperator(str, Enum):
    """Comparison operators usable in rule and quota conditions."""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN = "GREATER_THAN"
    BETWEEN = "BETWEEN"
    CONTAINS = "CONTAINS"


class ActionType(str, Enum):
    """Actions a firing rule can take."""
    SKIP_TO = "SKIP_TO"
    SHOW = "SHOW"
    HIDE = "HIDE"
    END_SURVEY = "END_SURVEY"


Scalar = Union[bool, int, float, str]


# ============================================================================
# Conditions
# ============================================================================

class _ConditionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    question_id: str = Field(..., alias="questionId", min_length=1)


class EqualsCondition(_ConditionBase):
    operator: Literal["EQUALS"]
    value: Union[Scalar, List[Scalar]]


class NotEqualsCondition(_ConditionBase):
    operator: Literal["NOT_EQUALS"]
    value: Union[Scalar, List[Scalar]]


class InCondition(_ConditionBase):
    operator: Literal["IN"]
    value: List[Scalar] = Field(..., min_length=1)


class NotInCondition(_ConditionBase):
    operator: Literal["NOT_IN"]
    value: List[Scalar] = Field(..., min_length=1)


class LessThanCondition(_ConditionBase):
    operator: Literal["LESS_THAN"]
    value: float


class GreaterThanCondition(_ConditionBase):
    operator: Literal["GREATER_THAN"]
    value: float


class BetweenCondition(_ConditionBase):
    operator: Literal["BETWEEN"]
    value: Tuple[float, float]

    @model_validator(mode="after")
    def check_range(self) -> "BetweenCondition":
        low, high = self.value
        if low > high:
            raise ValueError("BETWEEN range must be [min, max] with min <= max")
        return self


class ContainsCondition(_ConditionBase):
    operator: Literal["CONTAINS"]
    value: Scalar


Condition = Annotated[
    Union[
        EqualsCondition,
        NotEqualsCondition,
        InCondition,
        NotInCondition,
        LessThanCondition,
        GreaterThanCondition,
        BetweenCondition,
        ContainsCondition,
    ],
    Field(discriminator="operator"),
]


# ============================================================================
# Actions
# ============================================================================

class _ActionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SkipToAction(_ActionBase):
    type: Literal["SKIP_TO"]
    target_question_id: str = Field(..., alias="targetQuestionId", min_length=1)


class ShowAction(_ActionBase):
    type: Literal["SHOW"]
    target_question_id: str = Field(..., alias="targetQuestionId", min_length=1)


class HideAction(_ActionBase):
    type: Literal["HIDE"]
    target_question_id: str = Field(..., alias="targetQuestionId", min_length=1)


class EndSurveyAction(_ActionBase):
    type: Literal["END_SURVEY"]
    target_question_id: Optional[str] = Field(None, alias="targetQuestionId")


Action = Annotated[
    Union[SkipToAction, ShowAction, HideAction, EndSurveyAction],
    Field(discriminator="type"),
]


_conditions_adapter = TypeAdapter(List[Condition])
_actions_adapter = TypeAdapter(List[Action])


def parse_conditions(raw: Any) -> List[Condition]:
    """Validate a JSON condition list, raising ValidationError if malformed."""
    try:
        return _conditions_adapter.validate_python(raw or [])
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed condition: {e.errors()[0]['msg']}") from e


def parse_actions(raw: Any) -> List[Action]:
    """Validate a JSON action list, raising ValidationError if malformed."""
    try:
        return _actions_adapter.validate_python(raw or [])
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed action: {e.errors()[0]['msg']}") from e


def dump_conditions(conditions: List[Condition]) -> List[Dict[str, Any]]:
    """Serialize conditions to their stored camelCase JSON shape."""
    return _conditions_adapter.dump_python(conditions, by_alias=True, mode="json")


def dump_actions(actions: List[Action]) -> List[Dict[str, Any]]:
    """Serialize actions to their stored camelCase JSON shape."""
    return _actions_adapter.dump_python(
        actions, by_alias=True, mode="json", exclude_none=True
    )


# ============================================================================
# Logic Rule Schemas
# ============================================================================

class LogicRuleCreate(BaseModel):
    """Schema for creating a logic rule."""
    model_config = ConfigDict(populate_by_name=True)

    source_question_id: str = Field(..., alias="sourceQuestionId")
    target_question_id: Optional[str] = Field(None, alias="targetQuestionId")
    type: LogicType = Field(default=LogicType.SKIP_LOGIC)
    priority: int = Field(default=0, ge=0)
    conditions: List[Condition] = Field(default_factory=list)
    actions: List[Action] = Field(..., min_length=1)


class LogicRuleResponse(BaseModel):
    """Schema for logic rule response."""
    id: str
    survey_id: str
    source_question_id: str
    target_question_id: Optional[str]
    type: LogicType
    priority: int
    position: int
    conditions: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]
    created_at: datetime

    model_config = {"from_attributes": True}


class LogicRuleListResponse(BaseModel):
    """Rules of a survey in evaluation order."""
    items: List[LogicRuleResponse]
    total: int


# ============================================================================
# Navigation Schemas
# ============================================================================

class NavigationRequest(BaseModel):
    """Live navigation request sent after each answered question."""
    model_config = ConfigDict(populate_by_name=True)

    answered_question_id: str = Field(..., alias="answeredQuestionId")
    answers: Dict[str, Any] = Field(default_factory=dict)


class NavigationResponse(BaseModel):
    """Outcome of resolving the rules for one answered question."""
    kind: str
    target_question_id: Optional[str] = None
    visibility: Dict[str, bool] = Field(default_factory=dict)
