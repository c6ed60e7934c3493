"""
Condition evaluator shared by logic rules and quotas.

Pure functions only: no I/O and no shared state, so evaluation is safe to
run concurrently across submissions.

A condition never matches an unanswered question, whatever its operator,
and an operator that cannot be applied to the answer it meets (a numeric
comparison against free text, say) evaluates to False rather than raising.
"""
import logging
import math
from typing import Any, Callable, Iterable, List, Mapping, Optional

from surveyflow.models.survey import NUMERIC_QUESTION_TYPES, QuestionType
from surveyflow.schemas.logic import Condition, ConditionOperator

logger = logging.getLogger(__name__)


class _Unanswered:
    """Sentinel returned by an answer lookup for a question with no answer."""

    def __repr__(self) -> str:
        return "UNANSWERED"

    def __bool__(self) -> bool:
        return False


UNANSWERED = _Unanswered()

AnswerLookup = Callable[[str], Any]
QuestionTypes = Mapping[str, QuestionType]


def is_unanswered(value: Any) -> bool:
    """True for the sentinel, None, blank strings and empty selections."""
    if value is UNANSWERED or value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple, set)) and len(value) == 0:
        return True
    return False


def lookup_from_answers(answers: Mapping[str, Any]) -> AnswerLookup:
    """Build an answer lookup over a question_id -> value mapping."""

    def lookup(question_id: str) -> Any:
        value = answers.get(question_id, UNANSWERED)
        return UNANSWERED if is_unanswered(value) else value

    return lookup


def to_number(value: Any) -> Optional[float]:
    """Parse an int, float or numeric string; None if not a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()


def _selected(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _values_equal(left: Any, right: Any, numeric: bool) -> bool:
    if numeric:
        left_number, right_number = to_number(left), to_number(right)
        if left_number is not None and right_number is not None:
            return left_number == right_number
    return _normalize(left) == _normalize(right)


def _equals(answer: Any, expected: Any, numeric: bool) -> bool:
    if isinstance(answer, (list, tuple, set)):
        # Multi-select: the selection must be exactly the expected set
        return {_normalize(v) for v in answer} == {_normalize(v) for v in _selected(expected)}
    if isinstance(expected, list):
        return len(expected) == 1 and _values_equal(answer, expected[0], numeric)
    return _values_equal(answer, expected, numeric)


def _intersects(answer: Any, expected: Iterable[Any], numeric: bool) -> bool:
    expected = list(expected)
    return any(
        _values_equal(selected, candidate, numeric)
        for selected in _selected(answer)
        for candidate in expected
    )


def _contains(condition: Condition, answer: Any) -> bool:
    if isinstance(answer, (list, tuple, set)):
        return any(_values_equal(selected, condition.value, False) for selected in answer)
    if isinstance(answer, str):
        return _normalize(condition.value) in _normalize(answer)
    logger.warning(
        f"CONTAINS on non-text answer for question {condition.question_id}; treating as no match"
    )
    return False


def _numeric_answer(condition: Condition, answer: Any) -> Optional[float]:
    if isinstance(answer, (list, tuple, set)):
        logger.warning(
            f"{condition.operator} on multi-value answer for question "
            f"{condition.question_id}; treating as no match"
        )
        return None
    number = to_number(answer)
    if number is None:
        logger.debug(f"Non-numeric answer for {condition.operator} on {condition.question_id}")
    return number


def evaluate(
    condition: Condition,
    answer_lookup: AnswerLookup,
    question_types: Optional[QuestionTypes] = None,
) -> bool:
    """
    Evaluate a single condition against the current answers.

    Args:
        condition: Validated condition
        answer_lookup: Returns the answer for a question id, or UNANSWERED
        question_types: Optional question id -> type map; numeric question
            types make EQUALS/NOT_EQUALS/IN/NOT_IN compare numerically

    Returns:
        True if the condition matches
    """
    answer = answer_lookup(condition.question_id)
    if is_unanswered(answer):
        return False

    question_type = (question_types or {}).get(condition.question_id)
    numeric = question_type in NUMERIC_QUESTION_TYPES
    operator = condition.operator

    if operator == ConditionOperator.EQUALS:
        return _equals(answer, condition.value, numeric)

    elif operator == ConditionOperator.NOT_EQUALS:
        return not _equals(answer, condition.value, numeric)

    elif operator == ConditionOperator.IN:
        return _intersects(answer, condition.value, numeric)

    elif operator == ConditionOperator.NOT_IN:
        return not _intersects(answer, condition.value, numeric)

    elif operator == ConditionOperator.LESS_THAN:
        number = _numeric_answer(condition, answer)
        return number is not None and number < condition.value

    elif operator == ConditionOperator.GREATER_THAN:
        number = _numeric_answer(condition, answer)
        return number is not None and number > condition.value

    elif operator == ConditionOperator.BETWEEN:
        number = _numeric_answer(condition, answer)
        low, high = condition.value
        return number is not None and low <= number <= high

    elif operator == ConditionOperator.CONTAINS:
        return _contains(condition, answer)

    logger.warning(f"Unknown condition operator: {operator}")
    return False


def evaluate_all(
    conditions: Iterable[Condition],
    answer_lookup: AnswerLookup,
    question_types: Optional[QuestionTypes] = None,
) -> bool:
    """AND-combine conditions. An empty list matches."""
    return all(evaluate(c, answer_lookup, question_types) for c in conditions)
