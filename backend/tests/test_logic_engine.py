"""
Tests for the logic rule engine and the survey walk.
"""
from surveyflow.models.survey import Question, QuestionType
from surveyflow.services.condition_evaluator import lookup_from_answers
from surveyflow.services.logic_engine import (
    LogicRuleEngine,
    NavigationKind,
    decide,
    initial_visibility,
)
from surveyflow.services.response_service import walk_survey

from factories import FakeLogicRepository, logic_rule


def equals(question_id, value):
    return {"questionId": question_id, "operator": "EQUALS", "value": value}


def skip_to(target):
    return {"type": "SKIP_TO", "targetQuestionId": target}


def show(target):
    return {"type": "SHOW", "targetQuestionId": target}


def hide(target):
    return {"type": "HIDE", "targetQuestionId": target}


END_SURVEY = {"type": "END_SURVEY"}


class TestDecide:
    """Single firing pass over a question's rules."""

    def test_no_rules_continue(self):
        decision = decide([], "q1", lookup_from_answers({"q1": "x"}))
        assert decision.kind == NavigationKind.CONTINUE
        assert decision.visibility == {}

    def test_all_conditions_false_continue(self):
        """Should CONTINUE when no rule fires."""
        rules = [
            logic_rule("r1", "q1", [equals("q1", "No")], [skip_to("q3")]),
            logic_rule("r2", "q1", [equals("q1", "Maybe")], [END_SURVEY]),
        ]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "Yes"}))
        assert decision.kind == NavigationKind.CONTINUE

    def test_skip_to(self):
        rules = [logic_rule("r1", "q1", [equals("q1", "No")], [skip_to("q3")])]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "no"}))
        assert decision.kind == NavigationKind.JUMP_TO
        assert decision.target_question_id == "q3"

    def test_first_exclusive_action_wins(self):
        """Should keep the first SKIP_TO/END_SURVEY and ignore later ones."""
        rules = [
            logic_rule("r1", "q1", [], [skip_to("q4")], position=1),
            logic_rule("r2", "q1", [], [END_SURVEY], position=2),
            logic_rule("r3", "q1", [], [skip_to("q5")], position=3),
        ]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "x"}))
        assert decision.kind == NavigationKind.JUMP_TO
        assert decision.target_question_id == "q4"

    def test_end_survey_terminates(self):
        rules = [logic_rule("r1", "q1", [equals("q1", "No")], [END_SURVEY])]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "No"}))
        assert decision.kind == NavigationKind.TERMINATE
        assert decision.target_question_id is None

    def test_later_visibility_overrides_earlier(self):
        """Should let a later HIDE override an earlier SHOW on the same target."""
        rules = [
            logic_rule("r1", "q1", [], [show("q2"), show("q3")], position=1),
            logic_rule("r2", "q1", [], [hide("q2")], position=2),
        ]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "x"}))
        assert decision.kind == NavigationKind.VISIBILITY_CHANGE
        assert decision.visibility == {"q2": False, "q3": True}

    def test_jump_carries_visibility_changes(self):
        rules = [
            logic_rule("r1", "q1", [], [show("q5")], position=1),
            logic_rule("r2", "q1", [], [skip_to("q4")], position=2),
        ]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "x"}))
        assert decision.kind == NavigationKind.JUMP_TO
        assert decision.visibility == {"q5": True}

    def test_rules_of_other_questions_are_ignored(self):
        rules = [logic_rule("r1", "q2", [], [END_SURVEY])]
        decision = decide(rules, "q1", lookup_from_answers({"q1": "x", "q2": "y"}))
        assert decision.kind == NavigationKind.CONTINUE

    def test_numeric_question_types_are_honoured(self):
        rules = [logic_rule("r1", "q1", [equals("q1", 3)], [END_SURVEY])]
        lookup = lookup_from_answers({"q1": "3.0"})
        decision = decide(rules, "q1", lookup, {"q1": QuestionType.NUMBER})
        assert decision.kind == NavigationKind.TERMINATE


class TestInitialVisibility:
    def test_show_targets_start_hidden(self):
        rules = [
            logic_rule("r1", "q1", [], [show("q2")]),
            logic_rule("r2", "q1", [], [hide("q3")]),
        ]
        visibility = initial_visibility(rules, ["q1", "q2", "q3"])
        assert visibility == {"q1": True, "q2": False, "q3": True}


class TestLogicRuleEngine:
    async def test_resolve_uses_priority_then_position(self):
        """Should evaluate rules in (priority, position) order."""
        repository = FakeLogicRepository([
            logic_rule("late", "q1", [], [skip_to("q3")], priority=1, position=1),
            logic_rule("early", "q1", [], [skip_to("q4")], priority=0, position=5),
        ])
        engine = LogicRuleEngine(repository)

        decision = await engine.resolve("survey-1", "q1", {"q1": "x"})

        assert decision.kind == NavigationKind.JUMP_TO
        assert decision.target_question_id == "q4"

    async def test_resolve_unanswered_never_fires(self):
        repository = FakeLogicRepository([
            logic_rule("r1", "q1", [{"questionId": "q1", "operator": "NOT_EQUALS", "value": "x"}], [END_SURVEY]),
        ])
        decision = await LogicRuleEngine(repository).resolve("survey-1", "q1", {})
        assert decision.kind == NavigationKind.CONTINUE

    async def test_to_response(self):
        repository = FakeLogicRepository([logic_rule("r1", "q1", [], [show("q2")])])
        decision = await LogicRuleEngine(repository).resolve("survey-1", "q1", {"q1": "x"})
        response = decision.to_response()
        assert response.kind == "VISIBILITY_CHANGE"
        assert response.visibility == {"q2": True}


def make_questions(*ids):
    return [Question(id=qid, text=qid, type=QuestionType.SHORT_TEXT, order=i) for i, qid in enumerate(ids)]


class TestWalkSurvey:
    def test_linear_walk_reaches_every_question(self):
        walk = walk_survey(make_questions("q1", "q2", "q3"), [], {"q1": "a"})
        assert walk.reached == ["q1", "q2", "q3"]
        assert walk.ended_by_logic is False

    def test_forward_jump_skips_questions(self):
        rules = [logic_rule("r1", "q1", [equals("q1", "No")], [skip_to("q3")])]
        walk = walk_survey(make_questions("q1", "q2", "q3"), rules, {"q1": "No"})
        assert walk.reached == ["q1", "q3"]
        assert not walk.is_active("q2")

    def test_cyclic_rules_do_not_loop(self):
        """Should ignore a jump back to a question already passed."""
        rules = [
            logic_rule("r1", "q1", [], [skip_to("q3")]),
            logic_rule("r2", "q3", [], [skip_to("q1")]),
        ]
        walk = walk_survey(make_questions("q1", "q2", "q3", "q4"), rules, {"q1": "a", "q3": "b"})
        assert walk.reached == ["q1", "q3", "q4"]

    def test_end_survey_stops_walk(self):
        rules = [logic_rule("r1", "q2", [], [END_SURVEY])]
        walk = walk_survey(make_questions("q1", "q2", "q3"), rules, {"q1": "a", "q2": "b"})
        assert walk.reached == ["q1", "q2"]
        assert walk.ended_by_logic is True

    def test_hidden_question_rules_do_not_fire(self):
        rules = [
            logic_rule("r1", "q1", [equals("q1", "show")], [show("q2")]),
            logic_rule("r2", "q2", [], [END_SURVEY]),
        ]
        walk = walk_survey(make_questions("q1", "q2", "q3"), rules, {"q1": "hide", "q2": "x"})
        assert walk.reached == ["q1", "q2", "q3"]
        assert walk.visible_question_ids == ["q1", "q3"]
        assert walk.ended_by_logic is False
