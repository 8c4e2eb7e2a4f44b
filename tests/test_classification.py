"""
Unit tests for query classification.

Pins the method precedence, bandwidth, output-style and role-context rules.
"""

import pytest

from mpai_guard.core.classification import (
    STRUCTURED_METHODS,
    Bandwidth,
    ClassificationResult,
    Method,
    OutputStyle,
    RoleContext,
    classify,
    describe_method,
    detect_bandwidth,
    detect_bandwidth_signals,
    detect_output_style,
    detect_role_context,
    parse_method,
    parse_optional,
    parse_output_style,
    parse_role_context,
    resolve_output_style,
    should_suggest_synthesis_all,
    suggest_method,
    upgrade_synthesis_method,
)
from mpai_guard.core.errors import ValidationError


class TestMethodPrecedence:
    """Test the ordered method rules."""

    def test_internal_conflict_selects_inner_peace(self):
        """Test internal conflict without external markers."""
        assert suggest_method("I'm torn between quitting my job and staying") == \
            Method.INNER_PEACE_SYNTHESIS

    def test_know_i_should_but_matches_any_case(self):
        assert suggest_method("I know I should but I keep putting it off") == \
            Method.INNER_PEACE_SYNTHESIS

    def test_external_markers_exclude_inner_peace(self):
        """Test stakeholder + disagree marks conflict as external."""
        query = "Part of me wants to leave but the stakeholders disagree"
        assert suggest_method(query) == Method.STAKEHOLDER_ANALYSIS

    def test_torn_with_external_conflict_is_conflict_resolution(self):
        """Test internal language that is really about other people."""
        query = "Part of me is torn; two people disagree and one is a stakeholder"
        assert suggest_method(query) == Method.CONFLICT_RESOLUTION

    def test_explicit_conflict_language(self):
        assert suggest_method("Our team conflict is killing morale") == Method.CONFLICT_RESOLUTION
        assert suggest_method("We are in total gridlock") == Method.CONFLICT_RESOLUTION

    def test_action_plan(self):
        assert suggest_method("Can you build me a growth plan for next year?") == Method.ACTION_PLAN

    def test_skills(self):
        assert suggest_method("How do I strengthen my listening skill?") == Method.SKILLS
        assert suggest_method("Help me develop a new perspective") == Method.SKILLS

    def test_notes_summary(self):
        assert suggest_method("Please summarize my meeting notes") == Method.NOTES_SUMMARY

    def test_scenario_test(self):
        assert suggest_method("Help me compare these two job offers") == Method.SCENARIO_TEST

    def test_stakeholder(self):
        assert suggest_method("My group keeps arguing") == Method.STAKEHOLDER_ANALYSIS

    def test_pattern(self):
        assert suggest_method("Why does this keep happening to me?") == Method.PATTERN_RECOGNITION

    def test_time_horizon_phrase(self):
        assert suggest_method("Should I optimize for the long term here?") == Method.TIME_HORIZON

    def test_time_horizon_requires_both_markers(self):
        """Test 'immediate' only counts together with 'future'."""
        assert suggest_method("The immediate fix versus the future cost") == Method.TIME_HORIZON
        assert suggest_method("I only care about the immediate fix") == Method.QUICK

    def test_human_harm(self):
        assert suggest_method("Is this ethical?") == Method.HUMAN_HARM_CHECK

    def test_synthesis_is_simple_synthesis(self):
        assert suggest_method("Help me integrate what we discussed") == Method.SIMPLE_SYNTHESIS

    def test_full(self):
        assert suggest_method("Give me a thorough review of my resume") == Method.FULL

    def test_fallback_quick(self):
        assert suggest_method("What do you think?") == Method.QUICK

    def test_first_match_wins(self):
        """Test earlier groups beat later ones when several match."""
        # notes (5) beats scenario (6) and harm (10)
        assert suggest_method("Summarize the risk in this decision") == Method.NOTES_SUMMARY
        # conflict (2) beats synthesis (11)
        assert suggest_method("conflict synthesis") == Method.CONFLICT_RESOLUTION

    def test_case_insensitive(self):
        assert suggest_method("GRIDLOCK") == Method.CONFLICT_RESOLUTION


class TestBandwidth:
    """Test bandwidth classification."""

    def test_short_query_is_low(self):
        assert detect_bandwidth("help") == Bandwidth.LOW

    def test_time_pressure_is_low_regardless_of_length(self):
        assert detect_bandwidth("urgent, need answer now") == Bandwidth.LOW
        assert detect_bandwidth("x" * 150 + " asap") == Bandwidth.LOW

    def test_crisis_is_low(self):
        assert detect_bandwidth("I feel completely overwhelmed by everything") == Bandwidth.LOW

    def test_long_query_is_high(self):
        assert detect_bandwidth("a" * 120) == Bandwidth.HIGH

    def test_depth_keyword_is_high(self):
        assert detect_bandwidth("I want a comprehensive look at my options") == Bandwidth.HIGH

    def test_medium(self):
        assert detect_bandwidth("I'm torn between quitting my job and staying") == Bandwidth.MEDIUM

    def test_exploratory_is_detected_but_inert(self):
        query = "I'm wondering about changing careers"
        signals = detect_bandwidth_signals(query)
        assert signals.exploratory is True
        assert detect_bandwidth(query) == Bandwidth.MEDIUM


class TestOutputStyleAndRole:
    """Test output-style and role-context classification."""

    def test_structured_request(self):
        assert detect_output_style("break it down for me please") == OutputStyle.STRUCTURED

    def test_brevity_request(self):
        assert detect_output_style("keep it brief please") == OutputStyle.ABBREVIATED

    def test_natural_default(self):
        assert detect_output_style("what should I do") == OutputStyle.NATURAL

    @pytest.mark.parametrize("method", sorted(STRUCTURED_METHODS, key=lambda m: m.value))
    def test_forced_structured_methods(self, method):
        """Test structured methods override any detected style."""
        assert resolve_output_style(method, OutputStyle.ABBREVIATED) == OutputStyle.STRUCTURED
        assert resolve_output_style(method, OutputStyle.NATURAL) == OutputStyle.STRUCTURED

    def test_other_methods_keep_detected_style(self):
        assert resolve_output_style(Method.QUICK, OutputStyle.ABBREVIATED) == OutputStyle.ABBREVIATED

    def test_professional(self):
        assert detect_role_context("How should I coach my manager?") == RoleContext.PROFESSIONAL

    def test_personal(self):
        assert detect_role_context("My family is struggling with money") == RoleContext.PERSONAL

    def test_mixed_short_falls_back_to_personal(self):
        assert detect_role_context("my team and my family") == RoleContext.PERSONAL

    def test_tone_heuristic(self):
        """Test long, question-heavy queries read as professional."""
        query = "Why? " * 50
        assert len(query) > 200
        assert detect_role_context(query) == RoleContext.PROFESSIONAL

    def test_tone_heuristic_needs_four_question_marks(self):
        filler = "a" * 210
        assert detect_role_context(filler + "???") == RoleContext.PERSONAL
        assert detect_role_context(filler + "????") == RoleContext.PROFESSIONAL

    def test_tone_heuristic_needs_length(self):
        assert detect_role_context("a" * 190 + "??????") == RoleContext.PERSONAL


class TestClassify:
    """Test the combined classification."""

    def test_torn_between_scenario(self):
        result = classify("I'm torn between quitting my job and staying")
        assert result == ClassificationResult(
            method=Method.INNER_PEACE_SYNTHESIS,
            bandwidth=Bandwidth.MEDIUM,
            output_style=OutputStyle.STRUCTURED,
            role_context=RoleContext.PERSONAL,
        )

    def test_empty_string_is_total(self):
        result = classify("")
        assert result.method == Method.QUICK
        assert result.bandwidth == Bandwidth.LOW
        assert result.output_style == OutputStyle.NATURAL
        assert result.role_context == RoleContext.PERSONAL

    @pytest.mark.parametrize("query", [
        "",
        "?",
        "Summarize the risk in this decision",
        "I'm torn between two teams",
        "a" * 500,
        "ünïcödé ☃ text",
    ])
    def test_deterministic_and_closed(self, query):
        first = classify(query)
        second = classify(query)
        assert first == second
        assert first.method in set(Method)

    def test_method_enumeration_size(self):
        assert len(Method) == 15
        assert Method.COACHING_PLAN is Method.ACTION_PLAN


class TestOverridesAndPolicy:
    """Test explicit override parsing and the synthesis upgrade hook."""

    def test_parse_method_case_insensitive(self):
        assert parse_method("quick") == Method.QUICK
        assert parse_method(" Scenario_Test ") == Method.SCENARIO_TEST

    def test_parse_method_alias(self):
        assert parse_method("COACHING_PLAN") == Method.ACTION_PLAN

    def test_parse_method_unknown(self):
        with pytest.raises(ValidationError, match="method must be one of"):
            parse_method("MAGIC")

    def test_parse_style_and_role(self):
        assert parse_output_style("Structured") == OutputStyle.STRUCTURED
        assert parse_role_context("PROFESSIONAL") == RoleContext.PROFESSIONAL
        with pytest.raises(ValidationError):
            parse_output_style("verbose")

    def test_parse_optional_blank_is_none(self):
        assert parse_optional(parse_method, None) is None
        assert parse_optional(parse_method, "  ") is None

    def test_parse_optional_rejects_non_string(self):
        with pytest.raises(ValidationError):
            parse_optional(parse_method, 42)

    def test_synthesis_all_threshold(self):
        assert should_suggest_synthesis_all(1) is False
        assert should_suggest_synthesis_all(2) is True

    def test_upgrade_synthesis_method(self):
        assert upgrade_synthesis_method(Method.SIMPLE_SYNTHESIS, 2) == Method.SYNTHESIS_ALL
        assert upgrade_synthesis_method(Method.SIMPLE_SYNTHESIS, 1) == Method.SIMPLE_SYNTHESIS
        assert upgrade_synthesis_method(Method.QUICK, 5) == Method.QUICK

    def test_describe_method(self):
        assert describe_method(Method.QUICK).startswith("Quick analysis")
        assert describe_method(Method.SYNTHESIS) == "Multi-perspective analysis"
