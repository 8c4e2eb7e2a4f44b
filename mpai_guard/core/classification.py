"""
Query classification.

Maps raw query text to an analysis method, bandwidth, output style and role
context. Every function here is pure and total: any string, including the
empty string, resolves to a value through the documented fallbacks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional

from . import keywords as kw
from .errors import ValidationError


class Method(Enum):
    """Named analysis strategies."""
    QUICK = "QUICK"
    FULL = "FULL"
    CONFLICT_RESOLUTION = "CONFLICT_RESOLUTION"
    STAKEHOLDER_ANALYSIS = "STAKEHOLDER_ANALYSIS"
    PATTERN_RECOGNITION = "PATTERN_RECOGNITION"
    SCENARIO_TEST = "SCENARIO_TEST"
    TIME_HORIZON = "TIME_HORIZON"
    NOTES_SUMMARY = "NOTES_SUMMARY"
    HUMAN_HARM_CHECK = "HUMAN_HARM_CHECK"
    SYNTHESIS = "SYNTHESIS"
    SIMPLE_SYNTHESIS = "SIMPLE_SYNTHESIS"
    SYNTHESIS_ALL = "SYNTHESIS_ALL"
    INNER_PEACE_SYNTHESIS = "INNER_PEACE_SYNTHESIS"
    ACTION_PLAN = "ACTION_PLAN"
    SKILLS = "SKILLS"
    # Older clients still send the pre-rename name.
    COACHING_PLAN = "ACTION_PLAN"


class Bandwidth(Enum):
    """User urgency / capacity for detail."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class OutputStyle(Enum):
    NATURAL = "natural"
    STRUCTURED = "structured"
    ABBREVIATED = "abbreviated"


class RoleContext(Enum):
    PROFESSIONAL = "professional"
    PERSONAL = "personal"


# Methods whose prompts only make sense with structured output.
STRUCTURED_METHODS: FrozenSet[Method] = frozenset({
    Method.ACTION_PLAN,
    Method.SKILLS,
    Method.SYNTHESIS,
    Method.SIMPLE_SYNTHESIS,
    Method.SYNTHESIS_ALL,
    Method.INNER_PEACE_SYNTHESIS,
    Method.HUMAN_HARM_CHECK,
})

SYNTHESIS_ALL_THRESHOLD = 2

_METHOD_DESCRIPTIONS = {
    Method.QUICK: "Quick analysis (200-400 words) - fast clarity on core tensions",
    Method.FULL: "Full analysis (600-800 words) - comprehensive multi-perspective view",
    Method.CONFLICT_RESOLUTION: "Conflict resolution - revealing both sides of gridlock",
    Method.STAKEHOLDER_ANALYSIS: "Stakeholder analysis - mapping multiple perspectives",
    Method.PATTERN_RECOGNITION: "Pattern recognition - uncovering recurring blind spots",
    Method.SCENARIO_TEST: "Scenario test - comparing options through perspectives",
    Method.TIME_HORIZON: "Time horizon - balancing short-term vs long-term needs",
    Method.HUMAN_HARM_CHECK: "Safety check - systematic risk and ethics assessment",
    Method.SIMPLE_SYNTHESIS: "Simple synthesis - three-level integration with vision",
    Method.SYNTHESIS_ALL: "Deep synthesis - integrating all prior conversations",
    Method.INNER_PEACE_SYNTHESIS: "Inner peace - resolving internal conflict with integration path",
    Method.ACTION_PLAN: "Action plan - structured development roadmap",
    Method.SKILLS: "Skills development - strengthening specific perspectives",
    Method.NOTES_SUMMARY: "Notes summary - organizing content through perspectives",
}


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one query.

    ``output_style`` already has the structured-method override applied.
    """
    method: Method
    bandwidth: Bandwidth
    output_style: OutputStyle
    role_context: RoleContext


@dataclass(frozen=True)
class BandwidthSignals:
    """Raw keyword signals behind the bandwidth decision."""
    length: int
    crisis: bool
    time_pressure: bool
    exploratory: bool


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the ordered method rule table."""
    name: str
    predicate: Callable[[str], bool]
    method: Method


def _has_any(text: str, phrases: Iterable[str]) -> bool:
    return any(phrase in text for phrase in phrases)


def _is_internal_conflict(q: str) -> bool:
    return _has_any(q, kw.INTERNAL_CONFLICT)


def _is_external_conflict(q: str) -> bool:
    first, second = kw.EXTERNAL_CONFLICT_PAIR
    return _has_any(q, kw.EXTERNAL_CONFLICT) or (first in q and second in q)


def _is_skills(q: str) -> bool:
    return (
        ("develop" in q and "perspective" in q)
        or ("strengthen" in q and ("perspective" in q or "skill" in q))
        or kw.SKILL_DEVELOPMENT_PHRASE in q
    )


def _is_time_horizon(q: str) -> bool:
    return _has_any(q, kw.TIME_HORIZON) or (
        kw.TIME_HORIZON_IMMEDIATE in q and kw.TIME_HORIZON_FUTURE in q
    )


# Evaluated top to bottom; the first matching rule decides the method.
METHOD_RULES: List[ClassificationRule] = [
    ClassificationRule(
        "inner_peace",
        lambda q: _is_internal_conflict(q) and not _is_external_conflict(q),
        Method.INNER_PEACE_SYNTHESIS,
    ),
    ClassificationRule(
        "conflict",
        lambda q: _has_any(q, kw.CONFLICT)
        or (kw.CONFLICT_EXTERNAL_MARKER in q and _is_external_conflict(q)),
        Method.CONFLICT_RESOLUTION,
    ),
    ClassificationRule("action_plan", lambda q: _has_any(q, kw.ACTION_PLAN), Method.ACTION_PLAN),
    ClassificationRule("skills", _is_skills, Method.SKILLS),
    ClassificationRule("notes", lambda q: _has_any(q, kw.NOTES_SUMMARY), Method.NOTES_SUMMARY),
    ClassificationRule("scenario", lambda q: _has_any(q, kw.SCENARIO_TEST), Method.SCENARIO_TEST),
    ClassificationRule("stakeholder", lambda q: _has_any(q, kw.STAKEHOLDER), Method.STAKEHOLDER_ANALYSIS),
    ClassificationRule("pattern", lambda q: _has_any(q, kw.PATTERN), Method.PATTERN_RECOGNITION),
    ClassificationRule("time_horizon", _is_time_horizon, Method.TIME_HORIZON),
    ClassificationRule("human_harm", lambda q: _has_any(q, kw.HUMAN_HARM), Method.HUMAN_HARM_CHECK),
    # SYNTHESIS_ALL is an upgrade decided by the caller from session history.
    ClassificationRule("synthesis", lambda q: _has_any(q, kw.SYNTHESIS), Method.SIMPLE_SYNTHESIS),
    ClassificationRule("full", lambda q: _has_any(q, kw.FULL), Method.FULL),
]

DEFAULT_METHOD = Method.QUICK


def suggest_method(query: str) -> Method:
    """Pick the analysis method for a query using the ordered rule table."""
    q = (query or "").lower()
    for rule in METHOD_RULES:
        if rule.predicate(q):
            return rule.method
    return DEFAULT_METHOD


def detect_bandwidth_signals(query: str) -> BandwidthSignals:
    q = (query or "").lower()
    return BandwidthSignals(
        length=len(query or ""),
        crisis=_has_any(q, kw.CRISIS),
        time_pressure=_has_any(q, kw.TIME_PRESSURE),
        exploratory=_has_any(q, kw.EXPLORATORY),
    )


def detect_bandwidth(query: str) -> Bandwidth:
    """Classify bandwidth.

    LOW wins for very short queries or any crisis / time-pressure language,
    then HIGH for long queries or explicit depth requests, else MEDIUM.
    Exploratory language is detected but does not affect the result.
    """
    signals = detect_bandwidth_signals(query)
    if signals.length < 20 or signals.crisis or signals.time_pressure:
        return Bandwidth.LOW
    if signals.length > 100 or _has_any((query or "").lower(), kw.HIGH_BANDWIDTH):
        return Bandwidth.HIGH
    return Bandwidth.MEDIUM


def detect_output_style(query: str) -> OutputStyle:
    q = (query or "").lower()
    if _has_any(q, kw.STRUCTURED_REQUEST):
        return OutputStyle.STRUCTURED
    if _has_any(q, kw.BREVITY_REQUEST):
        return OutputStyle.ABBREVIATED
    return OutputStyle.NATURAL


def detect_role_context(query: str) -> RoleContext:
    """Classify the query as professional or personal.

    When keywords point both ways (or nowhere), a long query with more than
    three question marks reads as professional; anything else is personal.
    """
    q = (query or "").lower()
    professional = _has_any(q, kw.PROFESSIONAL)
    personal = _has_any(q, kw.PERSONAL)

    if professional and not personal:
        return RoleContext.PROFESSIONAL
    if personal and not professional:
        return RoleContext.PERSONAL

    if len(q) > 200 and q.count("?") > 3:
        return RoleContext.PROFESSIONAL
    return RoleContext.PERSONAL


def resolve_output_style(method: Method, detected: OutputStyle) -> OutputStyle:
    """Apply the structured-output requirement of certain methods."""
    if method in STRUCTURED_METHODS:
        return OutputStyle.STRUCTURED
    return detected


def classify(query: str) -> ClassificationResult:
    """Classify a query on all four axes.

    Args:
        query: Raw user query text

    Returns:
        ClassificationResult; never raises
    """
    method = suggest_method(query)
    return ClassificationResult(
        method=method,
        bandwidth=detect_bandwidth(query),
        output_style=resolve_output_style(method, detect_output_style(query)),
        role_context=detect_role_context(query),
    )


def should_suggest_synthesis_all(session_analysis_count: int) -> bool:
    """True once a session has enough prior analyses to synthesize across."""
    return session_analysis_count >= SYNTHESIS_ALL_THRESHOLD


def upgrade_synthesis_method(method: Method, session_analysis_count: int) -> Method:
    if method == Method.SIMPLE_SYNTHESIS and should_suggest_synthesis_all(session_analysis_count):
        return Method.SYNTHESIS_ALL
    return method


def describe_method(method: Method) -> str:
    return _METHOD_DESCRIPTIONS.get(method, "Multi-perspective analysis")


def _parse_enum(enum_cls, value: str, field: str, by_name: bool):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    text = value.strip()
    try:
        if by_name:
            return enum_cls[text.upper()]
        return enum_cls(text.lower())
    except (KeyError, ValueError):
        valid = [m.name if by_name else m.value for m in enum_cls]
        raise ValidationError(f"{field} must be one of: {valid}")


def parse_method(value: str) -> Method:
    """Resolve an explicit method name (case-insensitive, aliases allowed).

    Raises:
        ValidationError: If the name is not a known method
    """
    return _parse_enum(Method, value, "method", by_name=True)


def parse_output_style(value: str) -> OutputStyle:
    return _parse_enum(OutputStyle, value, "outputStyle", by_name=False)


def parse_role_context(value: str) -> RoleContext:
    return _parse_enum(RoleContext, value, "roleContext", by_name=False)


def parse_optional(parser: Callable, value: Optional[str]):
    """Parse an optional override; ``None`` and blank strings mean 'not given'."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parser(value)
