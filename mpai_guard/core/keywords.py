"""
Keyword enumerations used by query classification.

These lists are configuration data, not an algorithm. Matching is a
case-insensitive substring test; the order in which groups are consulted is
defined by the rule table in classification.py.
"""

from typing import Tuple

# --- Method detection -----------------------------------------------------

INTERNAL_CONFLICT: Tuple[str, ...] = (
    "torn between", "can't decide between", "part of me",
    "but also", "at war with myself", "conflicted",
    "inner conflict", "head says", "heart says",
    "know i should but", "feel pulled", "internal struggle",
    "competing desires", "two minds", "split between",
)

# A query that matches any of these is about conflict between people,
# not within the user.
EXTERNAL_CONFLICT: Tuple[str, ...] = ("between people", "team conflict")
EXTERNAL_CONFLICT_PAIR: Tuple[str, str] = ("stakeholder", "disagree")

CONFLICT: Tuple[str, ...] = ("conflict", "stuck between", "gridlock")
CONFLICT_EXTERNAL_MARKER = "torn"

ACTION_PLAN: Tuple[str, ...] = (
    "coaching plan", "develop me", "growth plan", "action plan",
)

SKILL_DEVELOPMENT_PHRASE = "skill development"

NOTES_SUMMARY: Tuple[str, ...] = ("summarize", "notes", "transcript", "meeting")

SCENARIO_TEST: Tuple[str, ...] = ("decision", "choose", "option", "compare")

STAKEHOLDER: Tuple[str, ...] = ("team", "people", "stakeholder", "group")

PATTERN: Tuple[str, ...] = (
    "pattern", "keep happening", "recurring", "here we go again",
    "keep doing", "always end up",
)

TIME_HORIZON: Tuple[str, ...] = ("long term", "short term")
TIME_HORIZON_IMMEDIATE = "immediate"
TIME_HORIZON_FUTURE = "future"

HUMAN_HARM: Tuple[str, ...] = (
    "risk", "harm", "safety", "ethics", "ethical", "danger", "could hurt",
)

SYNTHESIS: Tuple[str, ...] = ("synthesis", "integrate")

FULL: Tuple[str, ...] = ("deep dive", "comprehensive", "thorough", "detailed")

# --- Bandwidth ------------------------------------------------------------

CRISIS: Tuple[str, ...] = (
    "overwhelmed", "urgent", "cant think", "can't think",
    "losing sleep", "breaking down", "crisis", "emergency",
    "desperate", "stuck", "paralyzed", "falling apart",
)

TIME_PRESSURE: Tuple[str, ...] = (
    "quick", "fast", "need answer now", "asap",
    "right now", "immediately", "urgent", "hurry",
)

# Detected and reported, but does not change the bandwidth decision.
EXPLORATORY: Tuple[str, ...] = (
    "wondering", "considering", "thinking about",
    "exploring", "curious about", "what if",
)

HIGH_BANDWIDTH: Tuple[str, ...] = ("synthesis", "comprehensive", "deep dive")

# --- Output style ---------------------------------------------------------

STRUCTURED_REQUEST: Tuple[str, ...] = (
    "show perspectives", "name the perspectives", "break it down", "structured",
)

BREVITY_REQUEST: Tuple[str, ...] = (
    "keep it brief", "just key points", "summarize", "abbreviated", "short version",
)

# --- Role context ---------------------------------------------------------

PROFESSIONAL: Tuple[str, ...] = (
    "coach", "leader", "team", "organization", "company",
    "employee", "manager", "executive", "consultant",
    "hr", "healthcare", "client",
    "stakeholder", "strategic", "business", "project",
)

PERSONAL: Tuple[str, ...] = (
    "personal", "family", "relationship", "friend",
    "my life", "struggling with", "feeling", "myself",
)
