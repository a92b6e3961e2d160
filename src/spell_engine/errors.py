"""Failure taxonomy shared by every stage of the wand pipeline.

Nothing here is raised during normal tracking: absence of a point, a
failed cast or a low-confidence match are reported as values tagged with
a :class:`Reason`. Exceptions are reserved for API misuse.
"""

from __future__ import annotations

from enum import Enum


class Reason(Enum):
    """Why a frame, stroke, recording or recognition did not succeed."""
    POINT_UNRESOLVED = "point_unresolved"
    TOO_FEW_POINTS = "too_few_points"
    NO_TEMPLATES = "no_templates"
    LOW_CONFIDENCE = "low_confidence"
    STROKE_TOO_LONG = "stroke_too_long"
    STROKE_TIMED_OUT = "stroke_timed_out"
    RECORD_TOO_SHORT = "record_too_short"
    INVALID_TEMPLATE = "invalid_template"


class SpellEngineError(Exception):
    """Base class for spell_engine exceptions."""


class InvalidTemplateError(SpellEngineError, ValueError):
    """Template registration with a blank name or too few points."""

    reason = Reason.INVALID_TEMPLATE


class ConfigError(SpellEngineError):
    """Configuration file could not be interpreted."""
