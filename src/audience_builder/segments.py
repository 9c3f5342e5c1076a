"""Segment definitions: static member lists and dynamic rule-based audiences."""

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from audience_builder.rules.catalogue import DEFAULT_CATALOGUE, FieldCatalogue
from audience_builder.rules.conditions import SegmentRuleGroup, new_id
from audience_builder.rules.editing import new_rule_tree
from audience_builder.rules.errors import SegmentTypeError
from audience_builder.rules.evaluator import SegmentEvaluator, resolve_field

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SegmentType(str, Enum):
    """How a segment decides its members."""

    STATIC = "static"
    DYNAMIC = "dynamic"


class Segment(BaseModel):
    """A named audience of contacts."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, description="Human-readable segment name")
    description: str = Field(default="", description="Segment description")
    type: SegmentType = Field(default=SegmentType.DYNAMIC)
    rules: SegmentRuleGroup | None = Field(
        default=None, description="Rule tree, dynamic segments only"
    )
    members: list[str] = Field(
        default_factory=list, description="Member e-mails, static segments only"
    )
    contact_count: int = Field(default=0, ge=0, description="Cached audience size")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _check_type(self) -> "Segment":
        if self.type == SegmentType.STATIC and self.rules is not None:
            raise ValueError(f"Static segment '{self.name}' cannot have rules")
        if self.type == SegmentType.DYNAMIC and self.members:
            raise ValueError(f"Dynamic segment '{self.name}' cannot list members")
        return self


@dataclass
class SegmentEvaluationResult:
    """Outcome of resolving a segment against a contact list."""

    segment_id: str
    emails: list[str]
    total_count: int
    execution_time_ms: float
    skipped_without_email: int = 0
    errors: list[str] = field(default_factory=list)


def new_segment(
    name: str,
    description: str = "",
    segment_type: SegmentType = SegmentType.DYNAMIC,
    catalogue: FieldCatalogue = DEFAULT_CATALOGUE,
) -> Segment:
    """Create a segment; dynamic segments start with a default rule tree."""
    rules = new_rule_tree(catalogue) if segment_type == SegmentType.DYNAMIC else None
    return Segment(name=name, description=description, type=segment_type, rules=rules)


def _normalize_emails(emails: Iterable[str]) -> list[str]:
    return [e.strip() for e in emails if e and e.strip()]


def add_members(segment: Segment, emails: Iterable[str]) -> Segment:
    """
    Add e-mails to a static segment.

    Addresses are trimmed; ones already present (ignoring case) are skipped.

    Raises:
        SegmentTypeError: If the segment is dynamic.
    """
    if segment.type != SegmentType.STATIC:
        raise SegmentTypeError(f"Cannot add members to dynamic segment '{segment.name}'")

    members = list(segment.members)
    known = {m.lower() for m in members}
    for email in _normalize_emails(emails):
        if email.lower() not in known:
            members.append(email)
            known.add(email.lower())

    return segment.model_copy(
        update={"members": members, "contact_count": len(members), "updated_at": _utc_now()}
    )


def remove_members(segment: Segment, emails: Iterable[str]) -> Segment:
    """
    Remove e-mails from a static segment (case-insensitive).

    Raises:
        SegmentTypeError: If the segment is dynamic.
    """
    if segment.type != SegmentType.STATIC:
        raise SegmentTypeError(
            f"Cannot remove members from dynamic segment '{segment.name}'"
        )

    drop = {e.lower() for e in _normalize_emails(emails)}
    members = [m for m in segment.members if m.lower() not in drop]
    return segment.model_copy(
        update={"members": members, "contact_count": len(members), "updated_at": _utc_now()}
    )


def evaluate_segment(
    segment: Segment,
    contacts: Sequence[Any],
    evaluator: SegmentEvaluator | None = None,
) -> SegmentEvaluationResult:
    """
    Resolve a segment to member e-mails.

    Static segments return their member list. Dynamic segments run their
    rules over the contacts; matches without an e-mail are skipped.

    Args:
        segment: Segment to resolve.
        contacts: Candidate contact records.
        evaluator: Evaluator to use; defaults to the contact catalogue.

    Returns:
        Result with matched e-mails and timing.
    """
    started = time.perf_counter()

    if segment.type == SegmentType.STATIC:
        emails = list(segment.members)
        return SegmentEvaluationResult(
            segment_id=segment.id,
            emails=emails,
            total_count=len(emails),
            execution_time_ms=(time.perf_counter() - started) * 1000,
        )

    if segment.rules is None:
        return SegmentEvaluationResult(
            segment_id=segment.id,
            emails=[],
            total_count=0,
            execution_time_ms=(time.perf_counter() - started) * 1000,
            errors=[f"Dynamic segment '{segment.name}' has no rules"],
        )

    evaluator = evaluator or SegmentEvaluator()
    emails: list[str] = []
    skipped = 0
    for contact in evaluator.filter(segment.rules, contacts):
        email = resolve_field(contact, "email")
        if email:
            emails.append(str(email))
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Segment '{segment.name}': {skipped} matching contact(s) have no e-mail")

    return SegmentEvaluationResult(
        segment_id=segment.id,
        emails=emails,
        total_count=len(emails),
        execution_time_ms=(time.perf_counter() - started) * 1000,
        skipped_without_email=skipped,
    )


def segment_emails(
    segment: Segment,
    contacts: Sequence[Any],
    evaluator: SegmentEvaluator | None = None,
) -> list[str]:
    """E-mails in a segment, for static and dynamic segments alike."""
    return evaluate_segment(segment, contacts, evaluator).emails


def with_contact_count(segment: Segment, result: SegmentEvaluationResult) -> Segment:
    """Copy of the segment with its cached audience size refreshed."""
    return segment.model_copy(
        update={"contact_count": result.total_count, "updated_at": _utc_now()}
    )


def find_segment(segments: Sequence[Segment], name_or_id: str) -> Segment | None:
    """Look up a segment by id, then by case-insensitive name."""
    for segment in segments:
        if segment.id == name_or_id:
            return segment
    wanted = name_or_id.lower()
    for segment in segments:
        if segment.name.lower() == wanted:
            return segment
    return None
