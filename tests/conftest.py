"""Pytest fixtures for audience-builder tests."""

from datetime import datetime, timedelta, timezone

import pytest

from audience_builder.logging import reset_logging
from audience_builder.rules.catalogue import ConditionOperator
from audience_builder.rules.conditions import GroupOperator, SegmentCondition, SegmentRuleGroup
from audience_builder.rules.evaluator import SegmentEvaluator

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> str:
    """ISO timestamp a number of days before NOW."""
    return (NOW - timedelta(days=days)).isoformat()


@pytest.fixture
def evaluator() -> SegmentEvaluator:
    """Evaluator with a fixed reference time."""
    return SegmentEvaluator(now=NOW)


@pytest.fixture
def customer_contact() -> dict:
    """A VIP customer with nested cashback data."""
    return {
        "email": "ana@example.com",
        "full_name": "Ana Silva",
        "lifecycle_stage": "customer",
        "status": "active",
        "lead_score": 85,
        "tags": ["VIP", "beta"],
        "opt_in_email": True,
        "created_at": days_ago(3),
        "cashback_info": {
            "current_balance": 42.5,
            "lifetime_earned": 120,
            "expiry_date": "2026-12-31",
        },
    }


@pytest.fixture
def lead_contact() -> dict:
    """A lead with sparse data."""
    return {
        "email": "bruno@example.org",
        "full_name": "Bruno Costa",
        "lifecycle_stage": "lead",
        "tags": ["vip"],
        "created_at": days_ago(10),
    }


@pytest.fixture
def contacts(customer_contact: dict, lead_contact: dict) -> list[dict]:
    """A small contact list including a record without an e-mail."""
    return [
        customer_contact,
        lead_contact,
        {
            "email": "carla@example.net",
            "lifecycle_stage": "customer",
            "tags": ["premium"],
        },
        {"full_name": "No Email", "lifecycle_stage": "customer", "tags": ["vip"]},
        {"email": "dan@example.com", "lifecycle_stage": "subscriber", "tags": []},
    ]


@pytest.fixture
def vip_rules() -> SegmentRuleGroup:
    """Customers tagged vip or premium."""
    return SegmentRuleGroup(
        operator=GroupOperator.AND,
        conditions=[
            SegmentCondition(
                field="lifecycle_stage", operator=ConditionOperator.EQUALS, value="customer"
            )
        ],
        groups=[
            SegmentRuleGroup(
                operator=GroupOperator.OR,
                conditions=[
                    SegmentCondition(
                        field="tags", operator=ConditionOperator.CONTAINS, value="vip"
                    ),
                    SegmentCondition(
                        field="tags", operator=ConditionOperator.CONTAINS, value="premium"
                    ),
                ],
            )
        ],
    )


@pytest.fixture
def clean_logging():
    """Reset module-level logging state around a test."""
    reset_logging()
    yield
    reset_logging()
