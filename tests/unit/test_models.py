"""
Unit tests for the ORM model definitions.
"""

import warnings

from sqlalchemy import BigInteger, inspect
from sqlalchemy.orm import configure_mappers

from recovery.models import Job, Payment


def test_mappers_configure_without_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        configure_mappers()


def test_jobs_and_payments_join_by_foreign_key_only():
    assert not inspect(Job).relationships
    assert not inspect(Payment).relationships
    (fk,) = Payment.__table__.c.job_id.foreign_keys
    assert fk.target_fullname == "jobs.id"


def test_money_columns_are_integer_cents():
    for name in (
        "estimated_cost_cents",
        "finders_fee_cents",
        "deposit_amount_cents",
        "final_cost_cents",
    ):
        assert isinstance(Job.__table__.c[name].type, BigInteger)
    assert isinstance(Payment.__table__.c.amount_cents.type, BigInteger)
