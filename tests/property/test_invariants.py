"""
Property-based tests for core invariants using Hypothesis.

These tests stress the purge and priority rules with random inputs.
"""

import tempfile
from datetime import date, timedelta
from pathlib import Path

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from taskhub.adapters import ConnectorError, build_adapters
from taskhub.adapters.normalize import priority_from_bucket, priority_from_keywords
from taskhub.config import default_sources
from taskhub.milestones.bridge import calculate_priority
from taskhub.models import MilestoneStatus, clamp_priority
from taskhub.reconcile import ReconciliationEngine
from taskhub.settings import Settings
from taskhub.state_store import StateStore
from tests.fixtures import FakeClock, FakeConnector

issue_keys = st.sets(st.integers(min_value=1, max_value=60).map(lambda n: f"P-{n}"), max_size=12)

store_settings = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


def run_two_syncs(stored: set[str], second_response) -> set[str]:
    """Seed jira with *stored*, then sync again with *second_response*."""
    responses = [{"issues": [{"key": k, "summary": k} for k in sorted(stored)]}, second_response]

    def script(params):
        return responses.pop(0)

    with tempfile.TemporaryDirectory() as tmp:
        store = StateStore(Path(tmp) / "prop.db")
        clock = FakeClock()
        hub_settings = Settings(store, sources=default_sources())
        adapters = build_adapters({"jira": FakeConnector({"jira_search": script})}, hub_settings, clock=clock)
        engine = ReconciliationEngine(store, adapters, hub_settings, clock)
        engine.sync_source("jira")
        engine.sync_source("jira")
        ids = store.task_ids_by_source("jira")
    return ids


# ============================================================================
# Purge Properties
# ============================================================================


@store_settings
@given(stored=issue_keys, fetched=issue_keys.filter(bool))
def test_successful_fetch_leaves_exactly_the_fetched_set(stored, fetched):
    response = {"issues": [{"key": k, "summary": k} for k in sorted(fetched)]}
    assert run_two_syncs(stored, response) == {f"jira:{k}" for k in fetched}


@store_settings
@given(stored=issue_keys)
def test_failed_fetch_never_deletes(stored):
    assert run_two_syncs(stored, ConnectorError("connection reset")) == {f"jira:{k}" for k in stored}


@store_settings
@given(stored=issue_keys)
def test_empty_fetch_from_durable_source_never_deletes(stored):
    assert run_two_syncs(stored, {"issues": []}) == {f"jira:{k}" for k in stored}


# ============================================================================
# Priority Properties
# ============================================================================


@given(st.one_of(st.none(), st.text(max_size=30)))
def test_keyword_priority_in_range(value):
    assert 0 <= priority_from_keywords(value) <= 100


@given(st.one_of(st.none(), st.floats(allow_nan=False), st.integers(), st.text(max_size=5)))
def test_bucket_priority_in_range(value):
    assert 20 <= priority_from_bucket(value) <= 90


@given(st.one_of(st.integers(), st.text(max_size=5), st.none()))
def test_clamp_priority_in_range(value):
    assert 0 <= clamp_priority(value) <= 100


@given(
    today=st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
    offset=st.integers(min_value=-400, max_value=400),
    status=st.sampled_from([MilestoneStatus.PENDING, MilestoneStatus.IN_PROGRESS]),
)
def test_open_milestone_priority_rises_as_date_nears(today, offset, status):
    target = today + timedelta(days=offset)
    closer = today + timedelta(days=offset - 1)
    assert calculate_priority(closer, status, today) >= calculate_priority(target, status, today)
    assert calculate_priority(target, MilestoneStatus.COMPLETE, today) == 20
