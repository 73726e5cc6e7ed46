"""Tests for the session model and the in-memory session store."""

import pytest

from namegen.exceptions import InvalidStateTransitionError, ValidationError
from namegen.llm.prompts import GenerationMode
from namegen.sessions.models import (
    GenerationSession,
    ModelMetrics,
    ModelRunStatus,
    SessionStatus,
    normalize_models,
)
from namegen.sessions.store import InMemorySessionStore, SessionStore


def make_session(models=("gpt-4", "claude-3.5-sonnet"), **kwargs):
    return GenerationSession(user_id="user-1", prompt="Name my bakery", requested_models=list(models), **kwargs)


def running_session(**kwargs):
    session = make_session(**kwargs)
    session.transition(SessionStatus.RUNNING)
    return session


# --- Construction ---

def test_new_session_defaults():
    session = make_session(mode="brandable")
    assert session.status == SessionStatus.PENDING
    assert session.mode == GenerationMode.BRANDABLE
    assert session.model_status == {"gpt-4": ModelRunStatus.PENDING, "claude-3.5-sonnet": ModelRunStatus.PENDING}
    assert session.started_at is None
    assert session.duration_seconds is None


def test_empty_model_list_rejected():
    with pytest.raises(ValidationError):
        make_session(models=[])


def test_normalize_models_keeps_order_and_drops_duplicates():
    assert normalize_models(["b", " a ", "b", "", "c"]) == ["b", "a", "c"]


# --- Lifecycle ---

def test_transitions_only_move_forward():
    session = running_session()
    assert session.started_at is not None

    session.transition(SessionStatus.COMPLETED)
    assert session.completed_at is not None
    with pytest.raises(InvalidStateTransitionError):
        session.transition(SessionStatus.RUNNING)


def test_pending_session_cannot_complete_directly():
    with pytest.raises(InvalidStateTransitionError):
        make_session().transition(SessionStatus.COMPLETED)


def test_pending_session_can_fail():
    session = make_session()
    session.fail("no models available")
    assert session.status == SessionStatus.FAILED
    assert session.started_at is None
    assert session.error_message == "no models available"


def test_cancel_requires_running():
    assert make_session().cancel() is False

    session = running_session()
    session.record_result("gpt-4", ["Crumb"])
    assert session.cancel() is True
    assert session.status == SessionStatus.CANCELLED
    assert session.model_status == {"gpt-4": ModelRunStatus.COMPLETED, "claude-3.5-sonnet": ModelRunStatus.CANCELLED}
    assert session.cancel() is False


# --- Results ---

def test_late_results_are_dropped():
    session = running_session()
    session.cancel()

    assert session.record_result("claude-3.5-sonnet", ["Too Late"]) is False
    assert session.record_failure("gpt-4", "timeout") is False
    assert session.results == {}


def test_a_model_reports_once():
    session = running_session()
    assert session.record_result("gpt-4", ["Crumb"]) is True
    assert session.record_result("gpt-4", ["Again"]) is False
    assert session.record_failure("gpt-4", "provider_error") is False
    assert session.results["gpt-4"] == ["Crumb"]


@pytest.mark.parametrize("outcomes,expected", [
    ({"gpt-4": ["A"], "claude-3.5-sonnet": ["B"]}, SessionStatus.COMPLETED),
    ({"gpt-4": ["A"], "claude-3.5-sonnet": None}, SessionStatus.PARTIAL),
    ({"gpt-4": None, "claude-3.5-sonnet": None}, SessionStatus.FAILED),
    ({"gpt-4": ["A"]}, SessionStatus.PARTIAL),
])
def test_finalize(outcomes, expected):
    session = running_session()
    for model_id, names in outcomes.items():
        if names is None:
            session.record_failure(model_id, "provider_error")
        else:
            session.record_result(model_id, names)

    assert session.finalize() == expected
    assert session.status == expected
    for state in session.model_status.values():
        assert state.is_terminal


def test_finalize_abandons_unfinished_models():
    session = running_session()
    session.record_result("gpt-4", ["A"])
    session.mark_model("claude-3.5-sonnet", ModelRunStatus.RUNNING)

    session.finalize()
    assert session.model_status["claude-3.5-sonnet"] == ModelRunStatus.ABANDONED


def test_totals_only_count_completed_models():
    session = running_session()
    session.record_result("gpt-4", ["A", "B"], ModelMetrics(input_tokens=100, output_tokens=50, cost_cents=1))
    session.record_failure("claude-3.5-sonnet", "timeout", ModelMetrics(input_tokens=10, cost_cents=3))

    assert session.total_names_generated == 2
    assert session.total_tokens == 150
    assert session.total_cost_cents == 1
    assert session.metrics["claude-3.5-sonnet"].error_kind == "timeout"


def test_snapshot_lists_every_requested_model():
    session = running_session()
    session.record_result("gpt-4", ["A"])
    snapshot = session.snapshot()

    assert snapshot.results == {"gpt-4": ["A"], "claude-3.5-sonnet": None}
    assert snapshot.model_status == {"gpt-4": "completed", "claude-3.5-sonnet": "pending"}
    data = snapshot.to_dict()
    assert data["status"] == "running"
    assert data["completed_at"] is None

    snapshot.results["gpt-4"].append("mutated")
    assert session.results["gpt-4"] == ["A"]


# --- Store ---

def test_store_satisfies_protocol():
    assert isinstance(InMemorySessionStore(), SessionStore)


def test_store_copies_on_read_and_write():
    store = InMemorySessionStore()
    session = make_session()
    store.create(session)

    session.error_message = "local change"
    assert store.get(session.session_id).error_message is None

    loaded = store.get(session.session_id)
    loaded.error_message = "another change"
    assert store.get(session.session_id).error_message is None


def test_store_rejects_duplicates_and_lists():
    store = InMemorySessionStore()
    first = make_session()
    store.create(first)
    with pytest.raises(ValueError):
        store.create(first)

    other = GenerationSession(user_id="user-2", prompt="p", requested_models=["gpt-4"])
    other.transition(SessionStatus.RUNNING)
    store.create(other)

    assert len(store) == 2
    assert [s.session_id for s in store.list(user_id="user-2")] == [other.session_id]
    assert [s.session_id for s in store.list(status=SessionStatus.PENDING)] == [first.session_id]


def test_store_delete_runs_hooks():
    store = InMemorySessionStore()
    deleted = []
    store.on_delete(lambda s: deleted.append(s.session_id))
    store.on_delete(lambda s: 1 / 0)
    session = make_session()
    store.create(session)

    assert store.delete(session.session_id) is True
    assert deleted == [session.session_id]
    assert store.delete(session.session_id) is False
    assert store.get(session.session_id) is None
