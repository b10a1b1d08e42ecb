"""Tests for the scoped logging context."""

import contextvars
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop():
    token = push_log_context(entity_kind="job", entity_id=1)
    assert get_log_context() == {"entity_kind": "job", "entity_id": 1}

    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_scopes_merge_and_restore():
    with log_context(entity_kind="part_order", entity_id=3):
        with log_context(channel="sms", entity_id=4) as fields:
            assert fields == {"entity_kind": "part_order", "entity_id": 4, "channel": "sms"}
        assert get_log_context() == {"entity_kind": "part_order", "entity_id": 3}
    assert get_log_context() == {}


def test_scope_restored_after_exception():
    with pytest.raises(RuntimeError):
        with log_context(event_type="job.completed"):
            raise RuntimeError("boom")

    assert get_log_context() == {}


def test_returned_copy_is_detached():
    with log_context(role="client"):
        fields = get_log_context()
        fields["role"] = "admin"
        assert get_log_context()["role"] == "client"


def test_copied_context_reaches_worker_thread():
    with log_context(entity_kind="job", entity_id=9):
        context = contextvars.copy_context()

    with ThreadPoolExecutor(max_workers=1) as pool:
        seen = pool.submit(context.run, get_log_context).result()
        bare = pool.submit(get_log_context).result()

    assert seen == {"entity_kind": "job", "entity_id": 9}
    assert bare == {}
