"""
tests/test_feedback_store.py -- Tests for feedback/store.py.

Covers:
  - create(): status starts at "New" whatever the caller sets; required fields
  - update_status(): feedback and audit entry change together; invalid status
    and unknown feedback leave both untouched
  - delete(): removes the row, writes a "feedback delete" entry, and the
    entry survives the deletion
  - Concurrent status updates: every change gets exactly one audit entry and
    each entry's old status is the status it really replaced
  - stats() and list_users_with_feedback()
"""

from __future__ import annotations

import threading

import pytest

from audit.models import ACTION_FEEDBACK_DELETE, ACTION_STATUS_CHANGE
from audit.store import AuditStore
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore
from core.database import create_db_engine
from core.errors import InvalidArgument, NotFound
from feedback.models import STATUS_IN_PROGRESS, STATUS_NEW, STATUS_RESOLVED, Feedback
from feedback.store import FeedbackStore


def _feedback(user_id: int, **overrides) -> Feedback:
    fields = dict(heading="Slow app", category="Bug", subcategory="UI", message="Pages take 10s", user_id=user_id)
    fields.update(overrides)
    return Feedback(**fields)


class TestCreate:
    def test_create_starts_new(self, feedback_store, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id, status=STATUS_RESOLVED))
        item = feedback_store.get(fid)
        assert item.status == STATUS_NEW
        assert item.version == 1
        assert item.submitted_at

    def test_required_fields(self, feedback_store, plain_user) -> None:
        with pytest.raises(InvalidArgument):
            feedback_store.create(_feedback(plain_user.id, heading="   "))

    def test_unknown_user(self, feedback_store) -> None:
        with pytest.raises(NotFound):
            feedback_store.create(_feedback(9999))

    def test_list_for_user_only_own(self, feedback_store, plain_user, admin_user) -> None:
        mine = feedback_store.create(_feedback(plain_user.id))
        feedback_store.create(_feedback(admin_user.id))
        assert [f.id for f in feedback_store.list_for_user(plain_user.id)] == [mine]

    def test_list_all_includes_submitter(self, feedback_store, plain_user) -> None:
        feedback_store.create(_feedback(plain_user.id))
        (item,) = feedback_store.list_all()
        assert item.submitter_name == plain_user.full_name
        assert item.submitter_email == plain_user.email


class TestUpdateStatus:
    def test_status_and_audit_change_together(self, feedback_store, audit_store, admin_user, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id))

        change = feedback_store.update_status(fid, STATUS_IN_PROGRESS, performed_by=admin_user.id)

        assert change.old_status == STATUS_NEW
        assert change.new_status == STATUS_IN_PROGRESS
        assert feedback_store.get(fid).status == STATUS_IN_PROGRESS
        (entry,) = audit_store.list_all()
        assert entry.action_type == ACTION_STATUS_CHANGE
        assert entry.feedback_id == fid
        assert entry.target_user_id == plain_user.id
        assert entry.performed_by_user_id == admin_user.id
        assert f"from '{STATUS_NEW}' to '{STATUS_IN_PROGRESS}'" in entry.description
        assert plain_user.full_name in entry.description

    def test_invalid_status_changes_nothing(self, feedback_store, audit_store, admin_user, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id))
        with pytest.raises(InvalidArgument):
            feedback_store.update_status(fid, "Closed", performed_by=admin_user.id)
        assert feedback_store.get(fid).status == STATUS_NEW
        assert audit_store.count() == 0

    def test_unknown_feedback(self, feedback_store, audit_store, admin_user) -> None:
        with pytest.raises(NotFound):
            feedback_store.update_status(9999, STATUS_RESOLVED, performed_by=admin_user.id)
        assert audit_store.count() == 0

    def test_unknown_performer_rolls_back(self, feedback_store, audit_store, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id))
        with pytest.raises(NotFound):
            feedback_store.update_status(fid, STATUS_RESOLVED, performed_by=9999)
        item = feedback_store.get(fid)
        assert item.status == STATUS_NEW
        assert item.version == 1
        assert audit_store.count() == 0

    def test_version_increments(self, feedback_store, admin_user, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id))
        feedback_store.update_status(fid, STATUS_IN_PROGRESS, performed_by=admin_user.id)
        feedback_store.update_status(fid, STATUS_RESOLVED, performed_by=admin_user.id)
        assert feedback_store.get(fid).version == 3


class TestDelete:
    def test_delete_is_audited_and_entry_survives(self, feedback_store, audit_store, admin_user, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id, heading="Remove me"))

        entry = feedback_store.delete(fid, performed_by=admin_user.id)

        assert feedback_store.get(fid) is None
        assert entry.action_type == ACTION_FEEDBACK_DELETE
        (stored,) = audit_store.list_all()
        assert stored.id == entry.id
        assert stored.feedback_id == fid
        assert "Remove me" in stored.description

    def test_delete_unknown(self, feedback_store, audit_store, admin_user) -> None:
        with pytest.raises(NotFound):
            feedback_store.delete(9999, performed_by=admin_user.id)
        assert audit_store.count() == 0


class TestReads:
    def test_stats(self, feedback_store, admin_user, plain_user) -> None:
        a = feedback_store.create(_feedback(plain_user.id, category="Bug"))
        feedback_store.create(_feedback(plain_user.id, category="Bug"))
        feedback_store.create(_feedback(plain_user.id, category="Idea"))
        feedback_store.update_status(a, STATUS_RESOLVED, performed_by=admin_user.id)

        stats = feedback_store.stats()

        assert stats["total"] == 3
        assert stats["by_status"] == {STATUS_NEW: 2, STATUS_IN_PROGRESS: 0, STATUS_RESOLVED: 1}
        assert stats["by_category"] == {"Bug": 2, "Idea": 1}

    def test_stats_empty(self, feedback_store) -> None:
        stats = feedback_store.stats()
        assert stats["total"] == 0
        assert set(stats["by_status"]) == {STATUS_NEW, STATUS_IN_PROGRESS, STATUS_RESOLVED}

    def test_users_with_feedback(self, feedback_store, admin_user, plain_user) -> None:
        fid = feedback_store.create(_feedback(plain_user.id))
        rows = {user_id: (name, items) for user_id, name, _email, items in feedback_store.list_users_with_feedback()}
        assert rows[admin_user.id][1] == []
        assert [f.id for f in rows[plain_user.id][1]] == [fid]


# ---------------------------------------------------------------------------
# Concurrency
#
# Uses a temporary SQLite file rather than a shared-memory database: shared
# cache reports table locks immediately instead of waiting on the busy timeout.
# ---------------------------------------------------------------------------


def test_concurrent_status_updates_each_audited_once(tmp_path) -> None:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    try:
        users = UserStore(engine)
        audit = AuditStore(engine)
        store = FeedbackStore(engine, audit)
        admin_ids = [
            users.create_user(
                User(
                    full_name=f"Admin {i}",
                    email=f"admin{i}@example.com",
                    hashed_password=hash_password("Adm1n!pass"),
                    is_admin=True,
                )
            )
            for i in range(2)
        ]
        owner = users.create_user(User(full_name="Owner", email="owner@example.com", hashed_password="x"))
        fid = store.create(_feedback(owner))

        targets = [STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_IN_PROGRESS, STATUS_RESOLVED]
        barrier = threading.Barrier(len(targets))
        changes = []
        errors = []
        lock = threading.Lock()

        def worker(i: int) -> None:
            barrier.wait()
            try:
                change = store.update_status(fid, targets[i], performed_by=admin_ids[i % 2])
            except Exception as exc:  # collected and asserted below
                with lock:
                    errors.append(exc)
                return
            with lock:
                changes.append(change)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(len(targets))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        entries = audit.list_by_action(ACTION_STATUS_CHANGE)
        assert len(entries) == len(targets)

        # Replay the changes in commit order: each one starts where the
        # previous one left off, beginning from "New".
        ordered = sorted(changes, key=lambda c: c.audit_entry.id)
        previous = STATUS_NEW
        for change in ordered:
            assert change.old_status == previous
            previous = change.new_status
        final = store.get(fid)
        assert final.status == previous
        assert final.version == len(targets) + 1
    finally:
        engine.dispose()
