"""Unit tests for auth/store.py and tasks/store.py.

Covers:
- UserStore: create/get, lookup by username or email, uniqueness,
  field whitelist on update, active-admin count
- TaskStore: create/get, owner/status filtering, newest-first paging,
  partial update, delete
- TaskStore comments: newest-first listing per task, removal with the task
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from tasks.models import Task, TaskComment
from tasks.store import TaskStore

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def users():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def tasks():
    s = TaskStore("sqlite:///:memory:")
    yield s
    s.close()


def _user(name: str, role: Role = Role.user, **kwargs) -> User:
    return User(username=name, email=f"{name}@taskwarden.dev", hashed_password="$2b$04$x", role=role.value, **kwargs)


class TestUserStore:
    def test_create_and_get(self, users):
        assert users.has_users() is False
        uid = users.create_user(_user("alice"))
        user = users.get_by_id(uid)
        assert user.username == "alice"
        assert user.role == "user"
        assert user.is_active is True
        assert user.created_at
        assert users.has_users() is True

    def test_lookup_by_username_or_email(self, users):
        uid = users.create_user(_user("alice"))
        assert users.get_by_username_or_email("alice").id == uid
        assert users.get_by_username_or_email("alice@taskwarden.dev").id == uid
        assert users.get_by_username_or_email("nobody") is None

    def test_duplicate_username_rejected(self, users):
        users.create_user(_user("alice"))
        with pytest.raises(IntegrityError):
            users.create_user(User(username="alice", email="other@taskwarden.dev", hashed_password="h"))

    def test_duplicate_email_rejected(self, users):
        users.create_user(_user("alice"))
        with pytest.raises(IntegrityError):
            users.create_user(User(username="alice2", email="alice@taskwarden.dev", hashed_password="h"))

    def test_update_whitelist(self, users):
        uid = users.create_user(_user("alice"))
        assert users.update_user(uid, role="manager", is_active=False) is True
        user = users.get_by_id(uid)
        assert (user.role, user.is_active) == ("manager", False)
        with pytest.raises(ValueError):
            users.update_user(uid, hashed_password="sneaky")

    def test_update_password(self, users):
        uid = users.create_user(_user("alice"))
        assert users.update_password(uid, "$2b$04$new")
        assert users.get_by_id(uid).hashed_password == "$2b$04$new"

    def test_count_active_admins(self, users):
        users.create_user(_user("root", Role.admin))
        users.create_user(_user("old", Role.admin, is_active=False))
        users.create_user(_user("alice"))
        assert users.count_active_admins() == 1

    def test_update_last_login(self, users):
        uid = users.create_user(_user("alice"))
        assert users.get_by_id(uid).last_login is None
        users.update_last_login(uid)
        assert users.get_by_id(uid).last_login is not None


class TestTaskStore:
    def test_create_and_get(self, tasks):
        tid = tasks.create_task(Task(title="Write report", owner_id=1, due_date="2026-11-01"))
        task = tasks.get_task(tid)
        assert task.title == "Write report"
        assert task.status == "pending"
        assert task.created_at and task.created_at == task.updated_at
        assert tasks.get_task(tid + 100) is None

    def test_filter_and_page(self, tasks):
        for i in range(5):
            tasks.create_task(Task(title=f"a{i}", owner_id=1, status="done" if i % 2 else "pending"))
        tasks.create_task(Task(title="b0", owner_id=2))

        assert tasks.count_tasks() == 6
        assert tasks.count_tasks(owner_id=1) == 5
        assert tasks.count_tasks(owner_id=1, status="done") == 2

        first_page = tasks.list_tasks(owner_id=1, limit=2)
        assert [t.title for t in first_page] == ["a4", "a3"]
        second_page = tasks.list_tasks(owner_id=1, limit=2, offset=2)
        assert [t.title for t in second_page] == ["a2", "a1"]

    def test_partial_update(self, tasks):
        tid = tasks.create_task(Task(title="Old", owner_id=1, description="keep me"))
        assert tasks.update_task(tid, title="New", status="in_progress")
        task = tasks.get_task(tid)
        assert (task.title, task.status, task.description) == ("New", "in_progress", "keep me")
        with pytest.raises(ValueError):
            tasks.update_task(tid, owner_id=2)

    def test_delete(self, tasks):
        tid = tasks.create_task(Task(title="Gone", owner_id=1))
        assert tasks.delete_task(tid) is True
        assert tasks.get_task(tid) is None
        assert tasks.delete_task(tid) is False


class TestTaskComments:
    def test_comments_listed_newest_first_per_task(self, tasks):
        tid = tasks.create_task(Task(title="Discuss", owner_id=1))
        other = tasks.create_task(Task(title="Elsewhere", owner_id=1))
        first = tasks.create_comment(TaskComment(content="first", task_id=tid, user_id=1))
        tasks.create_comment(TaskComment(content="second", task_id=tid, user_id=2))
        tasks.create_comment(TaskComment(content="unrelated", task_id=other, user_id=1))

        comments = tasks.list_comments(tid)
        assert [c.content for c in comments] == ["second", "first"]
        assert [c.user_id for c in comments] == [2, 1]

        stored = tasks.get_comment(first)
        assert stored.task_id == tid
        assert stored.created_at and stored.created_at == stored.updated_at

    def test_task_without_comments(self, tasks):
        tid = tasks.create_task(Task(title="Quiet", owner_id=1))
        assert tasks.list_comments(tid) == []

    def test_delete_task_removes_its_comments(self, tasks):
        tid = tasks.create_task(Task(title="Gone", owner_id=1))
        cid = tasks.create_comment(TaskComment(content="bye", task_id=tid, user_id=1))
        tasks.delete_task(tid)
        assert tasks.get_comment(cid) is None
        assert tasks.list_comments(tid) == []
