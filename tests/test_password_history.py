"""
Tests for password history: reuse checks and trimming.
"""
from models import db
from security.password_history import record_password_history, replace_password, was_recently_used
from utils import clock

from conftest import NEW_PASSWORD, OTHER_PASSWORD, PASSWORD


class TestPasswordHistory:
    """The live hash plus the last five outgoing hashes are off limits."""

    def test_live_password_counts_as_recent(self, make_user):
        user = make_user()
        assert was_recently_used(user, PASSWORD)
        assert not was_recently_used(user, NEW_PASSWORD)

    def test_outgoing_hash_moves_to_history(self, make_user):
        user = make_user()
        old_hash = user.password_hash
        replace_password(user, NEW_PASSWORD, clock.utcnow())
        db.session.commit()

        assert user.password_hash != old_hash
        assert [row.password_hash for row in user.password_history] == [old_hash]
        assert was_recently_used(user, PASSWORD)
        assert was_recently_used(user, NEW_PASSWORD)

    def test_first_password_leaves_history_empty(self, make_user):
        user = make_user()
        assert user.password_history == []
        assert user.password_changed_at is not None
        assert user.password_expires_at > user.password_changed_at

    def test_history_trimmed_to_five(self, make_user):
        user = make_user()
        for i in range(6):
            record_password_history(user, f"hash-{i}")
        db.session.commit()

        kept = [row.password_hash for row in user.password_history]
        assert kept == ["hash-5", "hash-4", "hash-3", "hash-2", "hash-1"]

    def test_sixth_change_frees_oldest_password(self, make_user):
        user = make_user()
        sequence = [f"Rotate#Pass{i}x" for i in range(6)]
        for pw in sequence:
            replace_password(user, pw, clock.utcnow())
            db.session.commit()

        # PASSWORD was pushed out by the sixth change
        assert len(user.password_history) == 5
        assert not was_recently_used(user, PASSWORD)
        assert was_recently_used(user, sequence[0])
        assert not was_recently_used(user, OTHER_PASSWORD)
