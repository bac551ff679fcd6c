"""
Tests for the login attempt tracker.
"""
import threading

from app import create_app
from config import TestConfig
from models import db
from models.login_attempt import LoginAttempt
from security.bruteforce import check_lock, record_failure, reset_attempts, sweep_idle_attempts

EMAIL = "victim@x.com"


class TestRecordFailure:
    """Counting failures and setting the lockout."""

    def test_first_failure_creates_record(self, app, frozen_clock):
        state = record_failure(EMAIL)
        assert state.attempts == 1
        assert not state.locked
        assert not state.locked_now

    def test_fifth_failure_locks(self, app, frozen_clock):
        for _ in range(4):
            assert not record_failure(EMAIL).locked
        state = record_failure(EMAIL)
        assert state.attempts == 5
        assert state.locked
        assert state.locked_now
        assert state.retry_after_minutes == 10

    def test_active_lock_is_not_extended(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        first_until = LoginAttempt.query.filter_by(email=EMAIL).one().locked_until

        frozen_clock.advance(minutes=3)
        state = record_failure(EMAIL)
        assert state.locked
        assert not state.locked_now
        assert state.locked_until == first_until
        assert state.retry_after_minutes == 7

    def test_idle_record_starts_over(self, app, frozen_clock):
        for _ in range(3):
            record_failure(EMAIL)
        frozen_clock.advance(minutes=21)
        assert record_failure(EMAIL).attempts == 1

    def test_emails_are_tracked_separately(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        assert not check_lock("someone-else@x.com").locked
        assert record_failure("someone-else@x.com").attempts == 1


class TestCheckLock:

    def test_unknown_email_not_locked(self, app, frozen_clock):
        assert check_lock(EMAIL) == (False, 0)

    def test_minutes_rounded_up(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        frozen_clock.advance(minutes=9, seconds=30)
        status = check_lock(EMAIL)
        assert status.locked
        assert status.retry_after_minutes == 1

    def test_lock_expires(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        frozen_clock.advance(minutes=10)
        assert not check_lock(EMAIL).locked

    def test_failure_after_expired_lock_relocks(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        frozen_clock.advance(minutes=11)
        state = record_failure(EMAIL)
        assert state.locked_now
        assert state.attempts == 6


class TestResetAndSweep:

    def test_reset_clears_lock(self, app, frozen_clock):
        for _ in range(5):
            record_failure(EMAIL)
        reset_attempts(EMAIL)
        assert not check_lock(EMAIL).locked
        assert LoginAttempt.query.filter_by(email=EMAIL).first() is None

    def test_sweep_removes_only_idle_unlocked_rows(self, app, frozen_clock):
        record_failure("idle@x.com")
        for _ in range(5):
            record_failure(EMAIL)
        frozen_clock.advance(minutes=5)
        record_failure("fresh@x.com")

        # idle@ is 25 minutes old; EMAIL's lock ended but its row is idle too
        frozen_clock.advance(minutes=20)
        assert sweep_idle_attempts() == 2
        remaining = {row.email for row in LoginAttempt.query.all()}
        assert remaining == {"fresh@x.com"}


class TestConcurrentFailures:
    """Parallel failures against a real database file, one connection per thread."""

    WORKERS = 8

    def test_no_failure_is_lost(self, tmp_path):
        class FileConfig(TestConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'auth.db'}"
            SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

        app = create_app(FileConfig)
        with app.app_context():
            db.create_all()

        barrier = threading.Barrier(self.WORKERS)
        states, errors = [], []

        def worker():
            with app.app_context():
                barrier.wait()
                try:
                    states.append(record_failure(EMAIL))
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(self.WORKERS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        with app.app_context():
            try:
                assert errors == []
                assert LoginAttempt.query.filter_by(email=EMAIL).one().attempts == self.WORKERS
                assert max(state.attempts for state in states) == self.WORKERS
                assert sum(1 for state in states if state.locked_now) == 1
                assert check_lock(EMAIL).locked
            finally:
                db.session.remove()
                db.drop_all()
                db.engine.dispose()
