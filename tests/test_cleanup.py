import asyncio
from datetime import timedelta

from conftest import make_order, make_user
from storefront.orders.models import Order
from storefront.services import cleanup
from storefront.services.cleanup import CleanupScheduler, cleanup_unverified_users
from storefront.users.models import User, UserRole, utcnow


def test_cleanup_removes_only_stale_unverified_customers(db_session):
    old = utcnow() - timedelta(days=30)
    stale = make_user(db_session, email="stale@example.com", verified=False, created_at=old)
    make_order(db_session, stale)
    make_user(db_session, email="fresh@example.com", verified=False)
    make_user(db_session, email="verified@example.com", verified=True, created_at=old)
    make_user(db_session, email="boss@example.com", verified=False, role=UserRole.ADMIN.value, created_at=old)

    removed = cleanup_unverified_users(session_factory=lambda: db_session)

    assert removed == 1
    remaining = {user.email for user in db_session.query(User)}
    assert remaining == {"fresh@example.com", "verified@example.com", "boss@example.com"}
    assert db_session.query(Order).count() == 0


def test_cleanup_failure_is_logged_not_raised(db_session, mocker):
    mocker.patch(
        "storefront.services.cleanup.UserService.cleanup_unverified_users",
        side_effect=RuntimeError("database is locked"),
    )
    rollback = mocker.spy(db_session, "rollback")

    assert cleanup_unverified_users(session_factory=lambda: db_session) == 0
    rollback.assert_called_once()


def test_scheduler_runs_immediately_and_stops(mocker):
    job = mocker.patch.object(cleanup, "cleanup_unverified_users", return_value=0)
    scheduler = CleanupScheduler(interval_seconds=3600)

    async def run():
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()

    asyncio.run(run())

    assert not scheduler.running
    job.assert_called_once_with()
