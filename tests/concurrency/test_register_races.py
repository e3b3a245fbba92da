"""
Register open/close races between terminals.

Several threads, each with its own session, are released together by a
barrier.  Whatever the interleaving, the store must end up with exactly
one open session, and a session must close exactly once.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from pos_kernel.exceptions import NoOpenSessionError, RegisterAlreadyOpenError
from pos_kernel.models.register_session import RegisterSession, SessionStatus
from pos_services.point_of_sale import PointOfSaleService

pytestmark = pytest.mark.slow

TERMINALS = 8


def _race(pos: PointOfSaleService, action, workers: int = TERMINALS):
    barrier = Barrier(workers)

    def attempt():
        barrier.wait()
        try:
            return ("ok", action(pos))
        except (RegisterAlreadyOpenError, NoOpenSessionError) as exc:
            return ("refused", exc)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(attempt) for _ in range(workers)]
        return [f.result(timeout=60) for f in futures]


def _open_count(session_factory) -> int:
    with session_factory() as session:
        return session.execute(
            select(func.count())
            .select_from(RegisterSession)
            .where(RegisterSession.status == SessionStatus.OPEN.value)
        ).scalar_one()


class TestConcurrentOpen:

    def test_exactly_one_terminal_opens(self, pos, session_factory):
        results = _race(pos, lambda p: p.open_register("100"))

        opened = [value for outcome, value in results if outcome == "ok"]
        refused = [value for outcome, value in results if outcome == "refused"]
        assert len(opened) == 1
        assert len(refused) == TERMINALS - 1
        assert all(isinstance(exc, RegisterAlreadyOpenError) for exc in refused)
        assert _open_count(session_factory) == 1

        status = pos.register_status()
        assert status.is_open
        assert status.session_id == opened[0].id


class TestConcurrentClose:

    def test_exactly_one_terminal_closes(self, pos, session_factory):
        pos.open_register("100")

        results = _race(pos, lambda p: p.close_register("100"))

        closed = [value for outcome, value in results if outcome == "ok"]
        refused = [value for outcome, value in results if outcome == "refused"]
        assert len(closed) == 1
        assert all(isinstance(exc, NoOpenSessionError) for exc in refused)
        assert _open_count(session_factory) == 0

        report = pos.register_sessions_report()
        assert len(report) == 1
        assert report[0].closing_amount == closed[0].closing_amount
