import threading
import time

from bestball.services.matches.service import MatchLocks, MatchService
from bestball.services.matches.store import SqlAlchemyScoreStore


class RecordingStore(SqlAlchemyScoreStore):
    """Counts submissions between their upsert and their post-commit notify."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self._guard = threading.Lock()

    def upsert_score(self, *args, **kwargs):
        with self._guard:
            self.active += 1
            self.peak = max(self.peak, self.active)
        # Widen the window so an unserialized second writer would land inside it
        time.sleep(0.05)
        return super().upsert_score(*args, **kwargs)

    def finished(self, *args, **kwargs):
        with self._guard:
            self.active -= 1


def test_concurrent_submissions_are_serialized(file_app, file_seed):
    store = RecordingStore()
    service = MatchService(store=store, notifier=store.finished, config=file_app.config)
    mid, p = file_seed['match_id'], file_seed['players']
    errors = []

    def submit(player_id, hole, score):
        try:
            with file_app.app_context():
                service.submit_score(mid, player_id, hole, score, privileged=True)
        except Exception as exc:  # surfaced through the assertion below
            errors.append(exc)

    threads = [
        threading.Thread(target=submit, args=(p['A'], 1, 4)),
        threading.Thread(target=submit, args=(p['B'], 2, 5)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    assert store.peak == 1
    assert store.active == 0
    with file_app.app_context():
        match = service.get_match(mid)
        # Neither write is lost: both holes count toward team 1
        assert (match.team1_score, match.team2_score) == (9, 0)
        assert len(service.list_scores(mid)) == 2
    assert len(service.locks) == 0


def test_match_locks_are_released_after_use():
    locks = MatchLocks()
    with locks.for_match(7):
        assert len(locks) == 1
        with locks.for_match(8):
            assert len(locks) == 2
    assert len(locks) == 0


def test_match_lock_waits_for_holder():
    locks = MatchLocks()
    order = []

    def second():
        with locks.for_match(1):
            order.append('second')

    with locks.for_match(1):
        waiter = threading.Thread(target=second)
        waiter.start()
        time.sleep(0.05)
        order.append('first')
    waiter.join(timeout=5)
    assert order == ['first', 'second']
    assert len(locks) == 0
