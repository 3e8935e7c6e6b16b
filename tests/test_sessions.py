from media_relay.sessions import Expectation, PendingState, SessionStore


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_put_get_pop():
    store = SessionStore(ttl=60)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    assert store.get(1).kind is Expectation.EXPECT_LINK
    assert store.pop(1).kind is Expectation.EXPECT_LINK
    assert store.get(1) is None
    assert len(store) == 0


def test_new_state_overwrites_old():
    store = SessionStore(ttl=60)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    store.put(1, PendingState(Expectation.EXPECT_FORMAT, url="https://youtu.be/x"))
    assert store.get(1).kind is Expectation.EXPECT_FORMAT


def test_entries_expire():
    clock = Clock()
    store = SessionStore(ttl=60, clock=clock)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    clock.now += 61
    assert store.get(1) is None
    assert len(store) == 0


def test_expired_entry_not_returned_by_pop():
    clock = Clock()
    store = SessionStore(ttl=60, clock=clock)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    clock.now += 120
    assert store.pop(1) is None


def test_purge_expired():
    clock = Clock()
    store = SessionStore(ttl=60, clock=clock)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    clock.now += 30
    store.put(2, PendingState(Expectation.EXPECT_LINK))
    clock.now += 40
    assert store.purge_expired() == 1
    assert store.get(1) is None
    assert store.get(2) is not None


def test_zero_ttl_never_expires():
    clock = Clock()
    store = SessionStore(ttl=0, clock=clock)
    store.put(1, PendingState(Expectation.EXPECT_LINK))
    clock.now += 10 ** 6
    assert store.get(1) is not None
