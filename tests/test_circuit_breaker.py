from datetime import timedelta

from conftest import FakeClock

from balance_monitor.services import CircuitBreaker


def make_breaker(clock):
    return CircuitBreaker(
        failure_threshold=5,
        cooldown=timedelta(minutes=10),
        escalation_threshold=3,
        clock=clock,
    )


def test_opens_after_threshold_and_closes_after_cooldown():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(4):
        breaker.record_failure()
    assert not breaker.is_suspended()

    breaker.record_failure()
    assert breaker.is_suspended()

    clock.advance(minutes=9, seconds=59)
    assert breaker.is_suspended()

    clock.advance(seconds=1)
    assert not breaker.is_suspended()
    assert breaker.consecutive_failures == 0


def test_success_resets_counter():
    breaker = make_breaker(FakeClock())
    for _ in range(4):
        breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.consecutive_failures == 1
    assert not breaker.is_suspended()


def test_escalation_fires_once_per_episode():
    breaker = make_breaker(FakeClock())
    crossings = [breaker.record_failure() for _ in range(6)]
    assert crossings == [False, False, True, False, False, False]
    assert breaker.escalated

    breaker.record_success()
    assert not breaker.escalated
    assert [breaker.record_failure() for _ in range(3)] == [False, False, True]


def test_state_snapshot():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    state = breaker.state()
    assert state.suspended is True
    assert state.consecutive_failures == 5
    assert state.last_failure_at == clock.now
    assert state.escalated is True


def test_state_does_not_close_the_breaker():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.advance(minutes=11)

    state = breaker.state()
    assert state.suspended is False
    assert state.consecutive_failures == 5
    assert state.escalated is True
    assert breaker.consecutive_failures == 5
    assert breaker.escalated
