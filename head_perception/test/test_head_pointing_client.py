import threading

import pytest

from conftest import STATUS_ABORTED, STATUS_CANCELED, STATUS_SUCCEEDED, FakePointHeadClient, wait_until
from head_pointing_client import ActuatorGoal, ActuatorState, HeadPointingClient, state_from_goal_status

GOAL = ActuatorGoal(
    target_direction=(0.0, 0.0, 1.0),
    target_frame="head_camera_rgb_optical_frame",
    pointing_frame="head_camera_rgb_optical_frame",
)


def _client(fake, logger):
    return HeadPointingClient(fake, lambda g: ("msg", g), logger=logger, poll_period_sec=0.005)


def test_connect_succeeds_first_try(logger):
    fake = FakePointHeadClient(ready=True)
    client = _client(fake, logger)
    assert client.connect(attempts=3, timeout_sec=2.0)
    assert client.connected
    assert fake.wait_calls == [2.0]


def test_connect_gives_up_after_three_attempts(logger):
    fake = FakePointHeadClient(ready=False)
    client = _client(fake, logger)
    assert not client.connect(attempts=3, timeout_sec=2.0)
    assert not client.connected
    assert fake.wait_calls == [2.0, 2.0, 2.0]


@pytest.mark.parametrize(
    "status,expected",
    [
        (STATUS_SUCCEEDED, ActuatorState.SUCCEEDED),
        (STATUS_ABORTED, ActuatorState.ABORTED),
        (STATUS_CANCELED, ActuatorState.PREEMPTED),
    ],
)
def test_terminal_status_surfaced_as_is(logger, status, expected):
    fake = FakePointHeadClient(statuses=[status])
    client = _client(fake, logger)
    assert client.send_goal_and_wait(GOAL, timeout_sec=1.0) is expected
    assert client.state is expected
    assert fake.sent_goals == [("msg", GOAL)]


def test_unknown_status_counts_as_aborted():
    assert state_from_goal_status(0) is ActuatorState.ABORTED
    assert state_from_goal_status(None) is ActuatorState.ABORTED
    assert not ActuatorState.ACTIVE.is_terminal
    assert ActuatorState.TIMED_OUT.is_terminal


def test_rejected_goal(logger):
    fake = FakePointHeadClient(accept=False)
    client = _client(fake, logger)
    assert client.send_goal_and_wait(GOAL, timeout_sec=1.0) is ActuatorState.REJECTED


def test_timeout_cancels_goal(logger):
    fake = FakePointHeadClient(statuses=[None])
    client = _client(fake, logger)
    assert client.send_goal_and_wait(GOAL, timeout_sec=0.05) is ActuatorState.TIMED_OUT
    assert fake.handles[0].cancel_calls == 1


def test_should_cancel_interrupts_wait(logger):
    fake = FakePointHeadClient(statuses=[None])
    client = _client(fake, logger)
    stop = threading.Event()
    out = []
    t = threading.Thread(
        target=lambda: out.append(client.send_goal_and_wait(GOAL, timeout_sec=5.0, should_cancel=stop.is_set))
    )
    t.start()
    assert wait_until(lambda: client.state is ActuatorState.ACTIVE)
    stop.set()
    t.join(timeout=2.0)
    assert out == [ActuatorState.PREEMPTED]
    assert fake.handles[0].cancel_calls == 1


def test_new_goal_cancels_outstanding_one(logger):
    fake = FakePointHeadClient(statuses=[None, STATUS_SUCCEEDED])
    client = _client(fake, logger)
    t = threading.Thread(target=client.send_goal_and_wait, args=(GOAL, 5.0))
    t.start()
    assert wait_until(lambda: client.state is ActuatorState.ACTIVE)

    # first wait sees its own goal cancelled and returns PREEMPTED
    assert client.send_goal_and_wait(GOAL, timeout_sec=1.0) is ActuatorState.SUCCEEDED
    t.join(timeout=2.0)
    assert fake.handles[0].cancel_calls == 1
    assert fake.handles[1].cancel_calls == 0


def test_cancel_without_goal_is_noop(logger):
    client = _client(FakePointHeadClient(), logger)
    assert client.cancel() is False
