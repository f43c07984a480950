import logging
import threading
import time
from concurrent.futures import Future
from types import SimpleNamespace

import pytest

from camera_projector import CameraIntrinsics
from head_pointing_client import HeadPointingClient
from perception_coordinator import CoordinatorConfig, PerceptionCoordinator
from pose_synthesizer import FixedPoseSynthesizer

# action_msgs/msg/GoalStatus
STATUS_SUCCEEDED = 4
STATUS_CANCELED = 5
STATUS_ABORTED = 6


def _done(value) -> Future:
    f = Future()
    f.set_result(value)
    return f


class FakeGoalHandle:
    def __init__(self, accepted=True):
        self.accepted = accepted
        self.result_future = Future()
        self.cancel_calls = 0

    def get_result_async(self):
        return self.result_future

    def cancel_goal_async(self):
        self.cancel_calls += 1
        if not self.result_future.done():
            self.result_future.set_result(SimpleNamespace(status=STATUS_CANCELED, result=None))
        return _done(None)


class FakePointHeadClient:
    """
    Stands in for rclpy.action.ActionClient.

    statuses: one entry per goal sent; an int GoalStatus is delivered at once,
              None means the head never answers.
    """

    def __init__(self, ready=True, statuses=(STATUS_SUCCEEDED,), accept=True):
        self.ready = ready
        self.statuses = list(statuses)
        self.accept = accept
        self.wait_calls = []
        self.sent_goals = []
        self.handles = []
        self.goal_sent = threading.Event()

    def wait_for_server(self, timeout_sec=None):
        self.wait_calls.append(timeout_sec)
        return self.ready

    def send_goal_async(self, goal):
        self.sent_goals.append(goal)
        handle = FakeGoalHandle(accepted=self.accept)
        self.handles.append(handle)
        status = self.statuses.pop(0) if self.statuses else STATUS_SUCCEEDED
        if self.accept and status is not None:
            handle.result_future.set_result(SimpleNamespace(status=status, result=None))
        self.goal_sent.set()
        return _done(handle)


def wait_until(predicate, timeout=2.0):
    t0 = time.monotonic()
    while not predicate():
        if time.monotonic() - t0 > timeout:
            return False
        time.sleep(0.005)
    return True


@pytest.fixture
def logger():
    return logging.getLogger("head_perception.test")


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=520.0, fy=520.0, cx=320.0, cy=240.0)


@pytest.fixture
def make_coordinator(intrinsics, logger):
    def _make(fake=None, start=True, **config):
        fake = fake if fake is not None else FakePointHeadClient()
        client = HeadPointingClient(fake, lambda g: g, logger=logger, poll_period_sec=0.005)
        coord = PerceptionCoordinator(
            intrinsics,
            client,
            FixedPoseSynthesizer(frame_id="base_link", position=(0.5, 0.0, 0.75), rpy=(0.1, -0.2, 0.3)),
            config=CoordinatorConfig(**config),
            logger=logger,
        )
        if start:
            coord.start()
        return coord, fake

    return _make
