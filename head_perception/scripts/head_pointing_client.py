#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple


class ActuatorState(Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUCCEEDED = "SUCCEEDED"
    ABORTED = "ABORTED"
    PREEMPTED = "PREEMPTED"
    TIMED_OUT = "TIMED_OUT"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self not in (ActuatorState.PENDING, ActuatorState.ACTIVE)


# action_msgs/msg/GoalStatus
_STATUS_TO_STATE = {
    1: ActuatorState.PENDING,     # ACCEPTED
    2: ActuatorState.ACTIVE,      # EXECUTING
    3: ActuatorState.ACTIVE,      # CANCELING
    4: ActuatorState.SUCCEEDED,
    5: ActuatorState.PREEMPTED,   # CANCELED
    6: ActuatorState.ABORTED,
}


def state_from_goal_status(status) -> ActuatorState:
    """GoalStatus int -> ActuatorState. UNKNOWN (0) or anything else counts as ABORTED."""
    return _STATUS_TO_STATE.get(status, ActuatorState.ABORTED)


@dataclass(frozen=True)
class ActuatorGoal:
    """Look-at request for the head: aim pointing_axis of pointing_frame along target_direction."""

    target_direction: Tuple[float, float, float]
    target_frame: str
    pointing_axis: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    pointing_frame: str = ""
    min_duration: float = 0.5   # s
    max_velocity: float = 1.0   # rad/s


class HeadPointingClient:
    """
    Owns the lifecycle of at most one point_head goal.

    action_client: anything with the rclpy ActionClient API
                   (wait_for_server / send_goal_async, goal handles with
                   accepted / get_result_async / cancel_goal_async).
    build_goal:    ActuatorGoal -> action goal message.

    Blocking calls only block the calling thread; the futures must be
    completed by another thread (MultiThreadedExecutor in the node).
    """

    def __init__(
        self,
        action_client,
        build_goal: Callable[[ActuatorGoal], Any],
        logger=None,
        poll_period_sec: float = 0.05,
    ):
        self._ac = action_client
        self._build_goal = build_goal
        self._log = logger or logging.getLogger(__name__)
        self._poll_period = float(poll_period_sec)

        self._lock = threading.Lock()
        self._goal_handle = None
        self._state: Optional[ActuatorState] = None
        self.connected = False

    @property
    def state(self) -> Optional[ActuatorState]:
        with self._lock:
            return self._state

    def _set_state(self, state: ActuatorState):
        with self._lock:
            self._state = state

    # ---------- Discovery ----------
    def connect(self, attempts: int = 3, timeout_sec: float = 2.0) -> bool:
        attempts = max(1, int(attempts))
        for attempt in range(1, attempts + 1):
            if self._ac.wait_for_server(timeout_sec=timeout_sec):
                self._log.info(f"[HEAD] point_head server available (attempt {attempt}/{attempts})")
                self.connected = True
                return True
            self._log.warning(
                f"[HEAD] (attempt {attempt}/{attempts}) point_head server not available after {timeout_sec:.1f}s"
            )
        self._log.error(f"[HEAD] point_head server never came up after {attempts} attempts")
        self.connected = False
        return False

    # ---------- Goal lifecycle ----------
    def cancel(self) -> bool:
        with self._lock:
            gh = self._goal_handle
            self._goal_handle = None
        if gh is None:
            return False
        self._log.info("[HEAD] Cancelling outstanding point_head goal")
        try:
            gh.cancel_goal_async()
        except Exception as ex:
            self._log.warning(f"[HEAD] Cancel request error: {ex}")
        return True

    def _cancel_if_accepted(self, send_future):
        """Late acceptance after the caller stopped waiting: nobody wants this goal."""
        try:
            gh = send_future.result()
        except Exception as ex:
            self._log.warning(f"[HEAD] Late goal response failed: {ex}")
            return
        if gh is not None and getattr(gh, "accepted", False):
            self._log.info("[HEAD] Cancelling point_head goal accepted after wait ended")
            gh.cancel_goal_async()

    def _wait_for(self, future, deadline: float, should_cancel) -> Optional[ActuatorState]:
        """Poll until future is done. Returns PREEMPTED / TIMED_OUT if interrupted, else None."""
        while not future.done():
            if should_cancel is not None and should_cancel():
                return ActuatorState.PREEMPTED
            if time.monotonic() >= deadline:
                return ActuatorState.TIMED_OUT
            time.sleep(self._poll_period)
        return None

    def send_goal_and_wait(
        self,
        goal: ActuatorGoal,
        timeout_sec: float,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> ActuatorState:
        # single outstanding goal
        self.cancel()

        deadline = time.monotonic() + float(timeout_sec)
        self._set_state(ActuatorState.PENDING)
        d = goal.target_direction
        self._log.info(
            f"[HEAD] Sending point_head goal: dir=({d[0]:.3f}, {d[1]:.3f}, {d[2]:.3f}) "
            f"frame={goal.target_frame} timeout={float(timeout_sec):.1f}s"
        )

        send_future = self._ac.send_goal_async(self._build_goal(goal))

        # 1) acceptance
        interrupted = self._wait_for(send_future, deadline, should_cancel)
        if interrupted is not None:
            self._log.warning(f"[HEAD] Stopped waiting for goal acceptance: {interrupted.value}")
            send_future.add_done_callback(self._cancel_if_accepted)
            self._set_state(interrupted)
            return interrupted

        gh = send_future.result()
        if gh is None or not gh.accepted:
            self._log.warning("[HEAD] point_head goal rejected")
            self._set_state(ActuatorState.REJECTED)
            return ActuatorState.REJECTED

        with self._lock:
            self._goal_handle = gh
            self._state = ActuatorState.ACTIVE
        self._log.info("[HEAD] Goal accepted; waiting for result...")

        # 2) result
        result_future = gh.get_result_async()
        interrupted = self._wait_for(result_future, deadline, should_cancel)
        if interrupted is not None:
            self._log.warning(f"[HEAD] Stopped waiting for result: {interrupted.value}")
            self.cancel()
            self._set_state(interrupted)
            return interrupted

        res = result_future.result()
        state = state_from_goal_status(getattr(res, "status", None))
        if not state.is_terminal:
            # result delivered in a non-terminal status; treat as failure
            state = ActuatorState.ABORTED

        with self._lock:
            # a newer goal may already own the client; leave its state alone
            if self._goal_handle is gh:
                self._goal_handle = None
                self._state = state
        self._log.info(f"[HEAD] Done: {state.value}")
        return state
