#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import math
import threading
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from camera_projector import CameraIntrinsics, normalized, project
from head_pointing_client import ActuatorGoal, ActuatorState, HeadPointingClient
from perception_errors import (
    ActuatorFailed,
    InvalidCalibration,
    NotAvailable,
    PerceptionError,
    Preempted,
)
from pose_synthesizer import Pose3D, PoseSynthesizer


class CoordinatorState(Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    ABORTED = "ABORTED"
    PREEMPTED = "PREEMPTED"


@dataclass(frozen=True)
class PerceptionGoal:
    """Perception trigger. target_pixel=None uses the configured pixel."""

    target_pixel: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class PerceptionResult:
    success: bool
    message: str
    status: CoordinatorState
    pose: Optional[Pose3D] = None
    error: Optional[PerceptionError] = None


@dataclass(frozen=True)
class CoordinatorConfig:
    target_pixel: Tuple[float, float] = (265.0, 466.0)
    camera_frame: str = "head_camera_rgb_optical_frame"
    pointing_frame: str = "head_camera_rgb_optical_frame"
    pointing_axis: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    min_duration_sec: float = 0.5
    max_velocity: float = 1.0
    actuator_timeout_sec: float = 10.0
    connect_attempts: int = 3
    connect_timeout_sec: float = 2.0


def check_target_pixel(pixel) -> Optional[str]:
    """None when pixel is a finite (u, v) pair, else what is wrong with it."""
    try:
        values = [float(p) for p in pixel]
    except (TypeError, ValueError):
        return f"target_pixel must be numeric, got {pixel!r}"
    if len(values) != 2:
        return f"target_pixel needs 2 values (u, v), got {len(values)}"
    if not all(math.isfinite(p) for p in values):
        return f"target_pixel must be finite, got {values}"
    return None


def goal_handle_exit(result: "PerceptionResult", cancel_requested: bool) -> str:
    """
    Name of the ServerGoalHandle method that reports result.
    canceled() is only legal after a cancel request, so a goal that was
    superseded by a newer one is aborted.
    """
    if result.status is CoordinatorState.SUCCEEDED:
        return "succeed"
    if result.status is CoordinatorState.PREEMPTED and cancel_requested:
        return "canceled"
    return "abort"


class PerceptionCoordinator:
    """
    Action-level state machine:
      IDLE -> RUNNING -> {SUCCEEDED, ABORTED, PREEMPTED} -> IDLE

    Goals run one at a time. A newly arrived goal preempts the previous live
    one (running or still queued). Preemption is checked on entry, observed
    while waiting for the head, and checked again after the head finishes.
    Goal-level failures come back as PerceptionResult values.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        head_client: HeadPointingClient,
        synthesizer: PoseSynthesizer,
        config: Optional[CoordinatorConfig] = None,
        logger=None,
    ):
        if intrinsics is None:
            raise InvalidCalibration("no camera intrinsics")
        self._intrinsics = intrinsics.validate()
        self._head = head_client
        self._synth = synthesizer
        self.config = config or CoordinatorConfig()
        self._log = logger or logging.getLogger(__name__)

        axis = tuple(self.config.pointing_axis)
        if len(axis) != 3:
            raise ValueError(f"pointing_axis needs 3 components, got {len(axis)}")
        self._pointing_axis = tuple(float(a) for a in normalized(axis))

        self._state = CoordinatorState.IDLE
        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._latest_token: Optional[threading.Event] = None
        self._started = False

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return self._intrinsics

    @property
    def state(self) -> CoordinatorState:
        with self._state_lock:
            return self._state

    @property
    def started(self) -> bool:
        return self._started

    def _set_state(self, state: CoordinatorState):
        with self._state_lock:
            prev = self._state
            self._state = state
        if prev is not state:
            self._log.debug(f"[ACT] {prev.value} -> {state.value}")

    # ---------- Startup ----------
    def start(self):
        cfg = self.config
        if not self._head.connect(attempts=cfg.connect_attempts, timeout_sec=cfg.connect_timeout_sec):
            raise NotAvailable(
                f"point_head server not available after {cfg.connect_attempts} attempts "
                f"of {cfg.connect_timeout_sec:.1f}s"
            )
        self._started = True
        self._log.info("[SYS] Coordinator ready; accepting goals")

    # ---------- Preemption ----------
    def preempt(self) -> bool:
        with self._state_lock:
            token = self._latest_token
        if token is None or token.is_set():
            return False
        self._log.info("[ACT] Preempt requested")
        token.set()
        return True

    # ---------- Execute ----------
    def execute(
        self,
        goal: Optional[PerceptionGoal] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
        feedback: Optional[Callable[[str], None]] = None,
    ) -> PerceptionResult:
        goal = goal or PerceptionGoal()

        if not self._started:
            err = NotAvailable("coordinator not started; point_head server unavailable")
            self._log.error(f"[ACT] Rejecting goal: {err}")
            return PerceptionResult(False, str(err), CoordinatorState.ABORTED, error=err)

        token = threading.Event()
        with self._state_lock:
            prev = self._latest_token
            self._latest_token = token
        if prev is not None and not prev.is_set():
            self._log.info("[ACT] New goal supersedes the previous one")
            prev.set()

        superseded = token.is_set

        def preempted() -> bool:
            return token.is_set() or (cancel_requested is not None and bool(cancel_requested()))

        with self._run_lock:
            try:
                return self._run(goal, preempted, superseded, feedback)
            finally:
                with self._state_lock:
                    if self._latest_token is token:
                        self._latest_token = None
                self._set_state(CoordinatorState.IDLE)

    def _finish(self, status: CoordinatorState, message: str, pose=None, error=None) -> PerceptionResult:
        self._set_state(status)
        if status is CoordinatorState.SUCCEEDED:
            self._log.info(f"[ACT] Done: {message}")
        else:
            self._log.warning(f"[ACT] {status.value}: {message}")
        return PerceptionResult(
            success=status is CoordinatorState.SUCCEEDED,
            message=message,
            status=status,
            pose=pose,
            error=error,
        )

    def _preempted_result(self, superseded, where: str) -> PerceptionResult:
        reason = "superseded by a newer goal" if superseded() else "cancel requested"
        err = Preempted(f"{reason} {where}")
        return self._finish(CoordinatorState.PREEMPTED, f"Preempted: {err.reason}", error=err)

    def _run(self, goal: PerceptionGoal, preempted, superseded, feedback) -> PerceptionResult:
        cfg = self.config
        self._set_state(CoordinatorState.RUNNING)

        if preempted():
            return self._preempted_result(superseded, "before start")

        # 1) pixel -> look direction
        if feedback is not None:
            feedback("projecting")
        pixel = goal.target_pixel if goal.target_pixel is not None else cfg.target_pixel
        problem = check_target_pixel(pixel)
        if problem is not None:
            return self._finish(CoordinatorState.ABORTED, f"Bad target pixel: {problem}")
        try:
            ray = project(pixel, self._intrinsics)
            direction = normalized(ray)
        except InvalidCalibration as exc:
            return self._finish(CoordinatorState.ABORTED, f"Cannot project pixel: {exc}", error=exc)
        except ValueError as exc:
            return self._finish(CoordinatorState.ABORTED, f"No look direction for pixel {pixel}: {exc}")
        self._log.info(
            f"[ACT] pixel=({float(pixel[0]):.1f}, {float(pixel[1]):.1f}) -> "
            f"ray=({ray[0]:.4f}, {ray[1]:.4f}, {ray[2]:.4f})"
        )

        # 2) delegate to the head
        if feedback is not None:
            feedback("pointing_head")
        head_goal = ActuatorGoal(
            target_direction=(float(direction[0]), float(direction[1]), float(direction[2])),
            target_frame=cfg.camera_frame,
            pointing_axis=self._pointing_axis,
            pointing_frame=cfg.pointing_frame,
            min_duration=float(cfg.min_duration_sec),
            max_velocity=float(cfg.max_velocity),
        )
        try:
            head_state = self._head.send_goal_and_wait(
                head_goal, timeout_sec=cfg.actuator_timeout_sec, should_cancel=preempted
            )
        except Exception as exc:
            tb = traceback.format_exc()
            self._log.error(f"[HEAD] point_head call failed: {exc}\n{tb}")
            self._head.cancel()
            err = ActuatorFailed(ActuatorState.ABORTED, str(exc))
            return self._finish(CoordinatorState.ABORTED, f"Head pointing failed: {err}", error=err)

        # preemption may have arrived while we were blocked
        if preempted():
            return self._preempted_result(superseded, "while pointing the head")

        if head_state is not ActuatorState.SUCCEEDED:
            err = ActuatorFailed(head_state)
            return self._finish(CoordinatorState.ABORTED, f"Head pointing failed: {err}", error=err)

        # 3) pose
        if feedback is not None:
            feedback("synthesizing")
        try:
            pose = self._synth.synthesize(head_state)
        except Exception as exc:
            tb = traceback.format_exc()
            self._log.error(f"[POSE] synthesize failed: {exc}\n{tb}")
            return self._finish(CoordinatorState.ABORTED, f"Pose synthesis failed: {exc}")

        p = pose.position
        return self._finish(
            CoordinatorState.SUCCEEDED,
            f"Object pose in {pose.frame_id}: ({p[0]:.3f}, {p[1]:.3f}, {p[2]:.3f})",
            pose=pose,
        )
