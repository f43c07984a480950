#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error types shared by the head perception node.

Startup failures (NotAvailable, InvalidCalibration) are raised and handled by
the host process. Goal-level failures (ActuatorFailed, Preempted) are carried
as values inside PerceptionResult and never raised.
"""


class PerceptionError(Exception):
    """Base class for head perception errors."""


class NotAvailable(PerceptionError):
    """The point-head action server never became reachable."""


class InvalidCalibration(PerceptionError):
    """Camera intrinsics are missing or unusable (e.g. zero focal length)."""


class ActuatorFailed(PerceptionError):
    def __init__(self, state, detail: str = ""):
        self.state = state
        self.detail = detail
        name = getattr(state, "value", state)
        msg = f"point_head finished with state {name}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class Preempted(PerceptionError):
    def __init__(self, reason: str = "preempted"):
        self.reason = reason
        super().__init__(reason)
