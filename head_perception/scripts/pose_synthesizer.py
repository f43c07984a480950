#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, Tuple

from scipy.spatial.transform import Rotation as R

from head_pointing_client import ActuatorState


def quaternion_from_rpy(roll: float, pitch: float, yaw: float) -> Tuple[float, float, float, float]:
    """Fixed-axis roll/pitch/yaw (rad) -> (qx, qy, qz, qw)."""
    qx, qy, qz, qw = R.from_euler("xyz", [roll, pitch, yaw]).as_quat()
    return (float(qx), float(qy), float(qz), float(qw))


@dataclass(frozen=True)
class Pose3D:
    """Object pose in a named frame (meters, xyzw quaternion)."""

    frame_id: str
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float]

    def __post_init__(self):
        n = math.sqrt(sum(float(q) * float(q) for q in self.orientation))
        if len(self.orientation) != 4 or abs(n - 1.0) > 1e-6:
            raise ValueError(f"orientation must be a unit quaternion, got {self.orientation} (|q|={n:.6f})")


class PoseSynthesizer(ABC):
    """Maps a successful head motion into the pose reported to the caller."""

    @abstractmethod
    def synthesize(self, outcome: ActuatorState) -> Pose3D:
        ...


class FixedPoseSynthesizer(PoseSynthesizer):
    """
    Placeholder for a real detector: always reports the same pose.
    The quaternion is built from roll/pitch/yaw so it is always unit length.
    """

    def __init__(
        self,
        frame_id: str = "base_link",
        position: Sequence[float] = (0.5, 0.0, 0.75),
        rpy: Sequence[float] = (0.0, 0.0, 0.0),
    ):
        if len(position) != 3 or len(rpy) != 3:
            raise ValueError("position and rpy need 3 values each")
        self._pose = Pose3D(
            frame_id=frame_id,
            position=tuple(float(p) for p in position),
            orientation=quaternion_from_rpy(*(float(a) for a in rpy)),
        )

    def synthesize(self, outcome: ActuatorState) -> Pose3D:
        if outcome is not ActuatorState.SUCCEEDED:
            raise ValueError(f"no pose for unsuccessful head motion ({outcome.value})")
        return self._pose
