#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from perception_errors import InvalidCalibration


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Pinhole intrinsics in pixels.
    Acquired once at startup and shared read-only by every goal.
    """

    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_matrix(cls, k) -> "CameraIntrinsics":
        """Build from a row-major 3x3 K (CameraInfo.k layout: 9 floats or a 3x3 array)."""
        K = np.asarray(k, dtype=np.float64)
        if K.size != 9:
            raise InvalidCalibration(f"camera matrix must have 9 elements, got {K.size}")
        K = K.reshape(3, 3)
        return cls(fx=float(K[0, 0]), fy=float(K[1, 1]), cx=float(K[0, 2]), cy=float(K[1, 2]))

    def validate(self) -> "CameraIntrinsics":
        if self.fx == 0.0 or self.fy == 0.0:
            raise InvalidCalibration(f"zero focal length (fx={self.fx}, fy={self.fy})")
        if not all(math.isfinite(v) for v in (self.fx, self.fy, self.cx, self.cy)):
            raise InvalidCalibration(f"non-finite intrinsics {self}")
        return self

    def as_matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )


def project(pixel: Sequence[float], intrinsics: CameraIntrinsics, depth: float = 1.0) -> np.ndarray:
    """
    Pixel (u, v) -> ray (x*Z, y*Z, Z) in the camera optical frame.
    Z is an arbitrary forward depth; only the direction is meaningful.
    """
    if intrinsics.fx == 0.0 or intrinsics.fy == 0.0:
        raise InvalidCalibration(f"zero focal length (fx={intrinsics.fx}, fy={intrinsics.fy})")
    u, v = float(pixel[0]), float(pixel[1])
    x = (u - intrinsics.cx) / intrinsics.fx
    y = (v - intrinsics.cy) / intrinsics.fy
    z = float(depth)
    return np.array([x * z, y * z, z], dtype=np.float64)


def intrinsics_from_camera_info(msg, source: str = "camera_info") -> CameraIntrinsics:
    """CameraInfo (anything with a .k field) -> validated intrinsics; None means nothing arrived."""
    if msg is None:
        raise InvalidCalibration(f"no CameraInfo received on {source}")
    return CameraIntrinsics.from_matrix(msg.k).validate()


def normalized(vec: Sequence[float]) -> np.ndarray:
    v = np.asarray(vec, dtype=np.float64)
    n = float(np.linalg.norm(v))
    if not math.isfinite(n):
        raise ValueError(f"cannot normalize a non-finite vector {v.tolist()}")
    if n < 1e-12:
        raise ValueError("cannot normalize a zero-length vector")
    return v / n
