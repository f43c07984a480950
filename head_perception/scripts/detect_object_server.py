#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sys
import time
from typing import Optional

import rclpy
from rclpy.node import Node
from rclpy.duration import Duration
from rclpy.time import Time
from rclpy.callback_groups import ReentrantCallbackGroup
from rclpy.executors import MultiThreadedExecutor
from rclpy.action import ActionClient, ActionServer, CancelResponse, GoalResponse

from geometry_msgs.msg import Point, PoseStamped, Vector3
from sensor_msgs.msg import CameraInfo
from control_msgs.action import PointHead

from head_perception.action import DetectObject

from camera_projector import CameraIntrinsics, intrinsics_from_camera_info
from head_pointing_client import ActuatorGoal, HeadPointingClient
from perception_coordinator import (
    CoordinatorConfig,
    PerceptionCoordinator,
    PerceptionGoal,
    check_target_pixel,
    goal_handle_exit,
)
from perception_errors import InvalidCalibration, NotAvailable
from pose_synthesizer import FixedPoseSynthesizer, Pose3D


class DetectObjectServer(Node):
    """
    Action server:
      Goal  : optional target pixel (empty -> configured pixel)
      Logic : pixel -> look direction, point the head via PointHead,
              wait for the head, then report the object pose
      Result: success + pose + message
    """

    def __init__(self):
        super().__init__("detect_object_server")

        # === Params ===
        self.action_name = str(self.declare_parameter("action_name", "detect_object").value)
        self.point_head_action = str(
            self.declare_parameter("point_head_action", "head_controller/point_head").value
        )
        self.camera_info_topic = str(
            self.declare_parameter("camera_info_topic", "/head_camera/rgb/camera_info").value
        )
        self.calibration_timeout_s = float(self.declare_parameter("calibration_timeout_sec", 10.0).value)

        target_u = float(self.declare_parameter("target_pixel_u", 265.0).value)
        target_v = float(self.declare_parameter("target_pixel_v", 466.0).value)
        camera_frame = str(self.declare_parameter("camera_frame", "head_camera_rgb_optical_frame").value)
        pointing_frame = str(
            self.declare_parameter("pointing_frame", "head_camera_rgb_optical_frame").value
        )
        pointing_axis = list(self.declare_parameter("pointing_axis", [0.0, 0.0, 1.0]).value)

        self.result_frame = str(self.declare_parameter("result_frame", "base_link").value)
        self.placeholder_xyz = list(self.declare_parameter("placeholder_xyz", [0.5, 0.0, 0.75]).value)
        self.placeholder_rpy = list(self.declare_parameter("placeholder_rpy", [0.0, 0.0, 0.0]).value)

        self.config = CoordinatorConfig(
            target_pixel=(target_u, target_v),
            camera_frame=camera_frame,
            pointing_frame=pointing_frame,
            pointing_axis=tuple(float(a) for a in pointing_axis),
            min_duration_sec=float(self.declare_parameter("min_duration_sec", 0.5).value),
            max_velocity=float(self.declare_parameter("max_velocity", 1.0).value),
            actuator_timeout_sec=float(self.declare_parameter("actuator_timeout_sec", 10.0).value),
            connect_attempts=int(self.declare_parameter("connect_attempts", 3).value),
            connect_timeout_sec=float(self.declare_parameter("connect_timeout_sec", 2.0).value),
        )

        # Reentrant group: execute, cancel and the PointHead futures run concurrently
        self.cbgroup = ReentrantCallbackGroup()

        self.point_head_ac = ActionClient(
            self, PointHead, self.point_head_action, callback_group=self.cbgroup
        )
        self.head_client = HeadPointingClient(
            self.point_head_ac, self._build_point_head_goal, logger=self.get_logger()
        )

        self.coordinator: Optional[PerceptionCoordinator] = None
        self._action_server: Optional[ActionServer] = None

        self.get_logger().info(
            f"[SYS] detect_object_server created | point_head={self.point_head_action} "
            f"| camera_info={self.camera_info_topic}"
        )

    # ---------- Startup ----------
    def fetch_intrinsics(self, timeout_sec: float) -> CameraIntrinsics:
        """One-shot blocking read of CameraInfo; must run before the executor spins."""
        received = []
        sub = self.create_subscription(
            CameraInfo, self.camera_info_topic, lambda msg: received.append(msg), 1
        )
        self.get_logger().info(
            f"[CAL] Waiting up to {timeout_sec:.1f}s for CameraInfo on {self.camera_info_topic}"
        )
        t0 = time.monotonic()
        try:
            while rclpy.ok() and not received and (time.monotonic() - t0) < timeout_sec:
                rclpy.spin_once(self, timeout_sec=0.1)
        finally:
            self.destroy_subscription(sub)

        intrinsics = intrinsics_from_camera_info(
            received[0] if received else None,
            f"{self.camera_info_topic} within {timeout_sec:.1f}s",
        )
        self.get_logger().info(f"[CAL] K=\n{intrinsics.as_matrix()}")
        return intrinsics

    def start(self):
        """Calibration -> coordinator -> PointHead discovery -> action server. Raises on failure."""
        intrinsics = self.fetch_intrinsics(self.calibration_timeout_s)
        synthesizer = FixedPoseSynthesizer(
            frame_id=self.result_frame,
            position=self.placeholder_xyz,
            rpy=self.placeholder_rpy,
        )
        self.coordinator = PerceptionCoordinator(
            intrinsics, self.head_client, synthesizer, config=self.config, logger=self.get_logger()
        )
        self.coordinator.start()

        self._action_server = ActionServer(
            self,
            DetectObject,
            self.action_name,
            execute_callback=self._execute_detect,
            goal_callback=self._on_goal,
            cancel_callback=self._on_cancel,
            callback_group=self.cbgroup,
        )
        self.get_logger().info(f"[SYS] Action server '{self.action_name}' up")

    # ---------- Message helpers ----------
    def _build_point_head_goal(self, goal: ActuatorGoal) -> PointHead.Goal:
        msg = PointHead.Goal()
        msg.target.header.frame_id = goal.target_frame
        msg.target.header.stamp = Time().to_msg()  # zero stamp -> latest TF
        d = goal.target_direction
        msg.target.point = Point(x=float(d[0]), y=float(d[1]), z=float(d[2]))
        a = goal.pointing_axis
        msg.pointing_axis = Vector3(x=float(a[0]), y=float(a[1]), z=float(a[2]))
        msg.pointing_frame = goal.pointing_frame
        msg.min_duration = Duration(seconds=float(goal.min_duration)).to_msg()
        msg.max_velocity = float(goal.max_velocity)
        return msg

    def _to_pose_stamped(self, pose: Pose3D) -> PoseStamped:
        ps = PoseStamped()
        ps.header.frame_id = pose.frame_id
        ps.header.stamp = self.get_clock().now().to_msg()
        ps.pose.position.x = float(pose.position[0])
        ps.pose.position.y = float(pose.position[1])
        ps.pose.position.z = float(pose.position[2])
        ps.pose.orientation.x = float(pose.orientation[0])
        ps.pose.orientation.y = float(pose.orientation[1])
        ps.pose.orientation.z = float(pose.orientation[2])
        ps.pose.orientation.w = float(pose.orientation[3])
        return ps

    @staticmethod
    def _to_perception_goal(request) -> PerceptionGoal:
        pixel = list(getattr(request, "target_pixel", []) or [])
        if len(pixel) >= 2:
            return PerceptionGoal(target_pixel=(float(pixel[0]), float(pixel[1])))
        return PerceptionGoal()

    # ---------- Action API ----------
    def _on_goal(self, goal_request: DetectObject.Goal) -> GoalResponse:
        pixel = list(goal_request.target_pixel)
        problem = check_target_pixel(pixel) if pixel else None
        if problem is not None:
            self.get_logger().warn(f"[ACT] {problem}. Rejecting goal.")
            return GoalResponse.REJECT
        self.get_logger().info(f"[ACT] Accepted goal (target_pixel={pixel or 'default'})")
        return GoalResponse.ACCEPT

    def _on_cancel(self, goal_handle) -> CancelResponse:
        self.get_logger().info("[ACT] Cancel requested")
        return CancelResponse.ACCEPT

    def _execute_detect(self, goal_handle):
        goal = self._to_perception_goal(goal_handle.request)

        def publish_feedback(stage: str):
            fb = DetectObject.Feedback()
            fb.state = stage
            goal_handle.publish_feedback(fb)

        outcome = self.coordinator.execute(
            goal,
            cancel_requested=lambda: goal_handle.is_cancel_requested,
            feedback=publish_feedback,
        )

        result = DetectObject.Result()
        result.success = outcome.success
        result.message = outcome.message
        if outcome.pose is not None:
            result.pose = self._to_pose_stamped(outcome.pose)

        getattr(goal_handle, goal_handle_exit(outcome, goal_handle.is_cancel_requested))()

        self.get_logger().info(
            f"[ACT] Goal finished | status={outcome.status.value} success={outcome.success} "
            f"msg='{outcome.message}'"
        )
        return result


# ---------- main ----------
def main(args=None):
    rclpy.init(args=args)
    node = DetectObjectServer()

    try:
        node.start()
    except (InvalidCalibration, NotAvailable, ValueError) as exc:
        node.get_logger().fatal(f"[SYS] Startup failed: {exc}")
        node.destroy_node()
        rclpy.shutdown()
        return 1

    try:
        executor = MultiThreadedExecutor(num_threads=4)
        executor.add_node(node)
        executor.spin()
    except KeyboardInterrupt:
        pass
    node.destroy_node()
    rclpy.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
