#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sys

import rclpy
from rclpy.node import Node
from rclpy.action import ActionClient

from action_msgs.msg import GoalStatus

from head_perception.action import DetectObject


class DetectObjectClient(Node):
    def __init__(self):
        super().__init__("detect_object_client")
        self.action_name = str(self.declare_parameter("action_name", "detect_object").value)
        self.result_timeout_s = float(self.declare_parameter("result_timeout_sec", 30.0).value)
        self._ac = ActionClient(self, DetectObject, self.action_name)

    def _on_feedback(self, feedback_msg):
        self.get_logger().info(f"[CLIENT] feedback: {feedback_msg.feedback.state}")

    def run(self, target_pixel=None) -> bool:
        if not self._ac.wait_for_server(timeout_sec=5.0):
            self.get_logger().error(f"[CLIENT] '{self.action_name}' action server not available")
            return False

        goal = DetectObject.Goal()
        if target_pixel is not None:
            goal.target_pixel = [float(target_pixel[0]), float(target_pixel[1])]

        send_future = self._ac.send_goal_async(goal, feedback_callback=self._on_feedback)
        rclpy.spin_until_future_complete(self, send_future, timeout_sec=5.0)
        goal_handle = send_future.result()
        if goal_handle is None or not goal_handle.accepted:
            self.get_logger().error("[CLIENT] Goal rejected")
            return False

        result_future = goal_handle.get_result_async()
        rclpy.spin_until_future_complete(self, result_future, timeout_sec=self.result_timeout_s)
        if not result_future.done():
            self.get_logger().warn("[CLIENT] Timed out waiting for result, canceling goal")
            goal_handle.cancel_goal_async()
            return False

        res = result_future.result()
        r = res.result
        p = r.pose.pose.position
        q = r.pose.pose.orientation
        self.get_logger().info(
            f"[CLIENT] status={res.status} success={r.success} msg='{r.message}' | "
            f"pose[{r.pose.header.frame_id}]=({p.x:.3f}, {p.y:.3f}, {p.z:.3f}) "
            f"q=({q.x:.3f}, {q.y:.3f}, {q.z:.3f}, {q.w:.3f})"
        )
        return res.status == GoalStatus.STATUS_SUCCEEDED and bool(r.success)


def main(args=None):
    # Usage: detect_object_client.py [u v]
    argv = rclpy.utilities.remove_ros_args(args=sys.argv)[1:]
    target_pixel = (float(argv[0]), float(argv[1])) if len(argv) >= 2 else None

    rclpy.init(args=args)
    node = DetectObjectClient()
    try:
        ok = node.run(target_pixel)
    finally:
        node.destroy_node()
        rclpy.shutdown()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
