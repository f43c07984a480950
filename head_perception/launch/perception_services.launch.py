from launch import LaunchDescription
from launch_ros.actions import Node

def generate_launch_description():

    return LaunchDescription([

        # detect_object_server (needs CameraInfo + PointHead server up)
        Node(
            package='head_perception',
            executable='detect_object_server.py',
            name='detect_object_server',
            output='screen',
            emulate_tty=True,
            parameters=[{
                'camera_info_topic': '/head_camera/rgb/camera_info',
                'point_head_action': 'head_controller/point_head',
                'camera_frame': 'head_camera_rgb_optical_frame',
                'pointing_frame': 'head_camera_rgb_optical_frame',
                'target_pixel_u': 265.0,
                'target_pixel_v': 466.0,
                'result_frame': 'base_link',
            }],
        ),
    ])
