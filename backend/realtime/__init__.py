"""
Realtime app for WebSocket communication with drivers.

This app provides:
- The driver WebSocket consumer (offers pushed in, claims/rejections sent back)
- The Channels-backed notifier used for dispatch fan-out

Key Components:
    - consumers/: WebSocket consumers
    - notifications.py: ChannelLayerNotifier and driver event helpers

Usage:
    from realtime.consumers import DriverConsumer
    from realtime.notifications import ChannelLayerNotifier, notify_driver_event
"""
