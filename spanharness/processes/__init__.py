"""Process supervision — one app under test per supervisor.

This module provides:
- ProcessSupervisor: spawn an app, discover its port, invoke it, terminate it
- AppLifecycle: the forward-only STARTING → READY → EXITED lifecycle
- probe: bounded-retry HTTP GET used for readiness and scenarios
"""
