"""
chaosctl: control client for the chaos-proxy engine
===================================================

Edit the engine's chaos configuration and watch what it does to traffic:
  • Latency, jitter and bandwidth throttling (with network presets)
  • Connection failure modes and header tampering
  • Status-code injection and response mocking rules
  • Live traffic feed annotated with applied tampering

Cross-platform: Linux · macOS · Windows
"""

__version__ = "1.0.0"
__app_name__ = "chaosctl"
