"""Single-camera ArUco positional tracking for a VR headset."""

__version__ = "0.1.0"
