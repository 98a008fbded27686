"""Image customization module.

This module handles:
- Idempotent edits of configuration files in the target root
- The ordered customization sequence (DNS through identity files)
- Handing the finished tree to the guest tooling installer
"""

from alpine_imagegen.customize.guest_tools import install_guest_tools
from alpine_imagegen.customize.steps import (
    ALL_STEPS,
    IMAGE_STEPS,
    NETWORK_STEPS,
    CustomizeStep,
    apply_steps,
)

__all__ = [
    "ALL_STEPS",
    "IMAGE_STEPS",
    "NETWORK_STEPS",
    "CustomizeStep",
    "apply_steps",
    "install_guest_tools",
]
