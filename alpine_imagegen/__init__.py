"""Alpine Image Generator - root filesystem image builder for Alpine Linux.

This package provisions an Alpine base system into a target directory with
apk.static, customizes it inside a chroot, and packages the result as a
compressed root filesystem archive.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
