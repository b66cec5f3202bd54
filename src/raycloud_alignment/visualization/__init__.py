"""
Visualization Module

Debug images of the intermediate magnitude fields of a registration.
"""

from .debug_images import write_magnitude_image, write_polar_images

__all__ = [
    "write_magnitude_image",
    "write_polar_images",
]
