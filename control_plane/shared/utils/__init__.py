"""Shared helpers: UTC time and identifier generation."""

from control_plane.shared.utils.datetime import ensure_utc, utc_now
from control_plane.shared.utils.generators import generate_cuid, generate_temporary_password

__all__ = ["ensure_utc", "utc_now", "generate_cuid", "generate_temporary_password"]
