"""ASGI middleware."""

from control_plane.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
