"""Domain entities (business logic independent of persistence)."""

from control_plane.domain.entities.membership import MembershipEntity

__all__ = ["MembershipEntity"]
