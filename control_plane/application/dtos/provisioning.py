"""DTOs for bulk provisioning (itemized results and summary)."""

from dataclasses import dataclass

from control_plane.domain.enums import ProvisionAction, Role


@dataclass(frozen=True)
class ProvisionRecord:
    """One input row of a bulk provisioning batch."""

    email: str
    full_name: str
    role: Role
    temporary_password: str | None = None


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome for one record; never raised, always reported."""

    email: str
    success: bool
    action: ProvisionAction | None = None
    user_id: str | None = None
    membership_id: str | None = None
    invitation_sent: bool = False
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class ProvisionSummary:
    """Aggregate counts over a batch."""

    total: int
    successful: int
    failed: int
    created: int
    added_existing: int
    already_members: int
    invitations_sent: int

    @classmethod
    def from_results(cls, results: list[ProvisionResult]) -> "ProvisionSummary":
        def count(action: ProvisionAction) -> int:
            return sum(1 for r in results if r.success and r.action == action)

        successful = sum(1 for r in results if r.success)
        return cls(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            created=count(ProvisionAction.CREATED),
            added_existing=count(ProvisionAction.ADDED_EXISTING),
            already_members=count(ProvisionAction.ALREADY_MEMBER),
            invitations_sent=sum(1 for r in results if r.invitation_sent),
        )


@dataclass(frozen=True)
class BulkProvisionResult:
    """Full result set of a batch, in input order."""

    results: list[ProvisionResult]
    summary: ProvisionSummary

    @classmethod
    def from_results(cls, results: list[ProvisionResult]) -> "BulkProvisionResult":
        return cls(results=results, summary=ProvisionSummary.from_results(results))

    @property
    def message(self) -> str:
        return (
            f"Processed {self.summary.total} users: "
            f"{self.summary.successful} successful, {self.summary.failed} failed"
        )
