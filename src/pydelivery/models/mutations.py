"""Mutations queued by the remote store while offline."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pydelivery.models.package import Package, PackageStatus, StatusContext


class _QueuedMutationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_id: str
    enqueued_at: float = Field(description="Queue clock reading (seconds) at enqueue time")
    attempt_count: int = 0

    def next_attempt(self) -> QueuedMutation:
        return self.model_copy(update={"attempt_count": self.attempt_count + 1})  # type: ignore[return-value]

    @property
    def payload(self) -> dict[str, Any]:
        return {}


class UpdateStatusMutation(_QueuedMutationBase):
    kind: Literal["update_status"] = "update_status"
    status: PackageStatus
    context: StatusContext = Field(default_factory=StatusContext)

    @property
    def payload(self) -> dict[str, Any]:
        return {"status": self.status.value, **self.context.to_wire()}


class CreatePackageMutation(_QueuedMutationBase):
    kind: Literal["create"] = "create"
    package: Package

    @property
    def payload(self) -> dict[str, Any]:
        return self.package.to_wire()


class DeletePackageMutation(_QueuedMutationBase):
    kind: Literal["delete"] = "delete"


QueuedMutation = Annotated[
    UpdateStatusMutation | CreatePackageMutation | DeletePackageMutation,
    Field(discriminator="kind"),
]
