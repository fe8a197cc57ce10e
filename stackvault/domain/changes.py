from enum import Enum

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    ADDED = "Added"
    SAVED = "Saved"
    REMOVED = "Removed"


class EntityChanged(BaseModel):
    """Outbound notification describing a persisted change to a document.

    Attributes:
        change_type: Kind of mutation that was persisted.
        id: Identifier of the changed document.
        organization_id: Owning organization, for scoped types.
        project_id: Owning project, for project scoped types.
        type: Entity type name of the changed document.
    """

    model_config = {"frozen": True}

    change_type: ChangeType
    id: str
    organization_id: str | None = None
    project_id: str | None = None
    type: str = Field(description="Entity type name of the changed document")

    @property
    def coalescing_key(self) -> tuple[str, str, ChangeType]:
        """Key under which delayed notifications for the same change collapse."""
        return (self.type, self.id, self.change_type)
