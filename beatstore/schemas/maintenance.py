from pydantic import BaseModel


class DuplicateGroupResponse(BaseModel):
    user_id: str
    beat_id: str
    purchase_ids: list[str]


class DuplicateGroupListResponse(BaseModel):
    total: int
    groups: list[DuplicateGroupResponse]


class SweepRequest(BaseModel):
    dry_run: bool = False


class SweepResponse(BaseModel):
    dry_run: bool
    groups_found: int
    resolved: list[dict]
    violations: list[dict]
    purchases_deleted: int
