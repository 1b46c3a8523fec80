# fieldops_app/api/schemas.py
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from fieldops_app.Constants import SYNC_BATCH_LIMIT


# --- Envelope ---
class SyncEnvelope(BaseModel):
    """`{status, message, data, updated_date}` wrapper used by every sync endpoint."""
    status: int
    message: str = ""
    data: Any = None
    updated_date: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 1

    @property
    def records(self) -> List[Dict[str, Any]]:
        # Download endpoints return a list; upload endpoints and the ?id= form return one object.
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]


class UploadAck(BaseModel):
    """An upload response, reduced to what the engine needs."""
    status: int
    message: str = ""
    record: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_envelope(cls, envelope: SyncEnvelope) -> 'UploadAck':
        records = envelope.records
        return cls(status=envelope.status, message=envelope.message, record=records[0] if records else {})

    @property
    def server_key(self) -> Optional[int]:
        value = self.record.get("id")
        return int(value) if value not in (None, "", -1, -2) else None


# --- Download query strings ---
class DownloadParams(BaseModel):
    part_no: int = Field(0, ge=0)
    limit: int = Field(SYNC_BATCH_LIMIT, gt=0)
    user_type: int
    user_id: int
    update_date: Optional[str] = None

    def to_query(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SingleRecordParams(BaseModel):
    id: int

    def to_query(self) -> Dict[str, Any]:
        return self.model_dump()
