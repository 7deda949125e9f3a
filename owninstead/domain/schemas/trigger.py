from typing import List, Optional

from pydantic import BaseModel


class BatchCounters(BaseModel):
    succeeded: int
    skipped: int
    failed: int
    messages: List[str]


class TriggerResponse(BaseModel):
    job: str
    target: Optional[str]
    mode: str
    result: Optional[BatchCounters] = None
