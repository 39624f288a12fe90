from pydantic import BaseModel
from typing import List


class ImportReportResponse(BaseModel):
    entities: int
    entries: int
    products: int
    recalculated: List[str]

    class Config:
        from_attributes = True
