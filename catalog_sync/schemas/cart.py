from pydantic import BaseModel, Field
from typing import Optional, Tuple


class CartLine(BaseModel):
    record_id: int = Field(alias="idRecord")
    amount: int = Field(0, ge=0)

    class Config:
        populate_by_name = True
        frozen = True


class CartSnapshot(BaseModel):
    lines: Tuple[CartLine, ...] = ()

    class Config:
        frozen = True

    def amount_for(self, record_id: int) -> Optional[int]:
        for line in self.lines:
            if line.record_id == record_id:
                return line.amount
        return None
