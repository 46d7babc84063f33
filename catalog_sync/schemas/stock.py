from pydantic import BaseModel


class StockUpdateEvent(BaseModel):
    """Absolute post-update stock level for one record."""

    record_id: int
    new_stock: int

    class Config:
        frozen = True
