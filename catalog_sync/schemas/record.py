from pydantic import BaseModel, Field, AliasChoices, field_validator
from decimal import Decimal
from typing import Optional


DRAFT_ID = 0


class Group(BaseModel):
    id: int = Field(alias="idGroup")
    name: str = Field("", validation_alias=AliasChoices("nameGroup", "groupName", "name"))

    class Config:
        populate_by_name = True


class Record(BaseModel):
    id: int = Field(DRAFT_ID, alias="idRecord")
    title: str = Field("", alias="titleRecord")
    year: Optional[int] = Field(None, alias="yearOfPublication")
    image_url: Optional[str] = Field(None, alias="imageRecord")
    photo: Optional[bytes] = Field(None, exclude=True)
    photo_name: Optional[str] = Field(None, alias="photoName")
    price: Decimal = Decimal("0")
    stock: int = 0
    discontinued: bool = False
    group_id: Optional[int] = Field(None, alias="groupId")
    group_name: str = Field("", validation_alias=AliasChoices("groupName", "nameGroup", "group_name"))

    # View-model only, never sent to the server
    in_cart: bool = Field(False, exclude=True)
    amount: int = Field(0, ge=0, exclude=True)

    class Config:
        populate_by_name = True

    @field_validator("title", "group_name", "price", "stock", "discontinued", mode="before")
    @classmethod
    def _null_to_default(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("photo", mode="before")
    @classmethod
    def _ignore_server_photo(cls, value):
        # the server echoes a path string here; uploads are bytes only
        return value if isinstance(value, (bytes, bytearray)) else None

    @property
    def is_draft(self) -> bool:
        return self.id == DRAFT_ID
