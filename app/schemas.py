from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional

TABLE_NAME_PATTERN = r"^[A-Za-z0-9 _-]{1,120}$"

CellValue = str | int | float | bool | None


class RecordIn(BaseModel):
    record: dict[str, CellValue]

    @field_validator("record")
    @classmethod
    def stringify(cls, v):
        return {k: "" if value is None else value for k, value in v.items()}


class PersonCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=140)
    person_id: Optional[str] = None
    birth_date: str = ""
    phones: str = Field(default="", max_length=2000)
    address: str = Field(default="", max_length=2000)
    hobbies: str = Field(default="", max_length=2000)
    notes: str = Field(default="", max_length=2000)

    @field_validator("display_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Display name is required")
        return v


class PersonUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=140)
    birth_date: Optional[str] = None
    phones: Optional[str] = Field(default=None, max_length=2000)
    address: Optional[str] = Field(default=None, max_length=2000)
    hobbies: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("display_name")
    @classmethod
    def strip_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Display name is required")
        return v


class PersonOut(BaseModel):
    person_id: str
    display_name: str
    birth_date: str = ""
    phones: str = ""
    address: str = ""
    hobbies: str = ""
    notes: str = ""
    photo_file_id: str = ""
    is_pinned: bool = False
    relationships: list[str] = []


class AttributeCreate(BaseModel):
    attribute_type: str = Field(min_length=1, max_length=80)
    value_text: str = Field(min_length=1, max_length=4000)
    label: str = Field(default="", max_length=2000)
    value_json: str = Field(default="", max_length=2000)
    is_primary: bool = False
    sort_order: int = Field(default=0, ge=0, le=9999)
    start_date: str = Field(default="", max_length=32)
    end_date: str = Field(default="", max_length=32)
    visibility: str = Field(default="family", max_length=32)
    notes: str = Field(default="", max_length=2000)


class AttributeUpdate(BaseModel):
    attribute_type: Optional[str] = Field(default=None, min_length=1, max_length=80)
    value_text: Optional[str] = Field(default=None, min_length=1, max_length=4000)
    label: Optional[str] = Field(default=None, max_length=2000)
    value_json: Optional[str] = Field(default=None, max_length=2000)
    is_primary: Optional[bool] = None
    sort_order: Optional[int] = Field(default=None, ge=0, le=9999)
    start_date: Optional[str] = Field(default=None, max_length=32)
    end_date: Optional[str] = Field(default=None, max_length=32)
    visibility: Optional[str] = Field(default=None, max_length=32)
    notes: Optional[str] = Field(default=None, max_length=2000)


class ReconcileIn(BaseModel):
    person_id: str = Field(min_length=1, alias="personId")
    parent_ids: list[str] = Field(default_factory=list, alias="parentIds")
    child_ids: list[str] = Field(default_factory=list, alias="childIds")
    spouse_id: str = Field(default="", alias="spouseId")

    model_config = {"populate_by_name": True}

    @field_validator("person_id", "spouse_id")
    @classmethod
    def strip_id(cls, v):
        return v.strip()

    @field_validator("parent_ids", "child_ids")
    @classmethod
    def strip_ids(cls, v):
        return [i.strip() for i in v if i and i.strip()]


class AccessUpsert(BaseModel):
    user_email: str = Field(alias="userEmail", max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: Literal["ADMIN", "USER"]
    person_id: str = Field(default="", alias="personId", max_length=200)
    is_enabled: bool = Field(default=True, alias="isEnabled")

    model_config = {"populate_by_name": True}
