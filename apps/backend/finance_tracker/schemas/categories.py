from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    name: str
    type: str
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryPatch(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    color: str
    icon: str
    type: str
    is_default: bool
