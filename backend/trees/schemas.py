# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the family-tree endpoints."""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from auth.schemas import CamelModel

Gender = Literal["male", "female", "other"]
RelationshipType = Literal["parent", "child", "spouse", "sibling"]


# -- Requests --------------------------------------------------------------


class TreeCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_public: bool = False


class TreeUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_public: Optional[bool] = None


class MemberCreate(CamelModel):
    # Used for PUT as well: a member update replaces every field
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    gender: Optional[Gender] = None
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = Field(default=None, max_length=2048)

    @model_validator(mode="after")
    def check_dates(self) -> "MemberCreate":
        if self.birth_date and self.death_date and self.death_date < self.birth_date:
            raise ValueError("deathDate must not be before birthDate")
        return self


class RelationshipCreate(CamelModel):
    member1_id: int
    member2_id: int
    relationship_type: RelationshipType


class RelationshipUpdate(CamelModel):
    relationship_type: RelationshipType


# -- Responses -------------------------------------------------------------


class TreeResponse(CamelModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    is_public: bool
    share_link: str
    created_at: datetime
    updated_at: datetime


class TreeCounts(CamelModel):
    members: int
    relationships: int


class TreeSummary(TreeResponse):
    counts: TreeCounts


class MemberResponse(CamelModel):
    id: int
    family_tree_id: int
    first_name: str
    last_name: str
    gender: Optional[str]
    birth_date: Optional[date]
    death_date: Optional[date]
    bio: Optional[str]
    profile_image_url: Optional[str]
    created_at: datetime
    updated_at: datetime


class MemberRef(CamelModel):
    id: int
    first_name: str
    last_name: str


class RelationshipResponse(CamelModel):
    id: int
    member1_id: int
    member2_id: int
    relationship_type: str
    member1: Optional[MemberRef] = None
    member2: Optional[MemberRef] = None


class TreeDetailResponse(TreeResponse):
    members: List[MemberResponse]
    relationships: List[RelationshipResponse]


class TreeOwner(CamelModel):
    display_name: str


class SharedTreeResponse(TreeDetailResponse):
    owner: TreeOwner
