"""
Circle Schemas

Read-only views of circle configuration and member profiles.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .personal_data import DataType


class DataSharing(BaseModel):
    """
    Per-category sharing flags.

    Every flag defaults to False: a flag missing from the stored document
    must never widen what is shared.
    """
    model_config = ConfigDict(populate_by_name=True)

    share_health: bool = Field(default=False, alias="shareHealth")
    share_location: bool = Field(default=False, alias="shareLocation")
    share_activities: bool = Field(default=False, alias="shareActivities")
    share_voice_notes: bool = Field(default=False, alias="shareVoiceNotes")
    share_photos: bool = Field(default=False, alias="sharePhotos")

    def intersect(self, other: "DataSharing") -> "DataSharing":
        """Flag-wise AND. Used for circle settings vs. per-friend settings."""
        return DataSharing(
            share_health=self.share_health and other.share_health,
            share_location=self.share_location and other.share_location,
            share_activities=self.share_activities and other.share_activities,
            share_voice_notes=self.share_voice_notes and other.share_voice_notes,
            share_photos=self.share_photos and other.share_photos,
        )

    def allows(self, data_type: Optional[str]) -> bool:
        """Whether an item of `data_type` may be shown. Unknown types are denied."""
        for flag, tag in SHARING_TYPE_TAGS.items():
            if tag.value == data_type:
                return bool(getattr(self, flag))
        return False

    @property
    def allowed_types(self) -> List[str]:
        return [tag.value for flag, tag in SHARING_TYPE_TAGS.items() if getattr(self, flag)]


# Fixed flag -> vector type tag mapping
SHARING_TYPE_TAGS: Dict[str, DataType] = {
    "share_health": DataType.HEALTH,
    "share_location": DataType.LOCATION,
    "share_activities": DataType.SHARED_ACTIVITY,
    "share_voice_notes": DataType.VOICE,
    "share_photos": DataType.PHOTO,
}


class Circle(BaseModel):
    """A private multi-user group"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    member_ids: List[str] = Field(..., alias="memberIds")
    data_sharing: DataSharing = Field(default_factory=DataSharing, alias="dataSharing")

    @field_validator("member_ids")
    @classmethod
    def _non_empty_members(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("circle must have at least one member")
        return list(dict.fromkeys(value))

    def has_member(self, user_id: str) -> bool:
        return user_id in self.member_ids


class UserProfile(BaseModel):
    """Minimal profile used for attribution"""
    model_config = ConfigDict(populate_by_name=True)

    display_name: Optional[str] = Field(default=None, alias="displayName")
