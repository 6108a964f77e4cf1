import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LUNCH_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def check_lunch_date(value: str) -> str:
    if not LUNCH_DATE_PATTERN.fullmatch(value or ""):
        raise ValueError("lunchDate must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("lunchDate is not a valid calendar date") from exc
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Admin trigger surface.
class MatchLunchesRequest(CamelModel):
    conference_id: str = Field(alias="conferenceId", min_length=1, max_length=120)
    lunch_date: str = Field(alias="lunchDate")
    send_notifications: bool = Field(default=True, alias="sendNotifications")

    @field_validator("conference_id")
    @classmethod
    def _conference_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Missing or invalid conferenceId")
        return value

    @field_validator("lunch_date")
    @classmethod
    def _lunch_date_format(cls, value: str) -> str:
        return check_lunch_date(value)


class ReminderRequest(CamelModel):
    conference_id: str = Field(alias="conferenceId", min_length=1, max_length=120)
    group_id: str = Field(alias="groupId", min_length=1, max_length=64)
    minutes_before: int = Field(default=30, alias="minutesBefore", ge=1, le=24 * 60)


class RegistrationCreate(CamelModel):
    user_id: str = Field(alias="userId", min_length=1, max_length=120)
    user_name: str = Field(alias="userName", min_length=1, max_length=120)
    user_email: str = Field(alias="userEmail", min_length=3, max_length=180)
    user_company: str | None = Field(default=None, alias="userCompany", max_length=120)
    user_role: str | None = Field(default=None, alias="userRole", max_length=120)
    user_industry: str | None = Field(default=None, alias="userIndustry", max_length=120)
    user_linkedin_url: str | None = Field(default=None, alias="userLinkedInUrl", max_length=280)
    linkedin_headline: str | None = Field(default=None, alias="linkedInHeadline", max_length=280)
    linkedin_skills: list[str] = Field(default_factory=list, alias="linkedInSkills")
    push_token: str | None = Field(default=None, alias="fcmToken", max_length=512)
    lunch_date: str = Field(alias="lunchDate")
    time_slot_preference: Literal["early", "midday", "late", "any"] = Field(
        default="any", alias="timeSlotPreference"
    )
    dietary_restrictions: list[str] = Field(default_factory=list, alias="dietaryRestrictions")
    topics: list[str] = Field(min_length=1)
    goals: list[str] = Field(default_factory=list)
    experience_level: Literal["student", "early-career", "mid-career", "senior", "executive"] | None = Field(
        default=None, alias="experienceLevel"
    )

    @field_validator("lunch_date")
    @classmethod
    def _lunch_date_format(cls, value: str) -> str:
        return check_lunch_date(value)


# Matching envelope exchanged with the oracle; never persisted.
class RegistrationSummary(CamelModel):
    id: str
    user_id: str = Field(alias="userId")
    user_name: str = Field(alias="userName")
    company: str | None = None
    role: str | None = None
    industry: str | None = None
    topics: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    experience_level: str | None = Field(default=None, alias="experienceLevel")
    dietary_restrictions: list[str] = Field(default_factory=list, alias="dietaryRestrictions")
    time_slot_preference: str | None = Field(default=None, alias="timeSlotPreference")


class MatchingConstraints(CamelModel):
    min_group_size: int = Field(default=3, alias="minGroupSize", ge=2)
    max_group_size: int = Field(default=6, alias="maxGroupSize", ge=2)
    prioritize_topic_overlap: bool = Field(default=True, alias="prioritizeTopicOverlap")
    prioritize_diverse_experience: bool = Field(default=True, alias="prioritizeDiverseExperience")

    @model_validator(mode="after")
    def _sizes_ordered(self):
        if self.min_group_size > self.max_group_size:
            raise ValueError("minGroupSize must not exceed maxGroupSize")
        return self


class MatchingRequest(CamelModel):
    conference_id: str = Field(alias="conferenceId")
    lunch_date: str = Field(alias="lunchDate")
    registrations: list[RegistrationSummary]
    constraints: MatchingConstraints = Field(default_factory=MatchingConstraints)


class ProposedGroup(CamelModel):
    member_ids: list[str] = Field(alias="memberIds")
    time_slot: str = Field(alias="timeSlot")
    match_rationale: str = Field(alias="matchRationale")
    common_topics: list[str] = Field(default_factory=list, alias="commonTopics")
    suggested_icebreakers: list[str] = Field(default_factory=list, alias="suggestedIcebreakers")


class MatchingResponse(CamelModel):
    groups: list[ProposedGroup]
    unmatched_registration_ids: list[str] = Field(alias="unmatchedRegistrationIds")
    matching_notes: str | None = Field(default=None, alias="matchingNotes")


class NetworkingToolInput(BaseModel):
    user_interests: list[str] = Field(min_length=1)
    user_role: str | None = None
    networking_goals: list[str] = Field(default_factory=list)
    conference_track: str | None = None
