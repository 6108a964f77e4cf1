import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from powerlunch.database import Base


def new_document_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Registration(Base):
    __tablename__ = "power_lunch_registrations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_document_id)
    conference_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    user_id: Mapped[str] = mapped_column(String(120), nullable=False)
    user_name: Mapped[str] = mapped_column(String(120), nullable=False)
    user_email: Mapped[str] = mapped_column(String(180), nullable=False)
    user_company: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_role: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_industry: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_linkedin_url: Mapped[str | None] = mapped_column(String(280), nullable=True)
    linkedin_headline: Mapped[str | None] = mapped_column(String(280), nullable=True)
    linkedin_skills: Mapped[list] = mapped_column(JSON, default=list)

    push_token: Mapped[str | None] = mapped_column(String(512), nullable=True)

    lunch_date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time_slot_preference: Mapped[str] = mapped_column(String(16), default="any")
    dietary_restrictions: Mapped[list] = mapped_column(JSON, default=list)
    topics: Mapped[list] = mapped_column(JSON, default=list)
    goals: Mapped[list] = mapped_column(JSON, default=list)
    experience_level: Mapped[str | None] = mapped_column(String(24), nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    group_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict:
        # push_token never leaves the service
        return {
            "id": self.id,
            "conferenceId": self.conference_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userEmail": self.user_email,
            "userCompany": self.user_company,
            "userRole": self.user_role,
            "userIndustry": self.user_industry,
            "userLinkedInUrl": self.user_linkedin_url,
            "lunchDate": self.lunch_date,
            "timeSlotPreference": self.time_slot_preference,
            "dietaryRestrictions": list(self.dietary_restrictions or []),
            "topics": list(self.topics or []),
            "goals": list(self.goals or []),
            "experienceLevel": self.experience_level,
            "status": self.status,
            "groupId": self.group_id,
            "hasPushToken": bool(self.push_token),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class LunchGroup(Base):
    __tablename__ = "power_lunch_groups"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_document_id)
    conference_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    lunch_date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    time_slot: Mapped[str] = mapped_column(String(80), default="")
    venue: Mapped[str | None] = mapped_column(String(160), nullable=True)
    table_number: Mapped[str | None] = mapped_column(String(40), nullable=True)

    member_ids: Mapped[list] = mapped_column(JSON, default=list)
    member_count: Mapped[int] = mapped_column(Integer, default=0)

    match_rationale: Mapped[str] = mapped_column(Text, default="")
    common_topics: Mapped[list] = mapped_column(JSON, default=list)
    suggested_icebreakers: Mapped[list] = mapped_column(JSON, default=list)

    status: Mapped[str] = mapped_column(String(16), default="scheduled")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conferenceId": self.conference_id,
            "lunchDate": self.lunch_date,
            "timeSlot": self.time_slot,
            "venue": self.venue,
            "tableNumber": self.table_number,
            "memberIds": list(self.member_ids or []),
            "memberCount": self.member_count,
            "matchRationale": self.match_rationale,
            "commonTopics": list(self.common_topics or []),
            "suggestedIcebreakers": list(self.suggested_icebreakers or []),
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    actor: Mapped[str] = mapped_column(String(120), default="anonymous")
    action: Mapped[str] = mapped_column(String(120), nullable=False)
    target_type: Mapped[str] = mapped_column(String(80), default="")
    target_id: Mapped[str] = mapped_column(String(120), default="")
    status: Mapped[str] = mapped_column(String(40), default="success")
    details: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
