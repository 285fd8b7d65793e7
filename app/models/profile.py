# profile.py
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import backref, relationship
from app.database import Base


GENDERS = ("male", "female", "other")
CATEGORIES = ("Open", "OBC", "SC", "ST", "VJNT", "SEBC", "SBC")
ROLES = ("user", "admin")

# Fields the owner edits through the two form steps.
STEP1_FIELDS = ("email", "name", "contact", "gender", "date_of_birth")
STEP2_FIELDS = ("age", "district", "category", "highest_qualification", "photo_reference")
FORM_FIELDS = STEP1_FIELDS + STEP2_FIELDS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IS NULL OR {column} IN ({quoted})"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    contact = Column(String(32), nullable=True)
    gender = Column(String(16), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    age = Column(Integer, nullable=True)
    district = Column(String(100), nullable=True)
    category = Column(String(16), nullable=True)
    highest_qualification = Column(String(255), nullable=True)
    photo_reference = Column(String(255), nullable=True)

    pass_id = Column(String(6), nullable=True)
    form_step = Column(Integer, nullable=False, default=0, server_default="0")
    is_submitted = Column(Boolean, nullable=False, default=False, server_default=false())
    role = Column(String(16), nullable=False, default="user", server_default="user")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # Stamped from Python so that back-to-back saves always advance (sqlite now() has 1s resolution).
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    user = relationship("User", backref=backref("profile", uselist=False, passive_deletes=True))

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_profiles_user_id"),
        UniqueConstraint("pass_id", name="uq_profiles_pass_id"),
        CheckConstraint(_in_list("gender", GENDERS), name="ck_profiles_gender"),
        CheckConstraint(_in_list("category", CATEGORIES), name="ck_profiles_category"),
        CheckConstraint(_in_list("role", ROLES), name="ck_profiles_role"),
        CheckConstraint("form_step BETWEEN 0 AND 2", name="ck_profiles_form_step"),
        CheckConstraint("NOT is_submitted OR pass_id IS NOT NULL", name="ck_profiles_submitted_pass_id"),
    )
