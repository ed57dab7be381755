"""
Table access for the hosted Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class PhotoActionType(str, enum.Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


PROFILE_FIELDS = (
    "full_name",
    "email",
    "phone",
    "location",
    "selfie_url",
    "profile_photo_url",
)


class DbClient(Protocol):
    """Interface for table access."""

    def find_whitelisted(self, email: str) -> Optional["WhitelistEntry"]:
        ...

    def save_whitelist_entry(self, entry: "WhitelistEntry") -> None:
        ...

    def get_profile(self, user_id: str) -> Optional["Profile"]:
        ...

    def create_profile(self, profile: "Profile") -> "Profile":
        ...

    def update_profile(self, user_id: str, **changes) -> Optional["Profile"]:
        ...

    def add_selfie(self, user_id: str, file_path: str) -> "SelfieRecord":
        ...

    def list_selfies(self, user_id: str) -> list["SelfieRecord"]:
        ...

    def record_photo_action(
        self, user_id: str, photo_id: str, action: PhotoActionType
    ) -> "PhotoActionRecord":
        ...

    def list_photo_actions(self, user_id: str) -> dict[str, PhotoActionType]:
        ...


@dataclass
class WhitelistEntry:
    personnel_id: str
    name: str
    email: str
    is_active: bool = True


@dataclass
class Profile:
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    selfie_url: Optional[str] = None
    profile_photo_url: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class SelfieRecord:
    id: str
    user_id: str
    file_path: str
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class PhotoActionRecord:
    user_id: str
    photo_id: str
    action: PhotoActionType
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


def _check_profile_changes(changes: dict) -> None:
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown profile fields: {sorted(unknown)}")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.whitelist: Dict[str, WhitelistEntry] = {}
        self.profiles: Dict[str, Profile] = {}
        self.selfies: list[SelfieRecord] = []
        self.photo_actions: Dict[tuple[str, str], PhotoActionRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.whitelist.clear()
        self.profiles.clear()
        self.selfies.clear()
        self.photo_actions.clear()

    def find_whitelisted(self, email: str) -> Optional[WhitelistEntry]:
        needle = (email or "").strip().lower()
        for entry in self.whitelist.values():
            if entry.is_active and entry.email.lower() == needle:
                return entry
        return None

    def save_whitelist_entry(self, entry: WhitelistEntry) -> None:
        self.whitelist[entry.personnel_id] = entry

    def get_profile(self, user_id: str) -> Optional[Profile]:
        profile = self.profiles.get(user_id)
        return replace(profile) if profile else None

    def create_profile(self, profile: Profile) -> Profile:
        if profile.user_id in self.profiles:
            raise ValueError(f"Profile already exists for {profile.user_id}")
        self.profiles[profile.user_id] = replace(profile)
        return replace(profile)

    def update_profile(self, user_id: str, **changes) -> Optional[Profile]:
        _check_profile_changes(changes)
        profile = self.profiles.get(user_id)
        if not profile:
            return None
        for key, value in changes.items():
            setattr(profile, key, value)
        profile.updated_at = time.time()
        return replace(profile)

    def add_selfie(self, user_id: str, file_path: str) -> SelfieRecord:
        record = SelfieRecord(id=uuid.uuid4().hex, user_id=user_id, file_path=file_path)
        self.selfies.append(record)
        return record

    def list_selfies(self, user_id: str) -> list[SelfieRecord]:
        return [record for record in self.selfies if record.user_id == user_id]

    def record_photo_action(
        self, user_id: str, photo_id: str, action: PhotoActionType
    ) -> PhotoActionRecord:
        now = time.time()
        existing = self.photo_actions.get((user_id, photo_id))
        if existing:
            existing.action = action
            existing.updated_at = now
            return replace(existing)
        record = PhotoActionRecord(user_id=user_id, photo_id=photo_id, action=action)
        self.photo_actions[(user_id, photo_id)] = record
        return replace(record)

    def list_photo_actions(self, user_id: str) -> dict[str, PhotoActionType]:
        return {
            photo_id: record.action
            for (owner, photo_id), record in self.photo_actions.items()
            if owner == user_id
        }


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_profile(row: "ProfileRow") -> Profile:
        return Profile(
            user_id=row.user_id,
            email=row.email,
            full_name=row.full_name,
            phone=row.phone,
            location=row.location,
            selfie_url=row.selfie_url,
            profile_photo_url=row.profile_photo_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def find_whitelisted(self, email: str) -> Optional[WhitelistEntry]:
        needle = (email or "").strip().lower()
        with self.Session() as session:
            stmt = (
                select(WhitelistRow)
                .where(func.lower(WhitelistRow.email) == needle)
                .where(WhitelistRow.is_active.is_(True))
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return WhitelistEntry(
                personnel_id=row.personnel_id,
                name=row.name,
                email=row.email,
                is_active=row.is_active,
            )

    def save_whitelist_entry(self, entry: WhitelistEntry) -> None:
        with self.Session() as session:
            row = session.get(WhitelistRow, entry.personnel_id)
            if row:
                row.name = entry.name
                row.email = entry.email
                row.is_active = entry.is_active
            else:
                session.add(
                    WhitelistRow(
                        personnel_id=entry.personnel_id,
                        name=entry.name,
                        email=entry.email,
                        is_active=entry.is_active,
                    )
                )
            session.commit()

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            return self._to_profile(row) if row else None

    def create_profile(self, profile: Profile) -> Profile:
        with self.Session() as session:
            if session.get(ProfileRow, profile.user_id):
                raise ValueError(f"Profile already exists for {profile.user_id}")
            row = ProfileRow(
                user_id=profile.user_id,
                email=profile.email,
                full_name=profile.full_name,
                phone=profile.phone,
                location=profile.location,
                selfie_url=profile.selfie_url,
                profile_photo_url=profile.profile_photo_url,
                created_at=profile.created_at,
                updated_at=profile.updated_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_profile(row)

    def update_profile(self, user_id: str, **changes) -> Optional[Profile]:
        _check_profile_changes(changes)
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_profile(row)

    def add_selfie(self, user_id: str, file_path: str) -> SelfieRecord:
        record = SelfieRecord(id=uuid.uuid4().hex, user_id=user_id, file_path=file_path)
        with self.Session() as session:
            session.add(
                SelfieRow(
                    id=record.id,
                    user_id=record.user_id,
                    file_path=record.file_path,
                    created_at=record.created_at,
                )
            )
            session.commit()
        return record

    def list_selfies(self, user_id: str) -> list[SelfieRecord]:
        with self.Session() as session:
            rows = (
                session.query(SelfieRow)
                .filter(SelfieRow.user_id == user_id)
                .order_by(SelfieRow.created_at.asc())
                .all()
            )
            return [
                SelfieRecord(
                    id=row.id,
                    user_id=row.user_id,
                    file_path=row.file_path,
                    created_at=row.created_at,
                )
                for row in rows
            ]

    def record_photo_action(
        self, user_id: str, photo_id: str, action: PhotoActionType
    ) -> PhotoActionRecord:
        now = time.time()
        with self.Session() as session:
            row = session.get(PhotoActionRow, (user_id, photo_id))
            if row:
                row.action = action.value
                row.updated_at = now
            else:
                row = PhotoActionRow(
                    user_id=user_id,
                    photo_id=photo_id,
                    action=action.value,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            session.commit()
            session.refresh(row)
            return PhotoActionRecord(
                user_id=row.user_id,
                photo_id=row.photo_id,
                action=PhotoActionType(row.action),
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    def list_photo_actions(self, user_id: str) -> dict[str, PhotoActionType]:
        with self.Session() as session:
            rows = (
                session.query(PhotoActionRow)
                .filter(PhotoActionRow.user_id == user_id)
                .all()
            )
            return {row.photo_id: PhotoActionType(row.action) for row in rows}


Base = declarative_base()


class WhitelistRow(Base):
    __tablename__ = "employee_whitelist"

    personnel_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)


class ProfileRow(Base):
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    location = Column(String, nullable=True)
    selfie_url = Column(String, nullable=True)
    profile_photo_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SelfieRow(Base):
    __tablename__ = "user_selfies"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    file_path = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class PhotoActionRow(Base):
    __tablename__ = "user_photo_actions"

    user_id = Column(String, primary_key=True)
    photo_id = Column(String, primary_key=True)
    action = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
