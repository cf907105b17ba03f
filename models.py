import uuid
from datetime import datetime, timedelta
from flask import current_app
from flask_login import UserMixin
from sqlalchemy import String, Text, DateTime, Column, ForeignKey, Enum, UniqueConstraint, event, insert
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()

COMPLAINT_CATEGORIES = ('Technical', 'Academic', 'Behavior', 'Facility', 'Other')
COMPLAINT_STATUSES = ('Pending', 'Under Review', 'Resolved')
STATUS_PENDING = 'Pending'
ROLES = ('admin', 'student')


def _uuid():
    return str(uuid.uuid4())


class User(Base, UserMixin):
    """An identity. Profile and role rows are derived from it on insert."""
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100))  # signup metadata, copied into the profile
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    profile = relationship("Profile", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    roles = relationship("UserRole", cascade="all, delete-orphan", passive_deletes=True)
    complaints = relationship("Complaint", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)


class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserRole(Base):
    __tablename__ = 'user_roles'
    __table_args__ = (UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),)
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(Enum(*ROLES, name='app_role'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Complaint(Base):
    __tablename__ = 'complaints'
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    category = Column(Enum(*COMPLAINT_CATEGORIES, name='complaint_category'), nullable=False)
    description = Column(Text, nullable=False)
    file_url = Column(String(512), nullable=True)
    status = Column(Enum(*COMPLAINT_STATUSES, name='complaint_status'), nullable=False, default=STATUS_PENDING)
    admin_remarks = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    owner = relationship("User", back_populates="complaints")

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'category': self.category,
            'description': self.description,
            'file_url': self.file_url,
            'status': self.status,
            'admin_remarks': self.admin_remarks,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


@event.listens_for(User, 'after_insert')
def handle_new_user(mapper, connection, target):
    # one profile and exactly one role per new identity
    connection.execute(insert(Profile.__table__).values(
        id=target.id,
        full_name=(target.full_name or '').strip() or 'User',
        email=target.email,
        created_at=datetime.utcnow(),
    ))
    bootstrap = current_app.config['BOOTSTRAP_ADMIN_EMAIL']
    role = 'admin' if target.email.lower() == bootstrap.lower() else 'student'
    connection.execute(insert(UserRole.__table__).values(
        id=_uuid(),
        user_id=target.id,
        role=role,
        created_at=datetime.utcnow(),
    ))


@event.listens_for(Complaint, 'before_update')
def touch_updated_at(mapper, connection, target):
    now = datetime.utcnow()
    if target.updated_at is not None and now <= target.updated_at:
        now = target.updated_at + timedelta(microseconds=1)
    target.updated_at = now
