from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column, validates
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint, DateTime, Index, text
from typing import Optional

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Core Models ---
class Permission(Base):
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default='')
    module: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), onupdate=utcnow)

    @validates('name', 'module')
    def _upper(self, key, value):
        return value.strip().upper() if value else value

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'module': self.module,
            'is_active': self.is_active,
        }


class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default='')
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False, default='System')
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False, default='System')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), onupdate=utcnow)

    grants = relationship('RolePermission', back_populates='role', cascade='all, delete-orphan')
    users = relationship('User', back_populates='role')

    @validates('name')
    def _trim(self, key, value):
        return value.strip() if value else value

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'level': self.level,
            'is_active': self.is_active,
        }


class RolePermission(Base):
    """A grant: one permission held by one role. Hard-deleted when the role's set changes."""
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    granted_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))

    role = relationship('Role', back_populates='grants')
    permission = relationship('Permission')

    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
        Index('ix_role_permissions_role_active', 'role_id', 'is_active'),
        Index('ix_role_permissions_permission_active', 'permission_id', 'is_active'),
    )


class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[Optional[int]] = mapped_column(ForeignKey('roles.id', ondelete='SET NULL'), nullable=True)
    user_type: Mapped[str] = mapped_column(String(16), nullable=False, default='staff')
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    role = relationship('Role', back_populates='users')

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)
