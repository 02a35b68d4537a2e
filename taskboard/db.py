from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker

from . import config
from .utils import new_uuid, now_utc


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)


class Board(Base):
    __tablename__ = "boards"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(140))
    description: Mapped[str] = mapped_column(Text, default="")
    color: Mapped[str] = mapped_column(String(7))
    owner_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    lists: Mapped[list[BoardList]] = relationship(
        back_populates="board", cascade="all, delete-orphan", order_by="BoardList.position"
    )
    labels: Mapped[list[Label]] = relationship(back_populates="board", cascade="all, delete-orphan")
    members: Mapped[list[BoardMember]] = relationship(back_populates="board", cascade="all, delete-orphan")
    invitations: Mapped[list[Invitation]] = relationship(back_populates="board", cascade="all, delete-orphan")


class BoardList(Base):
    __tablename__ = "lists"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(140))
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    board: Mapped[Board] = relationship(back_populates="lists")
    cards: Mapped[list[Card]] = relationship(
        back_populates="board_list", cascade="all, delete-orphan", order_by="Card.position"
    )


class Card(Base):
    __tablename__ = "cards"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    list_id: Mapped[str] = mapped_column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    board_list: Mapped[BoardList] = relationship(back_populates="cards")
    labels: Mapped[list[CardLabel]] = relationship(back_populates="card", cascade="all, delete-orphan")
    members: Mapped[list[CardMember]] = relationship(back_populates="card", cascade="all, delete-orphan")


class Label(Base):
    __tablename__ = "labels"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(80))
    color: Mapped[str] = mapped_column(String(7))

    board: Mapped[Board] = relationship(back_populates="labels")


class CardLabel(Base):
    __tablename__ = "card_labels"
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    label_id: Mapped[str] = mapped_column(String(36), ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True)

    card: Mapped[Card] = relationship(back_populates="labels")
    label: Mapped[Label] = relationship()


class CardMember(Base):
    __tablename__ = "card_members"
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"), primary_key=True)

    card: Mapped[Card] = relationship(back_populates="members")
    user: Mapped[User] = relationship()


class BoardMember(Base):
    __tablename__ = "board_members"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    board: Mapped[Board] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="uq_board_member"),
    )


class Invitation(Base):
    __tablename__ = "invitations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    email: Mapped[str] = mapped_column(String(320))
    sender_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending|accepted
    token_hash: Mapped[str] = mapped_column(String(64), unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    board: Mapped[Board] = relationship(back_populates="invitations")


def make_engine(url: str) -> Engine:
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


engine = make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    Base.metadata.create_all(bind=bind)


def get_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
