"""SQLAlchemy models for the index tables."""

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Post(Base):
    """Posts matched by the keyword filter."""

    __tablename__ = "post"
    __table_args__ = (Index("idx_post_indexed_at", "indexed_at"),)

    uri: Mapped[str] = mapped_column(String, primary_key=True)
    cid: Mapped[str] = mapped_column(String, nullable=False)
    indexed_at: Mapped[str] = mapped_column(String, nullable=False)


class IndiewebPost(Base):
    """Posts linking to their author's own domain."""

    __tablename__ = "indieweb_post"
    __table_args__ = (
        Index("idx_indieweb_post_indexed_at", "indexed_at"),
        Index("idx_indieweb_post_author_did", "author_did"),
    )

    uri: Mapped[str] = mapped_column(String, primary_key=True)
    cid: Mapped[str] = mapped_column(String, nullable=False)
    author_did: Mapped[str] = mapped_column(String, nullable=False)
    author_handle: Mapped[str] = mapped_column(String, nullable=False)
    indexed_at: Mapped[str] = mapped_column(String, nullable=False)


class SubState(Base):
    """Firehose cursor, one row per subscription endpoint."""

    __tablename__ = "sub_state"

    service: Mapped[str] = mapped_column(String, primary_key=True)
    cursor: Mapped[int] = mapped_column(BigInteger, nullable=False)
