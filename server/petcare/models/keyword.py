"""Keyword subscription model."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base

# NULL scopes never collide under a plain unique constraint
_GLOBAL_SCOPE_SQL = "scope IS NULL"


class KeywordSubscription(Base):
    """A member's standing interest in a keyword, optionally limited to one content category."""

    __tablename__ = "keyword_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    keyword: Mapped[str] = mapped_column(String(100), nullable=False)
    # NULL means every category
    scope: Mapped[str | None] = mapped_column(String(30), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("subscriber_id", "keyword", "scope", name="uq_keyword_subscription"),
        Index(
            "uq_keyword_subscription_global",
            "subscriber_id",
            "keyword",
            unique=True,
            postgresql_where=text(_GLOBAL_SCOPE_SQL),
            sqlite_where=text(_GLOBAL_SCOPE_SQL),
        ),
        CheckConstraint("length(keyword) > 0", name="ck_keyword_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<KeywordSubscription(id={self.id}, subscriber_id='{self.subscriber_id}', "
            f"keyword='{self.keyword}', scope={self.scope})>"
        )
