from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.dialects.postgresql import TSVECTOR

from oggole.database import Base, utcnow
from oggole.languages import DEFAULT_LANGUAGE, SearchLanguage, regconfig_case_sql


class User(Base):
    """
    Registered account with login telemetry.

    Design notes:
    - username and email are unique; the constraints are the final
      arbiter when two registrations race
    - password_hash never leaves the service layer
    - users are never hard-deleted
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    registration_ip = Column(String(45))
    registration_time = Column(DateTime, default=utcnow, nullable=False)
    last_login_ip = Column(String(45))
    last_login_time = Column(DateTime)
    login_count = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class Session(Base):
    """
    Server-side session storage.

    Design notes:
    - token is the opaque value stored in the cookie (32 random bytes)
    - username references the user by value, not by id
    - expires_at is compared at read time; expired rows may linger
      until cleanup_expired_sessions runs

    Session lifecycle:
    1. Created on login or registration
    2. Validated on each request against expires_at
    3. Deleted on logout, ignored once expired
    """
    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    username = Column(
        String(255),
        ForeignKey("users.username", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Session(username={self.username}, expires_at={self.expires_at})>"


class Page(Base):
    """
    Searchable document, written by the crawler ingestion endpoint.

    search_vector is derived from (language, content) by a database
    trigger on PostgreSQL. Other backends leave it NULL and search by
    substring only.
    """
    __tablename__ = "pages"

    title = Column(Text, primary_key=True)
    url = Column(Text, unique=True, nullable=False)
    language = Column(String(2), nullable=False, default=DEFAULT_LANGUAGE.value)
    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    content = Column(Text, nullable=False)
    search_vector = Column(Text().with_variant(TSVECTOR(), "postgresql"))

    __table_args__ = (
        CheckConstraint(
            "language IN (%s)" % ", ".join(f"'{language.value}'" for language in SearchLanguage),
            name="ck_pages_language",
        ),
        Index("ix_pages_search_vector", "search_vector", postgresql_using="gin"),
    )

    def __repr__(self):
        return f"<Page(title={self.title}, language={self.language})>"


_search_vector_function = DDL(
    f"""
    CREATE OR REPLACE FUNCTION pages_search_vector_update() RETURNS trigger AS $$
    BEGIN
        NEW.search_vector := to_tsvector({regconfig_case_sql("NEW.language")}, NEW.content);
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;
    """
)

_search_vector_trigger = DDL(
    """
    DROP TRIGGER IF EXISTS pages_search_vector_trigger ON pages;
    CREATE TRIGGER pages_search_vector_trigger BEFORE INSERT OR UPDATE
    ON pages FOR EACH ROW EXECUTE FUNCTION pages_search_vector_update();
    """
)

event.listen(Page.__table__, "after_create", _search_vector_function.execute_if(dialect="postgresql"))
event.listen(Page.__table__, "after_create", _search_vector_trigger.execute_if(dialect="postgresql"))
