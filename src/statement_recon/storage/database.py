"""
Relational schema and session handling.
"""

from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional
import logging
import uuid

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..config import DatabaseConfig

logger = logging.getLogger(__name__)

MONEY = Numeric(18, 2)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class BankAccountRecord(Base):
    __tablename__ = "bank_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    account_number: Mapped[Optional[str]] = mapped_column(String(64))
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    opening_balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    opening_balance_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class StatementUploadRecord(Base):
    __tablename__ = "bank_statement_uploads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    bank_account_id: Mapped[str] = mapped_column(ForeignKey("bank_accounts.id"), index=True)
    filename: Mapped[str] = mapped_column(String(255))
    file_url: Mapped[Optional[str]] = mapped_column(String(1024))
    source_format: Mapped[str] = mapped_column(String(20))
    period: Mapped[Optional[str]] = mapped_column(String(50))
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    opening_balance: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    closing_balance: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    total_debits: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_credits: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    transaction_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class StatementLineRecord(Base):
    __tablename__ = "bank_statement_lines"
    __table_args__ = (
        Index("ix_statement_lines_account_date", "bank_account_id", "transaction_date"),
        UniqueConstraint("suggested_kind", "suggested_id", name="uq_statement_lines_suggestion"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bank_account_id: Mapped[str] = mapped_column(ForeignKey("bank_accounts.id"))
    upload_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("bank_statement_uploads.id", ondelete="SET NULL")
    )
    transaction_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(Text, default="")
    reference: Mapped[str] = mapped_column(String(255), default="")
    debit: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    status: Mapped[str] = mapped_column(String(20), default="unmatched", index=True)

    # At most one is set, and only while status is matched or recorded
    matched_expense_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("finance_expenses.id"), unique=True
    )
    matched_receipt_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("receipt_vouchers.id"), unique=True
    )
    matched_fund_transfer_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("fund_transfers.id"), unique=True
    )
    matched_entry_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("journal_entries.id"), unique=True
    )

    suggested_kind: Mapped[Optional[str]] = mapped_column(String(20))
    suggested_id: Mapped[Optional[str]] = mapped_column(String(64))
    match_confidence: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    matched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    matched_by: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class CandidateColumns:
    """Columns shared by every accounting record a line can be linked to."""

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    amount: Mapped[Decimal] = mapped_column(MONEY)
    txn_date: Mapped[date] = mapped_column(Date, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    reference: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class ExpenseRecord(CandidateColumns, Base):
    __tablename__ = "finance_expenses"

    bank_account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))


class ReceiptRecord(CandidateColumns, Base):
    __tablename__ = "receipt_vouchers"

    bank_account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))


class FundTransferRecord(CandidateColumns, Base):
    __tablename__ = "fund_transfers"

    from_account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))
    to_account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))


class JournalEntryRecord(CandidateColumns, Base):
    __tablename__ = "journal_entries"

    bank_account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bank_accounts.id"))


def create_engine_from_config(config: DatabaseConfig) -> Engine:
    """
    Create a SQLAlchemy engine for the configured database.

    Args:
        config: Database configuration

    Returns:
        Engine instance
    """
    connect_args = {}
    if config.url.startswith("sqlite"):
        # Connections are shared with the parse job worker threads
        connect_args["check_same_thread"] = False
    logger.debug(f"Connecting to {config.url}")
    return create_engine(config.url, echo=config.echo, future=True, connect_args=connect_args)


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema is up to date")


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits when the block finishes, rolls back if it raises.
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
