"""Shared fixtures: configuration, a temporary database and sample statements."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from statement_recon.config import ReconConfig
from statement_recon.models.reconciliation import CandidateKind
from statement_recon.storage import (
    AccountLockRegistry,
    StatementRepository,
    create_engine_from_config,
    init_schema,
    make_session_factory,
    session_scope,
)

ACCOUNT_ID = "BCA-001"

BCA_CSV = """Informasi Rekening - Mutasi Rekening
No. rekening : ,'0123456789
Nama : ,PT MAJU JAYA
Periode : ,01/01/2025 - 31/01/2025
Kode Mata Uang : ,IDR

Tanggal Transaksi,Keterangan,Cabang,Jumlah,,Saldo
'02/01,TRSF E-BANKING CR 0201/FTSCY/WS95031 PT SUMBER REZEKI,0000,"1,500,000.00",CR,"11,500,000.00"
'05/01,BYR VIA E-BANKING INV-2025-001 CV ALAT TULIS,0000,"250,000.00",DB,"11,250,000.00"
'10/01,BIAYA ADM,0000,"10,000.00",DB,"11,240,000.00"
'15/01,SETORAN TUNAI,0998,"2,000,000.00",CR,"13,240,000.00"
Saldo Awal : ,"10,000,000.00"
Mutasi Kredit : ,"3,500,000.00"
Mutasi Debet : ,"260,000.00"
Saldo Akhir : ,"13,240,000.00"
"""

# Separate debit/credit columns, Indonesian number format, no period line
SPLIT_CSV = """Tanggal;Keterangan;Debet;Kredit;Saldo
03/02;Transfer masuk;;1.000.000,00;6.000.000,00
04/02;Pembayaran listrik;350.000,50;;5.649.999,50
"""


@pytest.fixture
def config(tmp_path) -> ReconConfig:
    cfg = ReconConfig()
    cfg.database.url = f"sqlite:///{tmp_path / 'recon.db'}"
    cfg.ingestion.storage_root = str(tmp_path / "objects")
    return cfg


@pytest.fixture
def session_factory(config):
    engine = create_engine_from_config(config.database)
    init_schema(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def locks() -> AccountLockRegistry:
    return AccountLockRegistry()


@pytest.fixture
def account(session_factory):
    with session_scope(session_factory) as session:
        return StatementRepository(session).add_account(
            "BCA Operasional",
            currency="IDR",
            opening_balance=Decimal("10000000"),
            opening_balance_date=date(2025, 1, 1),
            account_number="0123456789",
            account_id=ACCOUNT_ID,
        )


@pytest.fixture
def candidates(session_factory, account):
    """Accounting records matching the BCA sample at different confidence levels."""
    with session_scope(session_factory) as session:
        repo = StatementRepository(session)
        return {
            # Same day, same amount: matched
            "receipt": repo.add_candidate(
                CandidateKind.RECEIPT,
                Decimal("1500000"),
                date(2025, 1, 2),
                description="Pelunasan PT Sumber Rezeki",
                account_id=account.id,
                candidate_id="RCV-001",
                created_at=datetime(2025, 1, 2, 9, 0),
            ),
            # Two days off but the invoice number is in the description: matched
            "expense": repo.add_candidate(
                CandidateKind.EXPENSE,
                Decimal("250000"),
                date(2025, 1, 7),
                description="Alat tulis kantor",
                reference="INV-2025-001",
                account_id=account.id,
                candidate_id="EXP-001",
                created_at=datetime(2025, 1, 7, 9, 0),
            ),
            # Three days off, nothing else in common: suggested
            "bank_charge": repo.add_candidate(
                CandidateKind.EXPENSE,
                Decimal("10000"),
                date(2025, 1, 13),
                description="Monthly fee",
                account_id=account.id,
                candidate_id="EXP-002",
                created_at=datetime(2025, 1, 13, 9, 0),
            ),
            # Right amount and day for the cash deposit, wrong direction
            "wrong_side": repo.add_candidate(
                CandidateKind.EXPENSE,
                Decimal("2000000"),
                date(2025, 1, 15),
                description="Setoran tunai",
                account_id=account.id,
                candidate_id="EXP-003",
                created_at=datetime(2025, 1, 15, 9, 0),
            ),
        }


@pytest.fixture
def bca_csv() -> bytes:
    return BCA_CSV.encode("utf-8")


@pytest.fixture
def split_csv() -> bytes:
    return SPLIT_CSV.encode("utf-8")
