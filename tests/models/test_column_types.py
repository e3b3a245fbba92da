"""Column types the models derive from Base.type_annotation_map."""

import pytest
from sqlalchemy import Numeric, String

import pos_kernel.db as db
from pos_kernel.db.base import UTCDateTime
from pos_kernel.models.register_session import RegisterSession
from pos_kernel.models.setting import Setting
from pos_kernel.models.transaction import Transaction


@pytest.mark.parametrize(
    "column",
    [
        Transaction.__table__.c.subtotal,
        Transaction.__table__.c.tax,
        Transaction.__table__.c.total,
        Transaction.__table__.c.tendered_amount,
        Transaction.__table__.c.change_due,
        RegisterSession.__table__.c.opening_amount,
        RegisterSession.__table__.c.closing_amount,
    ],
    ids=lambda c: f"{c.table.name}.{c.name}",
)
def test_amounts_are_fixed_point_cents(column):
    assert isinstance(column.type, Numeric)
    assert (column.type.precision, column.type.scale) == (14, 2)


def test_timestamps_are_utc():
    assert isinstance(Transaction.__table__.c.date.type, UTCDateTime)
    assert isinstance(RegisterSession.__table__.c.opened_at.type, UTCDateTime)
    assert isinstance(RegisterSession.__table__.c.closed_at.type, UTCDateTime)


def test_short_strings():
    assert isinstance(Transaction.__table__.c.receipt_number.type, String)
    assert Transaction.__table__.c.receipt_number.type.length == 64
    assert Setting.__table__.c.key.type.length == 64
    assert Setting.__table__.c.value.type.length == 4000


def test_db_package_exports_only_live_names():
    assert set(db.__all__) == {
        "get_engine",
        "get_session",
        "session_scope",
        "create_tables",
        "Base",
        "TrackedBase",
        "UTCDateTime",
        "UUIDString",
        "UUID",
    }
