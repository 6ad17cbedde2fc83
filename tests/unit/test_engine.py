"""Engine helpers: transactional scope and dialect detection."""

import os

import pytest
from sqlalchemy import select

from transfer_kernel.db.engine import is_postgres, session_scope
from transfer_kernel.services.sequence_service import SequenceCounter, SequenceService


class TestSessionScope:

    def test_commits_on_clean_exit(self, session):
        with session_scope() as scoped:
            SequenceService(scoped).next_value("SCOPE:ok")

        counter = session.execute(
            select(SequenceCounter).where(SequenceCounter.name == "SCOPE:ok")
        ).scalar_one()
        assert counter.current_value == 1

    def test_rolls_back_on_error(self, session):
        with pytest.raises(RuntimeError):
            with session_scope() as scoped:
                SequenceService(scoped).next_value("SCOPE:fail")
                raise RuntimeError("boom")

        assert SequenceService(session).current_value("SCOPE:fail") is None


class TestDialect:

    def test_matches_database_url(self, db_engine):
        expected = os.environ.get("DATABASE_URL", "").startswith("postgresql")
        assert is_postgres() is expected
