"""Tests for scripts.replay_batch."""

from models import FIBatch, FIHolding
from scripts.replay_batch import list_batches, replay
from tests.fixtures.mocks import mutual_fund_payload


def _stored_batch(db, active_consent, session_id="S1") -> FIBatch:
    batch = FIBatch(
        session_id=session_id,
        consent_handle="CH_1",
        consent_id=active_consent.id,
        user_id=active_consent.user_id,
        status="FAILED",
        raw_payload=mutual_fund_payload(session_id=session_id),
    )
    db.add(batch)
    db.commit()
    return batch


class TestListBatches:
    def test_empty(self, db, capsys):
        list_batches(db, 10)
        assert "No batches stored." in capsys.readouterr().out

    def test_lists_sessions(self, db, active_consent, capsys):
        _stored_batch(db, active_consent, "S1")
        _stored_batch(db, active_consent, "S2")
        list_batches(db, 10)
        output = capsys.readouterr().out
        assert "S1" in output
        assert "S2" in output
        assert "FAILED" in output


class TestReplay:
    def test_dry_run_rolls_back(self, db, active_consent, capsys):
        _stored_batch(db, active_consent)

        assert replay(db, "S1", write=False, verbose=False) == 0

        output = capsys.readouterr().out
        assert "DRY RUN" in output
        assert "Holdings:     1 new, 0 duplicate" in output
        assert db.query(FIHolding).count() == 0
        assert db.query(FIBatch).one().status == "FAILED"

    def test_write_commits(self, db, active_consent, capsys):
        _stored_batch(db, active_consent)

        assert replay(db, "S1", write=True, verbose=False) == 0
        assert "Committed." in capsys.readouterr().out
        assert db.query(FIHolding).count() == 1
        assert db.query(FIBatch).one().status == "COMPLETED"

        replay(db, "S1", write=True, verbose=False)
        assert "Holdings:     0 new, 1 duplicate" in capsys.readouterr().out
        assert db.query(FIHolding).count() == 1

    def test_unknown_session(self, db, capsys):
        assert replay(db, "missing", write=False, verbose=False) == 1
        assert "no batch with session id missing" in capsys.readouterr().out

    def test_parse_errors_reported(self, db, active_consent, capsys):
        batch = _stored_batch(db, active_consent)
        batch.raw_payload = mutual_fund_payload(
            holdings=[{"schemeName": "Bad Fund", "units": "n/a", "asOfDate": "2024-01-15"}]
        )
        db.commit()

        assert replay(db, "S1", write=False, verbose=True) == 2
        output = capsys.readouterr().out
        assert "Errors (1):" in output
        assert "Invalid quantity" in output
