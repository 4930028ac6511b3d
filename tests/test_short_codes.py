"""Tests for short code generation, reservation and resolution."""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

import core.short_codes as short_codes_module
from core.exceptions import CodeSpaceExhausted
from core.short_codes import ShortCodeResolver
from models import ShortCode, ShortCodeType
from services.naming_service import (
    SHORT_CODE_ALPHABET,
    generate_short_code,
    is_well_formed,
    normalize_short_code,
)


class TestNamingService:
    def test_generated_codes_are_well_formed(self):
        for _ in range(200):
            code = generate_short_code()
            assert len(code) == 8
            assert set(code) <= set(SHORT_CODE_ALPHABET)
            assert is_well_formed(code)

    def test_ten_thousand_codes_are_unique(self):
        codes = {generate_short_code() for _ in range(10_000)}
        assert len(codes) == 10_000

    def test_normalize(self):
        assert normalize_short_code("  AbCd1234 ") == "abcd1234"

    @pytest.mark.parametrize("code", ["", "abc", "abcd12345", "abcd-123", "ABCD1234", "abcd 123"])
    def test_malformed(self, code):
        assert not is_well_formed(code)


class TestReserve:
    def test_reserve_and_resolve(self, db):
        target = uuid4()
        row = ShortCodeResolver.reserve(db, ShortCodeType.EVENT, target)
        db.commit()

        assert ShortCodeResolver.resolve(db, row.code, ShortCodeType.EVENT) == target

    def test_resolve_is_idempotent(self, db):
        target = uuid4()
        row = ShortCodeResolver.reserve(db, ShortCodeType.VOTER, target)
        db.commit()

        first = ShortCodeResolver.resolve(db, row.code, ShortCodeType.VOTER)
        second = ShortCodeResolver.resolve(db, row.code, ShortCodeType.VOTER)
        assert first == second == target
        assert db.query(ShortCode).count() == 1

    def test_wrong_type_resolves_to_none(self, db):
        row = ShortCodeResolver.reserve(db, ShortCodeType.MANAGE, uuid4())
        db.commit()

        assert ShortCodeResolver.resolve(db, row.code, ShortCodeType.VOTER) is None
        assert ShortCodeResolver.resolve(db, row.code, "event") is None

    def test_resolve_is_case_insensitive(self, db):
        target = uuid4()
        row = ShortCodeResolver.reserve(db, ShortCodeType.BREWER, target)
        db.commit()

        assert ShortCodeResolver.resolve(db, f" {row.code.upper()} ", ShortCodeType.BREWER) == target

    @pytest.mark.parametrize("code", [None, "", "short", "way-too-long-code", "!!!!!!!!"])
    def test_resolve_malformed_is_none(self, db, code):
        assert ShortCodeResolver.resolve(db, code, ShortCodeType.EVENT) is None

    def test_forced_collisions_exhaust(self, db, monkeypatch):
        monkeypatch.setattr(ShortCodeResolver, "code_taken", staticmethod(lambda db, code: True))

        with pytest.raises(CodeSpaceExhausted) as excinfo:
            ShortCodeResolver.reserve(db, ShortCodeType.EVENT, uuid4())

        assert excinfo.value.attempts == ShortCodeResolver.MAX_ATTEMPTS
        assert db.query(ShortCode).count() == 0

    def test_generate_exhausts_after_five_attempts(self, db, monkeypatch):
        calls = []

        def taken(db, code):
            calls.append(code)
            return True

        monkeypatch.setattr(ShortCodeResolver, "code_taken", staticmethod(taken))

        with pytest.raises(CodeSpaceExhausted):
            ShortCodeResolver.generate(db)
        assert len(calls) == 5

    def test_collision_then_success(self, db, monkeypatch):
        existing = ShortCodeResolver.reserve(db, ShortCodeType.EVENT, uuid4())
        db.commit()

        candidates = iter([existing.code, existing.code, "fresh123"])
        monkeypatch.setattr(short_codes_module, "generate_short_code", lambda: next(candidates))

        row = ShortCodeResolver.reserve(db, ShortCodeType.VOTER, uuid4())
        db.commit()
        assert row.code == "fresh123"

    def test_unique_constraint_is_the_authority(self, db, session_factory, monkeypatch):
        """A code inserted between the existence check and the INSERT counts as a collision."""
        other = session_factory()
        existing = ShortCodeResolver.reserve(other, ShortCodeType.EVENT, uuid4())
        other.commit()
        existing_code = existing.code
        other.close()

        candidates = iter([existing_code, "second01"])
        monkeypatch.setattr(short_codes_module, "generate_short_code", lambda: next(candidates))
        # Pretend the optimistic check never sees the row
        monkeypatch.setattr(ShortCodeResolver, "code_taken", staticmethod(lambda db, code: False))

        row = ShortCodeResolver.reserve(db, ShortCodeType.VOTER, uuid4())
        db.commit()

        assert row.code == "second01"
        assert db.query(ShortCode).count() == 2

    def test_code_is_unique_across_types(self, db):
        db.add(ShortCode(code="samecode", target_type=ShortCodeType.EVENT, target_id=uuid4()))
        db.commit()
        db.expunge_all()

        db.add(ShortCode(code="samecode", target_type=ShortCodeType.VOTER, target_id=uuid4()))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_reserve_batch(self, db):
        reserved = ShortCodeResolver.reserve_batch(db, ShortCodeType.VOTER, 25)
        db.commit()

        assert len(reserved) == 25
        assert len({code for _, code in reserved}) == 25
        for target_id, code in reserved:
            assert ShortCodeResolver.resolve(db, code, ShortCodeType.VOTER) == target_id


class TestReverseLookup:
    def test_code_for(self, db):
        target = uuid4()
        row = ShortCodeResolver.reserve(db, ShortCodeType.MANAGE, target)
        db.commit()

        assert ShortCodeResolver.code_for(db, ShortCodeType.MANAGE, target) == row.code
        assert ShortCodeResolver.code_for(db, ShortCodeType.EVENT, target) is None

    def test_codes_for(self, db):
        targets = [uuid4(), uuid4()]
        rows = [ShortCodeResolver.reserve(db, ShortCodeType.BREWER, t) for t in targets]
        db.commit()

        assert ShortCodeResolver.codes_for(db, ShortCodeType.BREWER, targets) == {
            targets[0]: rows[0].code,
            targets[1]: rows[1].code,
        }
        assert ShortCodeResolver.codes_for(db, ShortCodeType.BREWER, []) == {}
