"""Tests for voter registration, vote casting, feedback and the public views."""

import threading
from uuid import uuid4

import pytest

from tests.conftest import context_for, make_admin, make_org

from core.event_manager import EventManager
from core.exceptions import Conflict, Invalid, NotFound
from core.reveal_state_machine import RevealStateMachine
from core.short_codes import ShortCodeResolver
from core.voting_manager import VotingManager
from database import settings
from models import BrewerToken, Feedback, ShortCodeType, Vote, Voter


class VotingFixture:
    """One event with three beers and a handful of voter codes."""

    def __init__(self, db, max_points=5):
        org = make_org(db, "Home")
        admin = make_admin(db, org, "host@example.com")
        self.ctx = context_for(db, admin)
        self.event = EventManager.create_event(db, self.ctx, "Tasting", max_points=max_points)
        self.event_id = self.event.id
        self.beers = [
            EventManager.add_beer(db, self.ctx, self.event_id, name, brewer="Brewer")
            for name in ("Pale", "Amber", "Dark")
        ]
        self.beer_ids = [beer.id for beer in self.beers]
        self.code = ShortCodeResolver.code_for(db, ShortCodeType.EVENT, self.event_id)
        self.voters = EventManager.provision_voters(db, self.ctx, self.event_id, 3)


@pytest.fixture
def setup(db):
    return VotingFixture(db)


class TestVoterRegistration:
    def test_first_visit_registers(self, db, setup):
        ballot = VotingManager.ballot(db, setup.code, setup.voters[0])

        assert db.query(Voter).count() == 1
        assert ballot.points_used == 0
        assert ballot.points_remaining == 5
        assert [beer.name for beer in ballot.beers] == ["Pale", "Amber", "Dark"]

    def test_duplicate_registration_is_idempotent(self, db, setup):
        first = VotingManager.register_voter(db, setup.code, setup.voters[0])
        second = VotingManager.register_voter(db, setup.code, setup.voters[0])

        assert first.id == second.id
        assert db.query(Voter).count() == 1

    def test_two_sessions_register_same_voter(self, db, session_factory, setup):
        other = session_factory()
        try:
            from_other = VotingManager.register_voter(other, setup.code, setup.voters[0]).id
            from_db = VotingManager.register_voter(db, setup.code, setup.voters[0]).id
        finally:
            other.close()

        assert from_other == from_db
        assert db.query(Voter).count() == 1

    @staticmethod
    def _visit_together(session_factory, event_code, voter_code):
        """Open the same voter link from two threads released at the same instant."""
        barrier = threading.Barrier(2)
        voter_ids, errors = [], []

        def visit():
            session = session_factory()
            try:
                barrier.wait()
                voter_ids.append(VotingManager.ballot(session, event_code, voter_code).voter.id)
            except Exception as exc:
                errors.append(exc)
            finally:
                session.close()

        threads = [threading.Thread(target=visit) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return voter_ids, errors

    def test_simultaneous_first_visits(self, db, session_factory, setup):
        codes = EventManager.provision_voters(db, setup.ctx, setup.event_id, 10)

        for voter_code in codes:
            voter_ids, errors = self._visit_together(session_factory, setup.code, voter_code)

            assert errors == []
            assert len(voter_ids) == 2
            assert voter_ids[0] == voter_ids[1]

        assert db.query(Voter).count() == len(codes)

    def test_conflicting_insert_falls_back_to_existing(self, db, session_factory, setup):
        """The losing side of a registration race sees an IntegrityError and reuses the winner's row."""
        voter_id = ShortCodeResolver.resolve(db, setup.voters[0], ShortCodeType.VOTER)
        db.commit()

        winner = session_factory()
        try:
            VotingManager.register_voter(winner, setup.code, setup.voters[0])
        finally:
            winner.close()

        assert VotingManager._insert_voter(db, voter_id, setup.event_id) is None
        voter = VotingManager._get_or_create_voter(db, voter_id, setup.event_id)
        db.commit()

        assert voter.id == voter_id
        assert db.query(Voter).count() == 1

    def test_unknown_codes(self, db, setup):
        with pytest.raises(NotFound):
            VotingManager.ballot(db, setup.code, "zzzzzzzz")
        with pytest.raises(NotFound):
            VotingManager.ballot(db, "zzzzzzzz", setup.voters[0])
        # A manage code never works as a voter code
        manage = ShortCodeResolver.code_for(db, ShortCodeType.MANAGE, setup.event_id)
        with pytest.raises(NotFound):
            VotingManager.ballot(db, setup.code, manage)
        assert db.query(Voter).count() == 0

    def test_voter_code_from_other_event(self, db, setup):
        other_event = EventManager.create_event(db, setup.ctx, "Other Tasting")
        other_code = ShortCodeResolver.code_for(db, ShortCodeType.EVENT, other_event.id)

        with pytest.raises(NotFound):
            VotingManager.ballot(db, other_code, setup.voters[0])


class TestCastVote:
    def test_vote_and_overwrite(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 3)
        ballot = VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 2)

        assert ballot.votes == {setup.beer_ids[0]: 2}
        assert db.query(Vote).count() == 1

    def test_zero_withdraws(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 3)
        ballot = VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 0)

        assert ballot.votes == {}
        assert db.query(Vote).count() == 0

    def test_points_bounds(self, db, setup):
        with pytest.raises(Invalid):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 6)
        with pytest.raises(Invalid):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], -1)
        assert db.query(Vote).count() == 0

    def test_budget_across_beers(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 3)
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[1], 2)

        with pytest.raises(Invalid):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[2], 1)

        # Lowering one vote frees points for another
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 2)
        ballot = VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[2], 1)
        assert ballot.points_used == 5
        assert ballot.points_remaining == 0

    def test_budget_is_per_voter(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 5)
        VotingManager.cast_vote(db, setup.code, setup.voters[1], setup.beer_ids[0], 5)

        assert sum(vote.points for vote in db.query(Vote).all()) == 10

    def test_beer_from_other_event(self, db, setup):
        other_event = EventManager.create_event(db, setup.ctx, "Other Tasting")
        stranger = EventManager.add_beer(db, setup.ctx, other_event.id, "Stranger")

        with pytest.raises(NotFound):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], stranger.id, 1)
        with pytest.raises(NotFound):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], uuid4(), 1)

    def test_voting_closes_when_reveal_starts(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 2)
        RevealStateMachine.advance(db, setup.ctx.scope, setup.event_id)

        with pytest.raises(Conflict):
            VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 4)

        RevealStateMachine.reset(db, setup.ctx.scope, setup.event_id)
        ballot = VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[0], 4)
        assert ballot.votes[setup.beer_ids[0]] == 4


class TestFeedback:
    def test_upsert(self, db, setup):
        VotingManager.submit_feedback(db, setup.code, setup.voters[0], setup.beer_ids[0], "Too hoppy")
        feedback = VotingManager.submit_feedback(
            db, setup.code, setup.voters[0], setup.beer_ids[0], "Grew on me", share_with_brewer=True
        )

        assert feedback.notes == "Grew on me"
        assert feedback.share_with_brewer is True
        assert db.query(Feedback).count() == 1

    def test_too_long(self, db, setup):
        notes = "x" * (settings.feedback_max_length + 1)
        with pytest.raises(Invalid):
            VotingManager.submit_feedback(db, setup.code, setup.voters[0], setup.beer_ids[0], notes)

    def test_allowed_after_reveal(self, db, setup):
        RevealStateMachine.advance(db, setup.ctx.scope, setup.event_id)

        feedback = VotingManager.submit_feedback(db, setup.code, setup.voters[0], setup.beer_ids[0], "Late note")

        assert feedback.notes == "Late note"


class TestBrewerView:
    def test_only_shared_feedback(self, db, setup):
        beer_id = setup.beer_ids[0]
        VotingManager.submit_feedback(db, setup.code, setup.voters[0], beer_id, "Shared", share_with_brewer=True)
        VotingManager.submit_feedback(db, setup.code, setup.voters[1], beer_id, "Private")
        VotingManager.submit_feedback(db, setup.code, setup.voters[2], setup.beer_ids[1], "Other beer", share_with_brewer=True)

        brewer_code = ShortCodeResolver.code_for(db, ShortCodeType.BREWER, beer_id)
        beer, feedback = VotingManager.brewer_view(db, brewer_code)

        assert beer.id == beer_id
        assert [f.notes for f in feedback] == ["Shared"]

    def test_brewer_token(self, db, setup):
        token = db.query(BrewerToken).filter(BrewerToken.beer_id == setup.beer_ids[1]).one()

        beer, feedback = VotingManager.brewer_view(db, str(token.id))

        assert beer.id == setup.beer_ids[1]
        assert feedback == []

    def test_wrong_code(self, db, setup):
        with pytest.raises(NotFound):
            VotingManager.brewer_view(db, setup.code)
        with pytest.raises(NotFound):
            VotingManager.brewer_view(db, str(uuid4()))


class TestPublicResults:
    def test_hidden_until_reveal(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[1], 4)

        results = VotingManager.public_results(db, setup.code)

        assert results.ranking is None
        assert results.stats.total_points_cast == 4
        assert results.stats.beer_count == 3
        assert results.registered_voters == 1

    def test_visible_after_advance(self, db, setup):
        VotingManager.cast_vote(db, setup.code, setup.voters[0], setup.beer_ids[1], 4)
        VotingManager.cast_vote(db, setup.code, setup.voters[1], setup.beer_ids[1], 1)
        VotingManager.cast_vote(db, setup.code, setup.voters[1], setup.beer_ids[2], 4)
        RevealStateMachine.advance(db, setup.ctx.scope, setup.event_id)

        results = VotingManager.public_results(db, setup.code)

        assert [(e.name, e.total_points, e.rank) for e in results.ranking] == [
            ("Amber", 5, 1),
            ("Dark", 4, 2),
            ("Pale", 0, 3),
        ]
        assert results.stats.voter_count == 2

    def test_unknown_event(self, db, setup):
        with pytest.raises(NotFound):
            VotingManager.public_results(db, setup.voters[0])
