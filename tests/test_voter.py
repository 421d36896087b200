"""
Tests for voters and voter chains.
"""

import pytest

from gatekeeper import (
    ChainVoter,
    ErrorKind,
    ModelVoter,
    SecurityError,
    Strategy,
    Vote,
    Voter,
)


class FixedVoter(Voter):
    """Voter with a fixed opinion, counting how often it is asked."""

    def __init__(self, vote: Vote):
        self.vote = vote
        self.calls = 0

    def is_granted(self, code, user):
        self.calls += 1
        return self.vote

    def is_allowed(self, path, method, user):
        self.calls += 1
        return self.vote


def chain(strategy, *votes):
    return ChainVoter(strategy, [FixedVoter(vote) for vote in votes])


class TestChainVoterStrategies:
    """Test how opinions are combined."""

    def test_empty_chain_abstains(self):
        voter = ChainVoter()

        assert voter.is_granted("any", None) is Vote.ABSTAIN
        assert voter.is_allowed("/", "GET", None) is Vote.ABSTAIN

    def test_affirmative_one_allow_wins(self):
        voter = chain(Strategy.AFFIRMATIVE, Vote.DENY, Vote.DENY, Vote.ALLOW, Vote.DENY)

        assert voter.is_granted("code", None) is Vote.ALLOW

    def test_affirmative_stops_at_first_allow(self):
        first = FixedVoter(Vote.ALLOW)
        second = FixedVoter(Vote.DENY)
        voter = ChainVoter("affirmative", [first, second])

        assert voter.is_allowed("/path", "GET", None) is Vote.ALLOW
        assert second.calls == 0

    def test_affirmative_deny_and_abstain(self):
        assert chain(Strategy.AFFIRMATIVE, Vote.ABSTAIN, Vote.DENY).is_granted("c", None) is Vote.DENY
        assert chain(Strategy.AFFIRMATIVE, Vote.ABSTAIN, Vote.ABSTAIN).is_granted("c", None) is Vote.ABSTAIN

    def test_consensus_majority(self):
        voter = chain(Strategy.CONSENSUS, Vote.ALLOW, Vote.ALLOW, Vote.DENY, Vote.ABSTAIN)

        assert voter.is_granted("code", None) is Vote.ALLOW

    def test_consensus_tie_denies(self):
        voter = chain(Strategy.CONSENSUS, Vote.ALLOW, Vote.DENY, Vote.ABSTAIN)

        assert voter.is_granted("code", None) is Vote.DENY

    def test_consensus_all_abstain_denies(self):
        assert chain(Strategy.CONSENSUS, Vote.ABSTAIN).is_allowed("/", "GET", None) is Vote.DENY

    def test_unanimous_one_deny(self):
        voter = chain(Strategy.UNANIMOUS, Vote.ALLOW, Vote.ALLOW, Vote.DENY, Vote.ALLOW)

        assert voter.is_granted("code", None) is Vote.DENY

    def test_unanimous_abstain_denies(self):
        assert chain(Strategy.UNANIMOUS, Vote.ALLOW, Vote.ABSTAIN).is_granted("c", None) is Vote.DENY

    def test_unanimous_all_allow(self):
        assert chain(Strategy.UNANIMOUS, Vote.ALLOW, Vote.ALLOW).is_allowed("/", "GET", None) is Vote.ALLOW

    def test_nested_empty_chain_abstains(self):
        """Test that a nested empty chain is no opinion, not an allow."""
        voter = ChainVoter(Strategy.UNANIMOUS, [FixedVoter(Vote.ALLOW), ChainVoter()])

        assert voter.is_granted("code", None) is Vote.DENY


class TestChainVoterManagement:
    """Test adding and removing voters."""

    def test_invalid_strategy(self):
        with pytest.raises(SecurityError) as exc:
            ChainVoter("majority")

        assert exc.value.kind is ErrorKind.INVALID_CONFIGURATION

    def test_strategy_from_string(self):
        assert ChainVoter("unanimous").strategy is Strategy.UNANIMOUS

    def test_add_voter_once(self):
        voter = FixedVoter(Vote.ALLOW)
        chained = ChainVoter()

        assert chained.add_voter(voter) is True
        assert chained.add_voter(voter) is False
        assert len(chained) == 1

    def test_remove_voter(self):
        voter = FixedVoter(Vote.ALLOW)
        chained = ChainVoter(voters=[voter])

        assert chained.remove_voter(FixedVoter(Vote.ALLOW)) is False
        assert chained.remove_voter(voter) is True
        assert chained.voters == []

    def test_add_voters_rejects_non_voters(self):
        with pytest.raises(SecurityError) as exc:
            ChainVoter().add_voters([FixedVoter(Vote.ALLOW), "not a voter"])

        assert exc.value.kind is ErrorKind.INVALID_CONFIGURATION


class TestModelVoter:
    """Test decisions answered from a backing store."""

    def test_unknown_permission_is_registered(self, store):
        voter = ModelVoter(store)
        assert not store.has_permission("reports.export")

        assert voter.is_granted("reports.export", None) is Vote.DENY
        assert store.has_permission("reports.export")

    def test_granted_through_role(self, store):
        voter = ModelVoter(store)
        alice = store.get_user_by_username("alice")

        assert voter.is_granted("reports.view", alice) is Vote.ALLOW
        assert voter.is_granted("content.edit", alice) is Vote.DENY

    def test_super_user_granted(self, store):
        voter = ModelVoter(store)

        assert voter.is_granted("anything", store.get_user_by_username("admin")) is Vote.ALLOW

    def test_unsecured_path_allowed_for_anonymous(self, store):
        assert ModelVoter(store).is_allowed("/blog", "GET", None) is Vote.ALLOW

    def test_negated_secured_path(self, store):
        assert ModelVoter(store).is_allowed("/admin/login", "GET", None) is Vote.ALLOW

    def test_secured_path(self, store):
        voter = ModelVoter(store)
        editor = store.get_user_by_username("editor")
        alice = store.get_user_by_username("alice")
        admin = store.get_user_by_username("admin")

        assert voter.is_allowed("/admin/users", "GET", None) is Vote.DENY
        assert voter.is_allowed("/admin/content/42", "POST", editor) is Vote.ALLOW
        assert voter.is_allowed("/admin/users", "GET", editor) is Vote.DENY
        assert voter.is_allowed("/admin/content/42", "GET", alice) is Vote.DENY
        assert voter.is_allowed("/admin/users", "DELETE", admin) is Vote.ALLOW

    def test_higher_role_denial_wins(self, store):
        """Test role precedence when roles disagree about a path."""
        voter = ModelVoter(store)
        admins = store.create_role("admins", weight=10)
        store.set_allowed_paths_to_role(admins, ["/admin**", "!/admin/secret"])
        helpers = store.create_role("helpers", weight=1)
        store.set_allowed_paths_to_role(helpers, ["/admin/secret"])

        eve = store.create_user("eve", "eve-pass")
        store.set_roles_to_user(eve, [helpers, admins])

        assert voter.is_allowed("/admin/secret", "GET", eve) is Vote.DENY
        assert voter.is_allowed("/admin/users", "GET", eve) is Vote.ALLOW

    def test_equal_weight_roles_keep_user_order(self, store):
        voter = ModelVoter(store)
        closed = store.create_role("closed", weight=5)
        store.set_allowed_paths_to_role(closed, ["!/admin/shared**"])
        opened = store.create_role("opened", weight=5)
        store.set_allowed_paths_to_role(opened, ["/admin/shared**"])

        carol = store.create_user("carol")
        store.set_roles_to_user(carol, [closed, opened])
        dave = store.create_user("dave")
        store.set_roles_to_user(dave, [opened, closed])

        assert voter.is_allowed("/admin/shared/doc", "GET", carol) is Vote.DENY
        assert voter.is_allowed("/admin/shared/doc", "GET", dave) is Vote.ALLOW
