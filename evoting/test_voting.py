import pytest

from evoting.conftest import MANAGER, OTHER, VOTER, VOTER_2
from evoting.elgamal import EGA_encrypt, serialize_bundle
from evoting.errors import AuthorizationError
from evoting.models import ElectionState
from evoting.voting import VotingSystem, run_election


def test_create_vote_is_one_hot(system):
    assert system.create_vote(1, 3) == [0, 1, 0]
    with pytest.raises(ValueError):
        system.create_vote(3, 3)


def test_encrypt_vote_rejects_invalid_vectors(system):
    with pytest.raises(ValueError):
        system.encrypt_vote([1, 1, 0])
    with pytest.raises(ValueError):
        system.encrypt_vote([0, 2, -1])


def test_voter_side_system_cannot_decrypt(open_election):
    voter_system = VotingSystem.for_election(open_election)
    assert voter_system.priv_key is None
    ballot = voter_system.cast_vote(open_election, VOTER, 2)
    with pytest.raises(ValueError):
        voter_system.decrypt_bundle(ballot)


def test_cast_vote_roundtrip(open_election, system):
    ballot = VotingSystem.for_election(open_election).cast_vote(open_election, VOTER, 2)
    assert open_election.get_encrypted_vote_of_voter(VOTER) == ballot
    assert system.decrypt_bundle(ballot) == [0, 0, 1]


@pytest.mark.parametrize("homomorphic", [False, True])
def test_tally_and_publish(open_election, registry, system, clock, homomorphic):
    registry.register_or_update_voter(MANAGER, VOTER_2)
    voter_system = VotingSystem.for_election(open_election)
    voter_system.cast_vote(open_election, VOTER, 0)
    voter_system.cast_vote(open_election, VOTER_2, 0)
    # Le second votant change d'avis
    voter_system.cast_vote(open_election, VOTER_2, 2)

    clock.advance(600)

    results = system.publish_tally(open_election, MANAGER, homomorphic=homomorphic)
    assert results == [1, 0, 1]
    assert open_election.get_results() == [1, 0, 1]
    assert open_election.state() == ElectionState.PUBLISHED


def test_tally_skips_invalid_ballots(open_election, registry, system, clock):
    registry.register_or_update_voter(MANAGER, VOTER_2)
    registry.register_or_update_voter(MANAGER, OTHER)
    VotingSystem.for_election(open_election).cast_vote(open_election, VOTER, 1)
    # Deux votes pour une même élection dans un seul bulletin
    open_election.vote(VOTER_2, serialize_bundle([EGA_encrypt(v, system.pub_key) for v in (1, 1, 0)]))
    open_election.vote(OTHER, "garbage")

    clock.advance(600)

    assert system.tally(open_election) == [0, 1, 0]


def test_tally_without_ballots(open_election, system):
    assert system.tally(open_election) == [0, 0, 0]
    assert system.tally(open_election, homomorphic=True) == [0, 0, 0]


def test_tally_infers_width_without_options(factory, registry, system, clock):
    registry.register_or_update_voter(MANAGER, VOTER)
    now = int(clock())
    election = factory.get_election(
        factory.create_election(MANAGER, "", "", now - 60, now + 60, system.public_key)
    )
    election.vote(VOTER, system.encrypt_vote([0, 1, 0]))
    clock.advance(600)
    assert system.tally(election) == [0, 1, 0]


def test_combine_rejects_mismatched_widths(system):
    with pytest.raises(ValueError):
        system.combine_encrypted_votes([system.encrypt_vote([1, 0]), system.encrypt_vote([0, 0, 1])])
    with pytest.raises(ValueError):
        system.combine_encrypted_votes([])


def test_publish_tally_requires_manager(open_election, system, clock):
    clock.advance(600)
    with pytest.raises(AuthorizationError):
        system.publish_tally(open_election, OTHER)


def test_run_election(tmp_path):
    results = run_election(num_voters=4, num_candidates=3, database_path=str(tmp_path / "sim.db"))
    assert len(results) == 3
    assert sum(results) == 4


def test_homomorphic_tally_skips_malformed_ballots(open_election, registry, system, clock):
    registry.register_or_update_voter(MANAGER, VOTER_2)
    registry.register_or_update_voter(MANAGER, OTHER)
    VotingSystem.for_election(open_election).cast_vote(open_election, VOTER, 1)
    open_election.vote(VOTER_2, "garbage")
    # Bulletin à deux options pour une élection qui en a trois
    open_election.vote(OTHER, system.encrypt_vote([1, 0]))

    clock.advance(600)

    assert system.publish_tally(open_election, MANAGER, homomorphic=True) == [0, 1, 0]
    assert open_election.state() == ElectionState.PUBLISHED


def test_homomorphic_tally_falls_back_on_oversized_ballot(open_election, registry, system, clock):
    registry.register_or_update_voter(MANAGER, VOTER_2)
    VotingSystem.for_election(open_election).cast_vote(open_election, VOTER, 2)
    open_election.vote(VOTER_2, serialize_bundle([EGA_encrypt(v, system.pub_key) for v in (5, 0, 0)]))

    clock.advance(600)

    assert system.tally(open_election, homomorphic=True) == [0, 0, 1]


def test_homomorphic_tally_falls_back_on_double_vote(open_election, registry, system, clock):
    registry.register_or_update_voter(MANAGER, VOTER_2)
    VotingSystem.for_election(open_election).cast_vote(open_election, VOTER, 0)
    # La somme [1, 1, 1] se déchiffre mais ne compte pas deux bulletins
    open_election.vote(VOTER_2, serialize_bundle([EGA_encrypt(v, system.pub_key) for v in (0, 1, 1)]))

    clock.advance(600)

    assert system.tally(open_election, homomorphic=True) == [1, 0, 0]
