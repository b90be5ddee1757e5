import json

import pytest

from evoting.conftest import MANAGER, OTHER, START, VOTER, VOTER_2
from evoting.database import get_db_connection
from evoting.deploy import restore_system
from evoting.errors import AuthorizationError, DatabaseError, UnknownContractError
from evoting.ledger import GENESIS_HASH, H, Ledger, ManualClock
from evoting.registry import VoterRegistry


def test_deployments_are_logged(ledger, registry, factory):
    records = ledger.get_transactions()
    assert [(r.method, r.contract, r.sender) for r in records] == [
        ("deploy", registry.address, MANAGER),
        ("deploy", factory.address, MANAGER),
    ]
    assert records[0].previous_hash == GENESIS_HASH
    assert records[1].previous_hash == records[0].hash


def test_contract_addresses_are_distinct(ledger):
    addresses = {VoterRegistry(ledger, MANAGER).address for _ in range(5)}
    assert len(addresses) == 5


def test_committed_and_rejected_operations(ledger, registry, clock):
    registry.register_or_update_voter(MANAGER, VOTER)
    clock.advance(5)
    with pytest.raises(AuthorizationError):
        registry.unregister_voter(OTHER, VOTER)

    records = ledger.get_transactions(registry.address)
    assert [(r.method, r.status, r.error) for r in records] == [
        ("deploy", "committed", None),
        ("registerOrUpdateVoter", "committed", None),
        ("unregisterVoter", "rejected", "AuthorizationError"),
    ]
    assert json.loads(records[1].args) == {
        "address": VOTER, "first_name": "", "last_name": "", "email": "", "phone": ""
    }
    assert records[2].timestamp == records[1].timestamp + 5


def test_election_transactions_are_logged(ledger, factory, clock):
    now = int(clock())
    address = factory.create_election(MANAGER, "t", "d", now, now + 10)
    methods = [r.method for r in ledger.get_transactions()]
    assert methods[-2:] == ["deploy", "createElection"]
    assert ledger.get_transactions(address)[0].sender == factory.address


def test_chain_verifies(ledger, registry):
    registry.register_or_update_voter(MANAGER, VOTER)
    registry.unregister_voter(MANAGER, VOTER)
    assert ledger.verify_chain() is True


def test_tampering_is_detected(ledger, registry, database):
    registry.register_or_update_voter(MANAGER, VOTER)
    with get_db_connection(database.path) as conn:
        conn.execute("UPDATE transactions SET sender = ? WHERE method = 'registerOrUpdateVoter'", (OTHER,))
        conn.commit()
    assert ledger.verify_chain() is False


def test_chain_continues_across_instances(ledger, registry, database, clock):
    last = ledger.get_transactions()[-1]
    reopened = Ledger(database, clock=clock)
    VoterRegistry(reopened, MANAGER)

    records = reopened.get_transactions()
    assert records[-1].seq == last.seq + 1
    assert records[-1].previous_hash == last.hash
    assert reopened.verify_chain() is True


def test_get_contract(ledger, registry):
    assert ledger.get_contract(registry.address) is registry
    assert ledger.get_contract(registry.address, VoterRegistry) is registry
    with pytest.raises(UnknownContractError):
        ledger.get_contract("0x" + "00" * 20)


def fail_writes(database, monkeypatch):
    """Toute écriture du journal échoue, comme un disque plein ou une base verrouillée"""
    def append_transactions(records):
        raise DatabaseError("database is locked")
    monkeypatch.setattr(database, "append_transactions", append_transactions)


def test_failed_write_rolls_back_vote(ledger, open_election, database, monkeypatch):
    before = ledger.get_transactions()
    fail_writes(database, monkeypatch)
    with pytest.raises(DatabaseError):
        open_election.vote(VOTER, "ballot")
    assert open_election.has_voted(VOTER) is False
    assert open_election.get_voters() == []

    # Une fois le stockage revenu, la chaîne reprend sans trou
    monkeypatch.undo()
    open_election.vote(VOTER, "ballot")
    records = ledger.get_transactions()
    assert records[:-1] == before
    assert records[-1].seq == before[-1].seq + 1
    assert ledger.verify_chain() is True


def test_failed_write_rolls_back_registration(registry, database, monkeypatch):
    fail_writes(database, monkeypatch)
    with pytest.raises(DatabaseError):
        registry.register_or_update_voter(MANAGER, VOTER, first_name="Alice")
    assert registry.is_voter(VOTER) is False
    assert registry.get_voter(VOTER) is None
    assert registry.get_number_of_voters() == 0


def test_failed_write_rolls_back_election_deployment(ledger, factory, clock, database, monkeypatch):
    now = int(clock())
    seq = ledger.get_transactions()[-1].seq
    fail_writes(database, monkeypatch)
    with pytest.raises(DatabaseError):
        factory.create_election(MANAGER, "t", "d", now, now + 10)
    assert factory.get_deployed_elections() == []
    # L'adresse calculée pour l'élection n'est pas restée enregistrée
    address = "0x" + H(f"{factory.address}:{seq + 1}".encode())[-40:]
    with pytest.raises(UnknownContractError):
        ledger.get_contract(address)


def test_failed_write_of_rejection(registry, database, monkeypatch):
    fail_writes(database, monkeypatch)
    with pytest.raises(DatabaseError):
        registry.unregister_voter(OTHER, VOTER)
    assert registry.get_number_of_voters() == 0


class CountingClock(ManualClock):
    def __init__(self, start):
        super().__init__(start)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return super().__call__()


def test_clock_is_read_once_per_transaction(database):
    clock = CountingClock(START)
    ledger = Ledger(database, clock=clock)
    registry = VoterRegistry(ledger, MANAGER)
    registry.register_or_update_voter(MANAGER, VOTER)

    clock.calls = 0
    registry.unregister_voter(MANAGER, VOTER)
    assert clock.calls == 1
    assert ledger.get_transactions()[-1].timestamp == START


def test_vote_timestamp_is_the_checked_time(ledger, open_election, clock):
    open_election.vote(VOTER, "ballot")
    record = ledger.get_transactions(open_election.address)[-1]
    assert record.method == "vote"
    assert record.timestamp == int(clock())
    assert open_election.start_time <= record.timestamp <= open_election.time_limit


def test_restore_rebuilds_contracts(database, deployment, open_election, registry, clock):
    registry.register_or_update_voter(MANAGER, VOTER_2, first_name="Bob", email="bob@example.org")
    open_election.vote(VOTER, "ballot 1")
    open_election.vote(VOTER_2, "ballot 2")
    open_election.vote(VOTER, "ballot 3")
    with pytest.raises(AuthorizationError):
        open_election.vote(OTHER, "ballot")
    clock.advance(600)
    open_election.publish_results(MANAGER, [1, 0, 1])
    count = len(deployment.ledger.get_transactions())

    restored = restore_system(Ledger(database, clock=clock))
    assert restored.registry.address == registry.address
    assert restored.factory.address == deployment.factory.address
    assert restored.registry.get_number_of_voters() == 2
    assert restored.registry.get_voter(VOTER_2).email == "bob@example.org"

    election = restored.factory.get_election(open_election.address)
    assert [o.name for o in election.get_options()] == ["a", "b", "c"]
    assert election.get_voters() == [VOTER, VOTER_2]
    assert election.get_encrypted_vote_of_voter(VOTER) == "ballot 3"
    assert election.get_results() == [1, 0, 1]
    assert election.public_key == open_election.public_key

    # Le rejeu n'écrit rien et la chaîne reprend après la dernière entrée
    assert len(restored.ledger.get_transactions()) == count
    restored.registry.unregister_voter(MANAGER, VOTER_2)
    assert restored.ledger.get_transactions()[-1].seq == count
    assert restored.ledger.verify_chain() is True


def test_restore_empty_log(database):
    assert restore_system(Ledger(database)) is None


def test_restore_detects_tampering(database, registry, open_election):
    open_election.vote(VOTER, "ballot")
    with get_db_connection(database.path) as conn:
        conn.execute("""UPDATE transactions SET args = '{"ballot": "forged"}' WHERE method = 'vote'""")
        conn.commit()
    with pytest.raises(DatabaseError):
        restore_system(Ledger(database))
