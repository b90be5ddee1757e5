import pytest

from evoting import config
from evoting.database import LedgerDatabase
from evoting.deploy import deploy_system
from evoting.ledger import Ledger, ManualClock
from evoting.voting import VotingSystem

MANAGER = "0x" + "aa" * 20
OTHER = "0x" + "bb" * 20
VOTER = "0x" + "cc" * 20
VOTER_2 = "0x" + "dd" * 20

START = 1_700_000_000

@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)

@pytest.fixture
def clock():
    return ManualClock(START)

@pytest.fixture
def database(tmp_path):
    return LedgerDatabase(str(tmp_path / "election.db"))

@pytest.fixture
def ledger(database, clock):
    return Ledger(database, clock=clock)

@pytest.fixture
def deployment(ledger):
    return deploy_system(ledger, MANAGER)

@pytest.fixture
def registry(deployment):
    return deployment.registry

@pytest.fixture
def factory(deployment):
    return deployment.factory

@pytest.fixture(scope="session")
def system():
    return VotingSystem()

@pytest.fixture
def open_election(factory, registry, system, clock):
    """
    Élection à trois options et un votant inscrit, créée avec la fenêtre
    [t0 + 10, t0 + 130] puis horloge avancée de 70 s : le vote est ouvert
    depuis 60 s et se ferme dans 60 s
    """
    now = int(clock())
    address = factory.create_election(MANAGER, "title", "description", now + 10, now + 130, system.public_key)
    election = factory.get_election(address)
    for name in ("a", "b", "c"):
        election.add_option(MANAGER, name, f"option {name}")
    registry.register_or_update_voter(MANAGER, VOTER)
    clock.advance(70)
    return election
