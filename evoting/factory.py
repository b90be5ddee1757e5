from typing import List

from evoting.election import Election
from evoting.errors import AuthorizationError, UnknownContractError
from evoting.ledger import Contract, Ledger
from evoting.registry import VoterRegistry

class ElectionFactory(Contract):
    """Crée les élections et garde la liste de celles déployées"""

    METHODS = {"createElection": "create_election"}

    def __init__(self, ledger: Ledger, manager: str, registry: VoterRegistry):
        self.factory_manager = manager
        self._registry = registry
        self._deployed_elections: List[str] = []
        super().__init__(ledger, manager, registry=registry.address)

    @property
    def registration_authority(self) -> str:
        return self._registry.address

    def create_election(self, caller: str, title: str, description: str,
                        start_time: int, time_limit: int, public_key: str = "") -> str:
        """Déploie une nouvelle élection dont l'appelant devient le gestionnaire"""
        with self.ledger.transaction(caller, self.address, "createElection",
                                     title=title, description=description, start_time=start_time,
                                     time_limit=time_limit, public_key=public_key):
            if caller != self.factory_manager:
                raise AuthorizationError("Seul le gestionnaire de la fabrique peut créer une élection")

            election = Election(
                ledger=self.ledger,
                manager=caller,
                factory=self.address,
                registry=self._registry,
                title=title,
                description=description,
                start_time=start_time,
                time_limit=time_limit,
                public_key=public_key
            )
            self._deployed_elections.append(election.address)
            return election.address

    def get_deployed_elections(self) -> List[str]:
        return list(self._deployed_elections)

    def deployed_elections(self, index: int) -> str:
        return self._deployed_elections[index]

    def get_election(self, address: str) -> Election:
        """Résout l'adresse d'une élection créée par cette fabrique"""
        if address not in self._deployed_elections:
            raise UnknownContractError(f"Aucune élection à l'adresse {address}")
        return self.ledger.get_contract(address, Election)
