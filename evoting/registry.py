from dataclasses import replace
from typing import Dict, Optional

from evoting.errors import AuthorizationError
from evoting.ledger import Contract, Ledger
from evoting.models import Voter

class VoterRegistry(Contract):
    """Registre des votants éligibles, administré par un unique gestionnaire"""

    METHODS = {
        "registerOrUpdateVoter": "register_or_update_voter",
        "unregisterVoter": "unregister_voter",
    }

    def __init__(self, ledger: Ledger, manager: str):
        self.manager = manager
        self._voters: Dict[str, Voter] = {}
        self._number_of_voters = 0
        super().__init__(ledger, manager)

    def _require_manager(self, caller: str):
        if caller != self.manager:
            raise AuthorizationError("Seul le gestionnaire du registre peut modifier les votants")

    def register_or_update_voter(self, caller: str, address: str, first_name: str = "",
                                 last_name: str = "", email: str = "", phone: str = ""):
        """Inscrit un votant ou met à jour sa fiche"""
        with self.ledger.transaction(caller, self.address, "registerOrUpdateVoter", address=address,
                                     first_name=first_name, last_name=last_name, email=email, phone=phone):
            self._require_manager(caller)

            # Le compteur ne bouge qu'au passage non inscrit -> inscrit
            if not self.is_voter(address):
                self._number_of_voters += 1

            self._voters[address] = Voter(
                address=address,
                registered=True,
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone
            )

    def unregister_voter(self, caller: str, address: str):
        """Retire l'éligibilité d'un votant"""
        with self.ledger.transaction(caller, self.address, "unregisterVoter", address=address):
            self._require_manager(caller)

            if self.is_voter(address):
                self._voters[address] = replace(self._voters[address], registered=False)
                self._number_of_voters -= 1

    def is_voter(self, address: str) -> bool:
        voter = self._voters.get(address)
        return voter is not None and voter.registered

    def get_voter(self, address: str) -> Optional[Voter]:
        voter = self._voters.get(address)
        return replace(voter) if voter is not None else None

    def get_number_of_voters(self) -> int:
        return self._number_of_voters
