import logging
from typing import Dict, List, Optional

from evoting.errors import (
    AlreadyPublishedError, AuthorizationError, ResultsMismatchError, WindowError
)
from evoting.ledger import Contract, Ledger
from evoting.models import ElectionState, Option
from evoting.registry import VoterRegistry

logger = logging.getLogger(__name__)

class Election(Contract):
    """
    Élection à bulletins chiffrés.

    Cycle de vie :
        CONFIGURING  avant start_time, le gestionnaire ajoute les options
        OPEN         start_time <= now <= time_limit, les votants inscrits votent
        CLOSED       now > time_limit, en attente de publication
        PUBLISHED    résultats publiés, état final

    Les bulletins sont des chaînes opaques (un chiffré par option) : l'élection
    ne les déchiffre jamais. Un nouveau vote remplace le précédent.
    """

    METHODS = {
        "addOption": "add_option",
        "vote": "vote",
        "publishResults": "publish_results",
    }

    def __init__(self, ledger: Ledger, manager: str, factory: str, registry: VoterRegistry,
                 title: str, description: str, start_time: int, time_limit: int,
                 public_key: str = ""):
        self.election_manager = manager
        self.election_factory = factory
        self._registry = registry
        self.title = title
        self.description = description
        self.start_time = start_time
        self.time_limit = time_limit
        self.public_key = public_key

        self._options: List[Option] = []
        self._ballots: Dict[str, str] = {}
        self._voters: List[str] = []
        self._results: List[int] = []
        self._published = False

        super().__init__(ledger, factory)

    @property
    def registration_authority(self) -> str:
        return self._registry.address

    @property
    def end_time(self) -> int:
        return self.time_limit

    def state(self, now: Optional[int] = None) -> ElectionState:
        """État courant, évalué par rapport à l'horloge du registre"""
        if self._published:
            return ElectionState.PUBLISHED
        if now is None:
            now = self.ledger.now()
        if now > self.time_limit:
            return ElectionState.CLOSED
        if now >= self.start_time:
            return ElectionState.OPEN
        return ElectionState.CONFIGURING

    def _require_manager(self, caller: str):
        if caller != self.election_manager:
            raise AuthorizationError("Seul le gestionnaire de l'élection peut effectuer cette opération")

    def add_option(self, caller: str, name: str, description: str) -> int:
        """Ajoute une option de vote et retourne son indice"""
        with self.ledger.transaction(caller, self.address, "addOption", name=name, description=description):
            self._require_manager(caller)
            if self._ballots or self.state() != ElectionState.CONFIGURING:
                raise WindowError("Les options ne peuvent plus être modifiées une fois le vote ouvert")

            option = Option(index=len(self._options), name=name, description=description)
            self._options.append(option)
            return option.index

    def get_options(self) -> List[Option]:
        return list(self._options)

    def vote(self, caller: str, ballot: str):
        """Enregistre (ou remplace) le bulletin chiffré de l'appelant"""
        with self.ledger.transaction(caller, self.address, "vote", ballot=ballot):
            if not self._registry.is_voter(caller):
                raise AuthorizationError(f"{caller} n'est pas un votant inscrit")
            now = self.ledger.now()
            if not self.start_time <= now <= self.time_limit:
                raise WindowError(
                    f"Vote hors de la période [{self.start_time}, {self.time_limit}] (maintenant : {now})"
                )

            if caller not in self._ballots:
                self._voters.append(caller)
            else:
                logger.debug("Le votant %s remplace son bulletin", caller)
            self._ballots[caller] = ballot

    def has_voted(self, address: str) -> bool:
        return address in self._ballots

    def get_encrypted_vote_of_voter(self, address: str) -> str:
        """Dernier bulletin déposé par ce votant ('' s'il n'a pas voté)"""
        return self._ballots.get(address, "")

    def get_voters(self) -> List[str]:
        """Adresses des votants, dans l'ordre de leur premier vote"""
        return list(self._voters)

    def get_number_of_ballots(self) -> int:
        return len(self._ballots)

    def publish_results(self, caller: str, results: List[int]):
        """Publie les résultats déchiffrés, une seule fois, après la clôture du vote"""
        with self.ledger.transaction(caller, self.address, "publishResults", results=list(results)):
            self._require_manager(caller)
            if self._published:
                raise AlreadyPublishedError("Les résultats de cette élection sont déjà publiés")
            if self.state() != ElectionState.CLOSED:
                raise WindowError("Les résultats ne peuvent être publiés qu'après la clôture du vote")
            if self._options and len(results) != len(self._options):
                raise ResultsMismatchError(
                    f"{len(results)} résultats pour {len(self._options)} options"
                )
            # bool est une sous-classe de int
            if any(type(r) is not int or r < 0 for r in results):
                raise ResultsMismatchError("Les résultats doivent être des entiers positifs")

            self._results = list(results)
            self._published = True

    def get_results(self) -> List[int]:
        return list(self._results)
