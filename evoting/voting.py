import logging
import os
import tempfile
from secrets import randbelow
from typing import List, Optional, Tuple

from evoting import config
from evoting.database import LedgerDatabase
from evoting.deploy import deploy_system
from evoting.election import Election
from evoting.elgamal import (
    Ciphertext, EG_generate_keys, EGA_encrypt, EGA_decrypt, EGA_combine, EGA_identity,
    serialize_key, deserialize_key, serialize_bundle, deserialize_bundle
)
from evoting.ledger import Ledger, ManualClock

logger = logging.getLogger(__name__)

class VotingSystem:
    def __init__(self, election_keys: Tuple[Optional[int], int] = None):
        """
        Initialise le système de vote

        Args:
            election_keys: (clé privée, clé publique) de l'élection. Générées si
                absentes. La clé privée vaut None côté votant.
        """
        if election_keys is None:
            self.priv_key, self.pub_key = EG_generate_keys()
        else:
            self.priv_key, self.pub_key = election_keys

    @classmethod
    def for_election(cls, election: Election) -> "VotingSystem":
        """Système côté votant : seule la clé publique de l'élection est connue"""
        return cls(election_keys=(None, deserialize_key(election.public_key)))

    @property
    def public_key(self) -> str:
        return serialize_key(self.pub_key)

    def create_vote(self, candidate: int, num_candidates: int) -> List[int]:
        """Crée un vote pour un candidat (liste de 0 et 1)"""
        if not 0 <= candidate < num_candidates:
            raise ValueError("Candidat invalide")
        return [1 if i == candidate else 0 for i in range(num_candidates)]

    def encrypt_vote(self, vote_list: List[int]) -> str:
        """Chiffre un vote et retourne le bulletin sérialisé"""
        if sum(vote_list) != 1 or any(v not in (0, 1) for v in vote_list):
            raise ValueError("Vote invalide: un seul candidat doit être choisi")
        return serialize_bundle([EGA_encrypt(vote, self.pub_key) for vote in vote_list])

    def cast_vote(self, election: Election, voter: str, candidate: int) -> str:
        """Chiffre le choix du votant et le dépose dans l'élection"""
        ballot = self.encrypt_vote(self.create_vote(candidate, len(election.get_options())))
        election.vote(voter, ballot)
        return ballot

    def _require_private_key(self):
        if self.priv_key is None:
            raise ValueError("La clé privée de l'élection est requise pour déchiffrer")

    def decrypt_bundle(self, ballot: str, max_message: int = 1) -> List[int]:
        """Déchiffre un bulletin, option par option"""
        self._require_private_key()
        return [
            EGA_decrypt(self.priv_key, c1, c2, max_message)
            for c1, c2 in deserialize_bundle(ballot)
        ]

    def combine_encrypted_votes(self, ballots: List[str]) -> List[Ciphertext]:
        """Combine les votes chiffrés en utilisant la propriété homomorphique"""
        if not ballots:
            raise ValueError("Aucun bulletin à combiner")

        bundles = [deserialize_bundle(ballot) for ballot in ballots]
        width = len(bundles[0])
        if any(len(bundle) != width for bundle in bundles):
            raise ValueError("Les bulletins n'ont pas tous le même nombre d'options")

        result = [EGA_identity() for _ in range(width)]
        for bundle in bundles:
            for i in range(width):
                result[i] = EGA_combine(result[i], bundle[i])
        return result

    def decrypt_result(self, combined_votes: List[Ciphertext], max_votes: int = None) -> List[int]:
        """Déchiffre le résultat combiné"""
        self._require_private_key()
        if max_votes is None:
            max_votes = config.MAX_TALLY
        return [EGA_decrypt(self.priv_key, c1, c2, max_votes) for c1, c2 in combined_votes]

    def tally(self, election: Election, homomorphic: bool = False) -> List[int]:
        """
        Dépouille une élection.

        Par défaut chaque bulletin est déchiffré séparément ; un bulletin qui
        n'est pas un vote valide (un seul 1, une valeur par option) est écarté.
        Avec homomorphic=True les bulletins bien formés sont d'abord combinés
        puis la somme est déchiffrée : aucun bulletin individuel n'est révélé.
        Si la somme est incohérente (déchiffrement impossible, total différent
        du nombre de bulletins), un bulletin non one-hot a été déposé et le
        dépouillement reprend bulletin par bulletin.
        """
        num_options = len(election.get_options())

        if homomorphic:
            ballots = self._well_formed_ballots(election, num_options)
            if not ballots:
                return [0] * num_options
            try:
                results = self.decrypt_result(self.combine_encrypted_votes(ballots), max_votes=len(ballots))
            except ValueError as e:
                logger.warning("Somme homomorphe indéchiffrable (%s), dépouillement bulletin par bulletin", e)
            else:
                if sum(results) == len(ballots):
                    return results
                logger.warning("Somme homomorphe incohérente, dépouillement bulletin par bulletin")

        results = [0] * num_options
        for voter in election.get_voters():
            try:
                vote = self.decrypt_bundle(election.get_encrypted_vote_of_voter(voter))
            except ValueError as e:
                logger.warning("Bulletin de %s écarté : %s", voter, e)
                continue
            # Sans options déclarées, le premier bulletin lisible fixe la taille
            if not results:
                results = [0] * len(vote)
            if len(vote) != len(results) or sum(vote) != 1:
                logger.warning("Bulletin de %s écarté : vote invalide", voter)
                continue
            results = [r + v for r, v in zip(results, vote)]
        return results

    def _well_formed_ballots(self, election: Election, width: int) -> List[str]:
        """Bulletins lisibles et de la bonne taille ; les autres sont écartés"""
        ballots = []
        for voter in election.get_voters():
            ballot = election.get_encrypted_vote_of_voter(voter)
            try:
                bundle = deserialize_bundle(ballot)
            except ValueError as e:
                logger.warning("Bulletin de %s écarté : %s", voter, e)
                continue
            # Sans options déclarées, le premier bulletin lisible fixe la taille
            if not width:
                width = len(bundle)
            if len(bundle) != width:
                logger.warning("Bulletin de %s écarté : %d options au lieu de %d", voter, len(bundle), width)
                continue
            ballots.append(ballot)
        return ballots

    def publish_tally(self, election: Election, caller: str, homomorphic: bool = False) -> List[int]:
        """Dépouille puis publie les résultats au nom du gestionnaire"""
        results = self.tally(election, homomorphic=homomorphic)
        election.publish_results(caller, results)
        return results

def run_election(num_voters: int = 10, num_candidates: int = 5, database_path: str = None) -> List[int]:
    """Exécute une élection complète sur un registre simulé"""
    if database_path is None:
        database_path = os.path.join(tempfile.mkdtemp(), "simulation.db")

    clock = ManualClock()
    ledger = Ledger(LedgerDatabase(database_path), clock=clock)
    manager = "0x" + "00" * 19 + "01"
    deployment = deploy_system(ledger, manager)

    system = VotingSystem()
    now = ledger.now()
    address = deployment.factory.create_election(
        manager, "Simulation", "Élection simulée", now + 60, now + 3600, system.public_key
    )
    election = deployment.factory.get_election(address)
    for i in range(num_candidates):
        election.add_option(manager, f"Candidat {i + 1}", "")

    voters = [f"0x{i + 2:040x}" for i in range(num_voters)]
    for voter in voters:
        deployment.registry.register_or_update_voter(manager, voter)

    # Ouverture du vote
    clock.advance(60)
    for voter in voters:
        VotingSystem.for_election(election).cast_vote(election, voter, randbelow(num_candidates))

    # Clôture puis publication
    clock.advance(3600)
    results = system.publish_tally(election, manager, homomorphic=True)

    logger.info("Résultats de l'élection : %s", results)
    for i, count in enumerate(results):
        print(f"Candidat {i+1}: {count} votes")

    return results

if __name__ == "__main__":
    config.configure_logging()
    run_election()
