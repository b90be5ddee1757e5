"""
Registre local des transactions.

Chaque opération qui modifie un contrat (registre des votants, fabrique,
élection) passe par Ledger.transaction : le verrou est tenu pendant toute la
séquence vérification + écriture, et les entrées de la transaction sont
écrites au journal en un seul commit (sinon l'état du contrat est restauré).
Les entrées sont chaînées par SHA-256, ce qui rend le journal vérifiable :

    hash_n = SHA256(seq, timestamp, sender, contract, method, args, status, error, hash_{n-1})
"""
import copy
import json
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from Crypto.Hash import SHA256

from evoting.database import LedgerDatabase
from evoting.errors import DatabaseError, ElectionError, UnknownContractError
from evoting.models import TransactionRecord

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

def H(data: bytes) -> str:
    """Fonction de hachage SHA-256 du journal"""
    return SHA256.new(data).hexdigest()

def hash_record(seq: int, timestamp: int, sender: str, contract: str, method: str,
                args: str, status: str, error: Optional[str], previous_hash: str) -> str:
    content = json.dumps(
        [seq, timestamp, sender, contract, method, args, status, error, previous_hash],
        separators=(",", ":")
    )
    return H(content.encode())

class ManualClock:
    """Horloge avancée à la main (simulations, tests)"""

    def __init__(self, start: float = None):
        self.current = time.time() if start is None else start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float):
        self.current += seconds

class Ledger:
    def __init__(self, database: LedgerDatabase, clock: Callable[[], float] = time.time):
        """
        Args:
            database: Stockage du journal des transactions
            clock: Horloge ambiante, en secondes depuis l'epoch
        """
        self.db = database
        self._clock = clock
        self._lock = threading.RLock()
        self._contracts: Dict[str, "Contract"] = {}

        # Transaction en cours : entrées en attente, contrats déployés, horodatage
        self._active = False
        self._pending: List[TransactionRecord] = []
        self._deployed: List[str] = []
        self._tx_time: Optional[int] = None
        # Entrées attendues pendant un rejeu du journal, indexées par seq
        self._expected: Optional[Dict[int, TransactionRecord]] = None

        # Reprend la chaîne là où le journal existant s'arrête
        last = database.get_last_transaction()
        self._next_seq = last.seq + 1 if last else 0
        self._last_hash = last.hash if last else GENESIS_HASH
        self._start = (self._next_seq, self._last_hash)

    def now(self) -> int:
        """Horodatage courant, à la seconde ; fixe pendant toute une transaction"""
        if self._tx_time is not None:
            return self._tx_time
        return int(self._clock())

    @contextmanager
    def transaction(self, sender: str, contract: str, method: str, **args):
        """
        Exécute une opération de façon atomique et la consigne au journal.

        L'état du contrat est capturé avant l'opération. Les entrées produites
        (y compris les déploiements imbriqués) sont écrites en un seul commit
        à la fin ; si l'écriture échoue, l'état capturé est restauré.
        """
        with self._lock:
            if self._active:
                raise RuntimeError("Une transaction est déjà en cours")
            self._begin()
            target = self._contracts.get(contract)
            snapshot = target.snapshot() if target is not None else None
            try:
                yield
            except ElectionError as e:
                self._rollback(target, snapshot)
                self._finish(sender, contract, method, args, "rejected", type(e).__name__, target, snapshot)
                logger.warning("%s.%s rejeté pour %s : %s", contract, method, sender, e)
                raise
            except Exception:
                self._rollback(target, snapshot)
                self._end()
                raise
            self._finish(sender, contract, method, args, "committed", None, target, snapshot)
            logger.info("%s.%s validé pour %s", contract, method, sender)

    def deploy(self, contract: "Contract", creator: str, **args) -> str:
        """Attribue une adresse à un nouveau contrat et l'enregistre"""
        with self._lock:
            standalone = not self._active
            if standalone:
                self._begin()
            address = "0x" + H(f"{creator}:{self._next_seq}".encode())[-40:]
            self._contracts[address] = contract
            self._deployed.append(address)

            args = dict(args, type=type(contract).__name__)
            if standalone:
                self._finish(creator, address, "deploy", args, "committed", None, None, None)
            else:
                self._stage(creator, address, "deploy", args, "committed", None)
            logger.info("%s déployé à l'adresse %s", type(contract).__name__, address)
            return address

    @contextmanager
    def replaying(self):
        """
        Rejoue le journal existant pour reconstruire les contrats.

        L'appelant réexécute chaque opération dans l'ordre ; chaque entrée
        produite doit être identique à l'entrée enregistrée, et rien n'est
        écrit. Un écart lève DatabaseError.
        """
        with self._lock:
            records = self.db.get_transactions()
            self._expected = {record.seq: record for record in records}
            self._contracts = {}
            self._next_seq, self._last_hash = 0, GENESIS_HASH
            try:
                yield records
                if self._next_seq != len(records):
                    raise DatabaseError(
                        f"Journal partiellement rejoué : {self._next_seq} entrées sur {len(records)}"
                    )
            finally:
                self._expected = None
            logger.info("%d transactions rejouées, %d contrats reconstruits", len(records), len(self._contracts))

    def get_contract(self, address: str, expected_type: type = None) -> "Contract":
        """Résout une adresse en contrat"""
        contract = self._contracts.get(address)
        if contract is None or (expected_type is not None and not isinstance(contract, expected_type)):
            raise UnknownContractError(f"Aucun contrat à l'adresse {address}")
        return contract

    def get_transactions(self, contract: Optional[str] = None) -> List[TransactionRecord]:
        return self.db.get_transactions(contract)

    def verify_chain(self) -> bool:
        """Recalcule les hachages du journal et vérifie leur chaînage"""
        previous_hash = GENESIS_HASH
        for record in self.db.get_transactions():
            if record.previous_hash != previous_hash:
                return False
            expected = hash_record(
                record.seq, record.timestamp, record.sender, record.contract,
                record.method, record.args, record.status, record.error,
                record.previous_hash
            )
            if record.hash != expected:
                return False
            previous_hash = record.hash
        return True

    def _begin(self):
        self._active = True
        self._pending = []
        self._deployed = []
        self._start = (self._next_seq, self._last_hash)
        if self._expected is not None and self._next_seq in self._expected:
            self._tx_time = self._expected[self._next_seq].timestamp
        else:
            self._tx_time = int(self._clock())

    def _end(self):
        self._active = False
        self._pending = []
        self._deployed = []
        self._tx_time = None

    def _rollback(self, target: Optional["Contract"], snapshot: Optional[dict]):
        """Annule les effets en mémoire de la transaction en cours"""
        if target is not None:
            target.restore(snapshot)
        for address in self._deployed:
            self._contracts.pop(address, None)
        self._deployed = []
        self._pending = []
        self._next_seq, self._last_hash = self._start

    def _finish(self, sender: str, contract: str, method: str, args: dict, status: str,
                error: Optional[str], target: Optional["Contract"], snapshot: Optional[dict]):
        """Ajoute l'entrée finale puis écrit toute la transaction d'un bloc"""
        try:
            self._stage(sender, contract, method, args, status, error)
            if self._expected is not None:
                self._check_replay()
            else:
                self.db.append_transactions(self._pending)
        except Exception:
            self._rollback(target, snapshot)
            raise
        finally:
            self._end()

    def _check_replay(self):
        for record in self._pending:
            if self._expected.get(record.seq) != record:
                raise DatabaseError(f"Le journal diverge à la transaction {record.seq}")

    def _stage(self, sender: str, contract: str, method: str, args: dict,
               status: str, error: Optional[str]):
        seq = self._next_seq
        timestamp = self._tx_time
        args_json = json.dumps(args, sort_keys=True, default=str)
        record = TransactionRecord(
            seq=seq,
            timestamp=timestamp,
            sender=sender,
            contract=contract,
            method=method,
            args=args_json,
            status=status,
            error=error,
            previous_hash=self._last_hash,
            hash=hash_record(seq, timestamp, sender, contract, method,
                             args_json, status, error, self._last_hash)
        )
        self._pending.append(record)
        self._next_seq = seq + 1
        self._last_hash = record.hash

class Contract:
    """Contrat déployé : une adresse et un accès au registre"""

    # Nom d'opération du journal -> méthode Python, pour le rejeu
    METHODS: Dict[str, str] = {}
    # Références vers d'autres contrats, jamais copiées
    SHARED = ("_ledger", "_registry")

    def __init__(self, ledger: Ledger, creator: str, **deploy_args):
        self._ledger = ledger
        self.address = ledger.deploy(self, creator, **deploy_args)

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    def snapshot(self) -> dict:
        """Copie de l'état du contrat ; les valeurs stockées ne sont jamais modifiées en place"""
        return {key: copy.copy(value) for key, value in vars(self).items() if key not in self.SHARED}

    def restore(self, state: dict):
        vars(self).update(state)

    def call(self, method: str, caller: str, **args):
        """Exécute une opération du journal par son nom"""
        return getattr(self, self.METHODS[method])(caller, **args)
