import json
import logging
from dataclasses import dataclass
from typing import Optional

from evoting.errors import ElectionError
from evoting.factory import ElectionFactory
from evoting.ledger import Ledger
from evoting.registry import VoterRegistry

logger = logging.getLogger(__name__)

@dataclass
class Deployment:
    """Contrats de base d'un registre : registre des votants et fabrique"""
    ledger: Ledger
    registry: VoterRegistry
    factory: ElectionFactory

def deploy_system(ledger: Ledger, manager: str) -> Deployment:
    """Déploie le registre des votants puis la fabrique qui y est liée"""
    registry = VoterRegistry(ledger, manager)
    factory = ElectionFactory(ledger, manager, registry)
    logger.info("Registre %s et fabrique %s déployés par %s", registry.address, factory.address, manager)
    return Deployment(ledger=ledger, registry=registry, factory=factory)

def restore_system(ledger: Ledger) -> Optional[Deployment]:
    """
    Reconstruit les contrats en rejouant le journal de transactions.

    Chaque opération enregistrée est réexécutée avec ses arguments et son
    horodatage d'origine. Les élections sont redéployées par le createElection
    qui les a créées. Retourne la dernière fabrique déployée et son registre,
    ou None si le journal ne contient aucune fabrique.
    """
    factory = None
    with ledger.replaying() as records:
        for record in records:
            args = json.loads(record.args)

            if record.method == "deploy":
                contract_type = args.pop("type")
                if contract_type == "VoterRegistry":
                    VoterRegistry(ledger, record.sender)
                elif contract_type == "ElectionFactory":
                    registry = ledger.get_contract(args["registry"], VoterRegistry)
                    factory = ElectionFactory(ledger, record.sender, registry)
                continue

            contract = ledger.get_contract(record.contract)
            try:
                contract.call(record.method, record.sender, **args)
            except ElectionError as e:
                # Le journal a vérifié que l'opération avait déjà été rejetée
                logger.debug("%s.%s rejeté à nouveau : %s", record.contract, record.method, e)

    if factory is None:
        return None
    registry = ledger.get_contract(factory.registration_authority, VoterRegistry)
    logger.info("Registre %s et fabrique %s restaurés depuis le journal", registry.address, factory.address)
    return Deployment(ledger=ledger, registry=registry, factory=factory)
