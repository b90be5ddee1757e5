from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

@dataclass
class Voter:
    """Fiche d'un votant dans le registre"""
    address: str
    registered: bool = False
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

@dataclass(frozen=True)
class Option:
    """Option de vote, identifiée par sa position dans l'élection"""
    index: int
    name: str
    description: str

    def to_dict(self) -> dict:
        return asdict(self)

class ElectionState(str, Enum):
    CONFIGURING = "configuring"
    OPEN = "open"
    CLOSED = "closed"
    PUBLISHED = "published"

@dataclass
class TransactionRecord:
    """Une entrée du journal des transactions"""
    seq: int
    timestamp: int
    sender: str
    contract: str
    method: str
    args: str                 # Arguments sérialisés en JSON
    status: str               # 'committed' ou 'rejected'
    error: Optional[str]
    previous_hash: str
    hash: str

    def to_dict(self) -> dict:
        return asdict(self)
