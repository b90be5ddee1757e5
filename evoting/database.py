import logging
import secrets
import sqlite3
from contextlib import contextmanager
from typing import List, Optional

import bcrypt

from evoting import config
from evoting.errors import DatabaseError
from evoting.models import TransactionRecord

logger = logging.getLogger(__name__)

@contextmanager
def get_db_connection(path: str):
    """Gestionnaire de contexte pour la connexion à la base de données"""
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()

def init_database(path: str):
    """Initialise la base de données avec les tables nécessaires"""
    with get_db_connection(path) as conn:
        cursor = conn.cursor()

        # Table pour les comptes (identités des appelants)
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            address TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        ''')

        # Journal des transactions, en ajout seul
        cursor.execute('''
        CREATE TABLE IF NOT EXISTS transactions (
            seq INTEGER PRIMARY KEY,
            timestamp INTEGER NOT NULL,
            sender TEXT NOT NULL,
            contract TEXT NOT NULL,
            method TEXT NOT NULL,
            args TEXT NOT NULL,
            status TEXT NOT NULL,
            error TEXT DEFAULT NULL,
            previous_hash TEXT NOT NULL,
            hash TEXT NOT NULL
        )
        ''')

        conn.commit()

def generate_password_hash(password: str) -> str:
    """Génère un hash sécurisé du mot de passe"""
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()

def check_password_hash(stored_hash: str, password: str) -> bool:
    """Vérifie si le mot de passe correspond au hash"""
    return bcrypt.checkpw(password.encode(), stored_hash.encode())

def generate_address() -> str:
    """Génère une adresse de compte aléatoire (20 octets en hexadécimal)"""
    return "0x" + secrets.token_hex(20)

def _row_to_record(row) -> TransactionRecord:
    return TransactionRecord(
        seq=row[0],
        timestamp=row[1],
        sender=row[2],
        contract=row[3],
        method=row[4],
        args=row[5],
        status=row[6],
        error=row[7],
        previous_hash=row[8],
        hash=row[9]
    )

class LedgerDatabase:
    def __init__(self, path: str = None):
        """Initialise la base de données"""
        self.path = path or config.DATABASE_PATH
        init_database(self.path)

    def append_transactions(self, records: List[TransactionRecord]):
        """Ajoute les entrées d'une transaction au journal, en un seul commit"""
        try:
            with get_db_connection(self.path) as conn:
                cursor = conn.cursor()
                cursor.executemany('''
                    INSERT INTO transactions (
                        seq, timestamp, sender, contract, method,
                        args, status, error, previous_hash, hash
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', [(
                    record.seq,
                    record.timestamp,
                    record.sender,
                    record.contract,
                    record.method,
                    record.args,
                    record.status,
                    record.error,
                    record.previous_hash,
                    record.hash
                ) for record in records])
                conn.commit()
        except sqlite3.Error as e:
            seqs = ", ".join(str(record.seq) for record in records)
            raise DatabaseError(f"Impossible d'écrire les transactions {seqs} : {e}") from e

    def get_transactions(self, contract: Optional[str] = None) -> List[TransactionRecord]:
        """Récupère le journal, éventuellement filtré par contrat"""
        with get_db_connection(self.path) as conn:
            cursor = conn.cursor()
            query = '''
                SELECT seq, timestamp, sender, contract, method,
                       args, status, error, previous_hash, hash
                FROM transactions
            '''
            if contract is None:
                cursor.execute(query + ' ORDER BY seq')
            else:
                cursor.execute(query + ' WHERE contract = ? ORDER BY seq', (contract,))
            return [_row_to_record(row) for row in cursor.fetchall()]

    def get_last_transaction(self) -> Optional[TransactionRecord]:
        """Récupère la dernière entrée du journal"""
        with get_db_connection(self.path) as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT seq, timestamp, sender, contract, method,
                       args, status, error, previous_hash, hash
                FROM transactions
                ORDER BY seq DESC LIMIT 1
            ''')
            row = cursor.fetchone()
            return _row_to_record(row) if row else None

    def create_account(self, username: str, password: str) -> Optional[str]:
        """Crée un nouveau compte et retourne son adresse"""
        address = generate_address()
        try:
            with get_db_connection(self.path) as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO accounts (username, address, password_hash)
                    VALUES (?, ?, ?)
                ''', (
                    username,
                    address,
                    generate_password_hash(password)
                ))
                conn.commit()
        except sqlite3.IntegrityError:
            return None
        logger.info("Compte %s créé avec l'adresse %s", username, address)
        return address

    def get_account(self, username: str) -> Optional[dict]:
        """Récupère les informations d'un compte"""
        with get_db_connection(self.path) as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT id, username, address, password_hash
                FROM accounts WHERE username = ?
            ''', (username,))
            row = cursor.fetchone()

            if not row:
                return None

            return {
                "id": row[0],
                "username": row[1],
                "address": row[2],
                "password_hash": row[3]
            }

    def verify_password(self, username: str, password: str) -> bool:
        """Vérifie le mot de passe d'un compte"""
        account = self.get_account(username)
        if not account:
            return False
        return check_password_hash(account["password_hash"], password)
