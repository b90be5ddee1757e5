import logging
import os

# Base de données (journal des transactions + comptes)
DATABASE_PATH = os.getenv("EVOTING_DATABASE_PATH", "election.db")

# JWT
SECRET_KEY = os.getenv("EVOTING_SECRET_KEY", "votre_clé_secrète_très_longue_et_aléatoire")  # À changer en production !
ALGORITHM = os.getenv("EVOTING_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("EVOTING_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Compte gestionnaire créé au démarrage
ADMIN_USERNAME = os.getenv("EVOTING_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("EVOTING_ADMIN_PASSWORD", "adminpass123")
BCRYPT_ROUNDS = int(os.getenv("EVOTING_BCRYPT_ROUNDS", "12"))

# Serveur
HOST = os.getenv("EVOTING_HOST", "0.0.0.0")
PORT = int(os.getenv("EVOTING_PORT", "8000"))
CORS_ORIGINS = os.getenv("EVOTING_CORS_ORIGINS", "http://localhost:3000").split(",")

# Borne du logarithme discret lors du déchiffrement des résultats
MAX_TALLY = int(os.getenv("EVOTING_MAX_TALLY", "10000"))

LOG_LEVEL = os.getenv("EVOTING_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL):
    """Configure le logging pour le serveur"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
