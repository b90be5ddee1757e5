from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from evoting import config
from evoting.database import LedgerDatabase

security = HTTPBearer()

def create_access_token(db: LedgerDatabase, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Crée un token JWT portant l'adresse du compte"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)

    # L'adresse est l'identité de l'appelant pour les contrats
    account = db.get_account(data["sub"])
    to_encode.update({
        "exp": expire,
        "address": account["address"]
    })

    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

def get_current_account(request: Request,
                        credentials: HTTPAuthorizationCredentials = Security(security)) -> dict:
    """Vérifie le token JWT et retourne le compte"""
    db: LedgerDatabase = request.app.state.db
    try:
        token = credentials.credentials
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise HTTPException(status_code=401, detail="Token invalide")
        account = db.get_account(username)
        if account is None:
            raise HTTPException(status_code=401, detail="Compte non trouvé")
        if account["address"] != payload.get("address"):
            raise HTTPException(status_code=401, detail="Token invalide")
        return account
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expiré")
    except JWTError:
        raise HTTPException(status_code=401, detail="Token invalide")
