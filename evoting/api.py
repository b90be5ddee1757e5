import logging
from datetime import timedelta
from typing import Callable, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from evoting import config
from evoting.auth import create_access_token, get_current_account
from evoting.database import LedgerDatabase
from evoting.deploy import Deployment, deploy_system, restore_system
from evoting.election import Election
from evoting.errors import (
    AlreadyPublishedError, AuthorizationError, ElectionError, ResultsMismatchError,
    UnknownContractError, WindowError
)
from evoting.ledger import Ledger

logger = logging.getLogger(__name__)

class AccountCreate(BaseModel):
    username: str
    password: str

class AccountLogin(BaseModel):
    username: str
    password: str

class VoterProfile(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

class ElectionCreate(BaseModel):
    title: str
    description: str = ""
    start_time: int
    time_limit: int
    public_key: str = ""

class OptionCreate(BaseModel):
    name: str
    description: str = ""

class VoteRequest(BaseModel):
    ballot: str

class ResultsRequest(BaseModel):
    results: List[int]

class ElectionInfo(BaseModel):
    address: str
    election_manager: str
    election_factory: str
    registration_authority: str
    title: str
    description: str
    start_time: int
    time_limit: int
    public_key: str
    state: str
    number_of_ballots: int

# Statut HTTP de chaque erreur de contrat
ERROR_STATUS = {
    AuthorizationError: 403,
    WindowError: 409,
    AlreadyPublishedError: 409,
    ResultsMismatchError: 400,
    UnknownContractError: 404,
}

def ensure_admin_account(db: LedgerDatabase) -> str:
    """Crée le compte gestionnaire par défaut s'il n'existe pas déjà"""
    account = db.get_account(config.ADMIN_USERNAME)
    if account:
        return account["address"]
    address = db.create_account(config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
    logger.warning("Compte gestionnaire créé : %s (%s)", config.ADMIN_USERNAME, address)
    return address

def create_app(database_path: str = None, clock: Optional[Callable[[], float]] = None) -> FastAPI:
    """Construit l'application : base, registre, contrats de base"""
    app = FastAPI(title="Système de vote chiffré")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db = LedgerDatabase(database_path)
    ledger = Ledger(db, clock=clock) if clock is not None else Ledger(db)
    manager = ensure_admin_account(db)
    app.state.db = db
    # Les contrats sont reconstruits depuis le journal existant
    app.state.deployment = restore_system(ledger) or deploy_system(ledger, manager)

    @app.exception_handler(ElectionError)
    async def election_error_handler(request: Request, exc: ElectionError):
        status_code = ERROR_STATUS.get(type(exc), 400)
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

    def get_deployment(request: Request) -> Deployment:
        return request.app.state.deployment

    def get_election(address: str, deployment: Deployment = Depends(get_deployment)) -> Election:
        return deployment.factory.get_election(address)

    @app.post("/auth/register", status_code=201)
    async def register(account: AccountCreate):
        """Crée un compte ; son adresse sert d'identité auprès des contrats"""
        address = db.create_account(account.username, account.password)
        if address is None:
            raise HTTPException(status_code=400, detail="Nom d'utilisateur déjà pris")
        return {"message": "Compte créé avec succès", "address": address}

    @app.post("/auth/login")
    async def login(account: AccountLogin):
        """Connecte un compte"""
        if not db.verify_password(account.username, account.password):
            raise HTTPException(status_code=401, detail="Nom d'utilisateur ou mot de passe incorrect")

        access_token = create_access_token(
            db,
            data={"sub": account.username},
            expires_delta=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        return {"access_token": access_token, "token_type": "bearer"}

    @app.get("/auth/me")
    async def me(current: dict = Depends(get_current_account)):
        return {"username": current["username"], "address": current["address"]}

    @app.get("/registry")
    async def get_registry(deployment: Deployment = Depends(get_deployment)):
        registry = deployment.registry
        return {
            "address": registry.address,
            "manager": registry.manager,
            "number_of_voters": registry.get_number_of_voters()
        }

    @app.get("/registry/voters/{address}")
    async def is_voter(address: str, deployment: Deployment = Depends(get_deployment)):
        return {"address": address, "is_voter": deployment.registry.is_voter(address)}

    @app.put("/registry/voters/{address}")
    async def register_voter(
        address: str,
        profile: VoterProfile,
        current: dict = Depends(get_current_account),
        deployment: Deployment = Depends(get_deployment)
    ):
        """Inscrit un votant ou met à jour sa fiche (gestionnaire du registre)"""
        deployment.registry.register_or_update_voter(
            current["address"], address,
            profile.first_name, profile.last_name, profile.email, profile.phone
        )
        return {"address": address, "is_voter": True}

    @app.delete("/registry/voters/{address}")
    async def unregister_voter(
        address: str,
        current: dict = Depends(get_current_account),
        deployment: Deployment = Depends(get_deployment)
    ):
        """Désinscrit un votant (gestionnaire du registre)"""
        deployment.registry.unregister_voter(current["address"], address)
        return {"address": address, "is_voter": False}

    @app.get("/factory")
    async def get_factory(deployment: Deployment = Depends(get_deployment)):
        factory = deployment.factory
        return {
            "address": factory.address,
            "factory_manager": factory.factory_manager,
            "registration_authority": factory.registration_authority
        }

    @app.get("/elections")
    async def get_elections(deployment: Deployment = Depends(get_deployment)):
        """Récupère la liste des élections déployées"""
        return deployment.factory.get_deployed_elections()

    @app.post("/elections", status_code=201)
    async def create_election(
        params: ElectionCreate,
        current: dict = Depends(get_current_account),
        deployment: Deployment = Depends(get_deployment)
    ):
        """Crée une nouvelle élection (gestionnaire de la fabrique)"""
        address = deployment.factory.create_election(
            current["address"], params.title, params.description,
            params.start_time, params.time_limit, params.public_key
        )
        return {"address": address}

    @app.get("/elections/{address}", response_model=ElectionInfo)
    async def get_election_info(election: Election = Depends(get_election)):
        return ElectionInfo(
            address=election.address,
            election_manager=election.election_manager,
            election_factory=election.election_factory,
            registration_authority=election.registration_authority,
            title=election.title,
            description=election.description,
            start_time=election.start_time,
            time_limit=election.time_limit,
            public_key=election.public_key,
            state=election.state().value,
            number_of_ballots=election.get_number_of_ballots()
        )

    @app.get("/elections/{address}/options")
    async def get_options(election: Election = Depends(get_election)):
        return [option.to_dict() for option in election.get_options()]

    @app.post("/elections/{address}/options", status_code=201)
    async def add_option(
        option: OptionCreate,
        election: Election = Depends(get_election),
        current: dict = Depends(get_current_account)
    ):
        """Ajoute une option (gestionnaire de l'élection, avant l'ouverture)"""
        index = election.add_option(current["address"], option.name, option.description)
        return {"index": index}

    @app.post("/elections/{address}/vote")
    async def vote(
        request: VoteRequest,
        election: Election = Depends(get_election),
        current: dict = Depends(get_current_account)
    ):
        """Dépose (ou remplace) le bulletin chiffré de l'appelant"""
        election.vote(current["address"], request.ballot)
        return {"message": "Vote enregistré avec succès"}

    @app.get("/elections/{address}/voters")
    async def get_voters(election: Election = Depends(get_election)):
        return election.get_voters()

    @app.get("/elections/{address}/voters/{voter}")
    async def get_ballot(voter: str, election: Election = Depends(get_election)):
        return {
            "address": voter,
            "has_voted": election.has_voted(voter),
            "ballot": election.get_encrypted_vote_of_voter(voter)
        }

    @app.get("/elections/{address}/results")
    async def get_results(election: Election = Depends(get_election)):
        return {"state": election.state().value, "results": election.get_results()}

    @app.post("/elections/{address}/results")
    async def publish_results(
        request: ResultsRequest,
        election: Election = Depends(get_election),
        current: dict = Depends(get_current_account)
    ):
        """Publie les résultats déchiffrés (gestionnaire de l'élection)"""
        election.publish_results(current["address"], request.results)
        return {"message": "Résultats publiés", "results": election.get_results()}

    @app.get("/ledger/transactions")
    async def get_transactions(contract: Optional[str] = None,
                               deployment: Deployment = Depends(get_deployment)):
        return [record.to_dict() for record in deployment.ledger.get_transactions(contract)]

    @app.get("/ledger/verify")
    async def verify_ledger(deployment: Deployment = Depends(get_deployment)):
        return {"valid": deployment.ledger.verify_chain()}

    return app

if __name__ == "__main__":
    config.configure_logging()
    uvicorn.run(create_app(), host=config.HOST, port=config.PORT)
