import os
import secrets
import sys
from datetime import timedelta
from pathlib import Path
import pytest

# Point the application at the test database before anything imports incentives.database
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_incentives.db"
os.environ["DATABASE_URL"] = SQLALCHEMY_TEST_URL
os.environ.setdefault("LOG_FILE", "")

# Ensure project root on sys.path so the 'incentives' package resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from incentives.main import app  # type: ignore
from incentives.database import Base, engine  # type: ignore
from incentives.api import deps  # type: ignore
"""Pytest fixtures and factories.

Important: SQLAlchemy relationship configuration requires all model modules to be imported
before Base.metadata.create_all(), otherwise back_populates targets might not exist yet.
"""
from incentives.models.db import Optician, Prize, User
from incentives.models.db.enums import UserRole
from incentives.models.schemas.campaigns import CampaignCreate
from incentives.services import campaign_service
from incentives.utils.locks import GLOBAL_LOCKS
from incentives.utils.time import utc_now

# File-based SQLite so FastAPI's threadpool (sync endpoints) and the test thread share data
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_incentives.db")
    except OSError:
        pass


@pytest.fixture(autouse=True)
def _isolate_locks():
    """Keyed locks are process-wide; start every test with an empty registry."""
    GLOBAL_LOCKS.clear()
    yield
    GLOBAL_LOCKS.clear()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def session_factory():
    """Independent sessions, e.g. one per worker thread; all closed at teardown."""
    opened = []

    def _open():
        session = TestingSessionLocal()
        opened.append(session)
        return session
    yield _open
    for session in opened:
        session.close()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db


@pytest.fixture()
def client():
    return TestClient(app)

# ---------- Data factory helpers ----------

@pytest.fixture()
def optician_factory(db_session):
    def _create(name: str | None = None, parent: Optician | None = None, ranking_visible: bool = True):
        optician = Optician(
            name=name or f"Ótica {secrets.token_hex(2)}",
            cnpj=secrets.token_hex(7),
            parent_id=parent.id if parent is not None else None,
            ranking_visible_to_sellers=ranking_visible,
        )
        db_session.add(optician)
        db_session.commit()
        db_session.refresh(optician)
        return optician
    return _create


@pytest.fixture()
def user_factory(db_session):
    prefixes = {UserRole.ADMIN: "adm", UserRole.MANAGER: "ger", UserRole.SELLER: "ven"}

    def _create(
        role: UserRole = UserRole.SELLER,
        *,
        optician: Optician | None = None,
        manager: User | None = None,
        coin_balance: int = 0,
        name: str | None = None,
    ):
        user = User(
            name=name or f"{role.value.title()} {secrets.token_hex(2)}",
            email=f"{secrets.token_hex(4)}@example.com",
            api_key=f"{prefixes[role]}_{secrets.token_hex(16)}",
            role=role,
            optician_id=optician.id if optician is not None else None,
            manager_id=manager.id if manager is not None else None,
            coin_balance=coin_balance,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create


@pytest.fixture()
def admin(user_factory):
    return user_factory(UserRole.ADMIN)


@pytest.fixture()
def manager(user_factory):
    return user_factory(UserRole.MANAGER)


@pytest.fixture()
def seller(user_factory, manager):
    return user_factory(UserRole.SELLER, manager=manager)


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {user.api_key}"}


@pytest.fixture()
def auth_header():
    return auth


@pytest.fixture()
def card_def():
    """Builder for one card of a campaign payload."""
    def _build(number: int = 1, quantity: int = 5, value: str = "lente", ordem: int = 1,
               field: str = "NOME_PRODUTO", operator: str = "CONTEM", extra_requirements=()):
        requirements = [{
            "description": f"Requisito {ordem}",
            "quantity": quantity,
            "unit": "PAR",
            "ordem": ordem,
            "conditions": [{"field": field, "operator": operator, "value": value}],
        }]
        requirements.extend(extra_requirements)
        return {"number": number, "description": f"Cartela {number}", "requirements": requirements}
    return _build


@pytest.fixture()
def campaign_payload(card_def):
    """Builder for a JSON-ready campaign definition that passes every rule."""
    def _build(**overrides):
        start = utc_now() + timedelta(days=1)
        payload = {
            "title": f"Campanha Lentes {secrets.token_hex(2)}",
            "description": "Venda lentes premium e ganhe moedas a cada cartela completa.",
            "start_at": start.isoformat(),
            "end_at": (start + timedelta(days=30)).isoformat(),
            "coin_reward": 2500,
            "real_reward": "1500.00",
            "manager_commission": "0.15",
            "all_opticians": True,
            "card_mode": "MANUAL",
            "cards": [card_def(1), card_def(2), card_def(3)],
        }
        payload.update(overrides)
        return payload
    return _build


@pytest.fixture()
def campaign_factory(db_session, admin, campaign_payload):
    def _create(**overrides):
        definition = CampaignCreate(**campaign_payload(**overrides))
        return campaign_service.create_campaign(db_session, definition, creator=admin)
    return _create


@pytest.fixture()
def prize_factory(db_session):
    def _create(coin_cost: int = 300, stock: int = 2, name: str | None = None):
        prize = Prize(name=name or f"Prêmio {secrets.token_hex(2)}", coin_cost=coin_cost, stock=stock)
        db_session.add(prize)
        db_session.commit()
        db_session.refresh(prize)
        return prize
    return _create
