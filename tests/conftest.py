import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from owninstead.api.deps import get_today
from owninstead.api.routes import evaluations, health, orders, rules, transactions, triggers
from owninstead.config import settings
from owninstead.domain.models import EvaluationStatus, InvestType, OrderStatus, RuleCategory
from owninstead.infrastructure.brokerage.types import (
    BrokerageOrderState,
    OrderStatusReport,
    PlacedOrder,
)
from owninstead.infrastructure.db.database import Base, get_db
from owninstead.infrastructure.db.models import (
    BankConnectionModel,
    EvaluationModel,
    OrderModel,
    ProfileModel,
    RuleModel,
    TransactionModel,
)
from owninstead.scheduler.dispatch import JobDispatcher
from owninstead.scheduler.jobs import PipelineJobs
from owninstead.services.trade_executor import TradeExecutor

# Monday; the previous full week is Sun 2026-03-01 .. Sat 2026-03-07
TODAY = date(2026, 3, 9)
LAST_WEEK_START = date(2026, 3, 1)
LAST_WEEK_END = date(2026, 3, 7)

API_TOKEN = "test-token"
USER_ID = "user-1"


# ======================
# Fakes
# ======================

class FakeBrokerage:
    """Records every call; behaviour is set per test"""

    def __init__(self, price: Optional[Decimal] = Decimal("50.00"), notional: bool = True):
        self.price = price
        self.notional = notional
        self.fail_with: Optional[Exception] = None
        self.status_state = BrokerageOrderState.FILLED
        self.quote_calls: List[str] = []
        self.placed: List[tuple] = []
        # set ``hold`` to park place_market_buy until it is released
        self.hold: Optional[asyncio.Event] = None
        self.entered: Optional[asyncio.Event] = None

    def gate(self) -> None:
        self.hold = asyncio.Event()
        self.entered = asyncio.Event()

    async def get_quote(self, symbol: str) -> Optional[Decimal]:
        self.quote_calls.append(symbol)
        return self.price

    async def supports_notional(self, account_id: Optional[str]) -> bool:
        return self.notional

    async def place_market_buy(self, account_id, symbol, units) -> PlacedOrder:
        if self.hold is not None:
            self.entered.set()
            await self.hold.wait()
        if self.fail_with is not None:
            raise self.fail_with
        self.placed.append((account_id, symbol, units))
        return PlacedOrder(
            brokerage_order_id=f"brk-{len(self.placed)}",
            symbol=symbol,
            units=units,
        )

    async def get_order_status(self, account_id, brokerage_order_id) -> OrderStatusReport:
        if self.status_state == BrokerageOrderState.FILLED:
            return OrderStatusReport(
                brokerage_order_id=brokerage_order_id,
                state=BrokerageOrderState.FILLED,
                filled_units=Decimal("0.36"),
                average_price=self.price,
            )
        return OrderStatusReport(
            brokerage_order_id=brokerage_order_id,
            state=self.status_state,
            reason="insufficient buying power" if self.status_state == BrokerageOrderState.REJECTED else None,
        )


class RecordingNotifier:
    def __init__(self):
        self.sent: List[tuple] = []

    async def notify(self, user_id, kind, params=None):
        self.sent.append((user_id, kind, dict(params or {})))

    def kinds(self) -> List[str]:
        return [kind for _, kind, _ in self.sent]


class RecordingRewards:
    def __init__(self):
        self.beaten: List[tuple] = []
        self.invested: List[tuple] = []

    async def on_target_beaten(self, user_id, saved_amount, streak_count):
        self.beaten.append((user_id, saved_amount, streak_count))

    async def on_investment_filled(self, user_id, amount, is_first):
        self.invested.append((user_id, amount, is_first))


# ======================
# Seeding
# ======================

class Seeder:
    """Inserts committed rows with sensible defaults"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    async def _add(self, model):
        async with self.session_factory() as session:
            session.add(model)
            await session.commit()
        return model

    async def profile(self, user_id: str = USER_ID, **kw) -> ProfileModel:
        values = dict(
            id=user_id,
            onboarding_completed=True,
            investing_paused=False,
            max_per_trade=Decimal("100"),
            max_per_month=Decimal("500"),
            brokerage_account_id="acct-1",
        )
        values.update(kw)
        return await self._add(ProfileModel(**values))

    async def rule(self, user_id: str = USER_ID, **kw) -> RuleModel:
        values = dict(
            id=self._next("rule"),
            user_id=user_id,
            category=RuleCategory.DELIVERY,
            target_spend=Decimal("50"),
            invest_type=InvestType.DIFFERENCE,
            streak_enabled=False,
            active=True,
        )
        values.update(kw)
        return await self._add(RuleModel(**values))

    async def transaction(
        self,
        amount: str,
        merchant_name: Optional[str] = "DoorDash",
        txn_date: date = date(2026, 3, 3),
        user_id: str = USER_ID,
        **kw,
    ) -> TransactionModel:
        tx_id = kw.pop("id", None) or self._next("tx")
        values = dict(
            id=tx_id,
            user_id=user_id,
            provider_transaction_id=f"prov-{tx_id}",
            amount=Decimal(amount),
            merchant_name=merchant_name,
            category=None,
            date=txn_date,
            excluded=False,
        )
        values.update(kw)
        return await self._add(TransactionModel(**values))

    async def evaluation(
        self,
        rule_id: str,
        user_id: str = USER_ID,
        status: EvaluationStatus = EvaluationStatus.CONFIRMED,
        **kw,
    ) -> EvaluationModel:
        values = dict(
            id=self._next("eval"),
            user_id=user_id,
            rule_id=rule_id,
            period_start=LAST_WEEK_START,
            period_end=LAST_WEEK_END,
            actual_spend=Decimal("32"),
            target_spend=Decimal("50"),
            calculated_invest=Decimal("18"),
            final_invest=Decimal("18"),
            streak_count=1,
            status=status,
            matching_transaction_ids=[],
        )
        values.update(kw)
        return await self._add(EvaluationModel(**values))

    async def order(
        self,
        evaluation_id: Optional[str] = None,
        user_id: str = USER_ID,
        status: OrderStatus = OrderStatus.FILLED,
        amount: str = "10",
        **kw,
    ) -> OrderModel:
        values = dict(
            id=self._next("order"),
            user_id=user_id,
            evaluation_id=evaluation_id,
            symbol="VTI",
            amount_dollars=Decimal(amount),
            status=status,
        )
        values.update(kw)
        return await self._add(OrderModel(**values))

    async def connection(self, user_id: str = USER_ID, **kw) -> BankConnectionModel:
        values = dict(id=self._next("conn"), user_id=user_id, access_token=f"access-{user_id}")
        values.update(kw)
        return await self._add(BankConnectionModel(**values))


# ======================
# Database
# ======================

@pytest.fixture()
async def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture()
def brokerage() -> FakeBrokerage:
    return FakeBrokerage()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def rewards() -> RecordingRewards:
    return RecordingRewards()


@pytest.fixture()
def trade_executor(session_factory, brokerage, notifier, rewards) -> TradeExecutor:
    return TradeExecutor(session_factory, brokerage, notifier=notifier, rewards=rewards)


@pytest.fixture()
def jobs(session_factory, trade_executor, notifier, rewards) -> PipelineJobs:
    return PipelineJobs(
        session_factory,
        trade_executor,
        notifier=notifier,
        rewards=rewards,
        sync_delay_seconds=0,
        clock=lambda: datetime(2026, 3, 9, 12, 0),
    )


# ======================
# API
# ======================

@pytest.fixture()
async def app(session_factory, jobs, monkeypatch) -> FastAPI:
    monkeypatch.setattr(settings, "API_TOKEN", API_TOKEN)

    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(rules.router, prefix="/api/v1/rules", tags=["Rules"])
    app.include_router(evaluations.router, prefix="/api/v1/evaluations", tags=["Evaluations"])
    app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["Transactions"])
    app.include_router(triggers.router, prefix="/api/v1/triggers", tags=["Triggers"])

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    app.state.dispatcher = JobDispatcher(jobs)

    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    headers = {"Authorization": f"Bearer {API_TOKEN}", "X-User-Id": USER_ID}
    async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as ac:
        yield ac
