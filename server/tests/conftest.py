"""Test configuration and fixtures."""

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

from roombroker.clients.aggregator import SupplierAggregator
from roombroker.clients.channel import ChannelPushClient
from roombroker.clients.suppliers.base import SupplierClient
from roombroker.core.clock import utcnow
from roombroker.core.database import Base, build_engine, build_session_factory
from roombroker.core.retry import BackoffPolicy
from roombroker.models import Board, Booking, Hold, Hotel, Opportunity, RoomCategory
from roombroker.schemas.supplier import (
    CancelResult,
    ConfirmRequest,
    ConfirmResult,
    HoldRequest,
    HoldResult,
    SearchCriteria,
    SearchResult,
    StatusResult,
    SupplierHotel,
)

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CHANNEL_URL = "http://channel.test/ota"

SUCCESS_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
    '<OTA_HotelAvailNotifRS xmlns="http://www.opentravel.org/OTA/2003/05" Version="1.0"><Success/>'
    '</OTA_HotelAvailNotifRS></soap:Body></soap:Envelope>'
)

ERROR_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
    '<OTA_HotelAvailNotifRS xmlns="http://www.opentravel.org/OTA/2003/05" Version="1.0">'
    '<Errors><Error Type="3" Code="392" ShortText="Invalid hotel code"/></Errors>'
    '</OTA_HotelAvailNotifRS></soap:Body></soap:Envelope>'
)


class FakeSupplier(SupplierClient):
    """Supplier with canned answers that records every call."""

    def __init__(
        self,
        name: str,
        hotels: Optional[list[SupplierHotel]] = None,
        configured: bool = True,
        search_error: Optional[str] = None,
        search_delay: float = 0.0,
        hold_result: Optional[HoldResult] = None,
        confirm_result: Optional[ConfirmResult] = None,
        cancel_result: Optional[CancelResult] = None,
        statuses: Optional[dict[str, StatusResult]] = None,
    ):
        super().__init__()
        self.name = name
        self.hotels = hotels or []
        self.configured = configured
        self.search_error = search_error
        self.search_delay = search_delay
        self.hold_result = hold_result
        self.confirm_result = confirm_result
        self.cancel_result = cancel_result
        self.statuses = statuses or {}
        self.calls: list[tuple[str, object]] = []

    @property
    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def is_configured(self) -> bool:
        return self.configured

    def _headers(self) -> dict[str, str]:
        return {}

    async def search(self, criteria: SearchCriteria) -> SearchResult:
        self.calls.append(("search", criteria))
        if self.search_delay:
            await asyncio.sleep(self.search_delay)
        if self.search_error:
            return SearchResult(success=False, supplier=self.name, error=self.search_error)
        return SearchResult(
            success=True,
            supplier=self.name,
            hotels=[hotel.model_copy(deep=True) for hotel in self.hotels],
        )

    async def hold(self, request: HoldRequest) -> HoldResult:
        self.calls.append(("hold", request))
        return self.hold_result or HoldResult(
            success=True, supplier=self.name, hold_id=f"{self.name}-hold-1", token=f"{self.name}-token-1"
        )

    async def confirm(self, request: ConfirmRequest) -> ConfirmResult:
        self.calls.append(("confirm", request))
        return self.confirm_result or ConfirmResult(
            success=True,
            supplier=self.name,
            booking_id=f"{self.name}-booking-1",
            confirmation_number="CNF-1",
            supplier_reference="SUP-1",
            status="confirmed",
        )

    async def cancel(self, reference: str) -> CancelResult:
        self.calls.append(("cancel", reference))
        return self.cancel_result or CancelResult(
            success=True, supplier=self.name, cancellation_id=f"CX-{reference}", refund_amount=100.0, fee=0.0
        )

    async def get_status(self, reference: str) -> StatusResult:
        self.calls.append(("get_status", reference))
        return self.statuses.get(reference) or StatusResult(success=True, supplier=self.name, status="confirmed")


class RecordingNotifier:
    """Notifier that keeps every message."""

    def __init__(self):
        self.messages: list[str] = []

    async def send(self, text: str, **options) -> bool:
        self.messages.append(text)
        return True

    def matching(self, needle: str) -> list[str]:
        return [message for message in self.messages if needle in message]


class ChannelStub:
    """Scripted channel endpoint behind httpx.MockTransport.

    Queued responses (or exceptions) are used in order; once the queue is
    empty every request succeeds.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.queued: list[object] = []
        self.sleeps: list[float] = []

    def queue(self, *responses: object) -> None:
        self.queued.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queued:
            item = self.queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return httpx.Response(200, text=SUCCESS_XML)

    @property
    def bodies(self) -> list[str]:
        return [request.content.decode("utf-8") for request in self.requests]

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@dataclass
class HotelSetup:
    hotel: Hotel
    category: RoomCategory
    board: Board


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


WORKER_NAMES = ["acquisition", "lifecycle", "verification", "audit", "remediation", "cancellation_tracker"]


async def no_sleep(seconds: float) -> None:
    return None


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def innstant():
    return FakeSupplier("innstant")


@pytest.fixture
def goglobal():
    return FakeSupplier("goglobal")


@pytest.fixture
def aggregator(innstant, goglobal):
    return SupplierAggregator([innstant, goglobal], timeout_seconds=1.0)


@pytest.fixture
def channel_stub():
    return ChannelStub()


@pytest_asyncio.fixture
async def channel(session_factory, channel_stub):
    """Channel client logging to the test database, with retries but no real waiting."""
    client = ChannelPushClient(
        service_url=CHANNEL_URL,
        requestor_id="ROOMBROKER",
        agent_name="roombroker",
        agent_password="secret",
        session_factory=session_factory,
        backoff=BackoffPolicy(base_delay=1.0, max_delay=30.0, max_retries=2),
        client=httpx.AsyncClient(transport=httpx.MockTransport(channel_stub.handler)),
        sleep=channel_stub.sleep,
    )
    yield client
    await client.close()


@pytest.fixture
def make_hotel(session_factory):
    """Factory for a hotel with one room category and board."""

    async def _make(
        name: str = "Sea View Tel Aviv",
        supplier_hotel_id: Optional[str] = "1001",
        channel_hotel_code: Optional[str] = "SEAVIEW",
        room_code: Optional[str] = "DLX",
    ) -> HotelSetup:
        async with session_factory() as session:
            category = RoomCategory(name="Deluxe Double", channel_room_code=room_code)
            board = Board(name="Bed and Breakfast", code="BB")
            hotel = Hotel(
                name=name,
                supplier_hotel_id=supplier_hotel_id,
                channel_hotel_code=channel_hotel_code,
            )
            session.add_all([category, board, hotel])
            await session.commit()
        return HotelSetup(hotel=hotel, category=category, board=board)

    return _make


@pytest.fixture
def make_opportunity(session_factory):
    """Factory for a pending opportunity 30 days out."""

    async def _make(setup: HotelSetup, **overrides) -> Opportunity:
        start = overrides.pop("start_date", date.today() + timedelta(days=30))
        values = dict(
            hotel_id=setup.hotel.id,
            category_id=setup.category.id,
            board_id=setup.board.id,
            start_date=start,
            end_date=start + timedelta(days=2),
            buy_price=100.0,
            push_price=150.0,
        )
        values.update(overrides)
        async with session_factory() as session:
            opportunity = Opportunity(**values)
            session.add(opportunity)
            await session.commit()
        return opportunity

    return _make


@pytest.fixture
def make_booking(session_factory):
    """Factory for an active, unsold booking with its hold."""

    async def _make(setup: HotelSetup, **overrides) -> Booking:
        start = overrides.pop("start_date", date.today() + timedelta(days=30))
        end = overrides.pop("end_date", start + timedelta(days=2))
        provider = overrides.get("provider", "innstant")
        async with session_factory() as session:
            hold = Hold(
                hotel_id=setup.hotel.id,
                category_id=setup.category.id,
                board_id=setup.board.id,
                start_date=start,
                end_date=end,
                price=overrides.get("price", 100.0),
                provider=provider,
            )
            session.add(hold)
            await session.flush()

            values = dict(
                hold_id=hold.id,
                hotel_id=setup.hotel.id,
                category_id=setup.category.id,
                board_id=setup.board.id,
                start_date=start,
                end_date=end,
                confirmation_ref="BK-100",
                price=100.0,
                last_price=100.0,
                push_price=150.0,
                is_active=True,
                is_sold=False,
                status="confirmed",
                cancellation_type="free",
                cancellation_deadline=utcnow() + timedelta(hours=6),
                provider=provider,
            )
            values.update(overrides)
            booking = Booking(**values)
            session.add(booking)
            await session.commit()
        return booking

    return _make


@pytest_asyncio.fixture(scope="function")
async def test_app(test_engine, session_factory, aggregator, channel, notifier):
    """Create a test FastAPI application with workers wired to fakes.

    The lifespan does not run under ASGITransport, so the state it would
    build is set here instead.
    """
    from roombroker.core.config import Settings
    from roombroker.main import create_app
    from roombroker.workers import (
        AcquisitionWorker,
        AuditWorker,
        CancellationTrackerWorker,
        LifecycleWorker,
        PushVerificationWorker,
        RemediationWorker,
        WorkerSupervisor,
    )

    app = create_app(Settings(environment="test", database_url=TEST_DATABASE_URL, workers_auto_start=True))

    audit = AuditWorker(session_factory, notifier, interval_seconds=3600)
    supervisor = WorkerSupervisor(
        [
            AcquisitionWorker(session_factory, aggregator, channel, notifier, interval_seconds=3600, enabled=True),
            LifecycleWorker(session_factory, aggregator, channel, notifier, interval_seconds=3600),
            PushVerificationWorker(session_factory, channel, notifier, interval_seconds=3600),
            audit,
            RemediationWorker(audit, channel, notifier, interval_seconds=3600),
            CancellationTrackerWorker(session_factory, aggregator, notifier, interval_seconds=3600),
        ],
        auto_start=True,
        notifier=notifier,
        sleep=no_sleep,
    )

    app.state.engine = test_engine
    app.state.session_factory = session_factory
    app.state.aggregator = aggregator
    app.state.channel = channel
    app.state.notifier = notifier
    app.state.supervisor = supervisor

    yield app

    # Clean up
    await supervisor.stop_all()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
