"""Pytest configuration and fixtures for the library API tests.

This module provides reusable fixtures for:
- Settings overrides
- A scratch SQLite library database, created from the ORM metadata and seeded
- Cache backends with a controllable clock
- Service instances pinned to a fixed "today"
- Async HTTP clients against the app with dependency overrides
"""

from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rsywx.config import Settings
from rsywx.core.database import build_engine, close_db, init_db
from rsywx.dependencies import (
    CacheDep,
    SessionDep,
    get_book_service,
    get_db_session,
    get_library_service,
)
from rsywx.main import create_app
from rsywx.models import (
    Base,
    Book,
    Headline,
    Place,
    Publisher,
    Quote,
    Review,
    Tag,
    Visit,
    Word,
)
from rsywx.services.books import BookService
from rsywx.services.cache import (
    CacheService,
    MemoryCacheBackend,
    get_cache_service,
    set_cache_backend,
)
from rsywx.services.library import LibraryService

TODAY = date(2025, 3, 15)
NOW = datetime(2025, 3, 15, 12, 0, 0)


class FakeClock:
    """Manually advanced time source for cache TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test-specific settings.

    Points the database at a scratch SQLite file and the cache at memory.
    """
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=False,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'library.db'}",
        cache_backend="memory",  # type: ignore[arg-type]
        cache_dir=str(tmp_path / "cache"),
        api_key="test-api-key",  # type: ignore[arg-type]
        cover_base_url="https://covers.test/covers/",
    )


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def now() -> datetime:
    return NOW


# =============================================================================
# Database Fixtures
# =============================================================================


def seed_rows() -> list[Base]:
    """A small library exercising every query mode.

    Books 00671 ("na") and 00672 ("--") are off the shelf and must never
    show up in book listings.
    """
    place = Place(id=1, name="上海书城")
    publishers = [
        Publisher(id=1, name="人民文学出版社"),
        Publisher(id=2, name="三联书店"),
    ]

    def book(
        id: int,
        bookid: str,
        title: str,
        author: str,
        region: str,
        purchdate: date,
        category: str,
        page: int,
        kword: int,
        location: str,
        translated: bool = False,
        copyrighter: str | None = None,
        publisher_id: int = 1,
    ) -> Book:
        return Book(
            id=id,
            bookid=bookid,
            title=title,
            author=author,
            region=region,
            purchdate=purchdate,
            price=59.7,
            category=category,
            isbn=f"978-7-02-{id:06d}",
            page=page,
            kword=kword,
            location=location,
            translated=translated,
            copyrighter=copyrighter,
            place_id=1,
            publisher_id=publisher_id,
        )

    books = [
        book(1, "00666", "红楼梦", "曹雪芹", "中国", date(2024, 5, 1), "I242.4", 1600, 1000, "f1"),
        book(2, "00667", "三国演义", "罗贯中", "中国", date(2020, 2, 29), "I242.4", 1200, 800, "f1"),
        book(3, "00668", "水浒传", "施耐庵", "中国", date(2016, 2, 29), "I242.4", 1100, 900, "f2"),
        book(
            4, "00669", "战争与和平", "列夫·托尔斯泰", "俄罗斯", date(2023, 3, 15),
            "I512.4", 1500, 1300, "f2", translated=True, copyrighter="草婴", publisher_id=2,
        ),
        book(
            5, "00670", "安娜·卡列尼娜", "列夫·托尔斯泰", "俄罗斯", date(2025, 3, 1),
            "I512.4", 900, 750, "f3", translated=True, copyrighter="草婴", publisher_id=2,
        ),
        book(6, "00671", "遗失的书", "佚名", "中国", date(2022, 2, 28), "Z", 300, 100, "na"),
        book(7, "00672", "借出的书", "佚名", "中国", date(2021, 3, 15), "Z", 200, 100, "--"),
        book(
            8, "00673", "百年孤独", "加西亚·马尔克斯", "哥伦比亚", date(2024, 2, 29),
            "I775.45", 500, 300, "f3", translated=True, copyrighter="范晔", publisher_id=2,
        ),
        book(9, "00674", "围城", "钱钟书", "中国", date(2025, 3, 15), "I246.5", 400, 250, "f1"),
    ]

    tags = {
        1: ["经典", "文学"],
        2: ["经典", "历史", "小说"],
        3: ["经典", "小说"],
        4: ["经典", "文学", "历史"],
        5: ["文学", "小说"],
        6: ["经典"],
        8: ["文学", "小说", "魔幻"],
        9: ["小说"],
    }
    tag_rows = [Tag(bid=bid, tag=tag) for bid, names in tags.items() for tag in names]

    visits = [
        (1, NOW - timedelta(days=3)),
        (1, NOW - timedelta(days=1)),
        (1, NOW),
        (2, datetime(2025, 1, 10, 9, 0, 0)),
        (3, datetime(2024, 6, 1, 8, 0, 0)),
        (4, datetime(2025, 3, 14, 20, 0, 0)),
        (4, datetime(2025, 3, 13, 10, 0, 0)),
        (6, datetime(2020, 1, 1, 0, 0, 0)),
        (8, datetime(2024, 12, 1, 10, 0, 0)),
    ]
    visit_rows = [
        Visit(bookid=bid, visitwhen=when, ip_address="127.0.0.1", country="中国")
        for bid, when in visits
    ]

    headlines = [
        Headline(hid=1, bid=1, reviewtitle="红楼梦", create_at=date(2024, 6, 1), display=True),
        Headline(hid=2, bid=4, reviewtitle="战争与和平", create_at=date(2023, 4, 1), display=True),
        Headline(hid=3, bid=3, reviewtitle="水浒传", create_at=date(2022, 1, 1), display=False),
    ]
    reviews = [
        Review(id=1, hid=1, title="读红楼梦", datein=date(2024, 6, 10), uri="https://blog.test/1"),
        Review(
            id=2, hid=1, title="再读红楼梦", datein=date(2024, 8, 1),
            uri="https://blog.test/2", feature="https://blog.test/2.jpg",
        ),
        Review(id=3, hid=2, title="战争与和平札记", datein=date(2023, 4, 20), uri="https://blog.test/3"),
        Review(id=4, hid=3, title="未公开", datein=date(2022, 1, 5), uri="https://blog.test/4"),
    ]

    quotes = [
        Quote(id=1, quote="学而时习之", source="论语"),
        Quote(id=2, quote="知之为知之", source="论语"),
        Quote(id=3, quote="天行健", source="周易"),
    ]
    words = [
        Word(id=1, word="serendipity", meaning="意外发现", sentence="Pure serendipity.", type="n."),
        Word(id=2, word="bibliophile", meaning="爱书人", sentence="A true bibliophile.", type="n."),
    ]

    return [
        place,
        *publishers,
        *books,
        *tag_rows,
        *visit_rows,
        *headlines,
        *reviews,
        *quotes,
        *words,
    ]


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a fresh SQLite file with the library schema."""
    engine = build_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session on the seeded library.

    Usage:
        async def test_tags(db_session: AsyncSession):
            tags = await TagRepository(db_session).get_tags(1)
    """
    factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(seed_rows())
        await session.commit()
        yield session


# =============================================================================
# Cache Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_backend(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(memory_backend: MemoryCacheBackend) -> CacheService:
    return CacheService(memory_backend)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def book_service(
    db_session: AsyncSession, cache: CacheService, test_settings: Settings
) -> BookService:
    """BookService on the seeded library with today pinned to TODAY."""
    return BookService(db_session, cache, test_settings, today=lambda: TODAY)


@pytest.fixture
def library_service(
    db_session: AsyncSession, cache: CacheService, test_settings: Settings
) -> LibraryService:
    return LibraryService(db_session, cache, test_settings, today=lambda: TODAY)


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
async def app(
    test_settings: Settings,
    db_session: AsyncSession,
    cache: CacheService,
    memory_backend: MemoryCacheBackend,
) -> AsyncGenerator[FastAPI, None]:
    """Test app wired to the seeded session and the test cache.

    The lifespan does not run under ASGITransport, so the global engine and
    cache backend used by the readiness probe are set up here.
    """
    application = create_app(settings=test_settings)

    async def session_override() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    def book_service_override(session: SessionDep, cache_service: CacheDep) -> BookService:
        return BookService(session, cache_service, test_settings, today=lambda: TODAY)

    def library_service_override(
        session: SessionDep, cache_service: CacheDep
    ) -> LibraryService:
        return LibraryService(session, cache_service, test_settings, today=lambda: TODAY)

    application.dependency_overrides[get_db_session] = session_override
    application.dependency_overrides[get_cache_service] = lambda: cache
    application.dependency_overrides[get_book_service] = book_service_override
    application.dependency_overrides[get_library_service] = library_service_override

    await init_db(test_settings)
    set_cache_backend(memory_backend)
    yield application
    set_cache_backend(None)
    await close_db()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    This client makes requests to the test app without starting a server.

    Usage:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health/live")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
async def authenticated_client(
    app: FastAPI, test_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """Create an authenticated async client using API key.

    This client automatically includes the X-API-Key header.

    Usage:
        async def test_protected_endpoint(authenticated_client: AsyncClient):
            response = await authenticated_client.get("/api/v1/books/latest")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-API-Key": test_settings.api_key.get_secret_value()},
    ) as client:
        yield client
