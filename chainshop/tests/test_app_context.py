"""
Tests for AppContext wiring and the status command.
"""
import pytest

from chainshop.app.core.settings import Settings
from chainshop.app.main import AppContext, build_session_storage, run_status
from chainshop.app.services.session import FileSessionStorage, MemorySessionStorage
from chainshop.app.views.common import Redirect

from conftest import FakeProvider


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "development",
        "LOG_LEVEL": "DEBUG",
        "SESSION_BACKEND": "memory",
        "APP_ORIGIN": "https://shop.example.com",
        "REFERRAL_POLL_INTERVAL": 60,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
async def app(fake_w3, provider, backend_client):
    context = AppContext(make_settings(), w3=fake_w3, provider=provider, client=backend_client)
    yield context
    await context.close()


def test_build_session_storage(tmp_path):
    assert isinstance(build_session_storage(make_settings()), MemorySessionStorage)
    storage = build_session_storage(make_settings(SESSION_BACKEND="file", SESSION_FILE=str(tmp_path / "s.json")))
    assert isinstance(storage, FileSessionStorage)


@pytest.mark.asyncio
async def test_validator_follows_shared_wallet(app, provider):
    await app.wallet.connect()
    assert app.validator.can_interact_with_contract
    assert app.gateway.reads_enabled

    provider.chain_id = 56
    await app.wallet.sync()
    assert app.validator.is_wrong_chain
    assert not app.gateway.reads_enabled
    assert not app.chain_guard().show_content


@pytest.mark.asyncio
async def test_login_then_dashboard(app, fake_backend):
    fake_backend.respond("POST", "/auth/login", {
        "success": True,
        "data": {"token": "jwt-1", "fullname": "Ada", "email": "ada@example.com"},
    })
    fake_backend.respond("GET", "/user/profile", {"success": True, "data": {"fullname": "Ada", "email": "ada@example.com"}})

    assert await app.login_view().submit("ada@example.com", "pw") == Redirect("/dashboard")
    dashboard = app.dashboard_view()
    assert await dashboard.mount() is None

    assert dashboard.user.name == "Ada"
    assert fake_backend.last("GET", "/user/profile").headers["Authorization"] == "Bearer jwt-1"


@pytest.mark.asyncio
async def test_close_stops_referral_polling(fake_w3, provider, backend_client):
    app = AppContext(make_settings(), w3=fake_w3, provider=provider, client=backend_client)
    await app.wallet.connect()
    view = app.referral_dashboard_view("Gold")
    await view.mount()
    assert view.controller.is_polling

    await app.close()

    assert not view.controller.is_polling


@pytest.mark.asyncio
async def test_referral_views_share_one_controller(app):
    first = app.referral_dashboard_view()
    second = app.referral_dashboard_view("Gold")

    assert first.controller is second.controller is app.referral_controller


@pytest.mark.asyncio
async def test_disconnect_drops_cached_user_reads(app):
    await app.wallet.connect()
    await app.gateway.user_info.refetch()
    assert app.gateway.user_info.data is not None

    await app.wallet.disconnect()

    assert app.gateway.user_info.data is None
    assert not app.gateway.user_info.loaded


@pytest.mark.asyncio
async def test_run_status_wrong_chain(monkeypatch, fake_w3):
    provider = FakeProvider(chain_id=1)
    monkeypatch.setattr("chainshop.app.main.AppContext", _context_factory(fake_w3, provider))

    assert await run_status(make_settings()) == 1


@pytest.mark.asyncio
async def test_run_status_ok(monkeypatch, fake_w3):
    provider = FakeProvider()
    monkeypatch.setattr("chainshop.app.main.AppContext", _context_factory(fake_w3, provider))

    assert await run_status(make_settings()) == 0


def _context_factory(fake_w3, provider):
    def factory(settings):
        return AppContext(settings, w3=fake_w3, provider=provider)
    return factory
