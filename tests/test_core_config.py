"""
Tests for the site configuration service and endpoints.
"""
import pytest

from app.config import settings
from app.db.models import UserRole, PaypalMode
from app.domain.errors import BadRequestError
from app.services.core_config_service import CoreConfigService, DEFAULT_CAMP_NAME
from tests.conftest import create_user, create_core_config, auth_headers


class TestCoreConfigService:

    @pytest.mark.asyncio
    async def test_default_when_missing(self, db):
        assert await CoreConfigService.get(db) is None

        config = await CoreConfigService.find_current(db)

        assert config.id == "default"
        assert config.camp_name == DEFAULT_CAMP_NAME
        assert config.registration_open is False
        assert await CoreConfigService.find_current(db, use_default=False) is None

    @pytest.mark.asyncio
    async def test_create_only_once(self, db):
        await CoreConfigService.create(db, {"camp_name": "Dust Camp", "registration_year": 2026})

        with pytest.raises(BadRequestError):
            await CoreConfigService.create(db, {"camp_name": "Again", "registration_year": 2026})

    @pytest.mark.asyncio
    async def test_update_creates_from_defaults(self, db):
        config = await CoreConfigService.update(db, {"camp_name": "Dust Camp"})

        assert config.camp_name == "Dust Camp"
        assert config.time_zone == "UTC"
        assert (await CoreConfigService.get(db)).id == config.id

    @pytest.mark.asyncio
    async def test_update_existing(self, db):
        await create_core_config(db)

        config = await CoreConfigService.update(db, {"registration_open": False, "registration_terms": "Be kind"})

        assert config.registration_open is False
        assert config.registration_terms == "Be kind"

    @pytest.mark.asyncio
    async def test_camp_name(self, db):
        assert await CoreConfigService.get_camp_name(db) == DEFAULT_CAMP_NAME

        await create_core_config(db, camp_name="Dust Camp")

        assert await CoreConfigService.get_camp_name(db) == "Dust Camp"

    @pytest.mark.asyncio
    async def test_provider_credentials_fall_back_to_environment(self, db, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_env")
        monkeypatch.setattr(settings, "paypal_client_id", "env-client")
        monkeypatch.setattr(settings, "paypal_client_secret", "env-secret")

        stripe = await CoreConfigService.get_stripe_credentials(db)
        paypal = await CoreConfigService.get_paypal_credentials(db)

        assert stripe["api_key"] == "sk_test_env"
        assert paypal == {"client_id": "env-client", "client_secret": "env-secret", "mode": settings.paypal_mode}

    @pytest.mark.asyncio
    async def test_database_credentials_win(self, db, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_env")
        await create_core_config(
            db, stripe_api_key="sk_test_db", paypal_client_id="db-client",
            paypal_client_secret="db-secret", paypal_mode=PaypalMode.LIVE,
        )

        stripe = await CoreConfigService.get_stripe_credentials(db)
        paypal = await CoreConfigService.get_paypal_credentials(db)

        assert stripe["api_key"] == "sk_test_db"
        assert paypal["mode"] == "live"

    @pytest.mark.asyncio
    async def test_email_enabled_only_from_database(self, db, monkeypatch):
        monkeypatch.setattr(settings, "smtp_host", "smtp.env.test")

        email = await CoreConfigService.get_email_configuration(db)

        assert email["email_enabled"] is False
        assert email["smtp_host"] == "smtp.env.test"

    def test_public_dict_has_no_secrets(self):
        config = CoreConfigService.build_default()
        config.stripe_api_key = "sk_test_secret"

        public = CoreConfigService.to_public_dict(config)

        assert "stripe_api_key" not in public
        assert "smtp_password" not in public
        assert public["paypal_mode"] == "SANDBOX"


# ============================================
# Endpoints
# ============================================

@pytest.mark.asyncio
async def test_public_config_without_auth(client, db):
    await create_core_config(db, camp_name="Dust Camp", stripe_api_key="sk_test_secret")
    await db.commit()

    response = await client.get("/public/config")

    assert response.status_code == 200
    assert response.json()["camp_name"] == "Dust Camp"
    assert "stripe_api_key" not in response.json()


@pytest.mark.asyncio
async def test_admin_config_endpoints(client, db):
    admin = await create_user(db, email="admin@example.com", role=UserRole.ADMIN)
    participant = await create_user(db)
    await db.commit()

    forbidden = await client.patch("/config", headers=auth_headers(participant), json={"camp_name": "X"})
    assert forbidden.status_code == 403

    created = await client.post("/config", headers=auth_headers(admin), json={
        "camp_name": "Dust Camp", "registration_year": 2026,
    })
    assert created.status_code == 201

    updated = await client.patch("/config", headers=auth_headers(admin), json={"registration_open": True})
    assert updated.status_code == 200
    assert updated.json()["registration_open"] is True
    assert updated.json()["camp_name"] == "Dust Camp"

    duplicate = await client.post("/config", headers=auth_headers(admin), json={
        "camp_name": "Again", "registration_year": 2026,
    })
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Core configuration already exists. Use update instead."
