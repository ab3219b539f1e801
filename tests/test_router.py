"""Tests for action dispatch."""

from datetime import timedelta

import pytest

from deere_proxy_server.deere.harvest import fields_path, harvest_operations_path
from deere_proxy_server.errors import (
    MissingField,
    NoConnection,
    OrganizationNotSelected,
    RefreshFailed,
    UnknownAction,
    UpstreamError,
    ValidationError,
)
from deere_proxy_server.router import (
    AUTH_ACTIONS,
    DATA_ACTIONS,
    POST_ACTIONS,
    ActionRouter,
)

from .conftest import make_credential


@pytest.fixture
def router(config, store, http_client) -> ActionRouter:
    return ActionRouter.from_config(config, store, http_client)


class TestAuthActions:
    """Tests for exchange, refresh and disconnect."""

    @pytest.mark.asyncio
    async def test_exchange_then_lookup_has_no_selection(self, router, store, upstream):
        """Test that a new connection starts without an organization."""
        upstream.token_endpoint()

        result = await router.handle(
            "user-1", "exchange", {"code": "c", "redirectUri": "http://localhost/cb"}
        )

        assert result == {"success": True}
        assert (await store.get("user-1")).selected_org_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"code": "c"}, {"redirectUri": "http://x"}])
    async def test_exchange_requires_code_and_redirect(self, router, upstream, body):
        """Test validation of the exchange body."""
        with pytest.raises(MissingField) as exc_info:
            await router.handle("user-1", "exchange", body)
        assert exc_info.value.status_code == 400
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_refresh_action(self, router, store, upstream):
        """Test the explicit refresh action."""
        upstream.token_endpoint()
        await store.upsert(make_credential())

        assert await router.handle("user-1", "refresh") == {"success": True}
        assert (await store.get("user-1")).access_token == "new-access"

    @pytest.mark.asyncio
    async def test_refresh_without_connection(self, router):
        """Test refresh for a user who never connected."""
        with pytest.raises(NoConnection) as exc_info:
            await router.handle("user-1", "refresh")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_disconnect_deletes(self, router, store):
        """Test that disconnect removes the credential."""
        await store.upsert(make_credential())

        assert await router.handle("user-1", "disconnect") == {"success": True}
        assert await store.get("user-1") is None

    @pytest.mark.asyncio
    async def test_disconnect_without_connection_is_noop(self, router, upstream):
        """Test that disconnecting twice is not an error."""
        assert await router.handle("user-1", "disconnect") == {"success": True}
        assert upstream.requests == []


class TestDataActions:
    """Tests for organizations, selection, fields and harvest operations."""

    @pytest.mark.asyncio
    async def test_organizations_passthrough(self, router, store, upstream):
        """Test that the upstream payload is returned unchanged."""
        payload = {
            "values": [{"id": "org1", "name": "Acme Farms", "type": "customer"}],
            "links": [],
            "total": 1,
        }
        upstream.api("/organizations", json=payload)
        await store.upsert(make_credential())

        assert await router.handle("user-1", "organizations") == payload

    @pytest.mark.asyncio
    async def test_organizations_without_connection(self, router, upstream):
        """Test that data actions need a stored credential."""
        with pytest.raises(NoConnection):
            await router.handle("user-1", "organizations")
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_upstream_status_is_preserved(self, router, store, upstream):
        """Test that a 403 from upstream surfaces as 403."""
        upstream.api("/organizations", status=403, text="forbidden")
        await store.upsert(make_credential())

        with pytest.raises(UpstreamError) as exc_info:
            await router.handle("user-1", "organizations")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_select_then_fields(self, router, store, upstream):
        """Test that selecting org1 unlocks the fields action."""
        await store.upsert(make_credential())
        upstream.api(
            "/organizations", json={"values": [{"id": "org1", "name": "Acme Farms"}]}
        )
        upstream.api(fields_path("org1"), json={"values": [{"id": "A", "name": "North"}]})

        with pytest.raises(OrganizationNotSelected):
            await router.handle("user-1", "fields")

        orgs = await router.handle("user-1", "organizations")
        org = orgs["values"][0]
        await router.handle(
            "user-1",
            "select-organization",
            {"orgId": org["id"], "orgName": org["name"]},
        )

        stored = await store.get("user-1")
        assert stored.selected_org_id == "org1"
        assert stored.selected_org_name == "Acme Farms"
        assert await router.handle("user-1", "fields") == {
            "values": [{"id": "A", "name": "North"}]
        }

    @pytest.mark.asyncio
    async def test_select_without_name(self, router, store):
        """Test that orgName is optional."""
        await store.upsert(make_credential())

        await router.handle("user-1", "select-organization", {"orgId": "org1"})

        stored = await store.get("user-1")
        assert stored.selected_org_id == "org1"
        assert stored.selected_org_name is None

    @pytest.mark.asyncio
    async def test_select_requires_org_id(self, router, store):
        """Test validation of the selection body."""
        await store.upsert(make_credential())

        with pytest.raises(MissingField):
            await router.handle("user-1", "select-organization", {"orgName": "Acme"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("org_name", [123, ["Acme"], {"name": "Acme"}])
    async def test_select_rejects_non_string_name(self, router, store, org_name):
        """Test that a bad orgName is refused and the record stays readable."""
        await store.upsert(make_credential())

        with pytest.raises(ValidationError) as exc_info:
            await router.handle(
                "user-1", "select-organization", {"orgId": "org1", "orgName": org_name}
            )

        assert exc_info.value.status_code == 400
        stored = await store.get("user-1")
        assert stored.selected_org_id is None
        assert stored.selected_org_name is None

    @pytest.mark.asyncio
    async def test_select_coerces_numeric_org_id(self, router, store):
        """Test that a numeric orgId is stored as a string."""
        await store.upsert(make_credential())

        await router.handle(
            "user-1", "select-organization", {"orgId": 4321, "orgName": "Acme"}
        )

        stored = await store.get("user-1")
        assert stored.selected_org_id == "4321"
        assert stored.selected_org_name == "Acme"

    @pytest.mark.asyncio
    async def test_select_without_connection(self, router):
        """Test selection for a user who never connected."""
        with pytest.raises(NoConnection):
            await router.handle("user-1", "select-organization", {"orgId": "org1"})

    @pytest.mark.asyncio
    async def test_harvest_operations_requires_selection(self, router, store, upstream):
        """Test harvest operations before selecting an organization."""
        await store.upsert(make_credential())

        with pytest.raises(OrganizationNotSelected) as exc_info:
            await router.handle("user-1", "harvest-operations")
        assert exc_info.value.status_code == 400
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_harvest_operations_wraps_values(self, router, store, upstream):
        """Test the harvest-operations result envelope."""
        await store.upsert(make_credential(selected_org_id="org1"))
        upstream.api(fields_path("org1"), json={"values": [{"id": "A", "name": "North"}]})
        upstream.api(harvest_operations_path("org1", "A"), json={"values": []})

        result = await router.handle("user-1", "harvest-operations")

        assert [g.field_id for g in result["values"]] == ["A"]

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_before_call(self, router, store, upstream):
        """Test that data actions use a refreshed token."""
        upstream.token_endpoint()
        upstream.api("/organizations", json={"values": []})
        await store.upsert(make_credential(expires_in=timedelta(minutes=2)))

        await router.handle("user-1", "organizations")

        api_call = upstream.calls("GET", "https://api.test")[0]
        assert api_call.headers["Authorization"] == "Bearer new-access"

    @pytest.mark.asyncio
    async def test_refresh_failure_blocks_data_action(self, router, store, upstream):
        """Test that a stale refresh token surfaces as RefreshFailed."""
        upstream.token_endpoint(status=400)
        await store.upsert(
            make_credential(expires_in=timedelta(minutes=2), refresh_token="stale")
        )

        with pytest.raises(RefreshFailed):
            await router.handle("user-1", "organizations")
        assert upstream.calls("GET", "https://api.test") == []


class TestDispatch:
    """Tests for action discrimination."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [None, "", "delete-everything"])
    async def test_unknown_action(self, router, action):
        """Test missing and unknown actions."""
        with pytest.raises(UnknownAction) as exc_info:
            await router.handle("user-1", action)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_action_outside_endpoint_set(self, router, store):
        """Test that the data endpoint does not accept auth actions."""
        await store.upsert(make_credential())

        with pytest.raises(UnknownAction):
            await router.handle("user-1", "disconnect", allowed=DATA_ACTIONS)
        assert await store.get("user-1") is not None

    def test_action_sets_are_disjoint(self):
        """Test that each action belongs to exactly one endpoint."""
        assert AUTH_ACTIONS.isdisjoint(DATA_ACTIONS)
        assert len(AUTH_ACTIONS | DATA_ACTIONS) == 7

    def test_state_changing_actions_are_post_only(self):
        """Test which actions require POST."""
        assert POST_ACTIONS == {
            "exchange",
            "refresh",
            "disconnect",
            "select-organization",
        }
