"""John Deere organization, field and harvest tools for MCP clients."""

from typing import Any

from fastmcp import FastMCP

from ..helpers import run_action
from ..logging_config import get_logger

logger = get_logger("tools.farm")


def register_farm_tools(mcp: FastMCP) -> None:
    """Register data tools with the MCP server."""

    @mcp.tool()
    async def deere_list_organizations() -> dict[str, Any]:
        """List the John Deere organizations the connected account can access.

        Returns:
            Operations Center response with a ``values`` list of
            organizations (id, name, type)
        """
        return await run_action("organizations")

    @mcp.tool()
    async def deere_select_organization(
        org_id: str,
        org_name: str | None = None,
    ) -> dict[str, Any]:
        """Select the organization used by the field and harvest tools.

        Args:
            org_id: Organization ID from deere_list_organizations
            org_name: Display name to remember with the selection
        """
        return await run_action(
            "select-organization", {"orgId": org_id, "orgName": org_name}
        )

    @mcp.tool()
    async def deere_list_fields() -> dict[str, Any]:
        """List the fields of the selected organization."""
        return await run_action("fields")

    @mcp.tool()
    async def deere_list_harvest_operations() -> dict[str, Any]:
        """List harvest operations of the selected organization, per field.

        Fields whose operations cannot be read are left out.

        Returns:
            ``values``: list of {fieldId, fieldName, operations}
        """
        return await run_action("harvest-operations")
