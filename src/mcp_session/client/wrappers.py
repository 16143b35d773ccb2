"""Typed shortcuts for the Databricks tool set.

Each method only shapes its arguments into ``call_tool(name, arguments)``;
error handling and session rules are the client's.
"""

from __future__ import annotations

from typing import Any, Protocol

from mcp_session.types import CallToolResult


class ToolCaller(Protocol):
    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> CallToolResult: ...


def _drop_none(arguments: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in arguments.items() if value is not None}


class DatabricksTools:
    """Usage:
    tools = DatabricksTools(client)
    result = await tools.execute_query("SELECT 1", warehouse_id="abc")
    """

    def __init__(self, client: ToolCaller) -> None:
        self.client = client

    async def execute_query(self, query: str, warehouse_id: str | None = None) -> CallToolResult:
        return await self.client.call_tool(
            "databricks_query", _drop_none({"query": query, "warehouse_id": warehouse_id})
        )

    async def list_clusters(self) -> CallToolResult:
        return await self.client.call_tool("list_clusters", {})

    async def run_notebook(
        self,
        notebook_path: str,
        base_params: dict[str, Any] | None = None,
        job_name: str = "AgentJob",
    ) -> CallToolResult:
        return await self.client.call_tool(
            "run_databricks_notebook",
            {"notebook_path": notebook_path, "base_params": base_params or {}, "job_name": job_name},
        )

    async def train_and_register_model(
        self,
        model_type: str,
        additional_params: dict[str, Any] | None = None,
        job_name: str = "DDT-Train-and-Register-Model",
    ) -> CallToolResult:
        return await self.client.call_tool(
            "train_and_register_model",
            {"model_type": model_type, "additional_params": additional_params or {}, "job_name": job_name},
        )

    async def get_latest_experiment_run(self, experiment_id: str) -> CallToolResult:
        return await self.client.call_tool("get_latest_experiment_run", {"experiment_id": experiment_id})

    async def get_model_metadata(self, experiment_id: str) -> CallToolResult:
        return await self.client.call_tool("get_model_metadata", {"experiment_id": experiment_id})

    async def get_registered_model_info(self, model_name: str, uc_catalog: str, uc_schema: str) -> CallToolResult:
        return await self.client.call_tool(
            "get_registered_model_info",
            {"model_name": model_name, "uc_catalog": uc_catalog, "uc_schema": uc_schema},
        )

    async def check_job_status(self, job_id: str, run_id: str) -> CallToolResult:
        return await self.client.call_tool("check_databricks_job_status", {"job_id": job_id, "run_id": run_id})

    async def get_running_jobs(self) -> CallToolResult:
        return await self.client.call_tool("get_latest_running_job_runs", {})

    async def get_job_details(self, job_id: str) -> CallToolResult:
        return await self.client.call_tool("get_job_details", {"job_id": job_id})

    async def convert_epoch_to_datetime(self, epoch_timestamp: str | int) -> CallToolResult:
        return await self.client.call_tool("convert_epoch_to_datetime", {"epoch_timestamp": str(epoch_timestamp)})

    async def get_train_experiment_info(self, model_type: str) -> CallToolResult:
        return await self.client.call_tool("get_train_experiment_info", {"model_type": model_type})

    async def trigger_azure_devops_pipeline(
        self,
        model_type: str,
        branch: str = "dev",
        platform: str = "databricks",
        environment: str = "dev",
    ) -> CallToolResult:
        return await self.client.call_tool(
            "trigger_azure_devops_pipeline",
            {"model_type": model_type, "branch": branch, "platform": platform, "environment": environment},
        )
