"""Databricks-shaped tool set answering with canned data.

Serves as a stand-in backend for development and tests; no Databricks API is
ever contacted.
"""

from typing import Any

from mcp_session import __version__
from mcp_session.server.server import ToolServer
from mcp_session.shared import mock_payloads


def create_mock_server(name: str = "databricks-mcp-server") -> ToolServer:
    server = ToolServer(name, __version__, instructions="Mock Databricks tools. All responses are [MOCK DATA].")

    @server.tool("databricks_query", "Execute a SQL query on a Databricks SQL warehouse")
    async def databricks_query(query: str, warehouse_id: str | None = None) -> str:
        return mock_payloads.databricks_query(query=query, warehouse_id=warehouse_id)

    @server.tool("list_clusters", "List all Databricks clusters")
    async def list_clusters() -> str:
        return mock_payloads.list_clusters()

    @server.tool("run_databricks_notebook", "Run a notebook as a one-off Databricks job")
    async def run_databricks_notebook(
        notebook_path: str,
        base_params: dict[str, Any] | None = None,
        job_name: str = "AgentJob",
    ) -> str:
        return mock_payloads.run_databricks_notebook(
            notebook_path=notebook_path, base_params=base_params, job_name=job_name
        )

    @server.tool("train_and_register_model", "Trigger the training job and register the resulting model")
    async def train_and_register_model(
        model_type: str,
        additional_params: dict[str, Any] | None = None,
        job_name: str = "DDT-Train-and-Register-Model",
    ) -> str:
        return mock_payloads.train_and_register_model(
            model_type=model_type, additional_params=additional_params, job_name=job_name
        )

    @server.tool("get_latest_experiment_run", "Get the most recent MLflow run of an experiment")
    async def get_latest_experiment_run(experiment_id: str) -> str:
        return mock_payloads.get_latest_experiment_run(experiment_id=experiment_id)

    @server.tool("get_model_metadata", "Get MLflow experiment metadata")
    async def get_model_metadata(experiment_id: str) -> str:
        return mock_payloads.get_model_metadata(experiment_id=experiment_id)

    @server.tool("get_registered_model_info", "Get Unity Catalog registered model details")
    async def get_registered_model_info(model_name: str, uc_catalog: str, uc_schema: str) -> str:
        return mock_payloads.get_registered_model_info(
            model_name=model_name, uc_catalog=uc_catalog, uc_schema=uc_schema
        )

    @server.tool("check_databricks_job_status", "Check the state of a job run")
    async def check_databricks_job_status(job_id: str, run_id: str) -> str:
        return mock_payloads.check_databricks_job_status(job_id=job_id, run_id=run_id)

    @server.tool("get_latest_running_job_runs", "List job runs that are currently active")
    async def get_latest_running_job_runs() -> str:
        return mock_payloads.get_latest_running_job_runs()

    @server.tool("get_job_details", "Get the settings of a job")
    async def get_job_details(job_id: str) -> str:
        return mock_payloads.get_job_details(job_id=job_id)

    @server.tool("convert_epoch_to_datetime", "Convert a Unix epoch (seconds) to a readable datetime")
    async def convert_epoch_to_datetime(epoch_timestamp: str) -> str:
        return mock_payloads.convert_epoch_to_datetime(epoch_timestamp=epoch_timestamp)

    @server.tool("get_train_experiment_info", "Describe the training parameters for a model type")
    async def get_train_experiment_info(model_type: str) -> str:
        return mock_payloads.get_train_experiment_info(model_type=model_type)

    @server.tool("trigger_azure_devops_pipeline", "Trigger the deployment pipeline for a model")
    async def trigger_azure_devops_pipeline(
        model_type: str,
        branch: str = "dev",
        platform: str = "databricks",
        environment: str = "dev",
    ) -> str:
        return mock_payloads.trigger_azure_devops_pipeline(
            model_type=model_type, branch=branch, platform=platform, environment=environment
        )

    return server
