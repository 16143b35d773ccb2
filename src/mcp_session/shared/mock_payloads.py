"""Canned ``[MOCK DATA]`` payloads for the Databricks-shaped tool set.

Shared by the mock server (``mcp_session.server.mock_tools``) and the
offline ``MockClient`` so both answer identically.
"""

import json
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

MOCK_TOOL_NAMES: tuple[str, ...] = (
    "databricks_query",
    "run_databricks_notebook",
    "train_and_register_model",
    "get_latest_experiment_run",
    "get_model_metadata",
    "get_registered_model_info",
    "check_databricks_job_status",
    "get_latest_running_job_runs",
    "get_job_details",
    "convert_epoch_to_datetime",
    "get_train_experiment_info",
    "trigger_azure_devops_pipeline",
    "list_clusters",
)

_DAY_MS = 86_400_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2)


def databricks_query(query: str = "", warehouse_id: str | None = None, **_: Any) -> str:
    return _dumps(
        {
            "results": [{"test": 1}],
            "query": query,
            "warehouse_id": warehouse_id,
            "message": "[MOCK DATA] Query executed successfully",
        }
    )


def list_clusters(**_: Any) -> str:
    return _dumps(
        {
            "clusters": [
                {
                    "cluster_id": "mock-cluster-1",
                    "cluster_name": "Mock Cluster 1",
                    "state": "RUNNING",
                    "node_type_id": "Standard_DS3_v2",
                    "num_workers": 2,
                },
                {
                    "cluster_id": "mock-cluster-2",
                    "cluster_name": "Mock Cluster 2",
                    "state": "TERMINATED",
                    "node_type_id": "Standard_DS3_v2",
                    "num_workers": 4,
                },
            ],
            "message": "[MOCK DATA] Clusters listed successfully",
        }
    )


def run_databricks_notebook(
    notebook_path: str = "",
    base_params: dict[str, Any] | None = None,
    job_name: str = "AgentJob",
    **_: Any,
) -> str:
    return _dumps(
        {
            "job_id": "12345",
            "run_id": "67890",
            "notebook_path": notebook_path,
            "base_params": base_params or {},
            "job_name": job_name,
            "message": "[MOCK DATA] Notebook run triggered successfully",
        }
    )


def train_and_register_model(
    model_type: str = "",
    additional_params: dict[str, Any] | None = None,
    job_name: str = "DDT-Train-and-Register-Model",
    **_: Any,
) -> str:
    return _dumps(
        {
            "message": f"[MOCK DATA] {model_type} model training job has been triggered with job: 12345.",
            "job_id": "12345",
            "run_id": "67890",
            "experiment_id": "123",
            "job_name": job_name,
            "model_name": f"{model_type}_model",
            "uc_catalog": "main",
            "uc_schema": "ml_models",
        }
    )


def get_latest_experiment_run(experiment_id: str = "", **_: Any) -> str:
    now = _now_ms()
    return _dumps(
        {
            "experiment_id": experiment_id,
            "run_id": "mock-run-123",
            "status": "COMPLETED",
            "start_time": now - 3_600_000,
            "end_time": now,
            "metrics": {"accuracy": 0.95, "f1_score": 0.94},
            "message": "[MOCK DATA] Latest run retrieved successfully",
        }
    )


def get_model_metadata(experiment_id: str = "", **_: Any) -> str:
    return _dumps(
        {
            "experiment_id": experiment_id,
            "name": "/Shared/ShingrixPO",
            "artifact_location": "dbfs:/databricks/mlflow-tracking/123456789",
            "tags": {"model_type": "shingrix-po", "environment": "dev"},
            "message": "[MOCK DATA] Model metadata retrieved successfully",
        }
    )


def get_registered_model_info(model_name: str = "", uc_catalog: str = "", uc_schema: str = "", **_: Any) -> str:
    now = _now_ms()
    return _dumps(
        {
            "name": f"{uc_catalog}.{uc_schema}.{model_name}",
            "creation_timestamp": now - _DAY_MS,
            "last_updated_timestamp": now,
            "user_id": "mock-user-123",
            "versions": [
                {
                    "version": "1",
                    "status": "READY",
                    "creation_timestamp": now - _DAY_MS,
                    "last_updated_timestamp": now,
                }
            ],
            "message": "[MOCK DATA] Registered model info retrieved successfully",
        }
    )


def check_databricks_job_status(job_id: str = "", run_id: str = "", **_: Any) -> str:
    return f"[MOCK DATA] Job {job_id} (Run {run_id}) is currently in state: RUNNING."


def get_latest_running_job_runs(**_: Any) -> str:
    return _dumps(
        {
            "runs": [{"job_id": 12345, "run_id": 67890, "state": "RUNNING", "start_time": _now_ms() - 1_800_000}],
            "message": "[MOCK DATA] Running jobs retrieved successfully",
        }
    )


def get_job_details(job_id: str = "0", **_: Any) -> str:
    return _dumps(
        {
            "job_id": int(job_id) if str(job_id).isdigit() else job_id,
            "creator_user_name": "mock-user",
            "settings": {
                "name": "Mock Job",
                "tasks": [
                    {
                        "task_key": "task1",
                        "notebook_task": {"notebook_path": "/path/to/notebook", "base_parameters": {}},
                        "existing_cluster_id": "mock-cluster-1",
                    }
                ],
            },
            "created_time": _now_ms() - _DAY_MS,
            "message": "[MOCK DATA] Job details retrieved successfully",
        }
    )


def convert_epoch_to_datetime(epoch_timestamp: str = "0", **_: Any) -> str:
    try:
        moment = datetime.fromtimestamp(int(epoch_timestamp), tz=timezone.utc).isoformat()
    except (ValueError, OverflowError, OSError):
        moment = "Invalid Date"
    return f"[MOCK DATA] Epoch {epoch_timestamp} -> {moment}"


def get_train_experiment_info(model_type: str = "", **_: Any) -> str:
    default_params = {
        "baseline_table": "catalog.schema.baseline_table",
        "env": "dev",
        "experiment_id": "123",
        "experiment_name": f"/Shared/{model_type[:1].upper()}{model_type[1:]}",
        "model_name": f"{model_type}_model",
        "monitoring_mode": "enabled",
        "training_script_path": "/path/to/training/script",
        "uc_catalog": "main",
        "uc_schema": "ml_models",
    }
    param_descriptions = {
        "baseline_table": "Input table for baseline data.",
        "env": "Environment to run the training (dev, prod, etc).",
        "experiment_id": "MLflow experiment ID.",
        "experiment_name": "MLflow experiment name.",
        "model_name": "Name for the trained model.",
        "monitoring_mode": "Enable/disable model monitoring.",
        "training_script_path": "Path to the training script.",
        "uc_catalog": "Unity Catalog catalog name.",
        "uc_schema": "Unity Catalog schema name.",
    }
    return _dumps(
        {
            "param_descriptions": param_descriptions,
            "default_params": default_params,
            "message": "[MOCK DATA] Training experiment info retrieved successfully",
        }
    )


def trigger_azure_devops_pipeline(
    model_type: str = "",
    branch: str = "dev",
    platform: str = "databricks",
    environment: str = "dev",
    **_: Any,
) -> str:
    return _dumps(
        {
            "state": "InProgress",
            "run_id": "123456",
            "url": "https://dev.azure.com/org/project/_build/results?buildId=123456",
            "created_date": datetime.now(timezone.utc).isoformat(),
            "branch": branch,
            "platform": platform,
            "environment": environment,
            "message": f"[MOCK DATA] Successfully triggered Azure DevOps pipeline for model {model_type}.",
        }
    )


MOCK_PAYLOADS: dict[str, Callable[..., str]] = {
    "databricks_query": databricks_query,
    "list_clusters": list_clusters,
    "run_databricks_notebook": run_databricks_notebook,
    "train_and_register_model": train_and_register_model,
    "get_latest_experiment_run": get_latest_experiment_run,
    "get_model_metadata": get_model_metadata,
    "get_registered_model_info": get_registered_model_info,
    "check_databricks_job_status": check_databricks_job_status,
    "get_latest_running_job_runs": get_latest_running_job_runs,
    "get_job_details": get_job_details,
    "convert_epoch_to_datetime": convert_epoch_to_datetime,
    "get_train_experiment_info": get_train_experiment_info,
    "trigger_azure_devops_pipeline": trigger_azure_devops_pipeline,
}


def mock_payload(name: str, arguments: dict[str, Any] | None = None) -> str:
    """Render the canned payload for ``name``. Raises KeyError for unknown tools."""
    return MOCK_PAYLOADS[name](**(arguments or {}))
