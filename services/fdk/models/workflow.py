"""
Workflow context models.

Decoded from Request.context when a function is integrated with a workflow.
"""

from pydantic import BaseModel, ConfigDict, Field


class WorkflowActivity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""
    node_id: str = ""


class WorkflowTrigger(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""


class WorkflowCtx(BaseModel):
    """Caller context describing the orchestration step that invoked the function."""

    model_config = ConfigDict(extra="ignore")

    activity_execution_id: str = ""
    app_id: str = ""
    cid: str = ""
    owner_cid: str = ""
    definition_id: str = ""
    definition_version: int = 0
    execution_id: str = ""
    activity: WorkflowActivity = Field(default_factory=WorkflowActivity)
    trigger: WorkflowTrigger = Field(default_factory=WorkflowTrigger)
