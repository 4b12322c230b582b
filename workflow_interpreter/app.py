"""
Workflow Interpreter Service

A small FastAPI surface over the dynamic workflow interpreter.

Endpoints:
- validate a workflow file (parse + structural checks)
- run one workflow from a file in-process and return its output

Runs use a host context without LLM tools, so only control flow and
persisted code steps (when WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION is on)
can execute; agent-delegated steps fail with a configuration error.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from workflow_interpreter.core.config import config
from workflow_interpreter.core.context import create_context
from workflow_interpreter.core.errors import WorkflowDefinitionError
from workflow_interpreter.core.log_setup import setup_logging
from workflow_interpreter.core.types import DynamicWorkflowOutput
from workflow_interpreter.core.validation import parse_workflow_definition
from workflow_interpreter.workflows.dynamic_workflow import (
    DynamicWorkflowRunnerOptions,
    create_dynamic_workflow,
)

PORT = config.PORT
HOST = config.HOST
LOG_LEVEL = config.LOG_LEVEL

setup_logging(LOG_LEVEL, json_format=config.LOG_FORMAT == "json")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=== Workflow Interpreter Service ===")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info(f"Unsafe code execution: {config.WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION}")
    yield
    logger.info("[Workflow Interpreter] Shutting down")


app = FastAPI(
    title="Workflow Interpreter",
    description="Dynamic workflow interpreter for declarative agentic workflows",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# --- Request / Response Models ---

class ValidateWorkflowRequest(BaseModel):
    """YAML or JSON workflow file source."""
    source: str


class ValidateWorkflowResponse(BaseModel):
    success: bool
    errors: list[str] = Field(default_factory=list)


class RunWorkflowRequest(BaseModel):
    source: str
    workflowId: str = "main"
    input: dict[str, Any] = Field(default_factory=dict)


# --- Endpoints ---

@app.post("/api/v1/workflows/validate", response_model=ValidateWorkflowResponse)
async def validate_workflow(request: ValidateWorkflowRequest):
    result = parse_workflow_definition(request.source)
    return ValidateWorkflowResponse(success=result.success, errors=result.errors)


@app.post("/api/v1/workflows/run", response_model=DynamicWorkflowOutput)
async def run_workflow(request: RunWorkflowRequest):
    """Run a workflow to completion; execution failures are reported in the body."""
    try:
        runner = create_dynamic_workflow(
            request.source,
            DynamicWorkflowRunnerOptions.from_config(config),
        )
    except WorkflowDefinitionError as e:
        raise HTTPException(status_code=400, detail={"message": "Invalid workflow definition", "errors": e.errors})

    started = time.monotonic()
    try:
        output = await runner(request.workflowId, request.input, create_context())
    except Exception as e:
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.error(f"[Workflow] Workflow '{request.workflowId}' failed: {e}")
        return DynamicWorkflowOutput(success=False, error=str(e), durationMs=duration_ms)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"[Workflow] Workflow '{request.workflowId}' completed in {duration_ms}ms")
    return DynamicWorkflowOutput(success=True, output=output, durationMs=duration_ms)


@app.get("/healthz")
async def healthz():
    return {"status": "healthy"}


@app.get("/readyz")
async def readyz():
    return {"status": "ready"}


@app.get("/config")
async def get_config():
    """Get interpreter configuration."""
    return {
        "service": "workflow-interpreter",
        "version": "1.0.0",
        "allowUnsafeCodeExecution": config.WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION,
        "maxToolRoundTrips": config.WORKFLOW_MAX_TOOL_ROUND_TRIPS,
        "features": [
            "while-loops",
            "if-else",
            "try-catch",
            "sub-workflows",
            "persisted-code-steps",
        ],
    }


# Entry point for uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
