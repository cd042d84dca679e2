"""Rehydration admission endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from rehydration.api.dependencies import AdmissionHandlerDep, RequestIdDep
from rehydration.services.admission import validate_request

router = APIRouter()


# Request/Response Models


class UserBody(BaseModel):
    """Requesting user."""

    name: str | None = None
    email: str | None = None


class RehydrationRequest(BaseModel):
    """Request to rehydrate a dataset version.

    Fields are optional here so that a missing field is reported by
    ``validate_request`` with its wire name.
    """

    model_config = ConfigDict(populate_by_name=True)

    dataset_id: int | None = Field(default=None, alias="datasetId")
    dataset_version_id: int | None = Field(default=None, alias="datasetVersionId")
    user: UserBody | None = None


class RehydrationStartedResponse(BaseModel):
    task_arn: str = Field(serialization_alias="taskARN")


class RehydrationCompletedResponse(BaseModel):
    rehydration_location: str = Field(serialization_alias="rehydrationLocation")


# Endpoints


@router.post(
    "",
    status_code=202,
    responses={
        200: {"model": RehydrationCompletedResponse, "description": "Already rehydrated"},
        202: {"model": RehydrationStartedResponse, "description": "Rehydration started"},
        400: {"description": "Missing or invalid field"},
        409: {"description": "Rehydration in progress or expiring"},
        500: {"description": "Store or task start failure"},
    },
)
async def create_rehydration(
    body: RehydrationRequest,
    handler: AdmissionHandlerDep,
    request_id: RequestIdDep,
) -> JSONResponse:
    """Start a rehydration, or return the location of a finished one.

    **Status Codes**:
    - 202: A worker task was started; body carries its ARN
    - 200: The dataset version is already rehydrated
    - 409: A rehydration is in progress, or the previous one is being expired
    """
    user = body.user or UserBody()
    admission = validate_request(
        body.dataset_id,
        body.dataset_version_id,
        user.name,
        user.email,
        request_id=request_id,
    )
    result = await handler.admit(admission)

    if result.started:
        response = RehydrationStartedResponse(task_arn=result.task_arn)
        return JSONResponse(status_code=202, content=response.model_dump(by_alias=True))

    response = RehydrationCompletedResponse(rehydration_location=result.rehydration_location)
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))
