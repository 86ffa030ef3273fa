"""
AdmissionReview (admission.k8s.io/v1) request and response models
"""

import base64
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ADMISSION_API_VERSION = "admission.k8s.io/v1"


class AdmissionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uid: str = Field(..., description="Request identifier echoed in the response")
    kind: dict[str, str] | None = Field(default=None)
    resource: dict[str, str] | None = Field(default=None)
    namespace: str | None = Field(default=None)
    name: str | None = Field(default=None)
    operation: str | None = Field(default=None)
    object: dict[str, Any] | None = Field(default=None)
    oldObject: dict[str, Any] | None = Field(default=None)
    dryRun: bool = Field(default=False)


class AdmissionReview(BaseModel):
    model_config = ConfigDict(extra="ignore")

    apiVersion: str = Field(default=ADMISSION_API_VERSION)
    kind: str = Field(default="AdmissionReview")
    request: AdmissionRequest


class AdmissionStatus(BaseModel):
    code: int
    message: str


class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    status: AdmissionStatus | None = None
    patchType: str | None = None
    patch: str | None = None


def allowed(uid: str, message: str | None = None) -> AdmissionResponse:
    status = AdmissionStatus(code=200, message=message) if message else None
    return AdmissionResponse(uid=uid, allowed=True, status=status)


def denied(uid: str, message: str, code: int = 403) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid, allowed=False, status=AdmissionStatus(code=code, message=message)
    )


def errored(uid: str, code: int, error: Exception | str) -> AdmissionResponse:
    return denied(uid, str(error), code=code)


def patched(uid: str, patch: list[dict[str, Any]]) -> AdmissionResponse:
    if not patch:
        return allowed(uid)
    encoded = base64.b64encode(json.dumps(patch).encode("utf-8")).decode("ascii")
    return AdmissionResponse(uid=uid, allowed=True, patchType="JSONPatch", patch=encoded)


def review(response: AdmissionResponse) -> dict[str, Any]:
    """Wrap a response in the AdmissionReview envelope the API server expects"""
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": "AdmissionReview",
        "response": response.model_dump(exclude_none=True),
    }
