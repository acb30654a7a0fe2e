from pydantic import BaseModel, StrictInt, StrictStr
from typing import Dict


class ShortenRequest(BaseModel):
    originalUrl: StrictStr
    expirySeconds: StrictInt


class ShortenResponse(BaseModel):
    shortUrl: str
    expiresAt: str
    originalUrl: str
    expirySeconds: int


class ServiceInfo(BaseModel):
    status: str
    message: str
    baseUrl: str
    endpoints: Dict[str, str]


class ErrorResponse(BaseModel):
    error: str
