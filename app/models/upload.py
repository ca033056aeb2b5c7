from pydantic import BaseModel


class UploadOut(BaseModel):
    fileID: str
    filename: str


class HealthOut(BaseModel):
    status: str
    store: str
