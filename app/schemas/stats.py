from pydantic import BaseModel, ConfigDict


class CounterSnapshotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    requests: int
    bad_connections: int
    open_connections: int
    refused_connections: int
    denied_connections: int
