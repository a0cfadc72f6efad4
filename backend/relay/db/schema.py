from pydantic import BaseModel


class Transfer(BaseModel):
    key: str
    created_at: int
    file_path: str

    class Config:
        from_attributes = True

    def is_expired(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.created_at >= ttl_ms
