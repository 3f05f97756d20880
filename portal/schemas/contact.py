from pydantic import BaseModel


class ContactOut(BaseModel):
    id: int
    kind: str
    name: str
    number: str | None = None
    department: str | None = None
    setor: str | None = None
    company: str | None = None
    email: str | None = None
    image: str | None = None

    class Config:
        from_attributes = True
