from sqlalchemy import Column, Integer, String
from portal.db import Base

CONTACT_KINDS = ("ramais", "departments", "companies", "setor", "cargos")


class Contact(Base):
    __tablename__ = "contact"
    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False, default="ramais")
    name = Column(String, nullable=False)
    number = Column(String, nullable=True)  # extension ("ramal")
    department = Column(String, nullable=True)
    setor = Column(String, nullable=True)
    company = Column(String, nullable=True)
    email = Column(String, nullable=True)
    image = Column(String, nullable=True)
