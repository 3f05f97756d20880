from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, Text
from portal.db import Base


class Card(Base):
    __tablename__ = "card"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    image = Column(String, nullable=True)
    schedule_weekdays = Column(Text, nullable=True)  # JSON array of {startDate, endDate, image}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
