# shopcore/data/models/user.py
from sqlalchemy import Column, Integer, String

from shopcore.data.database import Base


class UserModel(Base):
    """Owner row, maintained by the auth service. Only used as a foreign key target."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
