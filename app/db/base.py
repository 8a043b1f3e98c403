from sqlalchemy.orm import declarative_base


# Declarative base shared by all ORM models
Base = declarative_base()
