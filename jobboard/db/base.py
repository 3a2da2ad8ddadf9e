from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Register the models on the metadata
from jobboard.models import (  # noqa: E402,F401
    user,
    organization,
    organization_member,
    join_request,
)
