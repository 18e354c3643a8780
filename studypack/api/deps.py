"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studypack.core.database import get_session

# Typed shorthand for use in route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
