from typing import Generic, TypeVar, Type, List, Any, Dict
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from rowqueue.core.database import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository class with common create operations.

    Repositories never commit; the caller owns the transaction.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, obj_data: Dict[str, Any]) -> ModelType:
        """Create a new record."""
        try:
            db_obj = self.model(**obj_data)
            self.session.add(db_obj)
            await self.session.flush()
            return db_obj
        except Exception as e:
            logger.warning(f"Error creating {self.model.__name__}: {e}")
            raise

    async def create_many(self, objs_data: List[Dict[str, Any]]) -> List[ModelType]:
        """Create several records in one flush."""
        try:
            db_objs = [self.model(**data) for data in objs_data]
            self.session.add_all(db_objs)
            await self.session.flush()
            return db_objs
        except Exception as e:
            logger.warning(f"Error creating {len(objs_data)} {self.model.__name__} records: {e}")
            raise
