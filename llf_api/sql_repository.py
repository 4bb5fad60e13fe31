import logging
import operator
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, false, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from llf_api.engine.errors import Conflict, StorageError
from llf_api.engine.repository import Document, OrderBy, Predicate, Repository
from llf_api.models import MODELS_BY_COLLECTION

logger = logging.getLogger(__name__)

_COMPARATORS = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


def _columns(model) -> List[str]:
    return [column.key for column in inspect(model).column_attrs]


def _to_document(row) -> Document:
    return {key: getattr(row, key) for key in _columns(type(row))}


def _clause(model, predicate: Predicate):
    column = getattr(model, predicate.field)
    if predicate.op == "eq":
        if predicate.value is None:
            return column.is_(None)
        return column == predicate.value
    if predicate.value is None:
        return false()
    if predicate.op == "ne":
        return (column.is_not(None)) & (column != predicate.value)
    return _COMPARATORS[predicate.op](column, predicate.value)


def _ordering(model, order: OrderBy):
    column = getattr(model, order.field)
    if order.descending:
        return column.desc().nulls_last()
    return column.asc().nulls_first()


class SqlRepository(Repository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _model(self, collection: str):
        model = MODELS_BY_COLLECTION.get(collection)
        if model is None:
            raise StorageError(f"Unknown collection: {collection}")
        return model

    @contextmanager
    def _session(self, action: str, collection: str):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Repository %s on %s failed", action, collection)
            raise StorageError(f"Database {action} failed for {collection}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        model = self._model(collection)
        with self._session("get", collection) as session:
            row = session.get(model, doc_id)
            return _to_document(row) if row is not None else None

    def put(self, collection: str, doc_id: str, document: Document, *, expected_version: Optional[int] = None) -> None:
        model = self._model(collection)
        columns = set(_columns(model))
        values: Dict[str, Any] = {key: value for key, value in document.items() if key in columns}
        values["id"] = doc_id
        with self._session("put", collection) as session:
            if expected_version is None:
                session.merge(model(**values))
                return
            result = session.execute(
                update(model)
                .where(model.id == doc_id, model.version == expected_version)
                .values(**values)
            )
            if result.rowcount != 1:
                raise Conflict(f"{collection}/{doc_id} was modified concurrently")

    def delete(self, collection: str, doc_id: str) -> None:
        model = self._model(collection)
        with self._session("delete", collection) as session:
            session.execute(delete(model).where(model.id == doc_id))

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Document]:
        model = self._model(collection)
        stmt = select(model)
        for predicate in predicates:
            stmt = stmt.where(_clause(model, predicate))
        stmt = stmt.order_by(*[_ordering(model, order) for order in order_by], model.id.asc())
        with self._session("query", collection) as session:
            return [_to_document(row) for row in session.execute(stmt).scalars().all()]
