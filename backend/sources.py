"""
Admin-owned source collections: API (content) sources, live sources and
custom categories.

Each repository offers list_all() and replace_all(). replace_all() upserts
every given entry and removes stored entries that are not in the list, so
afterwards the table holds exactly the written collection.
"""
import logging
from typing import Iterable, List

from sqlalchemy import not_, tuple_
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from models import ApiSourceRow, CategoryRow, LiveSourceRow
from schemas import ApiSource, Category, LiveSource

logger = logging.getLogger(__name__)


def _upsert(session: Session, model, values: dict, index_elements: list) -> None:
    stmt = insert(model).values(**values)
    update_columns = {name: stmt.excluded[name] for name in values if name not in index_elements}
    session.execute(stmt.on_conflict_do_update(index_elements=index_elements, set_=update_columns))


class ApiSourceRepository:

    def list_all(self, session: Session) -> List[ApiSource]:
        return [
            ApiSource(
                key=str(row.key),
                name=str(row.name),
                api=str(row.api),
                detail=str(row.detail) if row.detail else None,
                from_=row.from_source,
                disabled=bool(row.disabled),
            )
            for row in session.query(ApiSourceRow).all()
        ]

    def replace_all(self, session: Session, sources: Iterable[ApiSource]) -> None:
        sources = list(sources)
        for source in sources:
            _upsert(session, ApiSourceRow, {
                "key": source.key,
                "name": source.name,
                "api": source.api,
                "detail": source.detail,
                "from_source": source.from_,
                "disabled": bool(source.disabled),
            }, ["key"])

        removed = (
            session.query(ApiSourceRow)
            .filter(ApiSourceRow.key.not_in([s.key for s in sources]))
            .delete(synchronize_session=False)
        )
        if removed:
            logger.info("Removed %s api source(s) no longer in the config", removed)


class LiveSourceRepository:

    def list_all(self, session: Session) -> List[LiveSource]:
        return [
            LiveSource(
                key=str(row.key),
                name=str(row.name),
                url=str(row.url),
                ua=str(row.user_agent) if row.user_agent else None,
                epg=str(row.epg) if row.epg else None,
                from_=row.from_source,
                channel_number=int(row.channel_number) if row.channel_number is not None else None,
                disabled=bool(row.disabled),
            )
            for row in session.query(LiveSourceRow).all()
        ]

    def replace_all(self, session: Session, sources: Iterable[LiveSource]) -> None:
        sources = list(sources)
        for source in sources:
            _upsert(session, LiveSourceRow, {
                "key": source.key,
                "name": source.name,
                "url": source.url,
                "user_agent": source.ua,
                "epg": source.epg,
                "from_source": source.from_,
                "channel_number": source.channel_number,
                "disabled": bool(source.disabled),
            }, ["key"])

        removed = (
            session.query(LiveSourceRow)
            .filter(LiveSourceRow.key.not_in([s.key for s in sources]))
            .delete(synchronize_session=False)
        )
        if removed:
            logger.info("Removed %s live source(s) no longer in the config", removed)


class CategoryRepository:

    def list_all(self, session: Session) -> List[Category]:
        return [
            Category(
                query=str(row.query),
                type=row.type,
                name=str(row.name) if row.name else None,
                from_=row.from_source,
                disabled=bool(row.disabled),
            )
            for row in session.query(CategoryRow).all()
        ]

    def replace_all(self, session: Session, categories: Iterable[Category]) -> None:
        categories = list(categories)
        for category in categories:
            _upsert(session, CategoryRow, {
                "query": category.query,
                "type": category.type,
                "name": category.name,
                "from_source": category.from_,
                "disabled": bool(category.disabled),
            }, ["query", "type"])

        query = session.query(CategoryRow)
        if categories:
            keep = [(c.query, c.type) for c in categories]
            query = query.filter(not_(tuple_(CategoryRow.query, CategoryRow.type).in_(keep)))
        removed = query.delete(synchronize_session=False)
        if removed:
            logger.info("Removed %s category row(s) no longer in the config", removed)
