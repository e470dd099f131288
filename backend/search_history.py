"""
Search history: the most recent distinct keywords per user, newest first.
"""
import logging
import time
from typing import List, Optional

from sqlalchemy.orm import Session

from models import SearchHistoryRow

logger = logging.getLogger(__name__)

SEARCH_HISTORY_LIMIT = 20


class SearchHistoryRepository:
    """Bounded per-user keyword history."""

    def __init__(self, limit: int = SEARCH_HISTORY_LIMIT):
        self.limit = limit

    def _newest_first(self, session: Session, username: str):
        # created_at has one-second resolution; id breaks ties in insert order
        return (
            session.query(SearchHistoryRow)
            .filter(SearchHistoryRow.username == username)
            .order_by(SearchHistoryRow.created_at.desc(), SearchHistoryRow.id.desc())
        )

    def get(self, session: Session, username: str) -> List[str]:
        rows = (
            self._newest_first(session, username)
            .with_entities(SearchHistoryRow.keyword)
            .limit(self.limit)
            .all()
        )
        return [str(row.keyword) for row in rows]

    def add(self, session: Session, username: str, keyword: str, now: Optional[int] = None) -> None:
        """
        Record a search. An existing entry for the same keyword is removed
        first so the keyword moves to the front instead of duplicating, then
        the history is trimmed back to the limit.

        Call inside one transaction so the three steps apply together.
        """
        keyword = str(keyword)
        session.query(SearchHistoryRow).filter(
            SearchHistoryRow.username == username,
            SearchHistoryRow.keyword == keyword,
        ).delete(synchronize_session=False)

        session.add(SearchHistoryRow(
            username=username,
            keyword=keyword,
            created_at=int(time.time()) if now is None else now,
        ))
        session.flush()

        keep = [
            row.id
            for row in self._newest_first(session, username)
            .with_entities(SearchHistoryRow.id)
            .limit(self.limit)
        ]
        trimmed = session.query(SearchHistoryRow).filter(
            SearchHistoryRow.username == username,
            SearchHistoryRow.id.not_in(keep),
        ).delete(synchronize_session=False)
        if trimmed:
            logger.debug("Trimmed %s old search keyword(s) for %s", trimmed, username)

    def delete(self, session: Session, username: str, keyword: Optional[str] = None) -> int:
        """Delete one keyword, or the whole history when keyword is None or empty."""
        query = session.query(SearchHistoryRow).filter(SearchHistoryRow.username == username)
        if keyword:
            query = query.filter(SearchHistoryRow.keyword == str(keyword))
        return query.delete(synchronize_session=False)
