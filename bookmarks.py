import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Set, Union

logger = logging.getLogger(__name__)

BOOKMARK_KEY = "bookmarked_coins"


class BookmarkStoreError(Exception):
    pass


@dataclass(frozen=True)
class BookmarkChange:
    coin_id: str
    is_bookmarked: bool


BookmarkListener = Callable[[BookmarkChange], None]


class BookmarkStore:
    """
    Bookmarked coin ids kept under a single key of a JSON preference file.
    The whole set is read on every access and rewritten on every mutation.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._listeners: List[BookmarkListener] = []
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise BookmarkStoreError(f"Corrupt preference file {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise BookmarkStoreError(f"Preference file {self.path} is not a JSON object")
        return raw

    def _bookmarks(self, prefs: dict) -> Set[str]:
        value = prefs.get(BOOKMARK_KEY)
        if value is None:
            return set()
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise BookmarkStoreError(f"{BOOKMARK_KEY!r} in {self.path} is not a list of coin ids")
        return set(value)

    def _write(self, prefs: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(prefs, f)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get_bookmarked_coins(self) -> Set[str]:
        return self._bookmarks(self._read())

    def is_bookmarked(self, coin_id: str) -> bool:
        return coin_id in self.get_bookmarked_coins()

    def toggle_bookmark(self, coin_id: str) -> bool:
        """Flip membership of coin_id and return the new state."""
        with self._lock:
            prefs = self._read()
            bookmarks = self._bookmarks(prefs)
            if coin_id in bookmarks:
                bookmarks.remove(coin_id)
                is_bookmarked = False
            else:
                bookmarks.add(coin_id)
                is_bookmarked = True
            prefs[BOOKMARK_KEY] = sorted(bookmarks)
            self._write(prefs)

        self._notify(BookmarkChange(coin_id, is_bookmarked))
        return is_bookmarked

    def subscribe(self, listener: BookmarkListener) -> Callable[[], None]:
        """Register listener; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: BookmarkChange):
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Bookmark listener failed for {change.coin_id}")
