from typing import List

from gradchat.model.notice import Notice


class NoticeBoard:
    """Collects transient user notices until the view layer drains them."""

    def __init__(self) -> None:
        self._items: List[Notice] = []

    def info(self, title: str, description: str = "") -> None:
        self._items.append(Notice(title=title, description=description))

    def error(self, title: str, description: str = "") -> None:
        self._items.append(Notice(title=title, description=description, variant="destructive"))

    def peek(self) -> List[Notice]:
        return list(self._items)

    def drain(self) -> List[Notice]:
        items, self._items = self._items, []
        return items
