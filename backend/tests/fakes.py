"""In-memory stand-in for the remote tree client used by scan tests."""

from __future__ import annotations

import asyncio

from flixdex.services.onedrive import RemoteEntry, RemoteEntryKind, RemotePage


def folder_entry(folder_id: str, name: str | None = None) -> RemoteEntry:
    return RemoteEntry(kind=RemoteEntryKind.FOLDER, id=folder_id, name=name or folder_id)


def file_entry(
    item_id: str,
    name: str,
    mime_type: str | None = None,
    size: int | None = 1000,
) -> RemoteEntry:
    return RemoteEntry(
        kind=RemoteEntryKind.FILE,
        id=item_id,
        name=name,
        size=size,
        mime_type=mime_type,
        download_url=f"https://download.example/{item_id}",
    )


class FakeTreeClient:
    """Serves a folder tree given as ``{folder_id: [page, ...]}``.

    A page is a list of entries, or an exception raised when that page is
    requested. Cursors are ``"<folder_id>:<page index>"``.
    """

    def __init__(self, tree: dict[str, list]):
        self.tree = tree
        self.calls: list[tuple[str, str | None]] = []
        self.gate: asyncio.Event | None = None

    async def list_children(
        self,
        access_token: str,
        folder_id: str,
        cursor: str | None = None,
    ) -> RemotePage:
        self.calls.append((folder_id, cursor))
        if self.gate is not None:
            await self.gate.wait()

        pages = self.tree[folder_id]
        index = 0 if cursor is None else int(cursor.rsplit(":", 1)[1])
        page = pages[index]
        if isinstance(page, Exception):
            raise page

        next_cursor = f"{folder_id}:{index + 1}" if index + 1 < len(pages) else None
        return RemotePage(entries=page, next_cursor=next_cursor)

    async def close(self) -> None:
        pass
