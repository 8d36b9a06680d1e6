"""Values larger than one cookie, split across indexed names.

A value is stored as `name`, `name-1`, `name-2`, ... and reassembled by
concatenating parts in index order until one is missing.
"""

from ssoflow_runtime.protocols.cookies import CookieJar

CHUNK_SIZE = 3800


def chunk_name(name: str, index: int) -> str:
    return name if index == 0 else f"{name}-{index}"


class ChunkedStore:
    """Chunking layer over any CookieJar."""

    def __init__(self, jar: CookieJar, chunk_size: int = CHUNK_SIZE) -> None:
        self.jar = jar
        self.chunk_size = chunk_size

    def get(self, name: str) -> str | None:
        first = self.jar.get(name)
        if first is None:
            return None
        parts = [first]
        index = 1
        while (part := self.jar.get(chunk_name(name, index))) is not None:
            parts.append(part)
            index += 1
        return "".join(parts)

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        """Store value, removing continuations left over from a longer one."""
        self.clear(name)
        chunks = [value[i : i + self.chunk_size] for i in range(0, len(value), self.chunk_size)] or [""]
        for index, chunk in enumerate(chunks):
            self.jar.set(chunk_name(name, index), chunk, max_age)

    def clear(self, name: str) -> None:
        if self.jar.get(name) is not None:
            self.jar.delete(name)
        index = 1
        while self.jar.get(chunk_name(name, index)) is not None:
            self.jar.delete(chunk_name(name, index))
            index += 1
