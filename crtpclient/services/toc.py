"""Table of contents (TOC) download and caching.

Both the log and the param subsystem describe their variables with a TOC
served on channel 0 of their port. The TOC is identified by a CRC32
checksum computed by the firmware, which is the only basis for cache
validity: a cached TOC with the same checksum is reused without fetching
any item.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

import msgspec

from ..errors import DecodeError, TocFetchTimeout, VariableNotFound
from ..protocol import protocol
from ..protocol.packet import Packet
from ..protocol.protocol import PARAM_FLAG_READ_ONLY, TOC_CACHE_VERSION, TocCommand
from ..protocol.structures import TocInfoRequest, TocInfoResponse, TocItemRequest, TocItemResponse
from ..protocol.values import ValueType, log_type_from_code, param_type_from_code
from .flow import RequestFlow

logger = logging.getLogger("crtpclient.toc")


class TocKind(StrEnum):
    LOG = "log"
    PARAM = "param"


class Access(StrEnum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class TocEntry(msgspec.Struct, frozen=True):
    """One variable described by the firmware."""

    id: int
    group: str
    name: str
    type: ValueType
    access: Access = Access.READ_WRITE

    @property
    def full_name(self) -> str:
        return f"{self.group}.{self.name}"

    @property
    def writable(self) -> bool:
        return self.access is Access.READ_WRITE


class Toc:
    """Immutable index of TOC entries by full name and by id."""

    def __init__(self, checksum: int, entries: Iterable[TocEntry]) -> None:
        self._checksum = checksum
        by_id: dict[int, TocEntry] = {}
        by_name: dict[str, TocEntry] = {}
        ordered: list[TocEntry] = []
        for entry in entries:
            known = by_id.get(entry.id)
            if known is not None:
                if known.full_name != entry.full_name or known.type != entry.type:
                    raise DecodeError(
                        f"TOC id {entry.id} reused: {known.full_name} ({known.type}) "
                        f"vs {entry.full_name} ({entry.type})"
                    )
                continue
            named = by_name.get(entry.full_name)
            if named is not None:
                raise DecodeError(
                    f"TOC name {entry.full_name} listed twice: id {named.id} and id {entry.id}"
                )
            by_id[entry.id] = entry
            by_name[entry.full_name] = entry
            ordered.append(entry)
        self._entries = tuple(ordered)
        self._by_id = MappingProxyType(by_id)
        self._by_name = MappingProxyType(by_name)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TocEntry]:
        return iter(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Toc):
            return NotImplemented
        return self._checksum == other._checksum and self._entries == other._entries

    def __repr__(self) -> str:
        return f"Toc(checksum=0x{self._checksum:08X}, entries={len(self._entries)})"

    @property
    def checksum(self) -> int:
        return self._checksum

    @property
    def entries(self) -> tuple[TocEntry, ...]:
        return self._entries

    def names(self) -> list[str]:
        return [entry.full_name for entry in self._entries]

    def by_name(self, name: str) -> TocEntry:
        try:
            return self._by_name[name]
        except KeyError:
            raise VariableNotFound(f"Variable not found: {name}") from None

    def by_id(self, ident: int) -> TocEntry:
        try:
            return self._by_id[ident]
        except KeyError:
            raise VariableNotFound(f"Variable id not found: {ident}") from None

    def resolve(self, name_or_id: str | int) -> TocEntry:
        if isinstance(name_or_id, int):
            return self.by_id(name_or_id)
        return self.by_name(name_or_id)


# --- Cache ---


class TocCacheKey(msgspec.Struct, frozen=True):
    kind: TocKind
    checksum: int
    version: int = TOC_CACHE_VERSION

    @property
    def filename(self) -> str:
        return f"{self.kind.value}-v{self.version}-{self.checksum:08x}.json"


class TocRecord(msgspec.Struct):
    """Serialized form of a TOC stored by :class:`FileTocCache`."""

    version: int
    kind: TocKind
    checksum: int
    entries: list[TocEntry]


class TocCache(Protocol):
    def get(self, key: TocCacheKey) -> Toc | None: ...

    def store(self, key: TocCacheKey, toc: Toc) -> None: ...

    def clear(self) -> None: ...


class NullTocCache:
    """Cache that never stores anything."""

    def get(self, key: TocCacheKey) -> Toc | None:
        return None

    def store(self, key: TocCacheKey, toc: Toc) -> None:
        return None

    def clear(self) -> None:
        return None


class InMemoryTocCache:
    """Process-lifetime cache; safe to share between connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tocs: dict[TocCacheKey, Toc] = {}

    def __len__(self) -> int:
        return len(self._tocs)

    def get(self, key: TocCacheKey) -> Toc | None:
        with self._lock:
            return self._tocs.get(key)

    def store(self, key: TocCacheKey, toc: Toc) -> None:
        with self._lock:
            self._tocs[key] = toc

    def clear(self) -> None:
        with self._lock:
            self._tocs.clear()


class FileTocCache:
    """Persist each TOC as one JSON file so it survives application restarts.

    Unreadable or corrupt files count as a miss and are removed; write
    failures are logged and the TOC simply stays uncached.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _file_path(self, key: TocCacheKey) -> Path:
        return self._dir / key.filename

    def get(self, key: TocCacheKey) -> Toc | None:
        path = self._file_path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read TOC cache file %s: %s", path, exc)
            return None
        try:
            record = msgspec.json.decode(data, type=TocRecord)
            if record.checksum != key.checksum or record.kind != key.kind:
                raise DecodeError("cache file does not match its key")
            return Toc(record.checksum, record.entries)
        except (msgspec.ValidationError, msgspec.DecodeError, DecodeError) as exc:
            logger.warning("Discarding corrupt TOC cache file %s: %s", path, exc)
            path.unlink(missing_ok=True)
            return None

    def store(self, key: TocCacheKey, toc: Toc) -> None:
        record = TocRecord(
            version=key.version,
            kind=key.kind,
            checksum=toc.checksum,
            entries=list(toc.entries),
        )
        path = self._file_path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_bytes(msgspec.json.encode(record))
            tmp_path.replace(path)
        except OSError as exc:
            logger.warning("Cannot write TOC cache file %s: %s", path, exc)
            tmp_path.unlink(missing_ok=True)

    def clear(self) -> None:
        for f in self._dir.glob("*.json"):
            f.unlink(missing_ok=True)


_DEFAULT_CACHE = InMemoryTocCache()


def default_toc_cache() -> InMemoryTocCache:
    """Return the process-wide in-memory cache."""
    return _DEFAULT_CACHE


# --- Download ---


def decode_log_entry(item: TocItemResponse) -> TocEntry:
    value_type = log_type_from_code(item.type_byte & protocol.LOG_TYPE_MASK)
    return TocEntry(item.ident, item.group, item.name, value_type, Access.READ_ONLY)


def decode_param_entry(item: TocItemResponse) -> TocEntry:
    value_type = param_type_from_code(item.type_byte & protocol.PARAM_TYPE_MASK)
    access = Access.READ_ONLY if item.type_byte & PARAM_FLAG_READ_ONLY else Access.READ_WRITE
    return TocEntry(item.ident, item.group, item.name, value_type, access)


_ENTRY_DECODERS: dict[TocKind, Callable[[TocItemResponse], TocEntry]] = {
    TocKind.LOG: decode_log_entry,
    TocKind.PARAM: decode_param_entry,
}


class TocFetcher:
    """Download the TOC of one port over its channel 0."""

    def __init__(self, kind: TocKind, port: int, flow: RequestFlow[TocInfoResponse | TocItemResponse]) -> None:
        self._kind = kind
        self._port = port
        self._flow = flow
        self._decode_entry = _ENTRY_DECODERS[kind]
        self._fetching: int | None = None

    def handle_packet(self, packet: Packet) -> None:
        """Resolve the pending request answered by *packet*."""
        if not packet.payload:
            raise DecodeError("Empty TOC packet")
        command = packet.payload[0]
        if command == TocCommand.GET_INFO_V2:
            try:
                info = TocInfoResponse.decode(packet.payload)
            except DecodeError as exc:
                self._flow.pending.fail(("info",), exc)
                raise
            self._flow.pending.resolve(("info",), info)
        elif command == TocCommand.GET_ITEM_V2:
            try:
                item = TocItemResponse.decode(packet.payload)
            except DecodeError as exc:
                if self._fetching is not None:
                    self._flow.pending.fail(("item", self._fetching), exc)
                raise
            if not self._flow.pending.resolve(("item", item.ident), item):
                logger.debug("Ignoring unexpected %s TOC item %d", self._kind.value, item.ident)
        else:
            logger.debug("Ignoring %s TOC command 0x%02X", self._kind.value, command)

    async def fetch(self, cache: TocCache) -> Toc:
        info_request = Packet(
            self._port,
            protocol.TOC_CHANNEL,
            TocInfoRequest(command=TocCommand.GET_INFO_V2).encode(),
        )
        info: TocInfoResponse = await self._flow.request(
            info_request, ("info",), timeout_error=TocFetchTimeout
        )
        key = TocCacheKey(self._kind, info.checksum)
        cached = cache.get(key)
        if cached is not None:
            logger.info(
                "Using cached %s TOC (%d entries, checksum 0x%08X)",
                self._kind.value,
                len(cached),
                info.checksum,
            )
            return cached

        logger.info(
            "Fetching %s TOC (%d entries, checksum 0x%08X)",
            self._kind.value,
            info.count,
            info.checksum,
        )
        entries: list[TocEntry] = []
        try:
            for index in range(info.count):
                self._fetching = index
                request = Packet(
                    self._port,
                    protocol.TOC_CHANNEL,
                    TocItemRequest(command=TocCommand.GET_ITEM_V2, index=index).encode(),
                )
                item: TocItemResponse = await self._flow.request(
                    request, ("item", index), timeout_error=TocFetchTimeout
                )
                entries.append(self._decode_entry(item))
        finally:
            self._fetching = None

        toc = Toc(info.checksum, entries)
        cache.store(key, toc)
        return toc


__all__ = [
    "Access",
    "FileTocCache",
    "InMemoryTocCache",
    "NullTocCache",
    "Toc",
    "TocCache",
    "TocCacheKey",
    "TocEntry",
    "TocFetcher",
    "TocKind",
    "TocRecord",
    "default_toc_cache",
]
