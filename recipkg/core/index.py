"""已安装包索引

扁平表 <log_dir>/packages.db，每行 "name version iso8601-timestamp"。
每个包名至多一行，重复安装覆盖旧行（后写者胜，不保留版本历史）。

整表读-改-写本身不是原子的并发安全操作，写者之间的串行化由调用级锁
(recipkg.core.lock.acquire) 保证；单次写入经临时文件 + rename 落盘。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from recipkg.core.models import IndexRow
from recipkg.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


class PackageIndex:
    """已安装包索引"""

    def __init__(self, index_file: Path) -> None:
        self.index_file = index_file

    def _load(self) -> list[IndexRow]:
        if not self.index_file.exists():
            return []
        rows = []
        for lineno, line in enumerate(
            self.index_file.read_text(encoding="utf-8").splitlines(), start=1,
        ):
            if not line.strip():
                continue
            row = IndexRow.from_line(line)
            if row is None:
                logger.warning("索引第 %d 行格式无效，已忽略: %r", lineno, line)
                continue
            rows.append(row)
        return rows

    def _save(self, rows: list[IndexRow]) -> None:
        atomic_write(self.index_file, "".join(r.to_line() for r in rows))

    def upsert(
        self, name: str, version: str, timestamp: datetime | None = None,
    ) -> IndexRow:
        """写入或替换 name 对应的行"""
        row = IndexRow(
            name=name, version=version,
            installed_at=timestamp or datetime.now(tz=timezone.utc),
        )
        rows = [r for r in self._load() if r.name != name]
        rows.append(row)
        self._save(rows)
        logger.info("索引已更新: %s %s", name, version)
        return row

    def remove(self, name: str) -> bool:
        """删除 name 对应的行，不存在时为空操作"""
        rows = self._load()
        kept = [r for r in rows if r.name != name]
        if len(kept) == len(rows):
            return False
        self._save(kept)
        logger.info("已从索引移除: %s", name)
        return True

    def lookup(self, name: str) -> IndexRow | None:
        for r in self._load():
            if r.name == name:
                return r
        return None

    def list_all(self) -> list[IndexRow]:
        return sorted(self._load(), key=lambda r: r.name)
