"""Colaborador de almacenamiento: colecciones con nombre y filtros estructurales.

El núcleo (pipeline de telemetría y despacho SOS) solo conoce la interfaz
`DataStore`. Cada operación devuelve un `StoreResult` explícito; los fallos
NO se propagan como excepciones, el llamador decide qué hacer con ellos.

Implementaciones:
- SqlDataStore: SQLAlchemy sobre tablas existentes (reflejadas al primer uso)
- InMemoryDataStore: diccionarios en memoria, para tests y modo desarrollo
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Engine

from .config import Settings

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Dict[str, Any]


@dataclass
class StoreResult:
    """Resultado de una operación contra el almacenamiento."""

    success: bool
    data: List[Row] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: List[Row] | None = None) -> "StoreResult":
        return cls(success=True, data=data or [])

    @classmethod
    def fail(cls, error: str) -> "StoreResult":
        return cls(success=False, error=error)

    @property
    def first(self) -> Optional[Row]:
        return self.data[0] if self.data else None


class DataStore(ABC):
    """Interfaz insert/select/update sobre colecciones con nombre."""

    @abstractmethod
    def insert(self, collection: str, row: Row) -> StoreResult:
        """Inserta una fila. `data` contiene la fila insertada con su `id`."""

    @abstractmethod
    def select(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> StoreResult:
        """Consulta filas por igualdad de campos."""

    @abstractmethod
    def update(self, collection: str, values: Row, filters: Filters) -> StoreResult:
        """Actualiza las filas que cumplen `filters`. `data` son las filas actualizadas."""

    def is_connected(self) -> bool:
        return True


class InMemoryDataStore(DataStore):
    """Almacenamiento en memoria, thread-safe, con `id` autoincremental."""

    def __init__(self) -> None:
        self._collections: Dict[str, List[Row]] = {}
        self._next_id: Dict[str, int] = {}
        self._lock = threading.Lock()

    def insert(self, collection: str, row: Row) -> StoreResult:
        with self._lock:
            stored = copy.deepcopy(row)
            if stored.get("id") is None:
                next_id = self._next_id.get(collection, 1)
                stored["id"] = next_id
                self._next_id[collection] = next_id + 1
            self._collections.setdefault(collection, []).append(stored)
            return StoreResult.ok([copy.deepcopy(stored)])

    def select(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> StoreResult:
        with self._lock:
            rows = [r for r in self._collections.get(collection, []) if _matches(r, filters)]
            if order_by:
                present = [r for r in rows if r.get(order_by) is not None]
                missing = [r for r in rows if r.get(order_by) is None]
                present.sort(key=lambda r: r[order_by], reverse=descending)
                rows = present + missing
            if limit is not None:
                rows = rows[:limit]
            return StoreResult.ok(copy.deepcopy(rows))

    def update(self, collection: str, values: Row, filters: Filters) -> StoreResult:
        with self._lock:
            updated = []
            for row in self._collections.get(collection, []):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
            return StoreResult.ok(updated)


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(row.get(k) == v for k, v in filters.items())


class SqlDataStore(DataStore):
    """Implementación SQLAlchemy sobre tablas existentes.

    Las tablas se reflejan al primer uso y se cachean. Cada operación
    corre en su propia transacción (atomicidad de fila única).
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def _table(self, name: str) -> Table:
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                table = Table(name, self._metadata, autoload_with=self._engine)
                self._tables[name] = table
            return table

    def _where(self, table: Table, filters: Optional[Filters]):
        clauses = []
        for key, value in (filters or {}).items():
            column = table.c[key]
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    def insert(self, collection: str, row: Row) -> StoreResult:
        try:
            table = self._table(collection)
            with self._engine.begin() as conn:
                result = conn.execute(table.insert().values(**row))
                inserted = dict(row)
                pk = result.inserted_primary_key
                if pk and "id" in table.c and inserted.get("id") is None:
                    inserted["id"] = pk[0]
            return StoreResult.ok([inserted])
        except Exception as e:
            logger.error("[STORE] insert into %s failed: %s", collection, e)
            return StoreResult.fail(f"{type(e).__name__}: {e}")

    def select(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> StoreResult:
        try:
            table = self._table(collection)
            stmt = select(table).where(*self._where(table, filters))
            if order_by:
                column = table.c[order_by]
                stmt = stmt.order_by(column.desc() if descending else column.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            with self._engine.connect() as conn:
                rows = [dict(r) for r in conn.execute(stmt).mappings()]
            return StoreResult.ok(rows)
        except Exception as e:
            logger.error("[STORE] select from %s failed: %s", collection, e)
            return StoreResult.fail(f"{type(e).__name__}: {e}")

    def update(self, collection: str, values: Row, filters: Filters) -> StoreResult:
        try:
            table = self._table(collection)
            where = self._where(table, filters)
            with self._engine.begin() as conn:
                conn.execute(table.update().where(*where).values(**values))
                # Releer con los filtros ya aplicados sobre los nuevos valores
                reread = {**filters, **{k: v for k, v in values.items() if k in filters}}
                stmt = select(table).where(*self._where(table, reread))
                rows = [dict(r) for r in conn.execute(stmt).mappings()]
            return StoreResult.ok(rows)
        except Exception as e:
            logger.error("[STORE] update on %s failed: %s", collection, e)
            return StoreResult.fail(f"{type(e).__name__}: {e}")

    def is_connected(self) -> bool:
        from .db import ping

        return ping(self._engine)


def create_data_store(settings: Settings) -> DataStore:
    """Crea el almacenamiento según configuración.

    Sin DATABASE_URL se usa memoria (solo desarrollo).
    """
    if settings.database_url:
        from .db import get_engine

        return SqlDataStore(get_engine(settings))

    if settings.is_production:
        raise RuntimeError("DATABASE_URL must be configured in production")
    logger.warning(
        "[STORE] DATABASE_URL not set - using in-memory store (DEV ONLY, data is lost on restart)"
    )
    return InMemoryDataStore()
